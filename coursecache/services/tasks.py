"""Tracked background work and best-effort calls.

WHY TRACK FIRE-AND-FORGET TASKS?
----------------------------------
Some follow-up fetches must not hold up the call that triggered them:
module progress after a course's module list arrives, a course-progress
refresh after a module is marked complete.  The caller gets its answer
right away and the follow-up lands in the cache whenever it lands.

A bare ``asyncio.create_task`` for that is a trap:
  - nothing holds a reference, so the loop may garbage-collect the task
  - an exception inside it surfaces as "Task exception was never retrieved"
    at some random later moment, or never
  - a test (or a shutdown) has no way to wait for "everything settled"

BackgroundTasks keeps every spawned task in a set until it finishes, logs
and counts failures instead of raising them, and offers join() and
abandon() so the owner decides when to wait and when to walk away.

BEST-EFFORT CALLS
------------------
best_effort() is the awaited cousin: the caller waits for the result, but
a failure is logged and turned into None.  Use it for dependent fetches
whose absence only makes a view less complete.
"""

from __future__ import annotations

import asyncio
import functools
import logging
from collections.abc import Awaitable, Coroutine
from typing import Any, TypeVar

from coursecache.core.metrics import BACKGROUND_TASKS, BEST_EFFORT_FAILURES

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def best_effort(label: str, call: Awaitable[T]) -> T | None:
    """Await ``call``; on failure log it, count it, and return None."""
    try:
        return await call
    except asyncio.CancelledError:
        raise
    except Exception:
        BEST_EFFORT_FAILURES.labels(operation=label).inc()
        logger.warning("Best-effort %s failed", label, exc_info=True)
        return None


class BackgroundTasks:
    def __init__(self) -> None:
        self._tasks: set[asyncio.Task[Any]] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def spawn(self, label: str, coro: Coroutine[Any, Any, Any]) -> asyncio.Task[Any]:
        """Run ``coro`` in the background; failures are logged, never raised."""
        task = asyncio.get_running_loop().create_task(self._run(label, coro), name=label)
        self._tasks.add(task)
        BACKGROUND_TASKS.inc()
        task.add_done_callback(functools.partial(self._finished, coro))
        return task

    async def _run(self, label: str, coro: Coroutine[Any, Any, Any]) -> None:
        try:
            await coro
            logger.debug("Background task [%s] completed", label)
        except asyncio.CancelledError:
            logger.debug("Background task [%s] cancelled", label)
            raise
        except Exception:
            BEST_EFFORT_FAILURES.labels(operation=label).inc()
            logger.exception("Background task [%s] failed", label)

    def _finished(self, coro: Coroutine[Any, Any, Any], task: asyncio.Task[Any]) -> None:
        # A task cancelled before its first step never started coro.
        coro.close()
        self._tasks.discard(task)
        BACKGROUND_TASKS.dec()

    async def join(self) -> None:
        """Wait until every tracked task, including ones spawned meanwhile, is done."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def abandon(self) -> None:
        """Cancel everything still running and wait for the cancellations to land."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
