"""Operation context: names the cache operation behind every log line.

WHY CONTEXT VARIABLES (NOT THREAD-LOCALS)
-------------------------------------------
All cache work runs on one event loop thread.  A module fetch fans out
into one progress call per content item, and those calls interleave with
whatever else is in flight.  Thread-local storage would be shared by all
of them.

Each asyncio task gets its own copy of the context, taken when the task is
created.  A background task spawned from ``modules.fetch_modules_for_course``
keeps that operation name even after the spawning call has returned, so
its failure log still says where it came from.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar

operation_var: ContextVar[str] = ContextVar("operation", default="-")


class OperationContextFilter(logging.Filter):
    """Logging filter that injects the current operation into every LogRecord.

    Installed on the output handler by setup_logging(): filters on a logger
    never see records propagated up from child loggers, handler filters do.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        record.operation = operation_var.get("-")  # type: ignore[attr-defined]
        return True


@contextmanager
def operation_scope(name: str) -> Iterator[None]:
    """Run a block under ``name``; nested scopes restore the outer name on exit."""
    token = operation_var.set(name)
    try:
        yield
    finally:
        operation_var.reset(token)


def current_operation() -> str:
    return operation_var.get("-")
