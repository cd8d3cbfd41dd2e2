from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import TYPE_CHECKING

from coursecache.core.context import operation_scope
from coursecache.core.errors import CacheError, RemoteError

if TYPE_CHECKING:
    from coursecache.session import SessionContext

logger = logging.getLogger(__name__)


class BaseStore:
    """Shared plumbing for the per-family stores.

    ``error`` holds the message of the most recent failed operation, for a
    presentation layer that wants to show a banner.  It is informational
    only: the failing operation still raises.
    """

    def __init__(self, ctx: SessionContext) -> None:
        self.ctx = ctx
        self.error: str | None = None

    @property
    def cache(self):
        return self.ctx.cache

    @property
    def merge(self):
        return self.ctx.merge

    @property
    def remote(self):
        return self.ctx.remote

    def clear_error(self) -> None:
        self.error = None

    @contextmanager
    def _operation(self, name: str, default_message: str) -> Iterator[None]:
        """Run one primary operation: name it for logs, record its failure.

        A RemoteError without a server message gets ``default_message``.
        """
        self.error = None
        with operation_scope(name):
            try:
                yield
            except CacheError as exc:
                if isinstance(exc, RemoteError) and not exc.message:
                    exc.message = default_message
                self.error = getattr(exc, "message", "") or default_message
                logger.warning("%s failed: %s", name, self.error)
                raise
