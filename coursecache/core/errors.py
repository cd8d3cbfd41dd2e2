"""Error taxonomy for the course cache.

  RemoteError
      The remote API answered non-2xx, or the transport failed before it
      answered (status is None then).
  UnauthenticatedError
      An operation needs the current user's id and there is none.  Raised
      before any request goes out.

Not-found is not a class of its own: it is a RemoteError with status 404.
For the few lookups where 404 means "no record yet" (a user's submission,
module/content progress) callers wrap the call in absent_if_not_found().

Stale references (an id the cache no longer holds) are not errors at all;
the operations that hit one log it and do nothing.
"""

from __future__ import annotations

from collections.abc import Awaitable
from typing import TypeVar

T = TypeVar("T")


class CacheError(Exception):
    pass


class RemoteError(CacheError):
    def __init__(self, status: int | None, message: str = "") -> None:
        super().__init__(message)
        self.status = status
        self.message = message

    @property
    def is_not_found(self) -> bool:
        return self.status == 404

    def __str__(self) -> str:
        if self.status is None:
            return self.message or "remote call failed"
        return f"{self.status}: {self.message}" if self.message else str(self.status)


class UnauthenticatedError(CacheError):
    def __init__(self, message: str = "User not authenticated") -> None:
        super().__init__(message)
        self.message = message


async def absent_if_not_found(call: Awaitable[T]) -> T | None:
    """Await ``call``, turning a 404 into ``None``.  Other errors propagate."""
    try:
        return await call
    except RemoteError as exc:
        if exc.is_not_found:
            return None
        raise
