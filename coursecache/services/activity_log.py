from __future__ import annotations

import itertools
from collections import deque
from collections.abc import Iterable
from datetime import UTC, datetime

from coursecache.models.progress import ActivityAction, ActivityRecord, ActivityType

DEFAULT_CAPACITY = 20


class ActivityLog:
    """Bounded recent-activity history, most recent first.

    Appending past capacity silently drops the oldest entry.
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self.capacity = capacity
        self._entries: deque[ActivityRecord] = deque(maxlen=capacity)
        self._ids = itertools.count(1)

    def __len__(self) -> int:
        return len(self._entries)

    def entries(self) -> list[ActivityRecord]:
        return list(self._entries)

    def append(self, record: ActivityRecord) -> ActivityRecord:
        self._entries.appendleft(record)
        return record

    def record(
        self,
        type: ActivityType,
        action: ActivityAction,
        *,
        item_id: int,
        course_id: int | None,
        item_name: str = "",
        course_name: str = "",
    ) -> ActivityRecord:
        """Build a record stamped with a local id and the current time, then append it."""
        return self.append(
            ActivityRecord(
                id=next(self._ids),
                type=type,
                action=action,
                item_id=item_id,
                course_id=course_id,
                timestamp=datetime.now(UTC),
                item_name=item_name,
                course_name=course_name,
            )
        )

    def replace_all(self, records: Iterable[ActivityRecord]) -> None:
        """Take a remote history (most recent first), truncated to capacity."""
        self._entries = deque(itertools.islice(records, self.capacity), maxlen=self.capacity)

    def for_course(self, course_id: int) -> list[ActivityRecord]:
        return [r for r in self._entries if r.course_id == course_id]

    def recent_course_ids(self) -> list[int]:
        """Distinct course ids in order of most recent activity."""
        seen: dict[int, None] = {}
        for record in self._entries:
            if record.course_id is not None:
                seen.setdefault(record.course_id, None)
        return list(seen)

    def clear(self) -> None:
        self._entries.clear()
