"""Entity tables and secondary indices.

An EntityTable is the canonical by-id store for one entity family: at most
one record per id, always the latest the cache knows about.

A SecondaryIndex groups child ids under a parent id (modules under a
course, content items under a module, ...).  It stores ids, never records,
so replacing a record in its table is immediately visible through every
index that lists it; there is no second copy to fall out of date.

Index buckets distinguish "never loaded" from "loaded and empty".  Module
aggregates, for instance, are only trusted once the module's content
bucket exists.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Generic, TypeVar

R = TypeVar("R")


class EntityTable(Generic[R]):
    def __init__(self, name: str) -> None:
        self.name = name
        self._by_id: dict[int, R] = {}

    def get(self, entity_id: int) -> R | None:
        return self._by_id.get(entity_id)

    def put(self, entity_id: int, record: R) -> R | None:
        """Store ``record`` and return whatever it replaced."""
        previous = self._by_id.get(entity_id)
        self._by_id[entity_id] = record
        return previous

    def pop(self, entity_id: int) -> R | None:
        return self._by_id.pop(entity_id, None)

    def ids(self) -> list[int]:
        return list(self._by_id)

    def values(self) -> list[R]:
        return list(self._by_id.values())

    def clear(self) -> None:
        self._by_id.clear()

    def __contains__(self, entity_id: object) -> bool:
        return entity_id in self._by_id

    def __len__(self) -> int:
        return len(self._by_id)


class SecondaryIndex:
    def __init__(self, name: str) -> None:
        self.name = name
        self._buckets: dict[int, list[int]] = {}

    def is_loaded(self, parent_id: int) -> bool:
        return parent_id in self._buckets

    def bucket(self, parent_id: int) -> list[int]:
        """Child ids under ``parent_id`` in insertion order (a copy)."""
        return list(self._buckets.get(parent_id, ()))

    def add(self, parent_id: int, child_id: int, *, create: bool = True) -> bool:
        """Add ``child_id`` under ``parent_id`` unless already there.

        With ``create=False`` an unloaded parent is left unloaded and the
        call is a no-op.  Returns True when the bucket changed.
        """
        bucket = self._buckets.get(parent_id)
        if bucket is None:
            if not create:
                return False
            bucket = self._buckets[parent_id] = []
        if child_id in bucket:
            return False
        bucket.append(child_id)
        return True

    def discard(self, parent_id: int, child_id: int) -> bool:
        bucket = self._buckets.get(parent_id)
        if bucket is None or child_id not in bucket:
            return False
        bucket.remove(child_id)
        return True

    def replace(self, parent_id: int, child_ids: Iterable[int]) -> None:
        """Make the bucket exactly ``child_ids`` (duplicates dropped, order kept)."""
        self._buckets[parent_id] = list(dict.fromkeys(child_ids))

    def drop(self, parent_id: int) -> list[int]:
        return self._buckets.pop(parent_id, [])

    def parents(self) -> list[int]:
        return list(self._buckets)

    def resolve(self, parent_id: int, table: EntityTable[R]) -> list[R]:
        """Records for the bucket, skipping ids the table no longer holds."""
        out: list[R] = []
        for child_id in self._buckets.get(parent_id, ()):
            record = table.get(child_id)
            if record is not None:
                out.append(record)
        return out

    def clear(self) -> None:
        self._buckets.clear()


class OrderedView:
    """A named, ordered list of ids over one table (e.g. "enrolled courses").

    Membership in one view says nothing about membership in another; the
    same course id can sit in several views, all of them resolving to the
    single record in the table.
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self._ids: list[int] = []

    def __contains__(self, entity_id: object) -> bool:
        return entity_id in self._ids

    def __len__(self) -> int:
        return len(self._ids)

    def ids(self) -> list[int]:
        return list(self._ids)

    def append(self, entity_id: int) -> bool:
        if entity_id in self._ids:
            return False
        self._ids.append(entity_id)
        return True

    def remove(self, entity_id: int) -> bool:
        if entity_id not in self._ids:
            return False
        self._ids.remove(entity_id)
        return True

    def replace(self, ids: Iterable[int]) -> None:
        self._ids = list(dict.fromkeys(ids))

    def resolve(self, table: EntityTable[R]) -> list[R]:
        return [r for r in (table.get(i) for i in self._ids) if r is not None]

    def clear(self) -> None:
        self._ids.clear()
