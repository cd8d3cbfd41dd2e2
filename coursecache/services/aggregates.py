"""Pure recomputation of derived fields.

Nothing here reads or writes the cache; callers pass the current bucket
contents in.  Sums are always recomputed from the whole bucket, never
patched by a delta, so arrivals in any order give the same answer.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass

from coursecache.models.module import ContentItem, Module
from coursecache.models.progress import CourseProgress, ModuleProgress


@dataclass(frozen=True, slots=True)
class ModuleAggregates:
    content_count: int
    duration: int
    content_items: tuple[ContentItem, ...]


@dataclass(frozen=True, slots=True)
class CompletionStatus:
    completed: int = 0
    in_progress: int = 0
    not_started: int = 0


def module_aggregates(items: Sequence[ContentItem]) -> ModuleAggregates:
    return ModuleAggregates(
        content_count=len(items),
        duration=sum(item.duration or 0 for item in items),
        content_items=tuple(items),
    )


def completion_percentage(completed: int, total: int) -> float:
    return 100 * completed / total if total > 0 else 0


def course_progress(
    course_id: int,
    module_ids: Sequence[int],
    is_completed: Callable[[int], bool],
) -> CourseProgress:
    total = len(module_ids)
    completed = sum(1 for module_id in module_ids if is_completed(module_id))
    return CourseProgress(
        course_id=course_id,
        total_modules=total,
        completed_modules=completed,
        percentage=completion_percentage(completed, total),
    )


def overall_percentage(progresses: Iterable[CourseProgress]) -> float:
    values = [p.percentage for p in progresses]
    if not values:
        return 0
    return sum(values) / len(values)


def display_order(modules: Iterable[Module]) -> list[Module]:
    # Stable: modules sharing an order keep their bucket order.
    return sorted(modules, key=lambda m: m.order or 0)


def next_module(
    modules: Sequence[Module], progress_of: Callable[[int], ModuleProgress | None]
) -> Module | None:
    """First incomplete module by display order; the first module if all are done."""
    if not modules:
        return None
    ordered = display_order(modules)
    for module in ordered:
        entry = progress_of(module.id)
        if entry is None or not entry.completed:
            return module
    return ordered[0]


def completion_status(
    modules: Iterable[Module], progress_of: Callable[[int], ModuleProgress | None]
) -> CompletionStatus:
    completed = in_progress = not_started = 0
    for module in modules:
        entry = progress_of(module.id)
        if entry is None:
            not_started += 1
        elif entry.completed:
            completed += 1
        else:
            in_progress += 1
    return CompletionStatus(completed, in_progress, not_started)
