from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Literal

ActivityType = Literal["module", "content", "assignment", "course"]
ActivityAction = Literal["started", "completed", "viewed"]


@dataclass(frozen=True, slots=True)
class ContentProgress:
    id: int
    user_id: int
    content_id: int
    viewed: bool = False
    completed: bool = False
    completed_at: str | None = None
    last_accessed_at: str | None = None
    time_spent: int | None = None  # seconds


@dataclass(frozen=True, slots=True)
class ModuleProgress:
    id: int
    user_id: int
    module_id: int
    course_id: int | None = None
    completed: bool = False
    completed_at: str | None = None
    content_progress: tuple[ContentProgress, ...] = ()


@dataclass(frozen=True, slots=True)
class CourseProgress:
    """Completion summary for one course.

    Either fetched whole from the remote or recomputed locally from the
    module progress table; never patched field by field.
    """

    course_id: int
    total_modules: int
    completed_modules: int
    percentage: float
    modules: tuple[ModuleProgress, ...] = ()


@dataclass(frozen=True, slots=True)
class ActivityRecord:
    id: int
    type: ActivityType
    action: ActivityAction
    item_id: int
    course_id: int | None
    timestamp: datetime
    item_name: str = ""
    course_name: str = ""


@dataclass(frozen=True, slots=True)
class UserProgress:
    """Everything the remote knows about one user's progress, in one payload."""

    module_progress: tuple[ModuleProgress, ...] = ()
    course_progress: tuple[CourseProgress, ...] = ()
    content_progress: tuple[ContentProgress, ...] = ()
    recent_activity: tuple[ActivityRecord, ...] = ()
