"""Wire payloads for the learning-platform API.

The backend speaks camelCase JSON; the cache works with snake_case frozen
dataclasses.  Each ``...Out`` model parses one response shape (unknown
keys ignored) and converts itself with ``to_model()``.  Each ``...In``
model is a request body, dumped with aliases and without unset fields.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from coursecache.models.assignment import Assignment, Submission
from coursecache.models.course import Course, CourseEnrollment, EnrollmentRole
from coursecache.models.module import ContentItem, ContentType, Module
from coursecache.models.progress import (
    ActivityAction,
    ActivityRecord,
    ActivityType,
    ContentProgress,
    CourseProgress,
    ModuleProgress,
    UserProgress,
)


class _Wire(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


def request_body(model: BaseModel) -> dict[str, Any]:
    return model.model_dump(by_alias=True, exclude_none=True, mode="json")


def camel_changes(changes: dict[str, Any]) -> dict[str, Any]:
    """Partial update dict (snake_case keys) to its wire form."""
    return {to_camel(k): v for k, v in changes.items() if v is not None}


# ---------------------------------------------------------------------------
# Courses
# ---------------------------------------------------------------------------


class CourseOut(_Wire):
    id: int
    code: str
    name: str
    description: str | None = ""
    schedule: str | None = ""
    created_by: int | None = None
    created_at: str | None = None
    updated_at: str | None = None
    role: EnrollmentRole | None = None
    can_manage: bool = False
    is_enrolled: bool = False
    is_teaching: bool = False
    progress: float | None = None
    student_count: int | None = None
    teacher_count: int | None = None
    module_count: int | None = None
    assignment_count: int | None = None

    def to_model(self) -> Course:
        data = self.model_dump()
        data["description"] = self.description or ""
        data["schedule"] = self.schedule or ""
        return Course(**data)


class EnrollmentOut(_Wire):
    id: int
    course_id: int
    user_id: int
    role: EnrollmentRole
    enrollment_date: str | None = None
    user_name: str | None = None
    user_email: str | None = None

    def to_model(self) -> CourseEnrollment:
        return CourseEnrollment(**self.model_dump())


class CourseCreateIn(_Wire):
    code: str
    name: str
    description: str = ""
    schedule: str = ""


class EnrollmentIn(_Wire):
    course_id: int
    user_id: int
    role: EnrollmentRole


# ---------------------------------------------------------------------------
# Modules and content
# ---------------------------------------------------------------------------


class ContentItemOut(_Wire):
    id: int
    module_id: int
    title: str
    content_type: ContentType = "text"
    content: str | None = None
    content_url: str | None = None
    description: str | None = None
    duration: int | None = None
    created_by: int | None = None
    created_at: str | None = None
    updated_at: str | None = None
    due_date: str | None = None
    points: int | None = None
    assignment_id: int | None = None

    def to_model(self) -> ContentItem:
        return ContentItem(**self.model_dump())


class ModuleOut(_Wire):
    id: int
    course_id: int
    title: str
    order: int = 1
    description: str | None = None
    subtitle: str | None = None
    created_at: str | None = None
    updated_at: str | None = None
    can_manage: bool = False
    locked: bool = False
    progress: float | None = None
    content_count: int | None = None
    duration: int | None = None
    content_items: list[ContentItemOut] | None = None

    def to_model(self) -> Module:
        data = self.model_dump(exclude={"content_items"})
        items = None
        if self.content_items is not None:
            items = tuple(i.to_model() for i in self.content_items)
        return Module(**data, content_items=items)


class ModuleCreateIn(_Wire):
    course_id: int
    title: str
    order: int
    description: str | None = None


class ContentItemCreateIn(_Wire):
    module_id: int
    title: str
    content_type: ContentType
    content: str | None = None
    content_url: str | None = None
    description: str | None = None
    duration: int | None = None


class ReorderIn(_Wire):
    module_ids: list[int]


# ---------------------------------------------------------------------------
# Progress
# ---------------------------------------------------------------------------


class ContentProgressOut(_Wire):
    id: int
    user_id: int
    content_id: int
    viewed: bool = False
    completed: bool = False
    completed_at: str | None = None
    last_accessed_at: str | None = None
    time_spent: int | None = None

    def to_model(self) -> ContentProgress:
        return ContentProgress(**self.model_dump())


class ModuleProgressOut(_Wire):
    id: int
    user_id: int
    module_id: int
    course_id: int | None = None
    completed: bool = False
    completed_at: str | None = None
    content_progress: list[ContentProgressOut] | None = None

    def to_model(self) -> ModuleProgress:
        data = self.model_dump(exclude={"content_progress"})
        nested = tuple(p.to_model() for p in self.content_progress or ())
        return ModuleProgress(**data, content_progress=nested)


class CourseProgressOut(_Wire):
    course_id: int
    total_modules: int = 0
    completed_modules: int = 0
    percentage: float = 0
    modules: list[ModuleProgressOut] | None = None

    def to_model(self) -> CourseProgress:
        return CourseProgress(
            course_id=self.course_id,
            total_modules=self.total_modules,
            completed_modules=self.completed_modules,
            percentage=self.percentage,
            modules=tuple(m.to_model() for m in self.modules or ()),
        )


class ActivityOut(_Wire):
    id: int
    type: ActivityType
    action: ActivityAction
    item_id: int
    course_id: int | None = None
    timestamp: datetime
    item_name: str | None = ""
    course_name: str | None = ""

    def to_model(self) -> ActivityRecord:
        return ActivityRecord(
            id=self.id,
            type=self.type,
            action=self.action,
            item_id=self.item_id,
            course_id=self.course_id,
            timestamp=self.timestamp,
            item_name=self.item_name or "",
            course_name=self.course_name or "",
        )


class UserProgressOut(_Wire):
    module_progress: list[ModuleProgressOut] | None = None
    course_progress: list[CourseProgressOut] | None = None
    content_progress: list[ContentProgressOut] | None = None
    recent_activity: list[ActivityOut] | None = None

    def to_model(self) -> UserProgress:
        return UserProgress(
            module_progress=tuple(p.to_model() for p in self.module_progress or ()),
            course_progress=tuple(p.to_model() for p in self.course_progress or ()),
            content_progress=tuple(p.to_model() for p in self.content_progress or ()),
            recent_activity=tuple(a.to_model() for a in self.recent_activity or ()),
        )


class ContentProgressIn(_Wire):
    completed: bool = False
    time_spent: int | None = None


# ---------------------------------------------------------------------------
# Assignments
# ---------------------------------------------------------------------------


class AssignmentOut(_Wire):
    id: int
    course_id: int
    title: str
    due_date: datetime
    description: str | None = ""
    created_by: int | None = None
    created_at: str | None = None
    updated_at: str | None = None
    creator_name: str | None = None
    is_submitted: bool = False
    can_manage: bool = False
    submission_count: int | None = None

    def to_model(self) -> Assignment:
        data = self.model_dump()
        data["description"] = self.description or ""
        return Assignment(**data)


class SubmissionOut(_Wire):
    id: int
    assignment_id: int
    user_id: int
    submission_url: str
    submitted_at: str | None = None
    grade: float | None = None
    graded_by: int | None = None
    graded_at: str | None = None
    feedback: str | None = None
    student_name: str | None = None

    def to_model(self) -> Submission:
        return Submission(**self.model_dump())


class AssignmentCreateIn(_Wire):
    course_id: int
    title: str
    description: str = ""
    due_date: str


class SubmissionIn(_Wire):
    assignment_id: int
    submission_url: str


class GradeIn(_Wire):
    submission_id: int
    grade: float
