from __future__ import annotations

from collections.abc import Sequence
from typing import Any, Protocol

from coursecache.models.assignment import Assignment, Submission
from coursecache.models.course import Course, CourseEnrollment, EnrollmentRole
from coursecache.models.module import ContentItem, Module
from coursecache.models.progress import (
    ContentProgress,
    CourseProgress,
    ModuleProgress,
    UserProgress,
)


class RemoteApi(Protocol):
    """Everything the cache asks of the learning-platform backend.

    Every call suspends until the backend answers and either returns the
    record(s) it answered with or raises RemoteError.  Update payloads are
    plain dicts of snake_case field names; only the given fields change.
    """

    # courses
    async def list_courses(self) -> list[Course]: ...
    async def list_enrolled_courses(self) -> list[Course]: ...
    async def get_course(self, course_id: int) -> Course: ...
    async def create_course(
        self, *, code: str, name: str, description: str = "", schedule: str = ""
    ) -> Course: ...
    async def update_course(self, course_id: int, changes: dict[str, Any]) -> Course: ...
    async def delete_course(self, course_id: int) -> None: ...
    async def list_course_enrollments(self, course_id: int) -> list[CourseEnrollment]: ...
    async def enroll_user(
        self, course_id: int, user_id: int, role: EnrollmentRole
    ) -> CourseEnrollment: ...
    async def unenroll_user(self, course_id: int, user_id: int) -> None: ...

    # modules and content
    async def list_modules(self, course_id: int) -> list[Module]: ...
    async def get_module(self, module_id: int) -> Module: ...
    async def create_module(
        self, course_id: int, *, title: str, order: int, description: str | None = None
    ) -> Module: ...
    async def update_module(self, module_id: int, changes: dict[str, Any]) -> Module: ...
    async def delete_module(self, module_id: int) -> None: ...
    async def reorder_modules(self, course_id: int, module_ids: Sequence[int]) -> list[Module]: ...
    async def list_content(self, module_id: int) -> list[ContentItem]: ...
    async def get_content(self, content_id: int) -> ContentItem: ...
    async def create_content(
        self, module_id: int, *, title: str, content_type: str, **fields: Any
    ) -> ContentItem: ...
    async def update_content(self, content_id: int, changes: dict[str, Any]) -> ContentItem: ...
    async def delete_content(self, content_id: int) -> None: ...

    # progress
    async def get_module_progress(self, module_id: int, user_id: int) -> ModuleProgress: ...
    async def mark_module_completed(self, module_id: int) -> ModuleProgress: ...
    async def mark_module_incomplete(self, module_id: int) -> ModuleProgress: ...
    async def get_content_progress(self, content_id: int, user_id: int) -> ContentProgress: ...
    async def record_content_progress(
        self, content_id: int, *, completed: bool = False, time_spent: int | None = None
    ) -> ContentProgress: ...
    async def get_course_progress(self, course_id: int, user_id: int) -> CourseProgress: ...
    async def get_user_progress(self, user_id: int) -> UserProgress: ...
    async def record_course_started(self, course_id: int) -> dict[str, Any]: ...
    async def record_assignment_submission(self, assignment_id: int) -> dict[str, Any]: ...

    # assignments
    async def list_assignments(self, course_id: int) -> list[Assignment]: ...
    async def get_assignment(self, assignment_id: int) -> Assignment: ...
    async def create_assignment(
        self, course_id: int, *, title: str, due_date: str, description: str = ""
    ) -> Assignment: ...
    async def update_assignment(self, assignment_id: int, changes: dict[str, Any]) -> Assignment: ...
    async def delete_assignment(self, assignment_id: int) -> None: ...
    async def list_submissions(self, assignment_id: int) -> list[Submission]: ...
    async def get_user_submission(self, assignment_id: int, user_id: int) -> Submission: ...
    async def submit_assignment(self, assignment_id: int, submission_url: str) -> Submission: ...
    async def grade_submission(self, submission_id: int, grade: float) -> Submission: ...
