from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True, slots=True)
class Assignment:
    id: int
    course_id: int
    title: str
    due_date: datetime
    description: str = ""
    created_by: int | None = None
    created_at: str | None = None
    updated_at: str | None = None
    creator_name: str | None = None
    is_submitted: bool = False
    can_manage: bool = False
    submission_count: int | None = None


@dataclass(frozen=True, slots=True)
class Submission:
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
