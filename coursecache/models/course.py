from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

EnrollmentRole = Literal["student", "teacher"]


@dataclass(frozen=True, slots=True)
class Course:
    id: int
    code: str
    name: str
    description: str = ""
    schedule: str = ""
    created_by: int | None = None
    created_at: str | None = None
    updated_at: str | None = None
    role: EnrollmentRole | None = None
    can_manage: bool = False
    is_enrolled: bool = False
    is_teaching: bool = False
    progress: float | None = None
    # student_count/teacher_count are adjusted locally on enroll/unenroll;
    # module_count follows the loaded modules-by-course bucket.
    student_count: int | None = None
    teacher_count: int | None = None
    module_count: int | None = None
    assignment_count: int | None = None


@dataclass(frozen=True, slots=True)
class CourseEnrollment:
    id: int
    course_id: int
    user_id: int
    role: EnrollmentRole
    enrollment_date: str | None = None
    user_name: str | None = None
    user_email: str | None = None
