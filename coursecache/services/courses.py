from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

from coursecache.models.course import Course, CourseEnrollment, EnrollmentRole
from coursecache.services.base import BaseStore

logger = logging.getLogger(__name__)


def _sort_value(course: Course, field: str) -> Any:
    return getattr(course, field, None)


def sort_courses(courses: Iterable[Course], field: str, descending: bool = False) -> list[Course]:
    """Sort by any Course field; courses missing the value always go last."""
    courses = list(courses)
    present = [c for c in courses if _sort_value(c, field) is not None]
    missing = [c for c in courses if _sort_value(c, field) is None]
    present.sort(key=lambda c: _sort_value(c, field), reverse=descending)
    return present + missing


def filter_courses_by_term(courses: Iterable[Course], term: str) -> list[Course]:
    """Case-insensitive match on name, code or description.  Blank term keeps everything."""
    courses = list(courses)
    needle = term.strip().lower()
    if not needle:
        return courses
    return [
        c
        for c in courses
        if needle in c.name.lower()
        or needle in c.code.lower()
        or needle in (c.description or "").lower()
    ]


class CourseStore(BaseStore):
    """Courses, the "all" and "enrolled" views over them, and enrollments."""

    # -- read accessors ------------------------------------------------------

    @property
    def all_courses(self) -> list[Course]:
        return self.cache.all_courses.resolve(self.cache.courses)

    @property
    def enrolled_courses(self) -> list[Course]:
        return self.cache.enrolled_courses.resolve(self.cache.courses)

    def course_by_id(self, course_id: int) -> Course | None:
        return self.cache.courses.get(course_id)

    def courses_for_role(self) -> list[Course]:
        if self.ctx.auth.is_admin:
            return self.all_courses
        return self.enrolled_courses

    @property
    def enrolled_course_count(self) -> int:
        return len(self.cache.enrolled_courses)

    def taught_courses(self) -> list[Course]:
        if not self.ctx.auth.is_teacher:
            return []
        return [c for c in self.enrolled_courses if c.role == "teacher"]

    def course_enrollments(self, course_id: int) -> list[CourseEnrollment]:
        return list(self.cache.enrollments.get(course_id, ()))

    def course_teachers(self, course_id: int) -> list[CourseEnrollment]:
        return [e for e in self.course_enrollments(course_id) if e.role == "teacher"]

    def course_students(self, course_id: int) -> list[CourseEnrollment]:
        return [e for e in self.course_enrollments(course_id) if e.role == "student"]

    def student_count(self, course_id: int) -> int:
        return len(self.course_students(course_id))

    def sort_courses(self, field: str, descending: bool = False) -> None:
        """Reorder both views in place by ``field``."""
        for view in (self.cache.all_courses, self.cache.enrolled_courses):
            ordered = sort_courses(view.resolve(self.cache.courses), field, descending)
            view.replace(c.id for c in ordered)

    def filter_courses_by_term(self, term: str) -> list[Course]:
        return filter_courses_by_term(self.courses_for_role(), term)

    # -- fetches and mutations -----------------------------------------------

    async def fetch_all_courses(self) -> list[Course]:
        with self._operation("courses.fetch_all_courses", "Failed to fetch courses"):
            courses = await self.remote.list_courses()
            return self.merge.merge_course_view(self.cache.all_courses, courses)

    async def fetch_enrolled_courses(self) -> list[Course]:
        with self._operation(
            "courses.fetch_enrolled_courses", "Failed to fetch enrolled courses"
        ):
            courses = await self.remote.list_enrolled_courses()
            return self.merge.merge_course_view(self.cache.enrolled_courses, courses)

    async def fetch_course(self, course_id: int) -> Course:
        with self._operation(
            "courses.fetch_course", f"Failed to fetch course with ID {course_id}"
        ):
            course = await self.remote.get_course(course_id)
            return self.merge.reconcile_course_across_views(
                course, elevated=self.ctx.auth.is_admin
            )

    async def create_course(
        self, *, code: str, name: str, description: str = "", schedule: str = ""
    ) -> Course:
        with self._operation("courses.create_course", "Failed to create course"):
            course = await self.remote.create_course(
                code=code, name=name, description=description, schedule=schedule
            )
            merged = self.merge.merge_course(course)
            self.cache.all_courses.append(course.id)
            logger.info("Created course id=%d code=%s", course.id, course.code)
            return merged

    async def update_course(self, course_id: int, **changes: Any) -> Course:
        with self._operation(
            "courses.update_course", f"Failed to update course with ID {course_id}"
        ):
            course = await self.remote.update_course(course_id, changes)
            return self.merge.reconcile_course_across_views(
                course, elevated=self.ctx.auth.is_admin
            )

    async def delete_course(self, course_id: int) -> bool:
        with self._operation(
            "courses.delete_course", f"Failed to delete course with ID {course_id}"
        ):
            await self.remote.delete_course(course_id)
            self.merge.remove_course(course_id)
            logger.info("Deleted course id=%d", course_id)
            return True

    async def fetch_course_enrollments(self, course_id: int) -> list[CourseEnrollment]:
        with self._operation(
            "courses.fetch_course_enrollments",
            f"Failed to fetch enrollments for course {course_id}",
        ):
            enrollments = await self.remote.list_course_enrollments(course_id)
            return self.merge.set_enrollments(course_id, enrollments)

    async def enroll_user(
        self, course_id: int, user_id: int, role: EnrollmentRole
    ) -> CourseEnrollment:
        with self._operation("courses.enroll_user", "Failed to enroll user in course"):
            enrollment = await self.remote.enroll_user(course_id, user_id, role)
            self.merge.merge_enrollment(enrollment)
            self.merge.adjust_enrollment_count(course_id, role, +1)
            return enrollment

    async def unenroll_user(self, course_id: int, user_id: int) -> bool:
        with self._operation("courses.unenroll_user", "Failed to remove user from course"):
            await self.remote.unenroll_user(course_id, user_id)
            removed = self.merge.remove_enrollment(course_id, user_id)
            if removed is not None:
                self.merge.adjust_enrollment_count(course_id, removed.role, -1)
            if self.ctx.auth.user_id == user_id:
                self.cache.enrolled_courses.remove(course_id)
            return True

    def add_to_enrolled_courses(self, course: Course) -> Course:
        """Put ``course`` in the enrolled view if it is not there yet."""
        merged = self.merge.merge_course(course)
        self.cache.enrolled_courses.append(course.id)
        return merged
