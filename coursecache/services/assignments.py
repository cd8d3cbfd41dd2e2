from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any

from coursecache.core.errors import absent_if_not_found
from coursecache.models.assignment import Assignment, Submission
from coursecache.services.base import BaseStore

logger = logging.getLogger(__name__)


def _aware(value: datetime) -> datetime:
    # Naive due dates are taken as UTC.
    return value if value.tzinfo is not None else value.replace(tzinfo=UTC)


class AssignmentStore(BaseStore):
    """Assignments per course, their submissions, and the user's own submission."""

    # -- read accessors ------------------------------------------------------

    def assignments_for_course(self, course_id: int) -> list[Assignment]:
        return self.cache.assignments_by_course.resolve(course_id, self.cache.assignments)

    def submissions_for_assignment(self, assignment_id: int) -> list[Submission]:
        return self.cache.submissions_by_assignment.resolve(assignment_id, self.cache.submissions)

    def user_submission(self, assignment_id: int) -> Submission | None:
        return self.cache.user_submissions.get(assignment_id)

    def assignment_by_id(self, assignment_id: int) -> Assignment | None:
        return self.cache.assignments.get(assignment_id)

    def can_manage_assignment(self, assignment: Assignment) -> bool:
        auth = self.ctx.auth
        return auth.is_admin or (auth.is_teacher and assignment.can_manage)

    def upcoming_assignments(self, now: datetime | None = None) -> list[Assignment]:
        """Assignments due after ``now``, soonest first."""
        now = _aware(now or datetime.now(UTC))
        upcoming = [a for a in self.cache.assignments.values() if _aware(a.due_date) > now]
        return sorted(upcoming, key=lambda a: _aware(a.due_date))

    # -- fetches and mutations -----------------------------------------------

    async def fetch_assignments_for_course(self, course_id: int) -> list[Assignment]:
        with self._operation(
            "assignments.fetch_assignments_for_course",
            f"Failed to fetch assignments for course {course_id}",
        ):
            assignments = await self.remote.list_assignments(course_id)
            return self.merge.merge_assignments_for_course(course_id, assignments)

    async def fetch_assignment(self, assignment_id: int) -> Assignment:
        with self._operation(
            "assignments.fetch_assignment",
            f"Failed to fetch assignment with ID {assignment_id}",
        ):
            assignment = await self.remote.get_assignment(assignment_id)
            return self.merge.merge_assignment(assignment)

    async def create_assignment(
        self, course_id: int, *, title: str, due_date: str, description: str = ""
    ) -> Assignment:
        with self._operation("assignments.create_assignment", "Failed to create assignment"):
            assignment = await self.remote.create_assignment(
                course_id, title=title, due_date=due_date, description=description
            )
            logger.info("Created assignment id=%d in course %d", assignment.id, course_id)
            return self.merge.merge_assignment(assignment)

    async def update_assignment(self, assignment_id: int, **changes: Any) -> Assignment:
        with self._operation(
            "assignments.update_assignment",
            f"Failed to update assignment with ID {assignment_id}",
        ):
            assignment = await self.remote.update_assignment(assignment_id, changes)
            return self.merge.merge_assignment(assignment)

    async def delete_assignment(self, assignment_id: int) -> bool:
        with self._operation(
            "assignments.delete_assignment",
            f"Failed to delete assignment with ID {assignment_id}",
        ):
            await self.remote.delete_assignment(assignment_id)
            self.merge.remove_assignment(assignment_id)
            return True

    async def submit_assignment(self, assignment_id: int, submission_url: str) -> Submission:
        with self._operation("assignments.submit_assignment", "Failed to submit assignment"):
            submission = await self.remote.submit_assignment(assignment_id, submission_url)
            self.merge.set_user_submission(submission.assignment_id, submission)
            return submission

    async def grade_submission(self, submission_id: int, grade: float) -> Submission:
        with self._operation(
            "assignments.grade_submission",
            f"Failed to grade submission with ID {submission_id}",
        ):
            submission = await self.remote.grade_submission(submission_id, grade)
            return self.merge.merge_submission(submission)

    async def fetch_submissions_for_assignment(self, assignment_id: int) -> list[Submission]:
        with self._operation(
            "assignments.fetch_submissions_for_assignment",
            f"Failed to fetch submissions for assignment {assignment_id}",
        ):
            submissions = await self.remote.list_submissions(assignment_id)
            return self.merge.merge_submissions_for_assignment(assignment_id, submissions)

    async def fetch_user_submission(self, assignment_id: int) -> Submission | None:
        """The current user's submission, or None if they have not submitted.

        "Not submitted" is remembered, so user_submission() can tell it
        apart from "never asked".
        """
        with self._operation(
            "assignments.fetch_user_submission",
            f"Failed to fetch submission for assignment {assignment_id}",
        ):
            user_id = self.ctx.auth.require_user_id()
            submission = await absent_if_not_found(
                self.remote.get_user_submission(assignment_id, user_id)
            )
            self.merge.set_user_submission(assignment_id, submission)
            return submission

    def has_checked_submission(self, assignment_id: int) -> bool:
        return assignment_id in self.cache.user_submissions
