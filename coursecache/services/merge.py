"""Merge engine: the only writer of the entity cache.

Every fetched or mutated record comes through here.  For each record the
engine decides insert vs. replace vs. merge in its table, moves the id
between index buckets when its parent key changed, and recomputes the
derived fields that depend on what it just touched.  All of this happens
synchronously inside one call, so no other coroutine can observe a table
updated but its index not yet.

MERGE STRATEGIES
-----------------
  REPLACE
      The remote record supersedes the local one outright.  Used for
      full fetch and mutation responses.
  PRESERVE_DERIVED
      Remote-authoritative fields come from the incoming record, locally
      derived fields are kept from the existing one.  Used for modules,
      whose list payloads carry no content.

Which fields are which is spelled out per entity below.  Derived fields
are recomputed from the current bucket whenever that bucket is loaded, so
a stale remote contentCount can never win over the local count.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import replace
from enum import Enum
from typing import TypeVar

from coursecache.core.metrics import CACHE_MERGES
from coursecache.models.assignment import Assignment, Submission
from coursecache.models.course import Course, CourseEnrollment, EnrollmentRole
from coursecache.models.module import ContentItem, Module
from coursecache.models.progress import ContentProgress, CourseProgress, ModuleProgress
from coursecache.repos.entity_cache import EntityCache
from coursecache.repos.tables import OrderedView
from coursecache.services.aggregates import module_aggregates

logger = logging.getLogger(__name__)

R = TypeVar("R")


class MergeStrategy(str, Enum):
    REPLACE = "replace"
    PRESERVE_DERIVED = "preserve_derived"


# ---------------------------------------------------------------------------
# Field ownership
# ---------------------------------------------------------------------------
# Remote-authoritative: always taken from the incoming record.
# Locally derived: kept across a PRESERVE_DERIVED merge, and recomputed by
# the engine whenever the records they are derived from change.

COURSE_REMOTE_FIELDS = (
    "code",
    "name",
    "description",
    "schedule",
    "created_by",
    "created_at",
    "updated_at",
    "role",
    "can_manage",
    "is_enrolled",
    "is_teaching",
    "progress",
    "student_count",
    "teacher_count",
    "assignment_count",
)
COURSE_DERIVED_FIELDS = ("module_count",)

MODULE_REMOTE_FIELDS = (
    "course_id",
    "title",
    "order",
    "description",
    "subtitle",
    "created_at",
    "updated_at",
    "can_manage",
    "locked",
    "progress",
)
MODULE_DERIVED_FIELDS = ("content_count", "duration", "content_items")


def merge_record(
    existing: R | None,
    incoming: R,
    remote_fields: tuple[str, ...],
    derived_fields: tuple[str, ...],
    strategy: MergeStrategy,
) -> tuple[R, str]:
    """Combine ``incoming`` with ``existing``; return the result and what happened.

    Under PRESERVE_DERIVED every remote field is copied from ``incoming``
    onto ``existing``.  A derived field keeps its local value unless the
    cache has never computed one (None), in which case the remote's value
    is accepted as a starting point.
    """
    if existing is None:
        return incoming, "insert"
    if strategy is MergeStrategy.REPLACE:
        return incoming, "replace"
    changes = {name: getattr(incoming, name) for name in remote_fields}
    for name in derived_fields:
        if getattr(existing, name) is None:
            changes[name] = getattr(incoming, name)
    return replace(existing, **changes), "merge"  # type: ignore[type-var]


class MergeEngine:
    def __init__(self, cache: EntityCache) -> None:
        self.cache = cache

    # -----------------------------------------------------------------------
    # Courses
    # -----------------------------------------------------------------------

    def merge_course(self, course: Course) -> Course:
        existing = self.cache.courses.get(course.id)
        merged, result = merge_record(
            existing,
            course,
            COURSE_REMOTE_FIELDS,
            COURSE_DERIVED_FIELDS,
            MergeStrategy.REPLACE,
        )
        self.cache.courses.put(course.id, merged)
        CACHE_MERGES.labels(entity="course", result=result).inc()
        logger.debug("Merged course id=%d (%s)", course.id, result)
        return self._refresh_module_count(course.id) or merged

    def merge_course_view(self, view: OrderedView, courses: Iterable[Course]) -> list[Course]:
        """Merge a listing and make ``view`` exactly that listing."""
        merged = [self.merge_course(c) for c in courses]
        view.replace(c.id for c in merged)
        return view.resolve(self.cache.courses)

    def reconcile_course_across_views(self, course: Course, *, elevated: bool) -> Course:
        """Store ``course`` once; every view listing its id sees the new record.

        Elevated (admin) callers also get it appended to the "all" view.
        """
        merged = self.merge_course(course)
        if elevated and self.cache.all_courses.append(course.id):
            logger.debug("Added course id=%d to all_courses", course.id)
        return merged

    def adjust_enrollment_count(
        self, course_id: int, role: EnrollmentRole, delta: int
    ) -> Course | None:
        """Optimistically bump a course's student/teacher count.

        Drifts from the remote until the next course fetch replaces it.
        """
        course = self.cache.courses.get(course_id)
        if course is None:
            logger.debug("Enrollment count for unknown course id=%d ignored", course_id)
            return None
        if role == "student":
            updated = replace(course, student_count=max(0, (course.student_count or 0) + delta))
        else:
            updated = replace(course, teacher_count=max(0, (course.teacher_count or 0) + delta))
        self.cache.courses.put(course_id, updated)
        CACHE_MERGES.labels(entity="course", result="merge").inc()
        return updated

    def remove_course(self, course_id: int) -> Course | None:
        removed = self.cache.courses.pop(course_id)
        self.cache.all_courses.remove(course_id)
        self.cache.enrolled_courses.remove(course_id)
        self.cache.enrollments.pop(course_id, None)
        if removed is None:
            logger.debug("Removed unknown course id=%d", course_id)
        else:
            CACHE_MERGES.labels(entity="course", result="remove").inc()
        return removed

    def set_enrollments(
        self, course_id: int, enrollments: Iterable[CourseEnrollment]
    ) -> list[CourseEnrollment]:
        bucket: dict[int, CourseEnrollment] = {}
        for enrollment in enrollments:
            bucket[enrollment.user_id] = enrollment
        self.cache.enrollments[course_id] = list(bucket.values())
        return list(self.cache.enrollments[course_id])

    def merge_enrollment(self, enrollment: CourseEnrollment) -> bool:
        """Insert or replace (by user) in a loaded enrollment bucket.

        Returns False when the course's enrollments were never loaded.
        """
        bucket = self.cache.enrollments.get(enrollment.course_id)
        if bucket is None:
            return False
        for i, existing in enumerate(bucket):
            if existing.user_id == enrollment.user_id:
                bucket[i] = enrollment
                return True
        bucket.append(enrollment)
        return True

    def remove_enrollment(self, course_id: int, user_id: int) -> CourseEnrollment | None:
        bucket = self.cache.enrollments.get(course_id)
        if bucket is None:
            return None
        for existing in bucket:
            if existing.user_id == user_id:
                bucket.remove(existing)
                return existing
        return None

    def _refresh_module_count(self, course_id: int) -> Course | None:
        if not self.cache.modules_by_course.is_loaded(course_id):
            return None
        course = self.cache.courses.get(course_id)
        if course is None:
            return None
        count = len(self.cache.modules_by_course.resolve(course_id, self.cache.modules))
        if course.module_count == count:
            return course
        updated = replace(course, module_count=count)
        self.cache.courses.put(course_id, updated)
        return updated

    # -----------------------------------------------------------------------
    # Modules and content
    # -----------------------------------------------------------------------

    def merge_module(
        self, module: Module, strategy: MergeStrategy = MergeStrategy.PRESERVE_DERIVED
    ) -> Module:
        existing = self.cache.modules.get(module.id)
        merged, result = merge_record(
            existing, module, MODULE_REMOTE_FIELDS, MODULE_DERIVED_FIELDS, strategy
        )
        self.cache.modules.put(module.id, merged)
        CACHE_MERGES.labels(entity="module", result=result).inc()
        logger.debug("Merged module id=%d (%s)", module.id, result)

        if existing is not None and existing.course_id != module.course_id:
            self.cache.modules_by_course.discard(existing.course_id, module.id)
            self._refresh_module_count(existing.course_id)
        # Only a fetched listing makes a course's bucket; a lone module joins one.
        self.cache.modules_by_course.add(module.course_id, module.id, create=False)
        self._refresh_module_count(module.course_id)

        return self.recompute_module_aggregates(module.id) or merged

    def merge_modules_for_course(self, course_id: int, modules: Iterable[Module]) -> list[Module]:
        """Merge a course's module listing and make it the course's bucket.

        Modules missing from the listing leave the bucket but stay in the
        table; only an explicit delete removes a record.
        """
        merged = [self.merge_module(m) for m in modules]
        self.cache.modules_by_course.replace(course_id, (m.id for m in merged))
        self._refresh_module_count(course_id)
        return self.cache.modules_by_course.resolve(course_id, self.cache.modules)

    def recompute_module_aggregates(self, module_id: int) -> Module | None:
        """Re-derive count, duration and embedded items from the content bucket.

        No-op (None) when the module or its content bucket is not loaded.
        """
        module = self.cache.modules.get(module_id)
        if module is None or not self.cache.content_by_module.is_loaded(module_id):
            return None
        items = self.cache.content_by_module.resolve(module_id, self.cache.content)
        agg = module_aggregates(items)
        updated = replace(
            module,
            content_count=agg.content_count,
            duration=agg.duration,
            content_items=agg.content_items,
        )
        if updated != module:
            self.cache.modules.put(module_id, updated)
        return updated

    def remove_module(self, module_id: int) -> Module | None:
        """Delete a module and everything it structurally owns.

        Its content items (and their progress) and its own progress entry
        go with it.
        """
        removed = self.cache.modules.pop(module_id)
        for content_id in self.cache.content_by_module.drop(module_id):
            self.cache.content.pop(content_id)
            self.cache.content_progress.pop(content_id)
        self.cache.module_progress.pop(module_id)
        if removed is None:
            logger.debug("Removed unknown module id=%d", module_id)
            return None
        self.cache.modules_by_course.discard(removed.course_id, module_id)
        self._refresh_module_count(removed.course_id)
        CACHE_MERGES.labels(entity="module", result="remove").inc()
        return removed

    def merge_content(self, item: ContentItem, *, create_bucket: bool = True) -> ContentItem:
        """Store a content item and keep its module's aggregates current.

        With ``create_bucket=False`` the item joins its module's bucket only
        if that bucket is already loaded; a lone item must not make a
        module look like it has exactly one piece of content.
        """
        existing = self.cache.content.put(item.id, item)
        result = "insert" if existing is None else "replace"
        CACHE_MERGES.labels(entity="content", result=result).inc()
        logger.debug("Merged content id=%d (%s)", item.id, result)

        if existing is not None and existing.module_id != item.module_id:
            if self.cache.content_by_module.discard(existing.module_id, item.id):
                self.recompute_module_aggregates(existing.module_id)
        self.cache.content_by_module.add(item.module_id, item.id, create=create_bucket)
        self.recompute_module_aggregates(item.module_id)
        return item

    def merge_content_for_module(
        self, module_id: int, items: Iterable[ContentItem]
    ) -> list[ContentItem]:
        items = list(items)
        for item in items:
            existing = self.cache.content.put(item.id, item)
            if existing is not None and existing.module_id != module_id:
                if self.cache.content_by_module.discard(existing.module_id, item.id):
                    self.recompute_module_aggregates(existing.module_id)
        CACHE_MERGES.labels(entity="content", result="replace").inc(len(items))
        self.cache.content_by_module.replace(module_id, (i.id for i in items))
        self.recompute_module_aggregates(module_id)
        return self.cache.content_by_module.resolve(module_id, self.cache.content)

    def remove_content(self, content_id: int, module_id: int | None = None) -> ContentItem | None:
        removed = self.cache.content.pop(content_id)
        self.cache.content_progress.pop(content_id)
        if removed is not None:
            module_id = removed.module_id
            CACHE_MERGES.labels(entity="content", result="remove").inc()
        if module_id is None:
            logger.debug("Removed unknown content id=%d", content_id)
            return None
        self.cache.content_by_module.discard(module_id, content_id)
        self.recompute_module_aggregates(module_id)
        return removed

    # -----------------------------------------------------------------------
    # Assignments and submissions
    # -----------------------------------------------------------------------

    def merge_assignment(self, assignment: Assignment) -> Assignment:
        existing = self.cache.assignments.put(assignment.id, assignment)
        result = "insert" if existing is None else "replace"
        CACHE_MERGES.labels(entity="assignment", result=result).inc()
        if existing is not None and existing.course_id != assignment.course_id:
            self.cache.assignments_by_course.discard(existing.course_id, assignment.id)
        self.cache.assignments_by_course.add(assignment.course_id, assignment.id)
        return assignment

    def merge_assignments_for_course(
        self, course_id: int, assignments: Iterable[Assignment]
    ) -> list[Assignment]:
        merged = [self.merge_assignment(a) for a in assignments]
        self.cache.assignments_by_course.replace(course_id, (a.id for a in merged))
        return self.cache.assignments_by_course.resolve(course_id, self.cache.assignments)

    def remove_assignment(self, assignment_id: int) -> Assignment | None:
        removed = self.cache.assignments.pop(assignment_id)
        for submission_id in self.cache.submissions_by_assignment.drop(assignment_id):
            self.cache.submissions.pop(submission_id)
        self.cache.user_submissions.pop(assignment_id, None)
        if removed is None:
            logger.debug("Removed unknown assignment id=%d", assignment_id)
            return None
        self.cache.assignments_by_course.discard(removed.course_id, assignment_id)
        CACHE_MERGES.labels(entity="assignment", result="remove").inc()
        return removed

    def merge_submission(self, submission: Submission) -> Submission:
        """Store a submission; one per user within a loaded assignment bucket."""
        existing = self.cache.submissions.put(submission.id, submission)
        result = "insert" if existing is None else "replace"
        CACHE_MERGES.labels(entity="submission", result=result).inc()
        index = self.cache.submissions_by_assignment
        for other_id in index.bucket(submission.assignment_id):
            other = self.cache.submissions.get(other_id)
            if other_id != submission.id and other is not None and other.user_id == submission.user_id:
                index.discard(submission.assignment_id, other_id)
                self.cache.submissions.pop(other_id)
        index.add(submission.assignment_id, submission.id, create=False)

        self._sync_user_submission(submission)
        return submission

    def _sync_user_submission(self, submission: Submission) -> None:
        mine = self.cache.user_submissions.get(submission.assignment_id)
        if mine is not None and mine.id == submission.id:
            self.cache.user_submissions[submission.assignment_id] = submission

    def merge_submissions_for_assignment(
        self, assignment_id: int, submissions: Iterable[Submission]
    ) -> list[Submission]:
        submissions = list(submissions)
        for submission in submissions:
            self.cache.submissions.put(submission.id, submission)
            self._sync_user_submission(submission)
        self.cache.submissions_by_assignment.replace(
            assignment_id, (s.id for s in submissions)
        )
        return self.cache.submissions_by_assignment.resolve(
            assignment_id, self.cache.submissions
        )

    def set_user_submission(self, assignment_id: int, submission: Submission | None) -> None:
        if submission is not None:
            self.merge_submission(submission)
        self.cache.user_submissions[assignment_id] = submission

    # -----------------------------------------------------------------------
    # Progress
    # -----------------------------------------------------------------------

    def merge_module_progress(self, progress: ModuleProgress) -> ModuleProgress:
        """Replace a module's progress; nested content progress is merged too.

        Module completion never touches content progress (and vice versa):
        marking a module incomplete leaves its completed content completed.
        """
        existing = self.cache.module_progress.put(progress.module_id, progress)
        CACHE_MERGES.labels(
            entity="module_progress", result="insert" if existing is None else "replace"
        ).inc()
        for entry in progress.content_progress:
            self.merge_content_progress(entry)
        return progress

    def merge_content_progress(self, progress: ContentProgress) -> ContentProgress:
        """Store content progress; viewed/completed never go back to False."""
        existing = self.cache.content_progress.get(progress.content_id)
        merged, result = progress, "insert" if existing is None else "replace"
        if existing is not None and (
            (existing.completed and not progress.completed)
            or (existing.viewed and not progress.viewed)
        ):
            merged = replace(
                progress,
                viewed=existing.viewed or progress.viewed,
                completed=existing.completed or progress.completed,
                completed_at=progress.completed_at or existing.completed_at,
            )
            result = "merge"
            logger.debug(
                "Kept local completion for content id=%d over remote record",
                progress.content_id,
            )
        self.cache.content_progress.put(progress.content_id, merged)
        CACHE_MERGES.labels(entity="content_progress", result=result).inc()
        return merged

    def put_course_progress(self, progress: CourseProgress) -> CourseProgress:
        """Replace a course's progress wholesale, merging any nested module progress."""
        for entry in progress.modules:
            self.merge_module_progress(entry)
        existing = self.cache.course_progress.put(progress.course_id, progress)
        CACHE_MERGES.labels(
            entity="course_progress", result="insert" if existing is None else "replace"
        ).inc()
        return progress
