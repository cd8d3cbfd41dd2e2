from __future__ import annotations

from coursecache.models.assignment import Assignment, Submission
from coursecache.models.course import Course, CourseEnrollment
from coursecache.models.module import ContentItem, Module
from coursecache.models.progress import ContentProgress, CourseProgress, ModuleProgress
from coursecache.repos.tables import EntityTable, OrderedView, SecondaryIndex


class EntityCache:
    """Every entity table, index and view the session holds.

    Pure data.  All writes go through MergeEngine so the indices and the
    derived fields stay in step with the tables.

    Progress tables are keyed by the id of the thing the progress is
    about (module id, content id, course id), not by the progress record's
    own id: the cache only ever tracks the signed-in user's progress.
    """

    def __init__(self) -> None:
        self.courses: EntityTable[Course] = EntityTable("course")
        self.all_courses = OrderedView("all_courses")
        self.enrolled_courses = OrderedView("enrolled_courses")
        # course id -> enrollments; enrollments are small and keyed by user
        # within their course, so the bucket holds records, not ids.
        self.enrollments: dict[int, list[CourseEnrollment]] = {}

        self.modules: EntityTable[Module] = EntityTable("module")
        self.modules_by_course = SecondaryIndex("modules_by_course")

        self.content: EntityTable[ContentItem] = EntityTable("content")
        self.content_by_module = SecondaryIndex("content_by_module")

        self.assignments: EntityTable[Assignment] = EntityTable("assignment")
        self.assignments_by_course = SecondaryIndex("assignments_by_course")

        self.submissions: EntityTable[Submission] = EntityTable("submission")
        self.submissions_by_assignment = SecondaryIndex("submissions_by_assignment")
        # assignment id -> the current user's submission; None means "looked,
        # nothing submitted yet", a missing key means "never looked".
        self.user_submissions: dict[int, Submission | None] = {}

        self.module_progress: EntityTable[ModuleProgress] = EntityTable("module_progress")
        self.content_progress: EntityTable[ContentProgress] = EntityTable(
            "content_progress"
        )
        self.course_progress: EntityTable[CourseProgress] = EntityTable("course_progress")

    def clear(self) -> None:
        for table in (
            self.courses,
            self.modules,
            self.content,
            self.assignments,
            self.submissions,
            self.module_progress,
            self.content_progress,
            self.course_progress,
        ):
            table.clear()
        for index in (
            self.modules_by_course,
            self.content_by_module,
            self.assignments_by_course,
            self.submissions_by_assignment,
        ):
            index.clear()
        self.all_courses.clear()
        self.enrolled_courses.clear()
        self.enrollments.clear()
        self.user_submissions.clear()
