"""Progress store: the completion cascade.

THE CASCADE
------------
  content completed
      -> every loaded content item of its module completed?
          -> mark module completed (remote mutation, merged)
              -> course progress already cached?
                  -> refresh it from the remote in the background

Each arrow past the first is best-effort: recording the content progress
succeeds even if the automatic module completion fails, and marking the
module succeeds even if the course refresh never lands.

The course refresh is a full re-fetch, not a local recompute: the remote
knows about modules this session never loaded.

WHAT DOES NOT CASCADE
-----------------------
Nothing flows backwards.  Completing a module does not complete its
content, and marking it incomplete leaves completed content completed.
Content progress is also monotonic locally: see merge_content_progress().
"""

from __future__ import annotations

import logging
from collections.abc import Collection, Sequence
from typing import Any

from coursecache.models.module import Module
from coursecache.models.progress import (
    ActivityRecord,
    ContentProgress,
    CourseProgress,
    ModuleProgress,
    UserProgress,
)
from coursecache.services import aggregates
from coursecache.services.base import BaseStore
from coursecache.services.tasks import best_effort

logger = logging.getLogger(__name__)


class ProgressStore(BaseStore):
    # -- read accessors ------------------------------------------------------

    def module_progress(self, module_id: int) -> ModuleProgress | None:
        return self.cache.module_progress.get(module_id)

    def course_progress(self, course_id: int) -> CourseProgress | None:
        return self.cache.course_progress.get(course_id)

    def content_progress(self, content_id: int) -> ContentProgress | None:
        return self.cache.content_progress.get(content_id)

    def is_module_completed(self, module_id: int) -> bool:
        entry = self.cache.module_progress.get(module_id)
        return entry is not None and entry.completed

    def is_content_completed(self, content_id: int) -> bool:
        entry = self.cache.content_progress.get(content_id)
        return entry is not None and entry.completed

    def is_content_viewed(self, content_id: int) -> bool:
        entry = self.cache.content_progress.get(content_id)
        return entry is not None and entry.viewed

    @property
    def recent_activity(self) -> list[ActivityRecord]:
        return self.ctx.activity.entries()

    def overall_progress(self) -> float:
        return aggregates.overall_percentage(self.cache.course_progress.values())

    def recent_courses(self) -> list[int]:
        return self.ctx.activity.recent_course_ids()

    def activities_for_course(self, course_id: int) -> list[ActivityRecord]:
        return self.ctx.activity.for_course(course_id)

    def _modules_of(self, course_id: int, modules: Sequence[Module] | None) -> list[Module]:
        if modules is not None:
            return list(modules)
        return self.cache.modules_by_course.resolve(course_id, self.cache.modules)

    def next_module_for_course(
        self, course_id: int, modules: Sequence[Module] | None = None
    ) -> Module | None:
        return aggregates.next_module(
            self._modules_of(course_id, modules), self.cache.module_progress.get
        )

    def course_completion_status(
        self, course_id: int, modules: Sequence[Module] | None = None
    ) -> aggregates.CompletionStatus:
        return aggregates.completion_status(
            self._modules_of(course_id, modules), self.cache.module_progress.get
        )

    def check_all_content_completed(self, module_id: int) -> bool:
        """True when the module's loaded content is non-empty and all completed.

        Only content already loaded locally is considered; this is a hint
        for the cascade, not an authoritative answer.
        """
        content_ids = self.cache.content_by_module.bucket(module_id)
        if not content_ids:
            return False
        return all(self.is_content_completed(content_id) for content_id in content_ids)

    def _course_id_of_module(self, module_id: int) -> int | None:
        module = self.cache.modules.get(module_id)
        return module.course_id if module is not None else None

    def _course_name(self, course_id: int | None) -> str:
        course = self.cache.courses.get(course_id) if course_id is not None else None
        if course is not None:
            return course.name
        return f"Course {course_id}" if course_id is not None else ""

    # -- fetches -------------------------------------------------------------

    async def fetch_user_progress(self) -> UserProgress:
        with self._operation("progress.fetch_user_progress", "Failed to fetch user progress"):
            user_id = self.ctx.auth.require_user_id()
            progress = await self.remote.get_user_progress(user_id)
            fresh = set()
            for course_entry in progress.course_progress:
                self.merge.put_course_progress(course_entry)
                fresh.add(course_entry.course_id)
            for entry in progress.module_progress:
                self.apply_module_progress(entry, fresh_courses=fresh)
            for content_entry in progress.content_progress:
                self.merge.merge_content_progress(content_entry)
            if progress.recent_activity:
                self.ctx.activity.replace_all(progress.recent_activity)
            return progress

    async def fetch_course_progress(self, course_id: int) -> CourseProgress:
        with self._operation(
            "progress.fetch_course_progress",
            f"Failed to fetch progress for course {course_id}",
        ):
            user_id = self.ctx.auth.require_user_id()
            return await self._load_course_progress(course_id, user_id)

    async def _load_course_progress(self, course_id: int, user_id: int) -> CourseProgress:
        progress = await self.remote.get_course_progress(course_id, user_id)
        return self.merge.put_course_progress(progress)

    async def refresh_course_progress(self, course_id: int) -> CourseProgress | None:
        """Best-effort re-fetch used by the cascade; never raises."""
        user_id = self.ctx.auth.user_id
        if user_id is None:
            logger.debug("No user; course progress refresh for %d skipped", course_id)
            return None
        return await best_effort(
            "progress.refresh_course_progress", self._load_course_progress(course_id, user_id)
        )

    def _schedule_course_refresh(self, course_id: int | None) -> None:
        if course_id is None or course_id not in self.cache.course_progress:
            return
        self.ctx.tasks.spawn(
            "progress.refresh_course_progress", self.refresh_course_progress(course_id)
        )

    def apply_module_progress(
        self, progress: ModuleProgress, *, fresh_courses: Collection[int] = ()
    ) -> ModuleProgress:
        """Merge module progress fetched outside the mark operations.

        When the module's completion flips, the course's cached progress is
        refreshed in the background, unless that course is in
        ``fresh_courses`` (its progress arrived in the same payload).
        """
        was_completed = self.is_module_completed(progress.module_id)
        merged = self.merge.merge_module_progress(progress)
        if merged.completed != was_completed:
            course_id = progress.course_id or self._course_id_of_module(progress.module_id)
            if course_id not in fresh_courses:
                self._schedule_course_refresh(course_id)
        return merged

    # -- mutations -----------------------------------------------------------

    async def mark_module_completed(
        self, module_id: int, *, module_name: str | None = None
    ) -> ModuleProgress:
        with self._operation(
            "progress.mark_module_completed",
            f"Failed to mark module {module_id} as completed",
        ):
            progress = await self.remote.mark_module_completed(module_id)
            self.merge.merge_module_progress(progress)
            course_id = progress.course_id or self._course_id_of_module(module_id)
            self._schedule_course_refresh(course_id)

            module = self.cache.modules.get(module_id)
            self.ctx.activity.record(
                "module",
                "completed",
                item_id=module_id,
                course_id=course_id,
                item_name=module_name or (module.title if module else f"Module {module_id}"),
                course_name=self._course_name(course_id),
            )
            logger.info("Module %d marked completed", module_id)
            return progress

    async def mark_module_incomplete(self, module_id: int) -> ModuleProgress:
        with self._operation(
            "progress.mark_module_incomplete",
            f"Failed to mark module {module_id} as incomplete",
        ):
            progress = await self.remote.mark_module_incomplete(module_id)
            self.merge.merge_module_progress(progress)
            self._schedule_course_refresh(
                progress.course_id or self._course_id_of_module(module_id)
            )
            return progress

    async def record_content_progress(
        self,
        content_id: int,
        *,
        completed: bool = False,
        time_spent: int | None = None,
        module_id: int | None = None,
        course_id: int | None = None,
        content_name: str | None = None,
    ) -> ContentProgress:
        """Record a view (or completion) and run the cascade on completion."""
        with self._operation(
            "progress.record_content_progress",
            f"Failed to record progress for content {content_id}",
        ):
            item = self.cache.content.get(content_id)
            if module_id is None and item is not None:
                module_id = item.module_id
            if course_id is None and module_id is not None:
                course_id = self._course_id_of_module(module_id)

            progress = await self.remote.record_content_progress(
                content_id, completed=completed, time_spent=time_spent
            )
            merged = self.merge.merge_content_progress(progress)

            self.ctx.activity.record(
                "content",
                "completed" if completed else "viewed",
                item_id=content_id,
                course_id=course_id,
                item_name=content_name or (item.title if item else f"Content {content_id}"),
                course_name=self._course_name(course_id),
            )

            if completed and module_id is not None:
                await self._complete_module_if_done(module_id)
            return merged

    async def _complete_module_if_done(self, module_id: int) -> None:
        if self.is_module_completed(module_id):
            return
        if not self.check_all_content_completed(module_id):
            return
        logger.info("All content of module %d completed; marking module", module_id)
        await best_effort(
            "progress.auto_complete_module", self.mark_module_completed(module_id)
        )

    async def record_course_started(
        self, course_id: int, course_name: str | None = None
    ) -> dict[str, Any]:
        with self._operation(
            "progress.record_course_started",
            f"Failed to record course {course_id} as started",
        ):
            result = await self.remote.record_course_started(course_id)
            name = course_name or self._course_name(course_id)
            self.ctx.activity.record(
                "course",
                "started",
                item_id=course_id,
                course_id=course_id,
                item_name=name,
                course_name=name,
            )
            return result

    async def record_assignment_submission(
        self,
        assignment_id: int,
        *,
        course_id: int,
        module_id: int | None = None,
        assignment_name: str | None = None,
        course_name: str | None = None,
    ) -> dict[str, Any]:
        with self._operation(
            "progress.record_assignment_submission",
            f"Failed to record assignment {assignment_id} submission",
        ):
            result = await self.remote.record_assignment_submission(assignment_id)
            assignment = self.cache.assignments.get(assignment_id)
            self.ctx.activity.record(
                "assignment",
                "completed",
                item_id=assignment_id,
                course_id=course_id,
                item_name=assignment_name
                or (assignment.title if assignment else f"Assignment {assignment_id}"),
                course_name=course_name or self._course_name(course_id),
            )
            if module_id is not None:
                await self.refresh_course_progress(course_id)
            return result

    def calculate_course_progress(
        self, course_id: int, modules: Sequence[Module] | None = None
    ) -> CourseProgress:
        """Recompute a course's progress from local module progress and store it.

        ``modules`` is the course's authoritative module list; without it the
        loaded modules-by-course bucket is used.
        """
        module_ids = [m.id for m in self._modules_of(course_id, modules)]
        progress = aggregates.course_progress(course_id, module_ids, self.is_module_completed)
        return self.merge.put_course_progress(progress)

    def reset(self) -> None:
        self.cache.module_progress.clear()
        self.cache.course_progress.clear()
        self.cache.content_progress.clear()
        self.ctx.activity.clear()
        self.error = None
