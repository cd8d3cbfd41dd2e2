"""Module store: modules, their content, and the fetches that fill them.

FETCH ORCHESTRATION
--------------------
Every fetch has one authoritative remote call, whose failure fails the
operation, and some dependent fetches, whose failures never do:

  fetch_modules_for_course
      list modules -> merge -> [background] course progress
  fetch_module
      get module -> merge -> fetch_content_for_module (awaited)
                          -> module progress (best-effort, 404 = none yet)
  fetch_content_for_module
      list content -> merge bucket -> content progress per item
                                      (concurrent, each best-effort)
  fetch_content
      get item -> merge (into its module's bucket only if loaded)
               -> content progress (best-effort)

Progress fan-out only happens when someone is signed in; without a user
there is nothing to scope it to.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from typing import TYPE_CHECKING, Any

from coursecache.core.errors import absent_if_not_found
from coursecache.core.metrics import BEST_EFFORT_FAILURES
from coursecache.models.module import ContentItem, Module
from coursecache.models.progress import ContentProgress, ModuleProgress
from coursecache.services.aggregates import display_order
from coursecache.services.base import BaseStore
from coursecache.services.merge import MergeStrategy
from coursecache.services.tasks import best_effort

if TYPE_CHECKING:
    from coursecache.session import SessionContext

logger = logging.getLogger(__name__)


class ModuleStore(BaseStore):
    def __init__(self, ctx: SessionContext) -> None:
        super().__init__(ctx)
        self.current_module: Module | None = None
        self.current_content: ContentItem | None = None

    # -- read accessors ------------------------------------------------------

    def modules_for_course(self, course_id: int) -> list[Module]:
        return display_order(self.cache.modules_by_course.resolve(course_id, self.cache.modules))

    def content_for_module(self, module_id: int) -> list[ContentItem]:
        return self.cache.content_by_module.resolve(module_id, self.cache.content)

    def module_by_id(self, module_id: int) -> Module | None:
        return self.cache.modules.get(module_id)

    def content_by_id(self, content_id: int) -> ContentItem | None:
        return self.cache.content.get(content_id)

    def all_content_items(self) -> list[ContentItem]:
        items: list[ContentItem] = []
        for module_id in self.cache.content_by_module.parents():
            items.extend(self.content_for_module(module_id))
        return items

    def can_manage_module(self, module: Module) -> bool:
        auth = self.ctx.auth
        return auth.is_admin or (auth.is_teacher and module.can_manage)

    def module_progress(self, module_id: int) -> ModuleProgress | None:
        return self.cache.module_progress.get(module_id)

    def is_module_completed(self, module_id: int) -> bool:
        return self.ctx.progress.is_module_completed(module_id)

    def content_progress(self, content_id: int) -> ContentProgress | None:
        return self.cache.content_progress.get(content_id)

    def is_content_completed(self, content_id: int) -> bool:
        return self.ctx.progress.is_content_completed(content_id)

    # -- fetches -------------------------------------------------------------

    async def fetch_modules_for_course(self, course_id: int) -> list[Module]:
        with self._operation(
            "modules.fetch_modules_for_course",
            f"Failed to fetch modules for course {course_id}",
        ):
            modules = await self.remote.list_modules(course_id)
            self.merge.merge_modules_for_course(course_id, modules)
            if self.ctx.auth.is_authenticated:
                self.ctx.tasks.spawn(
                    "modules.fetch_module_progress_for_course",
                    self.ctx.progress.refresh_course_progress(course_id),
                )
            return self.modules_for_course(course_id)

    async def fetch_module(self, module_id: int) -> Module:
        with self._operation(
            "modules.fetch_module", f"Failed to fetch module with ID {module_id}"
        ):
            module = await self.remote.get_module(module_id)
            self.merge.merge_module(module)
            await self.fetch_content_for_module(module_id)

            user_id = self.ctx.auth.user_id
            if user_id is not None:
                progress = await best_effort(
                    "modules.fetch_module_progress",
                    absent_if_not_found(self.remote.get_module_progress(module_id, user_id)),
                )
                if progress is not None:
                    self.ctx.progress.apply_module_progress(progress)

            self.current_module = self.cache.modules.get(module_id)
            return self.current_module or module

    async def fetch_content_for_module(self, module_id: int) -> list[ContentItem]:
        with self._operation(
            "modules.fetch_content_for_module",
            f"Failed to fetch content for module {module_id}",
        ):
            items = await self.remote.list_content(module_id)
            merged = self.merge.merge_content_for_module(module_id, items)

            user_id = self.ctx.auth.user_id
            if user_id is not None and merged:
                results = await asyncio.gather(
                    *(self._ensure_content_progress(item.id, user_id) for item in merged),
                    return_exceptions=True,
                )
                for item, result in zip(merged, results):
                    if isinstance(result, BaseException):
                        BEST_EFFORT_FAILURES.labels(
                            operation="modules.fetch_content_progress"
                        ).inc()
                        logger.warning(
                            "Progress for content %d failed: %s",
                            item.id,
                            result,
                            extra={"content_id": item.id, "module_id": module_id},
                        )
            return merged

    async def fetch_content(self, content_id: int) -> ContentItem:
        with self._operation(
            "modules.fetch_content", f"Failed to fetch content with ID {content_id}"
        ):
            item = await self.remote.get_content(content_id)
            self.merge.merge_content(item, create_bucket=False)
            self.current_content = item

            user_id = self.ctx.auth.user_id
            if user_id is not None:
                await best_effort(
                    "modules.fetch_content_progress",
                    self._ensure_content_progress(content_id, user_id),
                )
            return item

    async def fetch_content_progress(self, content_id: int) -> ContentProgress:
        """Progress for one content item, recording a first view if there is none.

        Needs a signed-in user; fails before any remote call otherwise.
        """
        with self._operation(
            "modules.fetch_content_progress",
            f"Failed to fetch progress for content {content_id}",
        ):
            user_id = self.ctx.auth.require_user_id()
            return await self._ensure_content_progress(content_id, user_id)

    async def _ensure_content_progress(self, content_id: int, user_id: int) -> ContentProgress:
        known = self.cache.content_progress.get(content_id)
        if known is not None:
            return known
        progress = await absent_if_not_found(
            self.remote.get_content_progress(content_id, user_id)
        )
        if progress is None:
            # First access counts as a view.
            progress = await self.remote.record_content_progress(content_id, completed=False)
            logger.debug("Recorded first view of content %d", content_id)
        return self.merge.merge_content_progress(progress)

    # -- mutations -----------------------------------------------------------

    async def create_module(
        self,
        course_id: int,
        *,
        title: str,
        order: int | None = None,
        description: str | None = None,
    ) -> Module:
        with self._operation("modules.create_module", "Failed to create module"):
            if order is None:
                order = len(self.cache.modules_by_course.bucket(course_id)) + 1
            module = await self.remote.create_module(
                course_id, title=title, order=order, description=description
            )
            merged = self.merge.merge_module(module, MergeStrategy.REPLACE)
            logger.info("Created module id=%d in course %d", module.id, course_id)
            return merged

    async def update_module(self, module_id: int, **changes: Any) -> Module:
        with self._operation(
            "modules.update_module", f"Failed to update module with ID {module_id}"
        ):
            module = await self.remote.update_module(module_id, changes)
            merged = self.merge.merge_module(module)
            if self.current_module is not None and self.current_module.id == module_id:
                self.current_module = merged
            return merged

    async def delete_module(self, module_id: int) -> bool:
        with self._operation(
            "modules.delete_module", f"Failed to delete module with ID {module_id}"
        ):
            await self.remote.delete_module(module_id)
            self.merge.remove_module(module_id)
            if self.current_module is not None and self.current_module.id == module_id:
                self.current_module = None
            logger.info("Deleted module id=%d", module_id)
            return True

    async def reorder_modules(self, course_id: int, module_ids: Sequence[int]) -> list[Module]:
        with self._operation(
            "modules.reorder_modules", f"Failed to reorder modules for course {course_id}"
        ):
            modules = await self.remote.reorder_modules(course_id, module_ids)
            for module in modules:
                self.merge.merge_module(module)
            return self.modules_for_course(course_id)

    async def create_content_item(
        self, module_id: int, *, title: str, content_type: str = "text", **fields: Any
    ) -> ContentItem:
        with self._operation("modules.create_content_item", "Failed to create content item"):
            item = await self.remote.create_content(
                module_id, title=title, content_type=content_type, **fields
            )
            return self.merge.merge_content(item)

    async def update_content_item(self, content_id: int, **changes: Any) -> ContentItem:
        with self._operation(
            "modules.update_content_item",
            f"Failed to update content item with ID {content_id}",
        ):
            item = await self.remote.update_content(content_id, changes)
            self.merge.merge_content(item, create_bucket=False)
            if self.current_content is not None and self.current_content.id == content_id:
                self.current_content = item
            return item

    async def delete_content_item(self, content_id: int, module_id: int | None = None) -> bool:
        with self._operation(
            "modules.delete_content_item",
            f"Failed to delete content item with ID {content_id}",
        ):
            await self.remote.delete_content(content_id)
            self.merge.remove_content(content_id, module_id)
            if self.current_content is not None and self.current_content.id == content_id:
                self.current_content = None
            return True
