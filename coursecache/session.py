"""SessionContext: one signed-in session's worth of cache.

WHY AN EXPLICIT CONTEXT (NOT MODULE-LEVEL SINGLETONS)?
--------------------------------------------------------
The stores call into each other: modules need the current user and the
progress store, progress needs module and course records for activity
names, everyone needs the merge engine.  With module-level singletons
those links are invisible imports and every test shares one cache.

Here the context owns everything and each store holds a reference to it:

    ctx = SessionContext.create(HttpRemoteApi(...))
    ctx.auth.sign_in(user)
    await ctx.modules.fetch_module(7)
    await ctx.join()          # wait for background follow-ups

Two contexts never share state, so each test builds its own.

LIFECYCLE
----------
  join()     wait for every tracked background task (tests, shutdown)
  abandon()  cancel them instead
  reset()    sign-out: drop every cached record, the activity log and
             the current user
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from coursecache.api.remote import RemoteApi
from coursecache.core.config import SETTINGS, Settings
from coursecache.models.user import User
from coursecache.repos.entity_cache import EntityCache
from coursecache.services.activity_log import ActivityLog
from coursecache.services.assignments import AssignmentStore
from coursecache.services.auth import AuthState
from coursecache.services.courses import CourseStore
from coursecache.services.merge import MergeEngine
from coursecache.services.modules import ModuleStore
from coursecache.services.progress import ProgressStore
from coursecache.services.tasks import BackgroundTasks

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class SessionContext:
    remote: RemoteApi
    settings: Settings
    auth: AuthState
    cache: EntityCache
    merge: MergeEngine
    activity: ActivityLog
    tasks: BackgroundTasks

    def __post_init__(self) -> None:
        self.courses = CourseStore(self)
        self.modules = ModuleStore(self)
        self.progress = ProgressStore(self)
        self.assignments = AssignmentStore(self)

    @classmethod
    def create(
        cls,
        remote: RemoteApi,
        settings: Settings = SETTINGS,
        *,
        user: User | None = None,
    ) -> SessionContext:
        cache = EntityCache()
        return cls(
            remote=remote,
            settings=settings,
            auth=AuthState(user),
            cache=cache,
            merge=MergeEngine(cache),
            activity=ActivityLog(settings.activity_log_capacity),
            tasks=BackgroundTasks(),
        )

    async def join(self) -> None:
        await self.tasks.join()

    async def abandon(self) -> None:
        pending = self.tasks.pending
        await self.tasks.abandon()
        if pending:
            logger.info("Abandoned %d background task(s)", pending)

    def reset(self) -> None:
        self.cache.clear()
        self.activity.clear()
        self.auth.sign_out()
        for store in (self.courses, self.modules, self.progress, self.assignments):
            store.clear_error()
        self.modules.current_module = None
        self.modules.current_content = None
        logger.info("Session cache cleared")
