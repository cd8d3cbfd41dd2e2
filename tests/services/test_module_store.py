from __future__ import annotations

import asyncio

import pytest

from coursecache.core.errors import RemoteError, UnauthenticatedError
from coursecache.models.progress import ContentProgress, CourseProgress, ModuleProgress
from tests.conftest import STUDENT, make_session, metric_value
from tests.fakes import FakeRemoteApi


def _seed_module(remote: FakeRemoteApi, durations=(5, 10, 0, 3)) -> None:
    remote.add_course(1, enrolled=True)
    remote.add_module(7, 1)
    for offset, duration in enumerate(durations, start=1):
        remote.add_content(70 + offset, 7, duration=duration)


def test_fetch_module_waits_for_content_and_aggregates(remote: FakeRemoteApi, session) -> None:
    _seed_module(remote)

    module = asyncio.run(session.modules.fetch_module(7))

    assert module.content_count == 4
    assert module.duration == 18
    assert [i.id for i in module.content_items] == [71, 72, 73, 74]
    assert session.modules.current_module == module
    assert len(session.modules.content_for_module(7)) == 4


def test_first_access_records_a_view_without_activity(remote: FakeRemoteApi, session) -> None:
    _seed_module(remote, durations=(5, 5))

    asyncio.run(session.modules.fetch_module(7))

    assert session.progress.is_content_viewed(71)
    assert session.progress.is_content_viewed(72)
    assert not session.progress.is_content_completed(71)
    assert [args[0] for args in remote.calls_to("record_content_progress")] == [71, 72]
    assert session.progress.recent_activity == []


def test_known_content_progress_is_not_refetched(remote: FakeRemoteApi, session) -> None:
    _seed_module(remote, durations=(5,))
    remote.content_progress[71] = ContentProgress(id=1, user_id=1, content_id=71, viewed=True)

    asyncio.run(session.modules.fetch_module(7))
    asyncio.run(session.modules.fetch_module(7))

    assert len(remote.calls_to("get_content_progress")) == 1
    assert remote.calls_to("record_content_progress") == []


def test_one_content_progress_failure_does_not_fail_the_fetch(
    remote: FakeRemoteApi, session
) -> None:
    _seed_module(remote, durations=(1, 1, 1, 1, 1))
    remote.fail("get_content_progress", 500, when=lambda content_id, _user: content_id == 73)
    before = metric_value(
        "best_effort_failures_total", {"operation": "modules.fetch_content_progress"}
    )

    module = asyncio.run(session.modules.fetch_module(7))

    assert module.content_count == 5
    assert session.progress.content_progress(73) is None
    for content_id in (71, 72, 74, 75):
        assert session.progress.is_content_viewed(content_id)
    after = metric_value(
        "best_effort_failures_total", {"operation": "modules.fetch_content_progress"}
    )
    assert after - before == 1


def test_cancelled_content_progress_is_counted_as_a_failure() -> None:
    class CancellingRemote(FakeRemoteApi):
        async def get_content_progress(self, content_id, user_id):
            await self._call("get_content_progress", content_id, user_id)
            if content_id == 73:
                raise asyncio.CancelledError()
            return self._get(self.content_progress, "Content progress", content_id)

    remote = CancellingRemote(user_id=STUDENT.id)
    _seed_module(remote, durations=(1, 1, 1))
    session = make_session(remote)
    before = metric_value(
        "best_effort_failures_total", {"operation": "modules.fetch_content_progress"}
    )

    module = asyncio.run(session.modules.fetch_module(7))

    assert module.content_count == 3
    assert session.progress.content_progress(73) is None
    assert session.progress.is_content_viewed(71)
    after = metric_value(
        "best_effort_failures_total", {"operation": "modules.fetch_content_progress"}
    )
    assert after - before == 1


def test_module_progress_failure_is_best_effort(remote: FakeRemoteApi, session) -> None:
    _seed_module(remote, durations=(2,))
    remote.fail("get_module_progress", 503)

    module = asyncio.run(session.modules.fetch_module(7))

    assert module.id == 7
    assert session.modules.module_progress(7) is None


def test_missing_module_fails_the_fetch(session) -> None:
    with pytest.raises(RemoteError) as info:
        asyncio.run(session.modules.fetch_module(99))
    assert info.value.is_not_found
    assert session.modules.error


def test_fetch_modules_for_course_refreshes_progress_in_background(
    remote: FakeRemoteApi, session
) -> None:
    remote.add_course(1, enrolled=True)
    remote.add_module(11, 1, order=2)
    remote.add_module(10, 1, order=1)

    async def scenario():
        modules = await session.modules.fetch_modules_for_course(1)
        assert session.tasks.pending == 1
        await session.join()
        return modules

    modules = asyncio.run(scenario())

    assert [m.id for m in modules] == [10, 11]
    assert session.progress.course_progress(1).total_modules == 2
    assert session.courses.course_by_id(1) is None
    assert remote.calls_to("get_course_progress") == [(1, 1)]


def test_fetch_modules_for_course_skips_progress_when_anonymous(
    remote: FakeRemoteApi, anonymous_session
) -> None:
    remote.add_module(10, 1)

    async def scenario():
        await anonymous_session.modules.fetch_modules_for_course(1)
        assert anonymous_session.tasks.pending == 0

    asyncio.run(scenario())
    assert remote.calls_to("get_course_progress") == []


def test_module_count_follows_loaded_modules(remote: FakeRemoteApi, session) -> None:
    remote.add_course(1, enrolled=True, module_count=9)
    remote.add_module(10, 1)
    remote.add_module(11, 1)

    async def scenario():
        await session.courses.fetch_enrolled_courses()
        assert session.courses.course_by_id(1).module_count == 9
        await session.modules.fetch_modules_for_course(1)
        await session.modules.delete_module(11)
        await session.join()

    asyncio.run(scenario())
    assert session.courses.course_by_id(1).module_count == 1


def test_fetch_content_progress_requires_a_user(
    remote: FakeRemoteApi, anonymous_session
) -> None:
    with pytest.raises(UnauthenticatedError):
        asyncio.run(anonymous_session.modules.fetch_content_progress(71))
    assert remote.calls == []
    assert anonymous_session.modules.error == "User not authenticated"


def test_fetch_content_with_unloaded_module_keeps_bucket_unloaded(
    remote: FakeRemoteApi, session
) -> None:
    _seed_module(remote)

    item = asyncio.run(session.modules.fetch_content(72))

    assert item.id == 72
    assert session.modules.current_content == item
    assert session.modules.content_by_id(72) == item
    assert not session.cache.content_by_module.is_loaded(7)
    assert session.progress.is_content_viewed(72)


def test_fetch_content_joins_loaded_bucket(remote: FakeRemoteApi, session) -> None:
    _seed_module(remote, durations=(5,))
    asyncio.run(session.modules.fetch_module(7))
    remote.add_content(72, 7, duration=4)

    asyncio.run(session.modules.fetch_content(72))

    module = session.modules.module_by_id(7)
    assert module.content_count == 2
    assert module.duration == 9


def test_create_module_defaults_order_to_end(remote: FakeRemoteApi, session) -> None:
    remote.add_module(10, 1, order=1)
    remote.add_module(11, 1, order=2)

    async def scenario():
        await session.modules.fetch_modules_for_course(1)
        await session.join()
        return await session.modules.create_module(1, title="Wrap-up")

    module = asyncio.run(scenario())

    assert module.order == 3
    assert [m.id for m in session.modules.modules_for_course(1)] == [10, 11, module.id]


def test_reorder_modules(remote: FakeRemoteApi, session) -> None:
    remote.add_module(10, 1, order=1)
    remote.add_module(11, 1, order=2)

    async def scenario():
        await session.modules.fetch_modules_for_course(1)
        await session.join()
        return await session.modules.reorder_modules(1, [11, 10])

    modules = asyncio.run(scenario())
    assert [m.id for m in modules] == [11, 10]


def test_content_crud_keeps_aggregates_current(remote: FakeRemoteApi, session) -> None:
    _seed_module(remote, durations=(5,))

    async def scenario():
        await session.modules.fetch_module(7)
        created = await session.modules.create_content_item(7, title="Video", duration=20)
        await session.modules.update_content_item(71, duration=1)
        assert session.modules.module_by_id(7).duration == 21
        await session.modules.delete_content_item(created.id)

    asyncio.run(scenario())

    module = session.modules.module_by_id(7)
    assert module.content_count == 1
    assert module.duration == 1


def test_delete_module_drops_its_content_and_progress(remote: FakeRemoteApi, session) -> None:
    _seed_module(remote, durations=(5, 5))

    async def scenario():
        await session.modules.fetch_module(7)
        await session.modules.delete_module(7)

    asyncio.run(scenario())

    assert session.modules.module_by_id(7) is None
    assert session.modules.current_module is None
    assert session.modules.content_by_id(71) is None
    assert session.progress.content_progress(71) is None
    assert session.modules.modules_for_course(1) == []


def test_all_content_items_spans_loaded_modules(remote: FakeRemoteApi, session) -> None:
    _seed_module(remote, durations=(1, 2))
    remote.add_module(8, 1)
    remote.add_content(81, 8)

    async def scenario():
        await session.modules.fetch_content_for_module(7)
        await session.modules.fetch_content_for_module(8)

    asyncio.run(scenario())
    assert sorted(i.id for i in session.modules.all_content_items()) == [71, 72, 81]


def test_fetch_module_keeps_course_module_count(remote: FakeRemoteApi, session) -> None:
    remote.add_course(1, enrolled=True, module_count=10)
    for module_id in range(1, 11):
        remote.add_module(module_id, 1)

    async def scenario():
        await session.courses.fetch_course(1)
        await session.modules.fetch_module(7)
        assert session.courses.course_by_id(1).module_count == 10
        assert session.modules.modules_for_course(1) == []
        await session.modules.fetch_modules_for_course(1)
        await session.join()

    asyncio.run(scenario())
    assert session.courses.course_by_id(1).module_count == 10
    assert len(session.modules.modules_for_course(1)) == 10


def test_fetched_module_completion_refreshes_cached_course_progress(
    remote: FakeRemoteApi, session
) -> None:
    remote.add_course(1, enrolled=True)
    remote.add_module(7, 1)
    remote.add_module(8, 1)
    remote.module_progress[7] = ModuleProgress(
        id=1, user_id=1, module_id=7, course_id=1, completed=True
    )
    session.merge.put_course_progress(
        CourseProgress(course_id=1, total_modules=2, completed_modules=0, percentage=0)
    )

    async def scenario():
        await session.modules.fetch_module(7)
        await session.join()

    asyncio.run(scenario())

    assert session.progress.is_module_completed(7)
    assert session.progress.course_progress(1).completed_modules == 1
    assert remote.calls_to("get_course_progress") == [(1, 1)]


def test_unchanged_module_completion_skips_course_refresh(
    remote: FakeRemoteApi, session
) -> None:
    remote.add_course(1, enrolled=True)
    remote.add_module(7, 1)
    remote.module_progress[7] = ModuleProgress(id=1, user_id=1, module_id=7, course_id=1)
    session.merge.put_course_progress(
        CourseProgress(course_id=1, total_modules=1, completed_modules=0, percentage=0)
    )

    async def scenario():
        await session.modules.fetch_module(7)
        await session.join()

    asyncio.run(scenario())
    assert remote.calls_to("get_course_progress") == []
