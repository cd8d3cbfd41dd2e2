from __future__ import annotations

import asyncio
from datetime import UTC, datetime

import pytest

from coursecache.core.errors import UnauthenticatedError
from coursecache.models.module import Module
from coursecache.models.progress import ActivityRecord, CourseProgress, ModuleProgress
from tests.conftest import metric_value
from tests.fakes import FakeRemoteApi


def _seed(remote: FakeRemoteApi, items: int = 3) -> None:
    remote.add_course(1, enrolled=True, name="Chemistry")
    remote.add_module(7, 1, title="Atoms")
    for n in range(1, items + 1):
        remote.add_content(70 + n, 7, duration=5)


def test_completing_last_content_completes_module(remote: FakeRemoteApi, session) -> None:
    _seed(remote)

    async def scenario():
        await session.modules.fetch_module(7)
        await session.progress.fetch_course_progress(1)
        for content_id in (71, 72):
            await session.progress.record_content_progress(content_id, completed=True)
            assert remote.calls_to("mark_module_completed") == []
        await session.progress.record_content_progress(73, completed=True)
        await session.join()

    asyncio.run(scenario())

    assert remote.calls_to("mark_module_completed") == [(7,)]
    assert session.progress.is_module_completed(7)
    course = session.progress.course_progress(1)
    assert (course.completed_modules, course.total_modules) == (1, 1)
    assert len(remote.calls_to("get_course_progress")) == 2

    newest = session.progress.recent_activity[0]
    assert (newest.type, newest.action, newest.item_name) == ("module", "completed", "Atoms")
    assert newest.course_name == "Course 1"
    assert [r.item_id for r in session.progress.recent_activity[1:]] == [73, 72, 71]


def test_already_completed_module_is_not_marked_again(remote: FakeRemoteApi, session) -> None:
    _seed(remote, items=1)

    async def scenario():
        await session.modules.fetch_module(7)
        await session.progress.record_content_progress(71, completed=True)
        await session.progress.record_content_progress(71, completed=True)

    asyncio.run(scenario())
    assert remote.calls_to("mark_module_completed") == [(7,)]


def test_viewing_content_never_completes_module(remote: FakeRemoteApi, session) -> None:
    _seed(remote, items=1)

    async def scenario():
        await session.modules.fetch_module(7)
        await session.progress.record_content_progress(71, completed=False)

    asyncio.run(scenario())
    assert remote.calls_to("mark_module_completed") == []
    assert session.progress.recent_activity[0].action == "viewed"


def test_course_refresh_only_when_course_progress_cached(
    remote: FakeRemoteApi, session
) -> None:
    _seed(remote, items=1)

    async def scenario():
        await session.modules.fetch_content_for_module(7)
        await session.progress.mark_module_completed(7)
        await session.join()

    asyncio.run(scenario())
    assert remote.calls_to("get_course_progress") == []
    assert session.progress.course_progress(1) is None


def test_mark_incomplete_leaves_content_completed(remote: FakeRemoteApi, session) -> None:
    _seed(remote, items=1)

    async def scenario():
        await session.modules.fetch_module(7)
        await session.progress.record_content_progress(71, completed=True)
        await session.progress.mark_module_incomplete(7)

    asyncio.run(scenario())

    assert not session.progress.is_module_completed(7)
    assert session.progress.is_content_completed(71)


def test_auto_complete_failure_does_not_fail_recording(
    remote: FakeRemoteApi, session
) -> None:
    _seed(remote, items=1)
    remote.fail("mark_module_completed", 500)
    label = {"operation": "progress.auto_complete_module"}
    before = metric_value("best_effort_failures_total", label)

    async def scenario():
        await session.modules.fetch_module(7)
        return await session.progress.record_content_progress(71, completed=True)

    progress = asyncio.run(scenario())

    assert progress.completed
    assert session.progress.is_content_completed(71)
    assert not session.progress.is_module_completed(7)
    assert metric_value("best_effort_failures_total", label) - before == 1


def test_fetch_user_progress_requires_a_user(
    remote: FakeRemoteApi, anonymous_session
) -> None:
    with pytest.raises(UnauthenticatedError):
        asyncio.run(anonymous_session.progress.fetch_user_progress())
    assert remote.calls == []


def test_fetch_user_progress_fills_tables_and_history(remote: FakeRemoteApi, session) -> None:
    _seed(remote, items=0)
    remote.module_progress[7] = ModuleProgress(
        id=1, user_id=1, module_id=7, course_id=1, completed=True
    )
    remote.activity = [
        ActivityRecord(
            id=n,
            type="content",
            action="viewed",
            item_id=n,
            course_id=1,
            timestamp=datetime(2024, 1, 1, tzinfo=UTC),
        )
        for n in range(30)
    ]

    asyncio.run(session.progress.fetch_user_progress())

    assert session.progress.is_module_completed(7)
    assert session.progress.course_progress(1).percentage == 100
    assert session.progress.overall_progress() == 100
    assert len(session.progress.recent_activity) == 20
    assert session.progress.recent_activity[0].id == 0
    assert session.progress.recent_courses() == [1]


def test_fetch_user_progress_refreshes_courses_missing_from_payload(
    remote: FakeRemoteApi, session
) -> None:
    _seed(remote, items=0)
    remote.add_course(2)
    remote.add_module(9, 2)
    remote.module_progress[9] = ModuleProgress(
        id=2, user_id=1, module_id=9, course_id=2, completed=True
    )
    session.merge.put_course_progress(
        CourseProgress(course_id=2, total_modules=1, completed_modules=0, percentage=0)
    )

    async def scenario():
        await session.progress.fetch_user_progress()
        await session.join()

    asyncio.run(scenario())

    assert session.progress.course_progress(2).completed_modules == 1
    assert remote.calls_to("get_course_progress") == [(2, 1)]


def test_activity_history_is_capped(remote: FakeRemoteApi, session) -> None:
    _seed(remote, items=0)
    for n in range(25):
        remote.add_content(100 + n, 7)

    async def scenario():
        for n in range(25):
            await session.progress.record_content_progress(100 + n)

    asyncio.run(scenario())

    history = session.progress.recent_activity
    assert len(history) == 20
    assert history[0].item_id == 124
    assert history[-1].item_id == 105


def test_calculate_course_progress_from_given_modules(session) -> None:
    modules = [Module(id=n, course_id=1, title=f"M{n}", order=n) for n in (1, 2, 3)]
    session.merge.merge_module_progress(
        ModuleProgress(id=1, user_id=1, module_id=2, course_id=1, completed=True)
    )

    progress = session.progress.calculate_course_progress(1, modules)

    assert (progress.completed_modules, progress.total_modules) == (1, 3)
    assert progress.percentage == pytest.approx(33.33, abs=0.01)
    assert session.progress.course_progress(1) == progress
    assert session.progress.next_module_for_course(1, modules).id == 1
    status = session.progress.course_completion_status(1, modules)
    assert (status.completed, status.in_progress, status.not_started) == (1, 0, 2)


def test_calculate_course_progress_with_no_modules(session) -> None:
    progress = session.progress.calculate_course_progress(5, [])
    assert progress.percentage == 0


def test_check_all_content_completed_needs_loaded_content(
    remote: FakeRemoteApi, session
) -> None:
    _seed(remote, items=0)
    assert not session.progress.check_all_content_completed(7)
    asyncio.run(session.modules.fetch_content_for_module(7))
    assert not session.progress.check_all_content_completed(7)


def test_record_assignment_submission_refreshes_with_module(
    remote: FakeRemoteApi, session
) -> None:
    remote.add_course(1, name="Physics")
    remote.add_assignment(40, 1, title="Lab report")

    async def scenario():
        await session.progress.record_assignment_submission(40, course_id=1)
        assert remote.calls_to("get_course_progress") == []
        await session.progress.record_assignment_submission(40, course_id=1, module_id=7)

    asyncio.run(scenario())

    assert remote.calls_to("get_course_progress") == [(1, 1)]
    entry = session.progress.recent_activity[0]
    assert (entry.type, entry.action, entry.item_name) == ("assignment", "completed", "Assignment 40")


def test_record_course_started_logs_activity(remote: FakeRemoteApi, session) -> None:
    remote.add_course(3, enrolled=True, name="Geology")

    async def scenario():
        await session.courses.fetch_enrolled_courses()
        return await session.progress.record_course_started(3)

    result = asyncio.run(scenario())

    assert result["started"] is True
    entry = session.progress.activities_for_course(3)[0]
    assert (entry.type, entry.action, entry.course_name) == ("course", "started", "Geology")


def test_reset_drops_progress_and_history(remote: FakeRemoteApi, session) -> None:
    _seed(remote, items=1)

    async def scenario():
        await session.modules.fetch_module(7)
        await session.progress.record_content_progress(71, completed=True)

    asyncio.run(scenario())
    session.progress.reset()

    assert session.progress.content_progress(71) is None
    assert session.progress.module_progress(7) is None
    assert session.progress.recent_activity == []
    assert session.modules.module_by_id(7) is not None
