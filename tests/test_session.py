from __future__ import annotations

import asyncio

from tests.conftest import STUDENT, make_session
from tests.fakes import FakeRemoteApi


def test_contexts_do_not_share_state(remote: FakeRemoteApi) -> None:
    remote.add_course(1, enrolled=True)
    first = make_session(remote)
    second = make_session(remote)

    asyncio.run(first.courses.fetch_enrolled_courses())

    assert [c.id for c in first.courses.enrolled_courses] == [1]
    assert second.courses.enrolled_courses == []
    assert first.cache is not second.cache


def test_reset_clears_everything(remote: FakeRemoteApi, session) -> None:
    remote.add_course(1, enrolled=True)
    remote.add_module(7, 1)
    remote.add_content(71, 7)

    async def scenario():
        await session.courses.fetch_enrolled_courses()
        await session.modules.fetch_module(7)
        await session.modules.fetch_content(71)
        await session.progress.record_content_progress(71, completed=True)
        await session.join()

    asyncio.run(scenario())
    session.courses.error = "stale banner"

    session.reset()

    assert session.courses.enrolled_courses == []
    assert session.modules.module_by_id(7) is None
    assert session.progress.content_progress(71) is None
    assert session.progress.recent_activity == []
    assert session.modules.current_module is None
    assert session.modules.current_content is None
    assert session.courses.error is None
    assert not session.auth.is_authenticated


def test_join_waits_for_background_refresh(remote: FakeRemoteApi, session) -> None:
    remote.add_course(1, enrolled=True)
    remote.add_module(7, 1)

    async def scenario():
        await session.modules.fetch_modules_for_course(1)
        assert session.progress.course_progress(1) is None
        await session.join()
        assert session.tasks.pending == 0

    asyncio.run(scenario())
    assert session.progress.course_progress(1) is not None


def test_abandon_cancels_background_refresh(remote: FakeRemoteApi, session) -> None:
    remote.add_course(1, enrolled=True)
    remote.add_module(7, 1)

    async def scenario():
        await session.modules.fetch_modules_for_course(1)
        await session.abandon()
        assert session.tasks.pending == 0

    asyncio.run(scenario())
    assert session.progress.course_progress(1) is None


def test_sign_in_after_reset(remote: FakeRemoteApi, session) -> None:
    session.reset()
    session.auth.sign_in(STUDENT)
    assert session.auth.require_user_id() == STUDENT.id
