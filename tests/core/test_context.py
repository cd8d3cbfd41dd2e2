from __future__ import annotations

import asyncio

from coursecache.core.context import current_operation, operation_scope


def test_operation_defaults_to_dash() -> None:
    assert current_operation() == "-"


def test_nested_scopes_restore_outer_name() -> None:
    with operation_scope("modules.fetch_module"):
        with operation_scope("modules.fetch_content_for_module"):
            assert current_operation() == "modules.fetch_content_for_module"
        assert current_operation() == "modules.fetch_module"
    assert current_operation() == "-"


def test_scope_is_restored_after_exception() -> None:
    try:
        with operation_scope("courses.fetch_course"):
            raise RuntimeError("boom")
    except RuntimeError:
        pass
    assert current_operation() == "-"


def test_spawned_task_keeps_spawning_operation() -> None:
    async def scenario() -> str:
        async def child() -> str:
            await asyncio.sleep(0)
            return current_operation()

        with operation_scope("progress.mark_module_completed"):
            task = asyncio.get_running_loop().create_task(child())
        # The scope has ended here; the task still sees its copy.
        return await task

    assert asyncio.run(scenario()) == "progress.mark_module_completed"
