from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from conductor.engine import ConductorEngine
from conductor.engine.models import SessionStatus


@pytest.fixture
def engine_factory(fast_config, tmp_path):
    def _make(executable=None, **kwargs):
        kwargs.setdefault("ai_call", AsyncMock(return_value={"ok": True}))
        return ConductorEngine(
            fast_config,
            executable=str(executable) if executable else None,
            project_root=tmp_path,
            **kwargs,
        )

    return _make


@pytest.mark.asyncio
async def test_engine_runs_hivemind(engine_factory, make_script):
    script = make_script('echo "phase output"')
    async with engine_factory(script) as engine:
        result = await engine.orchestrator.start("hivemind", "Build a todo API")
        assert result.success
        record = await engine.orchestrator.wait(result.data, timeout=15)
        assert record.status == SessionStatus.COMPLETED
        assert engine.stats()["sessions"]["total_sessions"] == 1
    assert engine.supervisor.live_handles == []


@pytest.mark.asyncio
async def test_engine_initializes_hooks(engine_factory, tmp_path):
    async with engine_factory() as engine:
        assert engine.initialize_hooks() == 0
        assert (tmp_path / "hooks" / "triggers").is_dir()

        await engine.hooks.register_trigger("hello", "echo hello")
        result = await engine.hooks.execute_hook("hello")
        assert result.success

        stats = engine.stats()
        assert stats["hooks"]["script_executions"] == 1
        assert stats["live_processes"] == 0
        assert stats["pending_delegations"] == 0


@pytest.mark.asyncio
async def test_relative_hooks_dir_resolves_under_project_root(fast_config, tmp_path):
    fast_config.hooks_dir = "my-hooks"
    engine = ConductorEngine(
        fast_config, ai_call=AsyncMock(), project_root=tmp_path,
    )
    engine.initialize_hooks()
    assert (tmp_path / "my-hooks" / "lib").is_dir()
    await engine.shutdown()


@pytest.mark.asyncio
async def test_shutdown_is_idempotent_and_stops_sessions(engine_factory, make_script):
    engine = engine_factory(make_script("sleep 30"))
    result = await engine.orchestrator.start("supervision", "wait forever")
    assert result.success

    await engine.shutdown()
    await engine.shutdown()

    assert engine.supervisor.live_handles == []
    assert engine.orchestrator.active_sessions() == []


@pytest.mark.asyncio
async def test_engines_share_no_state(engine_factory, make_script):
    script = make_script("echo one")
    first = engine_factory(script)
    second = engine_factory(script)
    result = await first.orchestrator.start("supervision", "task")
    await first.orchestrator.wait(result.data, timeout=10)

    assert first.registry.stats()["total_sessions"] == 1
    assert second.registry.stats()["total_sessions"] == 0
    await first.shutdown()
    await second.shutdown()
