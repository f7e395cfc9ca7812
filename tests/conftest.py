from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from conductor.engine.config import EngineConfig
from conductor.engine.orchestrator import ModeOrchestrator
from conductor.engine.process_supervisor import ProcessSupervisor
from conductor.engine.prompt_detector import ApprovalPolicy, PromptDetector
from conductor.engine.session_registry import SessionRegistry


@pytest.fixture
def make_script(tmp_path: Path):
    """Write an executable bash script and return its path.

    Scripts stand in for the coding-assistant CLI: ``$1`` is the mode
    flag (--print / --verbose) and ``$2`` the prompt.
    """
    bin_dir = tmp_path / "bin"
    bin_dir.mkdir(exist_ok=True)

    def _make(body: str, name: str = "fake-claude") -> Path:
        path = bin_dir / name
        path.write_text("#!/bin/bash\n" + body + "\n", encoding="utf-8")
        path.chmod(0o755)
        return path

    return _make


@pytest.fixture
def fast_config(tmp_path: Path) -> EngineConfig:
    return EngineConfig(
        assistant_candidates=[],
        projects_dir=str(tmp_path / "projects"),
        kill_grace_seconds=0.5,
        auto_response_delay_seconds=0.0,
        iteration_delay_seconds=0.0,
        phase_delay_seconds=0.0,
        hooks_dir=str(tmp_path / "hooks"),
        hook_timeout_seconds=5.0,
        delegation_delay_seconds=0.0,
    )


@pytest.fixture
def components(fast_config: EngineConfig):
    supervisor = ProcessSupervisor(kill_grace_seconds=fast_config.kill_grace_seconds)
    registry = SessionRegistry(supervisor, projects_dir=fast_config.projects_dir)
    detector = PromptDetector(
        registry,
        supervisor,
        policy=ApprovalPolicy(1.0),
        auto_response_delay=fast_config.auto_response_delay_seconds,
    )
    return supervisor, registry, detector


@pytest.fixture
def make_orchestrator(components, fast_config: EngineConfig):
    supervisor, registry, detector = components

    def _make(executable: Path | str | None, **kwargs) -> ModeOrchestrator:
        return ModeOrchestrator(
            registry,
            supervisor,
            detector,
            config=fast_config,
            executable=str(executable) if executable is not None else None,
            **kwargs,
        )

    return _make


async def wait_until(predicate, timeout: float = 5.0, interval: float = 0.01) -> None:
    """Poll until predicate() is truthy or fail the test."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            pytest.fail(f"condition not met within {timeout}s")
        await asyncio.sleep(interval)


@pytest.fixture
def until():
    return wait_until
