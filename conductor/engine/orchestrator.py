"""Mode orchestrator: the public face of session control.

Every operation returns an OperationResult; component exceptions are
caught here and turned into failed results. Each running session has
one driver task that runs the mode and applies the teardown.
"""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable, Mapping
from pathlib import Path
from typing import Any

from .config import EngineConfig, EventCallback
from .errors import (
    ConfigError,
    OrchestrationError,
    SessionNotFoundError,
    SessionStateError,
)
from .models import AgentRole, ModeKind, OperationResult, Session, SessionStatus
from .modes import RUNNERS, ModeRunner
from .process_supervisor import ProcessSupervisor, discover_executable
from .prompt_detector import PromptDetector
from .session_registry import SessionRegistry

logger = logging.getLogger(__name__)


class ModeOrchestrator:
    """Starts, steers, and stops collaboration-mode sessions."""

    def __init__(
        self,
        registry: SessionRegistry,
        supervisor: ProcessSupervisor,
        detector: PromptDetector,
        config: EngineConfig | None = None,
        executable: str | None = None,
        presets: Mapping[str, Iterable[AgentRole]] | None = None,
    ) -> None:
        self._registry = registry
        self._supervisor = supervisor
        self._detector = detector
        self._config = config or EngineConfig()
        self._executable = executable
        self._presets = dict(presets) if presets else None
        self._drivers: dict[str, asyncio.Task[None]] = {}

    async def resolve_executable(self) -> str:
        """Find (once) the assistant executable. Raises SpawnError."""
        if self._executable is None:
            self._executable = await discover_executable(
                self._config.assistant_candidates,
                timeout=self._config.probe_timeout_seconds,
            )
        return self._executable

    def _build_runner(
        self, mode: ModeKind, executable: str, options: dict[str, Any],
    ) -> ModeRunner:
        runner_cls = RUNNERS[mode]
        if mode == ModeKind.PARALLEL and self._presets:
            options = {"presets": self._presets, **options}
        try:
            return runner_cls(
                self._supervisor, self._registry, self._detector,
                executable, self._config, **options,
            )
        except TypeError as exc:
            raise ConfigError(f"Invalid options for {mode.value}: {exc}") from exc

    async def start(
        self,
        mode: ModeKind | str,
        request: str,
        cwd: str | Path | None = None,
        owner_id: str = "local",
        auto_approve: bool | None = None,
        **options: Any,
    ) -> OperationResult:
        """Start a session. On success ``data`` is the session id.

        Subscribe right after this returns to receive every event.
        """
        try:
            try:
                mode = ModeKind(mode)
            except ValueError as exc:
                raise ConfigError(f"Unknown mode: {mode}") from exc
            if not request or not request.strip():
                raise ConfigError("Request must not be empty")
            executable = await self.resolve_executable()
            runner = self._build_runner(mode, executable, dict(options))
        except OrchestrationError as exc:
            logger.warning("Cannot start %s session: %s", mode, exc)
            return OperationResult.fail(exc)

        session = self._registry.create(
            owner_id=owner_id,
            request=request,
            mode=mode,
            cwd=cwd,
            auto_approve=(
                self._config.auto_approve if auto_approve is None else auto_approve
            ),
        )
        runner.prepare(session)
        self._registry.transition(session, SessionStatus.STARTING)

        session_id = session.session_id
        task = asyncio.create_task(
            self._drive(session, runner), name=f"mode-{session_id[:12]}",
        )
        self._drivers[session_id] = task
        task.add_done_callback(lambda _t: self._drivers.pop(session_id, None))
        return OperationResult.ok(
            session_id, message=f"{mode.value} session started",
        )

    async def _drive(self, session: Session, runner: ModeRunner) -> None:
        session_id = session.session_id
        error: str | None
        try:
            error = await runner.run(session)
        except OrchestrationError as exc:
            error = str(exc)
        except Exception as exc:
            logger.exception("Mode runner crashed for %s", session_id[:12])
            error = f"{type(exc).__name__}: {exc}"
        finally:
            self._detector.cancel(session_id)

        if error is None:
            await self._registry.finish(session_id, SessionStatus.COMPLETED)
        else:
            logger.warning("Session %s failed: %s", session_id[:12], error)
            await self._registry.finish(
                session_id, SessionStatus.FAILED, error=error,
            )

    async def stop(self, session_id: str) -> OperationResult:
        """Kill every process of a session and remove it, whatever its progress."""
        try:
            self._registry.get(session_id)
        except SessionNotFoundError as exc:
            return OperationResult.fail(exc)

        task = self._drivers.pop(session_id, None)
        if task is not None and task is not asyncio.current_task():
            task.cancel()
        self._detector.cancel(session_id)
        session = await self._registry.terminate(session_id)
        if task is not None and task is not asyncio.current_task():
            await asyncio.gather(task, return_exceptions=True)
        logger.info("Session stopped: %s", session_id)
        return OperationResult.ok(session.snapshot(), message="Session stopped")

    async def respond(self, session_id: str, option_key: str) -> OperationResult:
        try:
            session = self._registry.get(session_id)
            option = await self._detector.respond(session, option_key)
        except OrchestrationError as exc:
            return OperationResult.fail(exc)
        return OperationResult.ok(
            {"key": option.key, "label": option.label},
            message=f"Sent response: {option.label}",
        )

    async def send_input(
        self, session_id: str, text: str, slot: str | None = None,
    ) -> OperationResult:
        try:
            session = self._registry.get(session_id)
            delivered = await self._detector.send_input(session, text, slot)
            if not delivered:
                raise SessionStateError(session_id, "process is not accepting input")
        except OrchestrationError as exc:
            return OperationResult.fail(exc)
        return OperationResult.ok(True, message="Input sent")

    def subscribe(
        self, session_id: str, callback: EventCallback,
    ) -> Callable[[], None]:
        """Receive a session's events in order. Returns an unsubscribe function.

        Raises:
            SessionNotFoundError: The session is not active.
        """
        session = self._registry.get(session_id)
        if session.channel is None:
            raise SessionStateError(session_id, "session has no event channel")
        return session.channel.subscribe(callback)

    async def wait(
        self, session_id: str, timeout: float | None = None,
    ) -> Session:
        """Wait until a session has finished and return its record.

        Raises:
            SessionNotFoundError: Unknown session id.
            asyncio.TimeoutError: Still running after ``timeout`` seconds.
        """
        task = self._drivers.get(session_id)
        if task is not None:
            done, _ = await asyncio.wait({task}, timeout=timeout)
            if not done:
                raise asyncio.TimeoutError(
                    f"Session {session_id} still running after {timeout}s"
                )
        record = self._registry.find(session_id)
        if record is None:
            raise SessionNotFoundError(session_id)
        return record

    def status(self, session_id: str) -> OperationResult:
        try:
            return OperationResult.ok(self._registry.status(session_id))
        except OrchestrationError as exc:
            return OperationResult.fail(exc)

    def active_sessions(self, owner_id: str | None = None) -> list[dict[str, Any]]:
        sessions = self._registry.list_active()
        if owner_id is not None:
            sessions = [s for s in sessions if s.owner_id == owner_id]
        return [s.snapshot() for s in sessions]

    async def shutdown(self) -> None:
        """Stop every running session and kill leftover processes."""
        for session in self._registry.list_active():
            await self.stop(session.session_id)
        await self._supervisor.shutdown()
