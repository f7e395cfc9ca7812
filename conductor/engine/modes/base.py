"""Shared contract for the collaboration modes.

A ModeRunner is built with its options (so bad options fail before a
session exists), prepares the session's mode-specific state, then
drives one or more processes through run_process(). The orchestrator
owns the teardown around run().
"""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from ..errors import SessionStateError
from ..models import MAIN_SLOT, ModeKind, Session, SessionStatus

if TYPE_CHECKING:
    from ..config import EngineConfig
    from ..process_supervisor import ProcessSupervisor
    from ..prompt_detector import PromptDetector
    from ..session_registry import SessionRegistry

logger = logging.getLogger(__name__)


@dataclass
class ProcessOutcome:
    """How one supervised process ended."""
    exit_code: int
    output: str

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


class ModeRunner(ABC):
    """Base class for Supervision, ParallelAgents, InfiniteLoop and Hivemind."""

    mode: ModeKind

    def __init__(
        self,
        supervisor: ProcessSupervisor,
        registry: SessionRegistry,
        detector: PromptDetector,
        executable: str,
        config: EngineConfig,
    ) -> None:
        self.supervisor = supervisor
        self.registry = registry
        self.detector = detector
        self.executable = executable
        self.config = config

    def prepare(self, session: Session) -> None:
        """Initialise mode-specific session state before run()."""

    @abstractmethod
    async def run(self, session: Session) -> str | None:
        """Drive the mode to its end.

        Returns None when the session completed, or an error message
        when it failed.
        """

    def publish(self, session: Session, event: dict[str, Any]) -> None:
        self.registry.publish(session, event)

    def output_events(
        self, session: Session, stream: str, chunk: str, slot: str,
    ) -> list[dict[str, Any]]:
        """Turn one stream chunk into channel events."""
        return [{
            "event": "output",
            "stream": stream,
            "data": chunk,
            "slot": slot,
        }]

    def flush_events(self, session: Session, slot: str) -> list[dict[str, Any]]:
        """Events still held back when the process in ``slot`` closes."""
        return []

    async def run_process(
        self,
        session: Session,
        args: Sequence[str],
        slot: str = MAIN_SLOT,
    ) -> ProcessOutcome:
        """Spawn the assistant in a slot and stream it until it closes.

        stdout goes to the session buffer, then the prompt detector,
        then the channel. The handle is detached (and killed if still
        running) on the way out, including on cancellation.
        """
        if session.is_terminal:
            raise SessionStateError(
                session.session_id,
                f"cannot start a process in a {session.status.value} session",
            )
        self.registry.ensure_working_dir(session)
        handle = await self.supervisor.spawn(
            self.executable, args, cwd=session.working_dir,
        )
        try:
            self.registry.attach_process(session, handle, slot)
        except SessionStateError:
            await self.supervisor.kill(handle)
            raise
        if session.status == SessionStatus.STARTING:
            self.registry.transition(session, SessionStatus.ACTIVE)

        collected: list[str] = []
        exit_code = -1
        try:
            async for event in handle.events():
                if event.kind == "data":
                    session.append_output(event.stream, event.chunk, slot)
                    if event.stream == "stdout":
                        collected.append(event.chunk)
                        self.detector.process_chunk(session, event.chunk, slot)
                    for out in self.output_events(
                        session, event.stream, event.chunk, slot,
                    ):
                        self.publish(session, out)
                elif event.kind == "error":
                    self.publish(session, {
                        "event": "process_error",
                        "slot": slot,
                        "error": event.error,
                    })
                else:
                    for out in self.flush_events(session, slot):
                        self.publish(session, out)
                    exit_code = (
                        event.exit_code if event.exit_code is not None else -1
                    )
        finally:
            self.detector.drop(session, slot)
            self.registry.detach_process(session, slot, handle)
            if handle.is_alive:
                await self.supervisor.kill(handle)

        logger.debug(
            "Process in %s/%s closed with code %s",
            session.session_id[:12], slot, exit_code,
        )
        return ProcessOutcome(exit_code=exit_code, output="".join(collected))
