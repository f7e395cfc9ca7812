"""Hivemind: fixed phases, each fed the previous phase's output."""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from typing import Any

from ..errors import ConfigError
from ..models import ModeKind, Session
from .base import ModeRunner

logger = logging.getLogger(__name__)


def build_phase_prompt(request: str, phase: str, context: str) -> str:
    if not context:
        return f"As {phase}, {request}"
    return f"Previous phase output:\n{context}\n\nNow as {phase}, {request}"


class HivemindRunner(ModeRunner):
    mode = ModeKind.HIVEMIND

    def __init__(
        self,
        *args: Any,
        phases: Sequence[str] | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(*args, **kwargs)
        self.phases = list(phases) if phases else list(self.config.hivemind_phases)
        if not self.phases:
            raise ConfigError("Hivemind needs at least one phase")

    def prepare(self, session: Session) -> None:
        session.phases = list(self.phases)
        session.current_phase = 0
        session.context = ""

    async def run(self, session: Session) -> str | None:
        total = len(session.phases)
        for index, phase in enumerate(session.phases):
            session.current_phase = index
            self.publish(session, {
                "event": "phase_started",
                "phase": phase,
                "index": index,
                "total": total,
            })
            logger.info(
                "Hivemind %s phase %d/%d: %s",
                session.session_id[:12], index + 1, total, phase,
            )
            prompt = build_phase_prompt(session.request, phase, session.context)
            outcome = await self.run_process(session, ["--print", prompt])
            if not outcome.ok:
                return f"Phase {phase} exited with code {outcome.exit_code}"
            session.context = outcome.output
            if index < total - 1:
                await asyncio.sleep(self.config.phase_delay_seconds)
        session.current_phase = total
        return None
