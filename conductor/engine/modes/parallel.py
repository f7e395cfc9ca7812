"""ParallelAgents: one assistant process per specialised role, concurrently."""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Mapping
from typing import Any

from ..errors import ConfigError, OrchestrationError
from ..models import AgentRole, ModeKind, Session, SessionStatus, SubAgent
from .base import ModeRunner
from .roles import (
    build_agent_prompt,
    coerce_role,
    preset_roles,
    select_agent_roles,
)

logger = logging.getLogger(__name__)


class ParallelAgentsRunner(ModeRunner):
    mode = ModeKind.PARALLEL

    def __init__(
        self,
        *args: Any,
        agents: Iterable[AgentRole | Mapping[str, Any]] | None = None,
        preset: str | None = None,
        presets: Mapping[str, Iterable[AgentRole]] | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(*args, **kwargs)
        if preset and agents:
            raise ConfigError("Pass either 'preset' or 'agents', not both")
        self._roles: list[AgentRole] | None = None
        if preset:
            self._roles = preset_roles(preset, presets)
        elif agents:
            self._roles = [coerce_role(a) for a in agents]

    def prepare(self, session: Session) -> None:
        roles = self._roles or select_agent_roles(session.request)
        session.agents = [
            SubAgent(role=role, slot=f"agent-{i}-{role.role_type}")
            for i, role in enumerate(roles, start=1)
        ]
        session.completed_agents = 0
        logger.info(
            "Parallel session %s: %s",
            session.session_id[:12], ", ".join(r.name for r in roles),
        )

    async def run(self, session: Session) -> str | None:
        results = await asyncio.gather(
            *(self._run_agent(session, agent) for agent in session.agents),
            return_exceptions=True,
        )
        failed = []
        for agent, result in zip(session.agents, results):
            if isinstance(result, BaseException):
                if not isinstance(result, OrchestrationError):
                    logger.error(
                        "Agent %s crashed", agent.role.name, exc_info=result,
                    )
                failed.append(f"{agent.role.name} ({result})")
            elif agent.status == SessionStatus.FAILED:
                failed.append(f"{agent.role.name} (exit {agent.exit_code})")
        if failed:
            return "Agents failed: " + ", ".join(failed)
        return None

    async def _run_agent(self, session: Session, agent: SubAgent) -> None:
        agent.status = SessionStatus.STARTING
        self.publish(session, {
            "event": "agent_started",
            "agent_type": agent.role.role_type,
            "name": agent.role.name,
            "focus": agent.role.focus,
            "slot": agent.slot,
        })
        try:
            outcome = await self.run_process(
                session,
                ["--print", build_agent_prompt(agent.role, session.request)],
                slot=agent.slot,
            )
        except OrchestrationError:
            agent.status = SessionStatus.FAILED
            self._agent_done(session, agent)
            raise
        agent.exit_code = outcome.exit_code
        agent.line_count = len(
            [line for line in outcome.output.splitlines() if line.strip()]
        )
        agent.status = (
            SessionStatus.COMPLETED if outcome.ok else SessionStatus.FAILED
        )
        self._agent_done(session, agent)

    def _agent_done(self, session: Session, agent: SubAgent) -> None:
        session.completed_agents += 1
        self.publish(session, {
            "event": "agent_completed",
            "agent_type": agent.role.role_type,
            "name": agent.role.name,
            "slot": agent.slot,
            "status": agent.status.value,
            "exit_code": agent.exit_code,
            "line_count": agent.line_count,
            "completed_agents": session.completed_agents,
            "total_agents": len(session.agents),
        })
