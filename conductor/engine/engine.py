"""Top-level conductor engine.

Owns and wires the supervisor, session registry, prompt detector,
mode orchestrator and hybrid hook system. Nothing here is global:
two engines in one process share no state.

Usage:
    from conductor.engine import ConductorEngine

    async with ConductorEngine() as engine:
        result = await engine.orchestrator.start("hivemind", "Build a todo API")
        record = await engine.orchestrator.wait(result.data)
"""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any

from .config import EngineConfig, EventCallback
from .hooks.agent_catalog import AgentCatalog
from .hooks.delegation import AICall, DelegationQueue
from .hooks.manager import HybridHookManager
from .hooks.metrics import MetricsCollector
from .hooks.triggers import HookTriggerEngine
from .models import AgentRole
from .orchestrator import ModeOrchestrator
from .process_supervisor import ProcessSupervisor
from .prompt_detector import ApprovalDecision, ApprovalPolicy, PromptDetector
from .providers.base import make_ai_call
from .providers.claude_provider import ClaudeProvider
from .session_registry import SessionRegistry

logger = logging.getLogger(__name__)


class ConductorEngine:
    """Main entry point: one set of components per engine instance."""

    def __init__(
        self,
        config: EngineConfig | None = None,
        *,
        executable: str | None = None,
        approval_policy: ApprovalDecision | None = None,
        ai_call: AICall | None = None,
        presets: Mapping[str, Iterable[AgentRole]] | None = None,
        project_root: str | Path | None = None,
        hook_event_callback: EventCallback | None = None,
    ) -> None:
        self._config = config or EngineConfig.from_env()
        self.supervisor = ProcessSupervisor(
            kill_grace_seconds=self._config.kill_grace_seconds,
        )
        self.registry = SessionRegistry(
            self.supervisor,
            projects_dir=self._config.projects_path,
            history_limit=self._config.history_limit,
            channel_queue_size=self._config.channel_queue_size,
        )
        self.detector = PromptDetector(
            self.registry,
            self.supervisor,
            policy=approval_policy or ApprovalPolicy(
                self._config.approve_probability,
            ),
            auto_response_delay=self._config.auto_response_delay_seconds,
        )
        self.orchestrator = ModeOrchestrator(
            self.registry,
            self.supervisor,
            self.detector,
            config=self._config,
            executable=executable,
            presets=presets,
        )

        root = Path(project_root).expanduser() if project_root else Path.cwd()
        hooks_path = self._config.hooks_path
        if not hooks_path.is_absolute():
            hooks_path = root / hooks_path
        self.agent_catalog = AgentCatalog(root)
        self.triggers = HookTriggerEngine(
            hooks_path,
            self.supervisor,
            project_root=root,
            shell=self._config.hook_shell,
            timeout_seconds=self._config.hook_timeout_seconds,
        )
        if ai_call is None:
            ai_call = make_ai_call(
                ClaudeProvider(default_model=self._config.delegation_model),
            )
        self.delegation_queue = DelegationQueue(
            ai_call,
            self.agent_catalog,
            inter_item_delay=self._config.delegation_delay_seconds,
            call_timeout=self._config.delegation_timeout_seconds,
        )
        self.hooks = HybridHookManager(
            self.triggers,
            self.delegation_queue,
            MetricsCollector(),
            thresholds=self._config.delegation_thresholds,
            event_callback=hook_event_callback,
        )
        self._shutdown_lock = asyncio.Lock()
        self._closed = False

    @property
    def config(self) -> EngineConfig:
        return self._config

    def initialize_hooks(self) -> int:
        """Create the hooks layout, load triggers and delegate agents."""
        self.agent_catalog.load()
        result = self.hooks.initialize()
        return result.data

    def stats(self) -> dict[str, Any]:
        return {
            "sessions": self.registry.stats(),
            "hooks": self.hooks.metrics(),
            "live_processes": len(self.supervisor.live_handles),
            "pending_delegations": self.delegation_queue.pending,
        }

    async def shutdown(self) -> None:
        """Stop every session, kill leftover processes, close the queue."""
        async with self._shutdown_lock:
            if self._closed:
                return
            self._closed = True
            logger.info("Shutting down conductor engine")
            await self.orchestrator.shutdown()
            await self.hooks.close()
            await self.supervisor.shutdown()

    async def __aenter__(self) -> ConductorEngine:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.shutdown()
