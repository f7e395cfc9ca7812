"""Hybrid hooks: fast script triggers that escalate to AI when they ask to.

Flow for one hook:

    trigger script ──exit != 0──> failed result (no delegation)
          │
          ├── no marker ──> "bash-only" result
          └── DELEGATE_TO_AI marker ──> delegation queue ──> "hybrid" result
"""
from __future__ import annotations

import logging
import time
from typing import Any

from ..config import EventCallback, fire_event
from ..errors import DelegationFailure, OrchestrationError
from ..models import OperationResult
from .delegation import DelegationQueue
from .metrics import MetricsCollector
from .triggers import HookTriggerEngine

logger = logging.getLogger(__name__)

DEFAULT_THRESHOLDS: dict[str, Any] = {
    "filesChanged": 5,
    "linesChanged": 100,
    "complexityScore": 0.7,
    "errorCount": 3,
}


class HybridHookManager:
    """Runs hooks end to end and keeps their timing metrics."""

    def __init__(
        self,
        triggers: HookTriggerEngine,
        queue: DelegationQueue,
        metrics: MetricsCollector | None = None,
        thresholds: dict[str, Any] | None = None,
        event_callback: EventCallback | None = None,
    ) -> None:
        self.triggers = triggers
        self.queue = queue
        self.metrics_collector = metrics or MetricsCollector()
        self.thresholds: dict[str, Any] = {
            **DEFAULT_THRESHOLDS, **(thresholds or {}),
        }
        self._event_callback = event_callback

    def initialize(self) -> OperationResult:
        count = self.triggers.initialize()
        logger.info("Hybrid hooks ready: %d triggers", count)
        return OperationResult.ok(count, message=f"Loaded {count} triggers")

    async def execute_hook(
        self, name: str, context: Any = None,
    ) -> OperationResult:
        started = time.monotonic()
        context = context if context is not None else {}
        try:
            result = await self.triggers.execute(
                name, context, thresholds=self.thresholds,
            )
            result.raise_for_status()
        except OrchestrationError as exc:
            return await self._hook_failed(name, exc, started)

        script_seconds = result.duration_seconds
        self.metrics_collector.record_script(script_seconds)
        directive = result.delegate

        if directive is None:
            total = time.monotonic() - started
            data = {
                "type": "bash-only",
                "hook": name,
                "result": result,
                "performance": {
                    "script_seconds": script_seconds,
                    "total_seconds": total,
                },
            }
            await fire_event(self._event_callback, {
                "event": "hook_executed",
                "hook": name,
                "execution_type": "bash-only",
                "delegated": False,
                "script_seconds": script_seconds,
                "total_seconds": total,
            })
            return OperationResult.ok(data, message=f"Hook {name} completed")

        delegates = self.triggers.get(name).metadata.delegates
        agent = directive.agent or (delegates[0] if delegates else None)
        task = directive.task or name
        delegated_context = (
            directive.context if directive.context is not None else context
        )
        ai_started = time.monotonic()
        try:
            if agent is None:
                raise DelegationFailure(
                    "<none>", task,
                    "no agent in the marker and no delegates in the trigger metadata",
                )
            ai_result = await self.queue.delegate(agent, delegated_context, task)
        except DelegationFailure as exc:
            return await self._hook_failed(name, exc, started)

        ai_seconds = time.monotonic() - ai_started
        self.metrics_collector.record_delegation(ai_seconds)
        total = time.monotonic() - started
        logger.info(
            "Hook %s delegated %s to %s (script %.3fs, ai %.3fs)",
            name, task, agent, script_seconds, ai_seconds,
        )
        await fire_event(self._event_callback, {
            "event": "hook_executed",
            "hook": name,
            "execution_type": "hybrid",
            "delegated": True,
            "agent": agent,
            "script_seconds": script_seconds,
            "ai_seconds": ai_seconds,
            "total_seconds": total,
        })
        return OperationResult.ok({
            "type": "hybrid",
            "hook": name,
            "agent": agent,
            "task": task,
            "script_result": result,
            "ai_result": ai_result,
            "performance": {
                "script_seconds": script_seconds,
                "ai_seconds": ai_seconds,
                "total_seconds": total,
            },
        }, message=f"Hook {name} delegated to {agent}")

    async def _hook_failed(
        self, name: str, exc: OrchestrationError, started: float,
    ) -> OperationResult:
        logger.error("Failed to execute hook %s: %s", name, exc)
        self.metrics_collector.record_failure()
        await fire_event(self._event_callback, {
            "event": "hook_error",
            "hook": name,
            "error": str(exc),
            "total_seconds": time.monotonic() - started,
        })
        return OperationResult.fail(exc)

    async def update_thresholds(self, thresholds: dict[str, Any]) -> dict[str, Any]:
        self.thresholds = {**self.thresholds, **thresholds}
        await fire_event(self._event_callback, {
            "event": "thresholds_updated",
            "thresholds": dict(self.thresholds),
        })
        return dict(self.thresholds)

    async def register_trigger(
        self,
        name: str,
        script_body: str,
        metadata: dict[str, Any] | None = None,
    ) -> OperationResult:
        try:
            trigger = self.triggers.register_trigger(name, script_body, metadata)
        except OrchestrationError as exc:
            return OperationResult.fail(exc)
        await fire_event(self._event_callback, {
            "event": "trigger_registered",
            "name": name,
            "metadata": trigger.metadata.to_dict(),
        })
        return OperationResult.ok(
            trigger.metadata.to_dict(), message=f"Registered trigger {name}",
        )

    def list_triggers(self) -> list[dict[str, Any]]:
        return self.triggers.list_triggers()

    def metrics(self) -> dict[str, Any]:
        return self.metrics_collector.snapshot()

    async def close(self) -> None:
        await self.queue.close()
