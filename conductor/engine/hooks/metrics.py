"""Timing metrics for hook scripts and AI delegations."""
from __future__ import annotations

from collections import deque
from typing import Any


def _avg(values: deque[float] | list[float]) -> float:
    return sum(values) / len(values) if values else 0.0


class MetricsCollector:
    """Counts and durations, totals plus a rolling window of recent runs."""

    def __init__(self, window: int = 100) -> None:
        self.script_executions = 0
        self.ai_delegations = 0
        self.failures = 0
        self.script_seconds = 0.0
        self.ai_seconds = 0.0
        self._recent_script: deque[float] = deque(maxlen=window)
        self._recent_ai: deque[float] = deque(maxlen=window)

    def record_script(self, seconds: float) -> None:
        self.script_executions += 1
        self.script_seconds += seconds
        self._recent_script.append(seconds)

    def record_delegation(self, seconds: float) -> None:
        self.ai_delegations += 1
        self.ai_seconds += seconds
        self._recent_ai.append(seconds)

    def record_failure(self) -> None:
        self.failures += 1

    @property
    def average_script_seconds(self) -> float:
        if not self.script_executions:
            return 0.0
        return self.script_seconds / self.script_executions

    @property
    def average_ai_seconds(self) -> float:
        if not self.ai_delegations:
            return 0.0
        return self.ai_seconds / self.ai_delegations

    @property
    def delegation_rate(self) -> float:
        """AI delegations per script execution, in percent."""
        if not self.script_executions:
            return 0.0
        return self.ai_delegations / self.script_executions * 100

    def snapshot(self) -> dict[str, Any]:
        avg_script_ms = self.average_script_seconds * 1000
        avg_ai_ms = self.average_ai_seconds * 1000
        return {
            "script_executions": self.script_executions,
            "ai_delegations": self.ai_delegations,
            "failures": self.failures,
            "script_seconds": round(self.script_seconds, 4),
            "ai_seconds": round(self.ai_seconds, 4),
            "avg_script_ms": round(avg_script_ms, 2),
            "avg_ai_ms": round(avg_ai_ms, 2),
            "recent_avg_script_ms": round(_avg(self._recent_script) * 1000, 2),
            "recent_avg_ai_ms": round(_avg(self._recent_ai) * 1000, 2),
            "delegation_rate": f"{self.delegation_rate:.1f}%",
            "expected_latency": {
                "script_only": f"~{round(avg_script_ms)}ms",
                "with_ai": f"~{round(avg_script_ms + avg_ai_ms)}ms",
            },
        }
