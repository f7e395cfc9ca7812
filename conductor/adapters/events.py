"""Event types emitted by the conductor engine.

Each event corresponds to a channel or hook callback dict, parsed
into a typed dataclass for safe consumption by frontends.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class ConductorEvent:
    """Base event from the conductor engine."""
    event_type: str = ""
    session_id: str | None = None
    timestamp: str | None = None


@dataclass
class Output(ConductorEvent):
    event_type: str = "output"
    stream: str = "stdout"
    data: str = ""
    slot: str = "main"
    line_kind: str | None = None


@dataclass
class PromptDetected(ConductorEvent):
    event_type: str = "prompt"
    prompt_type: str = ""
    options: list[dict[str, str]] = field(default_factory=list)
    message: str = ""
    slot: str = "main"
    detected_at: str = ""
    auto_approving: bool = False
    auto_response: str | None = None


@dataclass
class PromptResponse(ConductorEvent):
    event_type: str = "prompt_response"
    key: str = ""
    label: str = ""
    auto: bool = False
    slot: str = "main"
    delivered: bool = False


@dataclass
class StatusChanged(ConductorEvent):
    event_type: str = "status_changed"
    old_status: str = ""
    new_status: str = ""
    error: str | None = None


@dataclass
class AgentStarted(ConductorEvent):
    event_type: str = "agent_started"
    agent_type: str = ""
    name: str = ""
    focus: str = ""
    slot: str = ""


@dataclass
class AgentCompleted(ConductorEvent):
    event_type: str = "agent_completed"
    agent_type: str = ""
    name: str = ""
    slot: str = ""
    status: str = ""
    exit_code: int | None = None
    line_count: int = 0
    completed_agents: int = 0
    total_agents: int = 0


@dataclass
class IterationStarted(ConductorEvent):
    event_type: str = "iteration_started"
    iteration: int = 0
    max_iterations: int = 0


@dataclass
class QualityScore(ConductorEvent):
    event_type: str = "quality_score"
    iteration: int = 0
    score: float = 0.0
    threshold: float = 0.0
    reached: bool = False


@dataclass
class PhaseStarted(ConductorEvent):
    event_type: str = "phase_started"
    phase: str = ""
    index: int = 0
    total: int = 0


@dataclass
class ProcessError(ConductorEvent):
    event_type: str = "process_error"
    slot: str = "main"
    error: str | None = None


@dataclass
class SessionClosed(ConductorEvent):
    event_type: str = "session_closed"
    status: str = ""
    error: str | None = None
    duration_seconds: float = 0.0


@dataclass
class HookExecuted(ConductorEvent):
    event_type: str = "hook_executed"
    hook: str = ""
    execution_type: str = ""
    delegated: bool = False
    agent: str | None = None
    script_seconds: float = 0.0
    ai_seconds: float | None = None
    total_seconds: float = 0.0


@dataclass
class HookError(ConductorEvent):
    event_type: str = "hook_error"
    hook: str = ""
    error: str = ""
    total_seconds: float = 0.0


@dataclass
class TriggerRegistered(ConductorEvent):
    event_type: str = "trigger_registered"
    name: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class ThresholdsUpdated(ConductorEvent):
    event_type: str = "thresholds_updated"
    thresholds: dict[str, Any] = field(default_factory=dict)


# Map of event type strings to dataclass constructors
_EVENT_MAP: dict[str, type[ConductorEvent]] = {
    "output": Output,
    "prompt": PromptDetected,
    "prompt_response": PromptResponse,
    "status_changed": StatusChanged,
    "agent_started": AgentStarted,
    "agent_completed": AgentCompleted,
    "iteration_started": IterationStarted,
    "quality_score": QualityScore,
    "phase_started": PhaseStarted,
    "process_error": ProcessError,
    "session_closed": SessionClosed,
    "hook_executed": HookExecuted,
    "hook_error": HookError,
    "trigger_registered": TriggerRegistered,
    "thresholds_updated": ThresholdsUpdated,
}


def event_to_dict(event: ConductorEvent) -> dict[str, Any]:
    """Convert a typed event dataclass to a plain dict for JSON serialization."""
    d: dict[str, Any] = {}
    for f in event.__dataclass_fields__:
        val = getattr(event, f)
        if val is not None:
            d[f] = val
    # Use "event" key instead of "event_type" for consistency with engine callbacks
    if "event_type" in d:
        d["event"] = d.pop("event_type")
    return d


def parse_event(data: dict[str, Any]) -> ConductorEvent:
    """Convert an engine callback dict to a typed event dataclass."""
    event_type = data.get("event", "")
    cls = _EVENT_MAP.get(event_type, ConductorEvent)
    # Filter dict keys to only those the dataclass accepts
    valid_fields = {f.name for f in cls.__dataclass_fields__.values()}
    filtered = {k: v for k, v in data.items() if k in valid_fields}
    if "event" in data and "event_type" not in filtered:
        filtered["event_type"] = data["event"]
    return cls(**filtered)
