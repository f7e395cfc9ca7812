"""Core data models for the orchestration core.

All dataclasses, enums, and type aliases. Single source of truth
to avoid circular imports.
"""
from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .channel import SessionChannel
    from .errors import OrchestrationError
    from .process_supervisor import ProcessHandle


MAIN_SLOT = "main"


class SessionStatus(str, Enum):
    """Session lifecycle states. See lifecycle.py for transition rules."""
    INITIALIZING = "initializing"
    STARTING = "starting"
    ACTIVE = "active"
    WAITING_FOR_INPUT = "waiting_for_input"
    COMPLETED = "completed"
    FAILED = "failed"
    TERMINATED = "terminated"


TERMINAL_STATUSES = frozenset({
    SessionStatus.COMPLETED,
    SessionStatus.FAILED,
    SessionStatus.TERMINATED,
})


class ModeKind(str, Enum):
    """Collaboration modes a session can run."""
    SUPERVISION = "supervision"
    PARALLEL = "parallel"
    INFINITE_LOOP = "infinite_loop"
    HIVEMIND = "hivemind"


class PromptType(str, Enum):
    """Interactive prompt shapes, in detection priority order."""
    PROCEED_CONFIRMATION = "proceed_confirmation"
    NUMBERED_CHOICE = "numbered_choice"
    CONTINUE_PROMPT = "continue_prompt"
    YES_NO = "yes_no"
    SELECTION_PROMPT = "selection_prompt"


class LineKind(str, Enum):
    """Display classification for supervised output lines."""
    TOOL_CALL = "tool_call"
    ERROR = "error"
    SUCCESS = "success"
    PLAIN = "plain"


def _make_id() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class PromptOption:
    """One answer to an interactive prompt.

    ``response`` is the literal text written to the process stdin.
    """
    key: str
    label: str
    response: str


@dataclass
class Prompt:
    """An interactive prompt detected in process output."""
    prompt_type: PromptType
    options: list[PromptOption]
    raw_text: str
    slot: str = MAIN_SLOT
    detected_at: datetime = field(default_factory=_utcnow)
    auto_response: PromptOption | None = None

    def option(self, key: str) -> PromptOption | None:
        for opt in self.options:
            if opt.key == key:
                return opt
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "prompt_type": self.prompt_type.value,
            "options": [
                {"key": o.key, "label": o.label} for o in self.options
            ],
            "message": self.raw_text.strip(),
            "slot": self.slot,
            "detected_at": self.detected_at.isoformat(),
            "auto_approving": self.auto_response is not None,
            "auto_response": (
                self.auto_response.key if self.auto_response else None
            ),
        }


@dataclass(frozen=True)
class AgentRole:
    """A specialised role a ParallelAgents sub-agent plays."""
    role_type: str
    name: str
    focus: str


@dataclass
class SubAgent:
    """One process-backed agent inside a ParallelAgents session."""
    role: AgentRole
    slot: str
    status: SessionStatus = SessionStatus.INITIALIZING
    exit_code: int | None = None
    line_count: int = 0


@dataclass
class OutputRecord:
    """A chunk appended to a session's output buffer."""
    stream: str
    text: str
    slot: str = MAIN_SLOT
    timestamp: datetime = field(default_factory=_utcnow)


@dataclass
class Session:
    """One logical run of a collaboration mode.

    Owned by SessionRegistry. Process handles live in ``slots``;
    each slot holds at most one live handle at a time.
    """
    session_id: str
    owner_id: str
    mode: ModeKind
    request: str
    working_dir: Path
    status: SessionStatus = SessionStatus.INITIALIZING
    auto_approve: bool = True
    slots: dict[str, ProcessHandle] = field(default_factory=dict)
    output: list[OutputRecord] = field(default_factory=list)
    current_prompt: Prompt | None = None
    created_at: datetime = field(default_factory=_utcnow)
    last_activity: datetime = field(default_factory=_utcnow)
    ended_at: datetime | None = None
    error: str | None = None
    channel: SessionChannel | None = field(default=None, repr=False)
    # ParallelAgents
    agents: list[SubAgent] = field(default_factory=list)
    completed_agents: int = 0
    # InfiniteLoop
    iteration: int = 0
    max_iterations: int = 0
    quality_threshold: float = 0.0
    last_output: str = ""
    scores: list[float] = field(default_factory=list)
    # Hivemind
    phases: list[str] = field(default_factory=list)
    current_phase: int = 0
    context: str = ""

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def duration_seconds(self) -> float:
        end = self.ended_at or _utcnow()
        return (end - self.created_at).total_seconds()

    def live_handles(self) -> list[ProcessHandle]:
        return [h for h in self.slots.values() if h.is_alive]

    def append_output(
        self, stream: str, text: str, slot: str = MAIN_SLOT,
    ) -> None:
        self.output.append(OutputRecord(stream=stream, text=text, slot=slot))
        self.last_activity = _utcnow()

    def output_text(self, stream: str | None = "stdout") -> str:
        return "".join(
            r.text for r in self.output
            if stream is None or r.stream == stream
        )

    def snapshot(self) -> dict[str, Any]:
        """Plain-dict view for status queries."""
        data: dict[str, Any] = {
            "session_id": self.session_id,
            "owner_id": self.owner_id,
            "mode": self.mode.value,
            "status": self.status.value,
            "working_dir": str(self.working_dir),
            "created_at": self.created_at.isoformat(),
            "last_activity": self.last_activity.isoformat(),
            "ended_at": self.ended_at.isoformat() if self.ended_at else None,
            "duration_seconds": round(self.duration_seconds, 3),
            "buffer_length": sum(len(r.text) for r in self.output),
            "waiting_for_input": self.current_prompt is not None,
            "current_prompt": (
                self.current_prompt.to_dict() if self.current_prompt else None
            ),
            "live_processes": len(self.live_handles()),
            "error": self.error,
        }
        if self.mode == ModeKind.PARALLEL:
            data["agents"] = [
                {
                    "type": a.role.role_type,
                    "name": a.role.name,
                    "status": a.status.value,
                    "exit_code": a.exit_code,
                }
                for a in self.agents
            ]
            data["completed_agents"] = self.completed_agents
        elif self.mode == ModeKind.INFINITE_LOOP:
            data["iteration"] = self.iteration
            data["max_iterations"] = self.max_iterations
            data["quality_threshold"] = self.quality_threshold
            data["scores"] = list(self.scores)
        elif self.mode == ModeKind.HIVEMIND:
            data["phases"] = list(self.phases)
            data["current_phase"] = self.current_phase
        return data


@dataclass
class TriggerMetadata:
    """Companion metadata stored next to a trigger script."""
    name: str
    description: str = ""
    delegates: list[str] = field(default_factory=list)
    thresholds: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "delegates": list(self.delegates),
            "thresholds": dict(self.thresholds),
        }


@dataclass
class Trigger:
    """A registered hook script bound to a named event."""
    name: str
    script_path: Path
    metadata: TriggerMetadata


@dataclass(frozen=True)
class DelegateDirective:
    """Parsed ``DELEGATE_TO_AI:<json>`` marker from a trigger's stdout."""
    agent: str | None
    task: str | None
    context: Any = None


@dataclass
class TriggerResult:
    """Outcome of running one trigger script."""
    name: str
    exit_code: int
    stdout: str
    stderr: str
    delegate: DelegateDirective | None = None
    duration_seconds: float = 0.0

    @property
    def ok(self) -> bool:
        return self.exit_code == 0

    def raise_for_status(self) -> None:
        """Raise HookExecutionError when the script exited non-zero."""
        if not self.ok:
            from .errors import HookExecutionError
            raise HookExecutionError(self.name, self.exit_code, self.stderr)


@dataclass
class DelegationRequest:
    """A queued hand-off from a trigger to the AI call."""
    agent: str
    task: str
    context: Any
    future: asyncio.Future[Any]
    request_id: str = field(default_factory=lambda: _make_id()[:12])
    enqueued_at: datetime = field(default_factory=_utcnow)


@dataclass
class OperationResult:
    """Discriminated success/failure returned by public operations."""
    success: bool
    message: str = ""
    data: Any = None
    error: OrchestrationError | None = None

    @classmethod
    def ok(cls, data: Any = None, message: str = "") -> OperationResult:
        return cls(success=True, message=message, data=data)

    @classmethod
    def fail(cls, error: OrchestrationError) -> OperationResult:
        return cls(success=False, message=str(error), error=error)
