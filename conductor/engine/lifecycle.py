"""Session lifecycle state machine.

Defines valid transitions and enforces them. Invalid transitions
raise SessionStateError rather than silently proceeding.

State Diagram:

    INITIALIZING ──> STARTING ──> ACTIVE ──┬──> COMPLETED
                                           │
                                           ├──> WAITING_FOR_INPUT ──> ACTIVE
                                           │
                                           └──> FAILED

    Any non-terminal state ──> TERMINATED  (forced stop)

Loop and phase modes replace finished child processes while the
session stays ACTIVE; that is not a status transition.
"""
from __future__ import annotations

from .errors import SessionStateError
from .models import SessionStatus

VALID_TRANSITIONS: dict[SessionStatus, set[SessionStatus]] = {
    SessionStatus.INITIALIZING: {
        SessionStatus.STARTING,
        SessionStatus.FAILED,
        SessionStatus.TERMINATED,
    },
    SessionStatus.STARTING: {
        SessionStatus.ACTIVE,
        SessionStatus.FAILED,
        SessionStatus.TERMINATED,
    },
    SessionStatus.ACTIVE: {
        SessionStatus.WAITING_FOR_INPUT,
        SessionStatus.COMPLETED,
        SessionStatus.FAILED,
        SessionStatus.TERMINATED,
    },
    SessionStatus.WAITING_FOR_INPUT: {
        SessionStatus.ACTIVE,
        SessionStatus.COMPLETED,
        SessionStatus.FAILED,
        SessionStatus.TERMINATED,
    },
    SessionStatus.COMPLETED: set(),
    SessionStatus.FAILED: set(),
    SessionStatus.TERMINATED: set(),
}


def can_transition(current: SessionStatus, target: SessionStatus) -> bool:
    return target in VALID_TRANSITIONS.get(current, set())


def validate_transition(
    session_id: str, current: SessionStatus, target: SessionStatus,
) -> None:
    """Validate a status transition. Raises SessionStateError if invalid."""
    if not can_transition(current, target):
        allowed = VALID_TRANSITIONS.get(current, set())
        allowed_str = (
            ", ".join(sorted(s.value for s in allowed)) or "none (terminal)"
        )
        raise SessionStateError(
            session_id,
            f"invalid transition {current.value} -> {target.value}; "
            f"allowed from {current.value}: {allowed_str}",
        )
