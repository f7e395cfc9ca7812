"""Exception hierarchy for the orchestration core.

Specific exceptions for each failure mode. Components raise these;
the public facades turn them into failed OperationResults.
"""
from __future__ import annotations


class OrchestrationError(Exception):
    """Base exception for all orchestration errors."""


class SpawnError(OrchestrationError):
    """The OS failed to start a process (or no executable was found)."""
    def __init__(self, command: str, reason: str):
        self.command = command
        self.reason = reason
        super().__init__(f"Failed to spawn {command}: {reason}")


class SessionNotFoundError(OrchestrationError):
    """Requested session does not exist."""
    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Session not found: {session_id}")


class SessionStateError(OrchestrationError):
    """Operation is invalid for the session's current state."""
    def __init__(self, session_id: str, reason: str):
        self.session_id = session_id
        self.reason = reason
        super().__init__(f"Session {session_id}: {reason}")


class PromptNotFoundError(OrchestrationError):
    """respond() called while the session has no pending prompt."""
    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"No active prompt found for session {session_id}")


class InvalidResponseKeyError(OrchestrationError):
    """respond() called with a key the pending prompt does not offer."""
    def __init__(self, session_id: str, key: str, valid: list[str]):
        self.session_id = session_id
        self.key = key
        self.valid = valid
        super().__init__(
            f"Invalid response key: {key!r} "
            f"(expected one of {', '.join(valid) or 'none'})"
        )


class HookNotFoundError(OrchestrationError):
    """Requested trigger is not registered."""
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Trigger not found: {name}")


class HookExecutionError(OrchestrationError):
    """A trigger script exited non-zero."""
    def __init__(self, name: str, exit_code: int, stderr: str):
        self.name = name
        self.exit_code = exit_code
        self.stderr = stderr
        detail = stderr.strip()
        super().__init__(
            f"Trigger {name} failed with code {exit_code}"
            + (f": {detail}" if detail else "")
        )


class DelegationFailure(OrchestrationError):
    """The AI call for a delegated task was rejected."""
    def __init__(self, agent: str, task: str, reason: str):
        self.agent = agent
        self.task = task
        self.reason = reason
        super().__init__(
            f"Delegation of '{task}' to {agent} failed: {reason}"
        )


class ConfigError(OrchestrationError):
    """Configuration file is missing or malformed."""
