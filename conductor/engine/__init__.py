"""Conductor: process orchestration and hook delegation for coding-assistant CLIs."""
from .models import (
    AgentRole,
    LineKind,
    ModeKind,
    OperationResult,
    Prompt,
    PromptOption,
    PromptType,
    Session,
    SessionStatus,
)
from .config import EngineConfig
from .errors import (
    ConfigError,
    DelegationFailure,
    HookExecutionError,
    HookNotFoundError,
    InvalidResponseKeyError,
    OrchestrationError,
    PromptNotFoundError,
    SessionNotFoundError,
    SessionStateError,
    SpawnError,
)

__all__ = [
    # Core engine (lazy import to avoid circular deps)
    "ConductorEngine",
    "ModeOrchestrator",
    "HybridHookManager",
    # Models
    "AgentRole",
    "LineKind",
    "ModeKind",
    "OperationResult",
    "Prompt",
    "PromptOption",
    "PromptType",
    "Session",
    "SessionStatus",
    # Config
    "EngineConfig",
    # YAML config (lazy import)
    "ConductorConfig",
    "load_yaml_config",
    # Providers (lazy import)
    "Provider",
    "ClaudeProvider",
    # Errors
    "ConfigError",
    "DelegationFailure",
    "HookExecutionError",
    "HookNotFoundError",
    "InvalidResponseKeyError",
    "OrchestrationError",
    "PromptNotFoundError",
    "SessionNotFoundError",
    "SessionStateError",
    "SpawnError",
]


def __getattr__(name: str):
    if name == "ConductorEngine":
        from .engine import ConductorEngine
        return ConductorEngine
    if name == "ModeOrchestrator":
        from .orchestrator import ModeOrchestrator
        return ModeOrchestrator
    if name == "HybridHookManager":
        from .hooks.manager import HybridHookManager
        return HybridHookManager
    if name == "ConductorConfig":
        from .yaml_config import ConductorConfig
        return ConductorConfig
    if name == "load_yaml_config":
        from .yaml_config import load_yaml_config
        return load_yaml_config
    if name == "Provider":
        from .providers.base import Provider
        return Provider
    if name == "ClaudeProvider":
        from .providers.claude_provider import ClaudeProvider
        return ClaudeProvider
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
