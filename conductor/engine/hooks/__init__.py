"""Hybrid hook system: script triggers, AI delegation, metrics."""
from .agent_catalog import AgentCatalog, AgentProfile
from .delegation import AICall, DelegationQueue
from .manager import HybridHookManager
from .metrics import MetricsCollector
from .triggers import HookTriggerEngine, parse_delegate_marker

__all__ = [
    "AICall",
    "AgentCatalog",
    "AgentProfile",
    "DelegationQueue",
    "HookTriggerEngine",
    "HybridHookManager",
    "MetricsCollector",
    "parse_delegate_marker",
]
