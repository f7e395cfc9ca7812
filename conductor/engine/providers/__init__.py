"""AI providers the hook system can delegate to."""
from .base import Provider, ProviderResult, make_ai_call
from .claude_provider import ClaudeProvider

__all__ = [
    "Provider",
    "ProviderResult",
    "ClaudeProvider",
    "make_ai_call",
]
