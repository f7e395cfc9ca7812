"""Abstract base for AI providers.

A provider wraps an AI runtime the hook system can delegate to.
The delegation queue does not talk to providers directly: it takes
any ``async (prompt, request) -> result`` callable, and
``make_ai_call()`` adapts a provider into one.
"""
from __future__ import annotations

import abc
from dataclasses import dataclass, field
import logging
import shutil
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from ..errors import DelegationFailure

if TYPE_CHECKING:
    from ..hooks.delegation import AICall
    from ..models import DelegationRequest

logger = logging.getLogger(__name__)


@dataclass
class ProviderResult:
    """Result from a provider invocation."""
    text: str
    success: bool = True
    metadata: dict[str, Any] = field(default_factory=dict)


class Provider(abc.ABC):
    """Abstract provider interface."""

    @property
    @abc.abstractmethod
    def name(self) -> str:
        """Short provider name (e.g. 'claude')."""

    @abc.abstractmethod
    async def send_message(
        self,
        prompt: str,
        *,
        system_prompt: str | None = None,
        model_id: str | None = None,
    ) -> ProviderResult:
        """Send one prompt and return the final response text."""

    @abc.abstractmethod
    def is_available(self) -> bool:
        """Check if this provider's runtime is installed."""

    def resolve_command(self, command: str, fallback: str | None = None) -> str:
        """Resolve a provider binary by preferring explicit command, then fallback.

        Keeps the raw value when neither is on PATH so callers can
        surface the configured command in error messages.
        """
        if command and shutil.which(command):
            return command
        if fallback and shutil.which(fallback):
            logger.debug(
                "Command %s not found; falling back to %s for provider %s",
                command, fallback, self.name,
            )
            return fallback
        return command or fallback or ""


def make_ai_call(provider: Provider, model_id: str | None = None) -> AICall:
    """Adapt a provider into the delegation queue's AI call."""

    async def _call(prompt: str, request: DelegationRequest) -> dict[str, Any]:
        result = await provider.send_message(prompt, model_id=model_id)
        if not result.success:
            raise DelegationFailure(request.agent, request.task, result.text)
        return {
            "agent": request.agent,
            "task": request.task,
            "provider": provider.name,
            "response": result.text,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    return _call
