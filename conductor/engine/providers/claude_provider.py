"""Claude Agent SDK provider.

Wraps claude_agent_sdk.query() for one-shot delegation prompts.
"""
from __future__ import annotations

import logging
import shutil

from .base import Provider, ProviderResult

logger = logging.getLogger(__name__)


class ClaudeProvider(Provider):
    """Provider backed by the Claude Agent SDK.

    Auth: Works with OAuth by default. If api_key_env is set and the
    env var exists, the SDK will use it.
    """

    def __init__(
        self,
        api_key_env: str | None = None,
        default_model: str = "claude-sonnet-4-5-20250929",
        command: str = "claude",
    ) -> None:
        self._command = self.resolve_command(command, "claude")
        self._api_key_env = api_key_env
        self._default_model = default_model

    @property
    def name(self) -> str:
        return "claude"

    async def send_message(
        self,
        prompt: str,
        *,
        system_prompt: str | None = None,
        model_id: str | None = None,
    ) -> ProviderResult:
        """Send a lightweight message via the SDK (no tools)."""
        try:
            from claude_agent_sdk import query, ClaudeAgentOptions
        except ImportError:
            return ProviderResult(
                text="ERROR: claude_agent_sdk not installed",
                success=False,
            )

        options = ClaudeAgentOptions(
            system_prompt=system_prompt or "",
            allowed_tools=[],
            permission_mode="plan",
            model=model_id or self._default_model,
        )

        result_text = ""
        async for message in query(prompt=prompt, options=options):
            if hasattr(message, "result"):
                result_text = message.result or ""
                if getattr(message, "is_error", False):
                    return ProviderResult(text=result_text, success=False)

        logger.debug("Claude response: %d chars", len(result_text))
        return ProviderResult(text=result_text, success=True)

    def is_available(self) -> bool:
        """Check if claude CLI is installed."""
        return shutil.which(self._command) is not None
