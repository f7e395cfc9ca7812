"""Configuration loaded from environment variables.

All settings have sensible defaults. Override via CONDUCTOR_* env vars
or a YAML file (see yaml_config.py).
"""
from __future__ import annotations

import logging
import os
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


# Async callback for real-time event observation.
# Signature: async def callback(event: dict[str, Any]) -> None
EventCallback = Callable[[dict[str, Any]], Awaitable[None]]


async def fire_event(
    callback: EventCallback | None,
    event: dict[str, Any],
) -> None:
    """Fire an event callback if set; subscriber errors never break the engine."""
    if callback is None:
        return
    try:
        await callback(event)
    except Exception:
        logger.debug(
            "Event callback failed for %s", event.get("event"), exc_info=True,
        )


def _default_candidates() -> list[str]:
    home = os.path.expanduser("~")
    return [
        "claude",
        "/usr/local/bin/claude",
        "/opt/homebrew/bin/claude",
        f"{home}/.local/bin/claude",
    ]


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


@dataclass
class EngineConfig:
    """Orchestration core configuration."""

    # Coding-assistant executable. Candidates are probed in order with
    # `<candidate> --version`; the first that exits 0 is used.
    assistant_candidates: list[str] = field(default_factory=_default_candidates)
    probe_timeout_seconds: float = 2.0
    # Root under which session working directories are created when the
    # caller does not supply one.
    projects_dir: str = "projects"

    # Process supervision
    kill_grace_seconds: float = 5.0

    # Prompt detection / auto-approval
    auto_approve: bool = True
    approve_probability: float = 0.95
    auto_response_delay_seconds: float = 1.5

    # Mode defaults
    max_iterations: int = 5
    quality_threshold: float = 0.9
    iteration_delay_seconds: float = 1.0
    phase_delay_seconds: float = 1.0
    hivemind_phases: list[str] = field(
        default_factory=lambda: ["architect", "implementer", "reviewer"],
    )

    # Session registry
    history_limit: int = 200
    channel_queue_size: int = 1000

    # Hybrid hooks
    hooks_dir: str = "hooks"
    hook_shell: str = "bash"
    hook_timeout_seconds: float = 60.0
    delegation_delay_seconds: float = 0.1
    # None disables the timeout; an unresponsive AI call then stalls the
    # single-flight delegation queue.
    delegation_timeout_seconds: float | None = None
    delegation_model: str = "claude-sonnet-4-5-20250929"
    delegation_thresholds: dict[str, Any] = field(default_factory=lambda: {
        "filesChanged": 5,
        "linesChanged": 100,
        "complexityScore": 0.7,
        "errorCount": 3,
    })

    # Logging
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> EngineConfig:
        """Load configuration from CONDUCTOR_* environment variables."""
        env_vars = {
            k: v for k, v in os.environ.items() if k.startswith("CONDUCTOR_")
        }
        if env_vars:
            logger.info(
                "EngineConfig.from_env: CONDUCTOR_* env overrides: %s",
                ", ".join(f"{k}={v}" for k, v in sorted(env_vars.items())),
            )
        else:
            logger.debug(
                "EngineConfig.from_env: no CONDUCTOR_* env vars set, using defaults"
            )

        config = cls()
        command = os.getenv("CONDUCTOR_ASSISTANT_COMMAND")
        if command:
            config.assistant_candidates = [
                command,
                *[c for c in config.assistant_candidates if c != command],
            ]
        config.probe_timeout_seconds = float(os.getenv(
            "CONDUCTOR_PROBE_TIMEOUT", str(cls.probe_timeout_seconds),
        ))
        config.projects_dir = os.getenv(
            "CONDUCTOR_PROJECTS_DIR", cls.projects_dir,
        )
        config.kill_grace_seconds = float(os.getenv(
            "CONDUCTOR_KILL_GRACE", str(cls.kill_grace_seconds),
        ))
        config.auto_approve = _env_bool(
            "CONDUCTOR_AUTO_APPROVE", cls.auto_approve,
        )
        config.approve_probability = float(os.getenv(
            "CONDUCTOR_APPROVE_PROBABILITY", str(cls.approve_probability),
        ))
        config.auto_response_delay_seconds = float(os.getenv(
            "CONDUCTOR_AUTO_RESPONSE_DELAY",
            str(cls.auto_response_delay_seconds),
        ))
        config.max_iterations = int(os.getenv(
            "CONDUCTOR_MAX_ITERATIONS", str(cls.max_iterations),
        ))
        config.quality_threshold = float(os.getenv(
            "CONDUCTOR_QUALITY_THRESHOLD", str(cls.quality_threshold),
        ))
        config.hooks_dir = os.getenv("CONDUCTOR_HOOKS_DIR", cls.hooks_dir)
        config.hook_timeout_seconds = float(os.getenv(
            "CONDUCTOR_HOOK_TIMEOUT", str(cls.hook_timeout_seconds),
        ))
        config.delegation_delay_seconds = float(os.getenv(
            "CONDUCTOR_DELEGATION_DELAY", str(cls.delegation_delay_seconds),
        ))
        timeout = os.getenv("CONDUCTOR_DELEGATION_TIMEOUT")
        if timeout:
            config.delegation_timeout_seconds = float(timeout)
        config.delegation_model = os.getenv(
            "CONDUCTOR_DELEGATION_MODEL", cls.delegation_model,
        )
        config.log_level = os.getenv("CONDUCTOR_LOG_LEVEL", cls.log_level)

        logger.info(
            "EngineConfig.from_env: candidates=%s projects_dir=%s "
            "auto_approve=%s log_level=%s",
            config.assistant_candidates[0], config.projects_dir,
            config.auto_approve, config.log_level,
        )
        return config

    @property
    def projects_path(self) -> Path:
        return Path(self.projects_dir).expanduser()

    @property
    def hooks_path(self) -> Path:
        return Path(self.hooks_dir).expanduser()
