"""YAML configuration loader.

Layers a YAML file on top of an EngineConfig (by default the one
built from CONDUCTOR_* env vars). Every section is optional.

Example YAML:
    engine:
      assistant_command: /opt/tools/claude
      projects_dir: ~/conductor-projects
      kill_grace_seconds: 5
      auto_approve: true
      approve_probability: 0.95
      max_iterations: 5
      quality_threshold: 0.9
      hivemind_phases: [architect, implementer, reviewer]

    hooks:
      dir: ./hooks
      shell: bash
      timeout_seconds: 60
      delegation_delay_seconds: 0.1
      delegation_timeout_seconds: 120
      delegation_model: claude-sonnet-4-5-20250929
      thresholds:
        filesChanged: 10

    presets:
      docs-team:
        - type: writer
          name: Technical Writer
          focus: API reference and guides
        - type: reviewer
          name: Reviewer
          focus: Accuracy and consistency
"""
from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .config import EngineConfig
from .errors import ConfigError
from .models import AgentRole
from .modes.roles import coerce_role

logger = logging.getLogger(__name__)

# YAML key under `hooks:` -> EngineConfig field
_HOOK_KEYS = {
    "dir": "hooks_dir",
    "shell": "hook_shell",
    "timeout_seconds": "hook_timeout_seconds",
    "delegation_delay_seconds": "delegation_delay_seconds",
    "delegation_timeout_seconds": "delegation_timeout_seconds",
    "delegation_model": "delegation_model",
}


@dataclass
class ConductorConfig:
    """Everything a YAML file can configure."""
    engine: EngineConfig
    presets: dict[str, list[AgentRole]] = field(default_factory=dict)
    source: Path | None = None


def _coerce(name: str, value: Any, current: Any) -> Any:
    """Convert a YAML value to the type of the field's current value."""
    if value is None:
        return value
    if current is None:
        # Optional numeric settings (timeouts) default to None
        try:
            return float(value)
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"Invalid value for {name}: {value!r}") from exc
    try:
        if isinstance(current, bool):
            if isinstance(value, bool):
                return value
            return str(value).strip().lower() in {"1", "true", "yes", "on"}
        if isinstance(current, (int, float)):
            return type(current)(value)
        if isinstance(current, str):
            return str(value)
        if isinstance(current, list):
            if not isinstance(value, list):
                raise TypeError("expected a list")
            return [str(v) for v in value]
        if isinstance(current, dict):
            if not isinstance(value, dict):
                raise TypeError("expected a mapping")
            return {**current, **value}
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid value for {name}: {value!r} ({exc})") from exc
    return value


def _apply_engine(config: EngineConfig, raw: dict[str, Any]) -> None:
    fields = {f.name for f in dataclasses.fields(EngineConfig)}
    for key, value in raw.items():
        if key == "assistant_command":
            command = str(value)
            config.assistant_candidates = [
                command,
                *[c for c in config.assistant_candidates if c != command],
            ]
        elif key in fields:
            setattr(config, key, _coerce(key, value, getattr(config, key)))
        else:
            logger.warning("Ignoring unknown engine setting: %s", key)


def _apply_hooks(config: EngineConfig, raw: dict[str, Any]) -> None:
    for key, value in raw.items():
        if key == "thresholds":
            config.delegation_thresholds = _coerce(
                "hooks.thresholds", value, config.delegation_thresholds,
            )
        elif key in _HOOK_KEYS:
            attr = _HOOK_KEYS[key]
            setattr(config, attr, _coerce(f"hooks.{key}", value, getattr(config, attr)))
        else:
            logger.warning("Ignoring unknown hooks setting: %s", key)


def _parse_presets(raw: Any) -> dict[str, list[AgentRole]]:
    if not isinstance(raw, dict):
        raise ConfigError("'presets' must be a mapping of name -> agent list")
    presets: dict[str, list[AgentRole]] = {}
    for name, agents in raw.items():
        if not isinstance(agents, list) or not agents:
            raise ConfigError(f"Preset '{name}' must be a non-empty list of agents")
        presets[str(name)] = [coerce_role(a) for a in agents]
    return presets


def _section(raw: dict[str, Any], name: str) -> dict[str, Any]:
    value = raw.get(name) or {}
    if not isinstance(value, dict):
        raise ConfigError(f"'{name}' section must be a mapping")
    return value


def load_yaml_config(
    path: str | Path,
    base: EngineConfig | None = None,
) -> ConductorConfig:
    """Load a YAML file and layer it over ``base`` (env config by default).

    Raises:
        ConfigError: The file is missing, unparsable, or has bad values.
    """
    path = Path(path).expanduser()
    logger.info("load_yaml_config: loading %s", path)
    try:
        with open(path, encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
    except FileNotFoundError as exc:
        raise ConfigError(f"Config file not found: {path}") from exc
    except yaml.YAMLError as exc:
        logger.error("load_yaml_config: YAML parse error in %s: %s", path, exc)
        raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc
    if not isinstance(raw, dict):
        raise ConfigError(f"Top level of {path} must be a mapping")

    top_sections = sorted(raw.keys())
    logger.info(
        "Parsed YAML config %s: sections: %s",
        path.name, ", ".join(top_sections) if top_sections else "(empty)",
    )

    engine = dataclasses.replace(base) if base else EngineConfig.from_env()
    _apply_engine(engine, _section(raw, "engine"))
    _apply_hooks(engine, _section(raw, "hooks"))
    presets = _parse_presets(raw["presets"]) if raw.get("presets") else {}

    for key in top_sections:
        if key not in {"engine", "hooks", "presets"}:
            logger.warning("Ignoring unknown config section: %s", key)

    return ConductorConfig(engine=engine, presets=presets, source=path)
