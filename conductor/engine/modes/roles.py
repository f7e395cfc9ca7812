"""Agent role selection for ParallelAgents."""
from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from typing import Any

from ..errors import ConfigError
from ..models import AgentRole

# Checked in this order; each matching group adds one role.
KEYWORD_GROUPS: tuple[tuple[AgentRole, tuple[str, ...]], ...] = (
    (
        AgentRole("frontend", "Frontend", "UI components and styling"),
        ("frontend", "ui", "react", "component"),
    ),
    (
        AgentRole("backend", "Backend", "API and server logic"),
        ("backend", "api", "server", "endpoint"),
    ),
    (
        AgentRole("database", "Database", "Schema and data modeling"),
        ("database", "schema", "migration", "sql"),
    ),
    (
        AgentRole("testing", "Testing", "Test coverage and quality"),
        ("test", "testing", "spec"),
    ),
)

DEFAULT_ROLES: tuple[AgentRole, ...] = (
    AgentRole("architect", "Architect", "System design and structure"),
    AgentRole("implementer", "Implementer", "Core implementation"),
    AgentRole("optimizer", "Optimizer", "Performance and best practices"),
)

PRESETS: dict[str, tuple[AgentRole, ...]] = {
    "frontend-trio": (
        AgentRole("frontend-specialist", "Frontend Specialist", "UI/UX and React components"),
        AgentRole("architect", "Architect", "Component architecture"),
        AgentRole("optimizer", "Optimizer", "Performance and accessibility"),
    ),
    "backend-squad": (
        AgentRole("backend-specialist", "Backend Specialist", "API and server logic"),
        AgentRole("architect", "Architect", "System architecture"),
        AgentRole("optimizer", "Optimizer", "Database and performance"),
    ),
    "full-stack": (
        AgentRole("architect", "Architect", "Full system design"),
        AgentRole("frontend-specialist", "Frontend", "UI implementation"),
        AgentRole("backend-specialist", "Backend", "API implementation"),
    ),
    "debug-force": (
        AgentRole("debugger", "Debugger", "Issue analysis"),
        AgentRole("implementer", "Implementer", "Fix implementation"),
        AgentRole("optimizer", "Optimizer", "Prevention strategies"),
    ),
}


def _keyword_pattern(keywords: Iterable[str]) -> re.Pattern[str]:
    # Whole words, optional plural: "tests" matches "test", "build" does not match "ui".
    alternatives = "|".join(re.escape(k) for k in keywords)
    return re.compile(rf"\b(?:{alternatives})s?\b", re.IGNORECASE)


_GROUP_PATTERNS = tuple(
    (role, _keyword_pattern(keywords)) for role, keywords in KEYWORD_GROUPS
)


def select_agent_roles(request: str) -> list[AgentRole]:
    """Roles whose keywords appear in the request; the generic trio otherwise."""
    roles = [role for role, pattern in _GROUP_PATTERNS if pattern.search(request)]
    return roles or list(DEFAULT_ROLES)


def coerce_role(value: AgentRole | Mapping[str, Any]) -> AgentRole:
    """Accept an AgentRole or a {type, name, focus} mapping."""
    if isinstance(value, AgentRole):
        return value
    if not isinstance(value, Mapping):
        raise ConfigError(f"Agent must be a mapping, got {type(value).__name__}")
    role_type = value.get("type") or value.get("role_type")
    if not role_type:
        raise ConfigError(f"Agent definition missing 'type': {dict(value)}")
    name = value.get("name") or str(role_type).replace("-", " ").title()
    return AgentRole(
        role_type=str(role_type),
        name=str(name),
        focus=str(value.get("focus", "")),
    )


def preset_roles(
    name: str,
    presets: Mapping[str, Iterable[AgentRole]] | None = None,
) -> list[AgentRole]:
    """Roles for a named preset. Raises ConfigError for an unknown name."""
    table: dict[str, Iterable[AgentRole]] = dict(PRESETS)
    if presets:
        table.update(presets)
    if name not in table:
        raise ConfigError(
            f"Unknown agent preset '{name}'. "
            f"Available: {', '.join(sorted(table))}"
        )
    return [coerce_role(r) for r in table[name]]


def build_agent_prompt(role: AgentRole, request: str) -> str:
    return (
        f"As a {role.name} specialist focusing on {role.focus}, "
        f"complete this task: {request}\n\n"
        "Focus specifically on your area of expertise and provide "
        f"implementation details relevant to {role.role_type} development."
    )
