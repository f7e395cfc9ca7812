"""Delegate agent definitions: markdown files with YAML frontmatter.

    ---
    name: security-auditor
    description: Reviews changes for security issues
    tools: Read, Grep
    ---
    You are a security auditor...

Project agents (``<root>/.claude/agents``) shadow user agents
(``~/.claude/agents``) with the same name.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path

import yaml

logger = logging.getLogger(__name__)

_FRONTMATTER_RE = re.compile(r"\A---\r?\n(.*?)\r?\n---[ \t]*(?:\r?\n|\Z)", re.DOTALL)


@dataclass
class AgentProfile:
    name: str
    description: str = ""
    tools: list[str] | None = None
    system_prompt: str = ""
    source: str = "dynamic"

    def research_prompt(self) -> str:
        if self.system_prompt:
            return self.system_prompt
        if self.description:
            return f"You are {self.name}: {self.description}"
        return f"You are {self.name}."


def parse_agent_file(path: Path, source: str) -> AgentProfile | None:
    """Parse one agent file. Returns None when it has no usable frontmatter."""
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        logger.warning("Cannot read agent file %s: %s", path, exc)
        return None
    match = _FRONTMATTER_RE.match(content)
    if not match:
        logger.warning("No frontmatter found in %s", path)
        return None
    try:
        meta = yaml.safe_load(match.group(1)) or {}
    except yaml.YAMLError as exc:
        logger.warning("Invalid frontmatter in %s: %s", path, exc)
        return None
    if not isinstance(meta, dict):
        logger.warning("Frontmatter in %s is not a mapping", path)
        return None

    tools = meta.get("tools")
    if isinstance(tools, str):
        tools = [t.strip() for t in tools.split(",") if t.strip()]
    elif isinstance(tools, list):
        tools = [str(t).strip() for t in tools]
    else:
        tools = None

    return AgentProfile(
        name=str(meta.get("name") or path.stem),
        description=str(meta.get("description") or ""),
        tools=tools,
        system_prompt=content[match.end():].strip(),
        source=source,
    )


class AgentCatalog:
    """Named delegate agents available to the delegation queue."""

    def __init__(
        self,
        project_root: str | Path = ".",
        user_dir: str | Path | None = None,
    ) -> None:
        self.project_dir = Path(project_root).expanduser() / ".claude" / "agents"
        self.user_dir = (
            Path(user_dir).expanduser() if user_dir is not None
            else Path.home() / ".claude" / "agents"
        )
        self._agents: dict[str, AgentProfile] = {}

    def load(self) -> int:
        """(Re)load both directories. Returns the number of agents."""
        agents: dict[str, AgentProfile] = {}
        for directory, source in (
            (self.project_dir, "project"),
            (self.user_dir, "user"),
        ):
            if not directory.is_dir():
                continue
            for path in sorted(directory.glob("*.md")):
                profile = parse_agent_file(path, source)
                if profile is not None and profile.name not in agents:
                    agents[profile.name] = profile
        self._agents = agents
        logger.info("Loaded %d delegate agents", len(agents))
        return len(agents)

    def get(self, name: str) -> AgentProfile | None:
        return self._agents.get(name)

    def resolve(self, name: str) -> AgentProfile:
        """Known profile, or a bare "Dynamic agent" profile for unknown names."""
        profile = self._agents.get(name)
        if profile is None:
            return AgentProfile(name=name, description="Dynamic agent")
        return profile

    def names(self) -> list[str]:
        return sorted(self._agents)
