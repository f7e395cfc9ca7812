"""Hook triggers: small shell scripts bound to named events.

Layout under the hooks directory:

    triggers/<name>.sh     the script, run as ``bash <script>``
    triggers/<name>.json   optional metadata (description, delegates, thresholds)
    lib/                   shared shell helpers (HOOKS_LIB_DIR)
    ai-delegates/          delegate material (AI_DELEGATES_DIR)

A script asks for AI help by printing one line
``DELEGATE_TO_AI:{"agent": ..., "task": ..., "context": ...}``.
"""
from __future__ import annotations

import asyncio
import json
import logging
import re
import time
from pathlib import Path
from typing import Any

from ..errors import ConfigError, HookExecutionError, HookNotFoundError
from ..models import DelegateDirective, Trigger, TriggerMetadata, TriggerResult
from ..process_supervisor import ProcessSupervisor

logger = logging.getLogger(__name__)

DELEGATE_MARKER_RE = re.compile(r"DELEGATE_TO_AI:(.+)")
_TRIGGER_NAME_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_-]*$")


def parse_delegate_marker(stdout: str) -> DelegateDirective | None:
    """First DELEGATE_TO_AI marker in stdout, or None (malformed JSON is ignored)."""
    match = DELEGATE_MARKER_RE.search(stdout)
    if not match:
        return None
    try:
        info = json.loads(match.group(1))
    except json.JSONDecodeError as exc:
        logger.warning("Failed to parse delegation info: %s", exc)
        return None
    if not isinstance(info, dict):
        logger.warning("Delegation info is not an object: %r", info)
        return None
    agent = info.get("agent")
    task = info.get("task")
    return DelegateDirective(
        agent=str(agent) if agent else None,
        task=str(task) if task else None,
        context=info.get("context"),
    )


def _default_metadata(name: str) -> TriggerMetadata:
    return TriggerMetadata(
        name=name,
        description=f"Hybrid hook trigger: {name}",
    )


def load_metadata(path: Path, name: str) -> TriggerMetadata:
    """Metadata from a companion JSON file; defaults when absent or unreadable."""
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return _default_metadata(name)
    except (OSError, json.JSONDecodeError) as exc:
        logger.warning("Unreadable trigger metadata %s: %s", path, exc)
        return _default_metadata(name)
    if not isinstance(raw, dict):
        logger.warning("Trigger metadata %s is not an object", path)
        return _default_metadata(name)
    delegates = raw.get("delegates") or []
    thresholds = raw.get("thresholds") or {}
    return TriggerMetadata(
        name=str(raw.get("name") or name),
        description=str(
            raw.get("description") or f"Hybrid hook trigger: {name}"
        ),
        delegates=[str(d) for d in delegates] if isinstance(delegates, list) else [],
        thresholds=dict(thresholds) if isinstance(thresholds, dict) else {},
    )


class HookTriggerEngine:
    """Loads, registers, and runs trigger scripts."""

    def __init__(
        self,
        hooks_dir: str | Path,
        supervisor: ProcessSupervisor,
        project_root: str | Path | None = None,
        shell: str = "bash",
        timeout_seconds: float | None = 60.0,
    ) -> None:
        self.hooks_dir = Path(hooks_dir).expanduser()
        self.triggers_dir = self.hooks_dir / "triggers"
        self.lib_dir = self.hooks_dir / "lib"
        self.delegates_dir = self.hooks_dir / "ai-delegates"
        self.project_root = (
            Path(project_root).expanduser() if project_root is not None
            else self.hooks_dir.parent
        )
        self._supervisor = supervisor
        self._shell = shell
        self._timeout = timeout_seconds
        self._triggers: dict[str, Trigger] = {}

    def initialize(self) -> int:
        """Create the directory layout and load triggers. Returns the count."""
        for directory in (
            self.hooks_dir, self.triggers_dir, self.lib_dir, self.delegates_dir,
        ):
            if not directory.exists():
                directory.mkdir(parents=True, exist_ok=True)
                logger.info("Created directory: %s", directory)
        return self.load_triggers()

    def load_triggers(self) -> int:
        triggers: dict[str, Trigger] = {}
        if self.triggers_dir.is_dir():
            for script in sorted(self.triggers_dir.glob("*.sh")):
                name = script.stem
                metadata = load_metadata(script.with_suffix(".json"), name)
                triggers[name] = Trigger(
                    name=name, script_path=script, metadata=metadata,
                )
        else:
            logger.warning("Triggers directory missing: %s", self.triggers_dir)
        self._triggers = triggers
        logger.info("Loaded %d triggers from %s", len(triggers), self.triggers_dir)
        return len(triggers)

    def get(self, name: str) -> Trigger:
        trigger = self._triggers.get(name)
        if trigger is None:
            raise HookNotFoundError(name)
        return trigger

    def list_triggers(self) -> list[dict[str, Any]]:
        return [
            {**t.metadata.to_dict(), "path": str(t.script_path)}
            for t in self._triggers.values()
        ]

    def register_trigger(
        self,
        name: str,
        script_body: str,
        metadata: dict[str, Any] | None = None,
    ) -> Trigger:
        """Write ``<name>.sh`` (mode 0755) and ``<name>.json``; cache the trigger."""
        if not _TRIGGER_NAME_RE.match(name):
            raise ConfigError(
                f"Invalid trigger name {name!r}: use letters, digits, '-' and '_'"
            )
        self.triggers_dir.mkdir(parents=True, exist_ok=True)
        script_path = self.triggers_dir / f"{name}.sh"
        meta_path = self.triggers_dir / f"{name}.json"

        script_path.write_text(script_body, encoding="utf-8")
        script_path.chmod(0o755)
        meta_path.write_text(
            json.dumps(metadata or {}, indent=2), encoding="utf-8",
        )

        trigger = Trigger(
            name=name,
            script_path=script_path,
            metadata=load_metadata(meta_path, name),
        )
        trigger.metadata.name = name
        self._triggers[name] = trigger
        logger.info("Registered new trigger: %s", name)
        return trigger

    def _environment(
        self,
        trigger: Trigger,
        context_json: str,
        thresholds: dict[str, Any] | None,
    ) -> dict[str, str]:
        merged = {**(thresholds or {}), **trigger.metadata.thresholds}
        return {
            "HOOK_CONTEXT": context_json,
            "HOOK_NAME": trigger.metadata.name,
            "HOOKS_LIB_DIR": str(self.lib_dir),
            "AI_DELEGATES_DIR": str(self.delegates_dir),
            "HOOK_THRESHOLDS": json.dumps(merged),
        }

    async def execute(
        self,
        name: str,
        context: Any = None,
        thresholds: dict[str, Any] | None = None,
    ) -> TriggerResult:
        """Run a trigger and collect its output.

        A non-zero exit is reported in the result, not raised; call
        ``raise_for_status()`` to turn it into HookExecutionError.

        Raises:
            HookNotFoundError: No trigger with that name.
            HookExecutionError: The script timed out.
            SpawnError: The shell could not be started.
        """
        trigger = self.get(name)
        context_json = json.dumps(context if context is not None else {})
        started = time.monotonic()

        handle = await self._supervisor.spawn(
            self._shell,
            [str(trigger.script_path)],
            cwd=self.project_root if self.project_root.is_dir() else None,
            env=self._environment(trigger, context_json, thresholds),
        )
        stdout: list[str] = []
        stderr: list[str] = []

        async def _collect() -> int:
            await self._supervisor.write(handle, context_json + "\n")
            self._supervisor.close_stdin(handle)
            exit_code = -1
            async for event in handle.events():
                if event.kind == "data":
                    (stdout if event.stream == "stdout" else stderr).append(event.chunk)
                elif event.kind == "close" and event.exit_code is not None:
                    exit_code = event.exit_code
            return exit_code

        try:
            exit_code = await asyncio.wait_for(_collect(), timeout=self._timeout)
        except asyncio.TimeoutError:
            await self._supervisor.kill(handle, grace_seconds=1.0)
            raise HookExecutionError(
                name, -1, f"timed out after {self._timeout}s",
            ) from None
        finally:
            if handle.is_alive:
                await self._supervisor.kill(handle, grace_seconds=1.0)

        out = "".join(stdout)
        result = TriggerResult(
            name=name,
            exit_code=exit_code,
            stdout=out,
            stderr="".join(stderr),
            delegate=parse_delegate_marker(out) if exit_code == 0 else None,
            duration_seconds=time.monotonic() - started,
        )
        logger.debug(
            "Trigger %s exited %d in %.3fs (delegate=%s)",
            name, exit_code, result.duration_seconds, result.delegate is not None,
        )
        return result
