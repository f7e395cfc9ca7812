"""CLI entry point for the conductor engine.

Usage:
    conductor run supervision "Add input validation to the signup form"
    conductor run parallel "Build a dashboard with an API" --preset full-stack
    conductor run infinite_loop "Tighten the parser" --max-iterations 3
    conductor hook run pre-commit --context '{"filesChanged": 12}'
    conductor hook list
"""
from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import Any

from rich.console import Console
from rich.text import Text

from .config import EngineConfig
from .engine import ConductorEngine
from .errors import OrchestrationError
from .models import ModeKind, SessionStatus

console = Console()

_LINE_STYLES = {
    "tool_call": "cyan",
    "error": "bold red",
    "success": "green",
}


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="conductor",
        description="Supervise coding-assistant sessions and hybrid hooks",
    )
    parser.add_argument(
        "--config", "-c",
        default=None,
        help="YAML config file layered over CONDUCTOR_* env settings",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable debug logging",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Run a collaboration mode")
    run.add_argument("mode", choices=[m.value for m in ModeKind])
    run.add_argument("request", help="What the assistant should do")
    run.add_argument(
        "--cwd",
        default=None,
        help="Parent directory for the session workspace (default: projects dir)",
    )
    run.add_argument("--owner", default="local", help="Owner id for the session")
    run.add_argument(
        "--no-auto-approve",
        action="store_true",
        help="Never answer prompts automatically",
    )
    run.add_argument(
        "--preset",
        default=None,
        help="Agent preset for parallel mode (e.g. full-stack)",
    )
    run.add_argument(
        "--max-iterations",
        type=int,
        default=None,
        help="Iteration cap for infinite_loop mode",
    )
    run.add_argument(
        "--threshold",
        type=float,
        default=None,
        help="Quality score that ends infinite_loop mode early",
    )
    run.add_argument(
        "--phases",
        default=None,
        help="Comma-separated phase list for hivemind mode",
    )

    hook = sub.add_parser("hook", help="Work with hybrid hook triggers")
    hook_sub = hook.add_subparsers(dest="hook_command", required=True)
    hook_run = hook_sub.add_parser("run", help="Execute a trigger")
    hook_run.add_argument("name")
    hook_run.add_argument(
        "--context",
        default="{}",
        help="JSON context passed to the trigger on stdin",
    )
    hook_sub.add_parser("list", help="List registered triggers")
    hook_sub.add_parser("metrics", help="Show hook timing metrics")
    return parser


def _load_config(path: str | None) -> tuple[EngineConfig, dict[str, Any]]:
    if path is None:
        return EngineConfig.from_env(), {}
    from .yaml_config import load_yaml_config

    loaded = load_yaml_config(path)
    return loaded.engine, loaded.presets


def _mode_options(args: argparse.Namespace) -> dict[str, Any]:
    """Only options the chosen mode accepts; anything else is an error."""
    options: dict[str, Any] = {}
    if args.preset is not None:
        options["preset"] = args.preset
    if args.max_iterations is not None:
        options["max_iterations"] = args.max_iterations
    if args.threshold is not None:
        options["quality_threshold"] = args.threshold
    if args.phases:
        options["phases"] = [p.strip() for p in args.phases.split(",") if p.strip()]
    return options


def render_event(event: dict[str, Any]) -> Text | None:
    """Turn one session event into a line of console output."""
    kind = event.get("event")
    if kind == "output":
        data = event.get("data", "").rstrip("\n")
        if not data:
            return None
        style = _LINE_STYLES.get(event.get("line_kind") or "")
        if event.get("stream") == "stderr":
            style = "yellow"
        text = Text()
        slot = event.get("slot", "main")
        if slot != "main":
            text.append(f"[{slot}] ", style="dim")
        text.append(data, style=style)
        return text
    if kind == "prompt":
        options = ", ".join(
            f"{o['key']}={o['label']}" for o in event.get("options", [])
        )
        suffix = " (auto-approving)" if event.get("auto_approving") else ""
        return Text(f"? {event.get('prompt_type')}: {options}{suffix}", style="magenta")
    if kind == "prompt_response":
        who = "auto" if event.get("auto") else "user"
        return Text(f"> {event.get('label')} ({who})", style="magenta")
    if kind == "status_changed":
        return Text(
            f"status: {event.get('old_status')} -> {event.get('new_status')}",
            style="dim",
        )
    if kind == "agent_started":
        return Text(f"agent {event.get('name')} started", style="bold blue")
    if kind == "agent_completed":
        return Text(
            f"agent {event.get('name')} {event.get('status')} "
            f"({event.get('completed_agents')}/{event.get('total_agents')})",
            style="bold blue",
        )
    if kind == "iteration_started":
        return Text(
            f"iteration {event.get('iteration')}/{event.get('max_iterations')}",
            style="bold blue",
        )
    if kind == "quality_score":
        return Text(
            f"quality {event.get('score'):.2f} (threshold {event.get('threshold')})",
            style="bold",
        )
    if kind == "phase_started":
        return Text(
            f"phase {event.get('index', 0) + 1}/{event.get('total')}: "
            f"{event.get('phase')}",
            style="bold blue",
        )
    if kind == "process_error":
        return Text(f"process error: {event.get('error')}", style="bold red")
    if kind == "session_closed":
        style = "bold green" if event.get("status") == "completed" else "bold red"
        line = f"session {event.get('status')} in {event.get('duration_seconds')}s"
        if event.get("error"):
            line += f": {event['error']}"
        return Text(line, style=style)
    return None


async def _print_event(event: dict[str, Any]) -> None:
    line = render_event(event)
    if line is not None:
        console.print(line)


async def _run_mode(engine: ConductorEngine, args: argparse.Namespace) -> int:
    result = await engine.orchestrator.start(
        args.mode,
        args.request,
        cwd=args.cwd,
        owner_id=args.owner,
        auto_approve=False if args.no_auto_approve else None,
        **_mode_options(args),
    )
    if not result.success:
        console.print(Text(f"Error: {result.message}", style="bold red"))
        return 1
    session_id = result.data
    engine.orchestrator.subscribe(session_id, _print_event)
    console.print(Text(f"Session {session_id}", style="bold"))
    record = await engine.orchestrator.wait(session_id)
    return 0 if record.status == SessionStatus.COMPLETED else 1


async def _run_hook(engine: ConductorEngine, args: argparse.Namespace) -> int:
    engine.initialize_hooks()
    if args.hook_command == "list":
        for trigger in engine.hooks.list_triggers():
            console.print(Text(trigger["name"], style="bold"), trigger["description"])
        return 0
    if args.hook_command == "metrics":
        console.print_json(json.dumps(engine.hooks.metrics()))
        return 0

    try:
        context = json.loads(args.context)
    except json.JSONDecodeError as exc:
        console.print(Text(f"Error: --context is not valid JSON: {exc}", style="bold red"))
        return 2
    result = await engine.hooks.execute_hook(args.name, context)
    if not result.success:
        console.print(Text(f"Error: {result.message}", style="bold red"))
        return 1
    data = result.data
    console.print(Text(f"{data['type']} hook {args.name}", style="bold green"))
    script = data.get("script_result") or data.get("result")
    if script is not None and script.stdout:
        console.print(script.stdout.rstrip("\n"))
    if data["type"] == "hybrid":
        console.print(Text(f"AI ({data['agent']}):", style="bold"))
        console.print(str(data["ai_result"]))
    return 0


async def _main_async(args: argparse.Namespace) -> int:
    try:
        config, presets = _load_config(args.config)
    except OrchestrationError as exc:
        console.print(Text(f"Error: {exc}", style="bold red"))
        return 2
    engine = ConductorEngine(config, presets=presets or None)
    try:
        if args.command == "run":
            return await _run_mode(engine, args)
        return await _run_hook(engine, args)
    finally:
        await engine.shutdown()


def main() -> None:
    parser = _build_parser()
    args = parser.parse_args()

    # Configure logging
    level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
        datefmt="%H:%M:%S",
    )

    try:
        code = asyncio.run(_main_async(args))
    except KeyboardInterrupt:
        console.print("\nInterrupted.")
        sys.exit(130)
    sys.exit(code)


if __name__ == "__main__":
    main()
