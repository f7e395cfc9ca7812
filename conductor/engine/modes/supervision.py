"""Supervision: one verbose assistant run, output classified per line."""
from __future__ import annotations

from typing import Any

from ..models import LineKind, ModeKind, Session
from .base import ModeRunner


def classify_line(line: str) -> LineKind:
    if "Tool:" in line or "Calling" in line:
        return LineKind.TOOL_CALL
    if "Error" in line or "Failed" in line:
        return LineKind.ERROR
    if "Success" in line or "Complete" in line:
        return LineKind.SUCCESS
    return LineKind.PLAIN


class SupervisionRunner(ModeRunner):
    mode = ModeKind.SUPERVISION

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        # (slot, stream) -> text after the last newline seen
        self._partial: dict[tuple[str, str], str] = {}

    def _line_event(self, stream: str, line: str, slot: str) -> dict[str, Any]:
        return {
            "event": "output",
            "stream": stream,
            "data": line + "\n",
            "slot": slot,
            "line_kind": (
                classify_line(line).value
                if stream == "stdout" else LineKind.PLAIN.value
            ),
        }

    def output_events(
        self, session: Session, stream: str, chunk: str, slot: str,
    ) -> list[dict[str, Any]]:
        """Complete lines only; a trailing partial line waits for the next chunk."""
        key = (slot, stream)
        lines = (self._partial.pop(key, "") + chunk).split("\n")
        rest = lines.pop()
        if rest:
            self._partial[key] = rest
        return [
            self._line_event(stream, line, slot)
            for line in lines if line.strip()
        ]

    def flush_events(self, session: Session, slot: str) -> list[dict[str, Any]]:
        events = []
        for stream in ("stdout", "stderr"):
            rest = self._partial.pop((slot, stream), "")
            if rest.strip():
                events.append(self._line_event(stream, rest, slot))
        return events

    async def run(self, session: Session) -> str | None:
        outcome = await self.run_process(session, ["--verbose", session.request])
        if not outcome.ok:
            return f"Supervised process exited with code {outcome.exit_code}"
        return None
