"""Adapters package - typed views of engine events for frontends."""
from __future__ import annotations

__all__ = [
    "ConductorEvent",
    "event_to_dict",
    "parse_event",
]

from conductor.adapters.events import ConductorEvent, event_to_dict, parse_event
