"""Collaboration mode runners."""
from __future__ import annotations

from ..models import ModeKind
from .base import ModeRunner, ProcessOutcome
from .hivemind import HivemindRunner
from .infinite_loop import InfiniteLoopRunner
from .parallel import ParallelAgentsRunner
from .roles import PRESETS, select_agent_roles
from .scoring import FixedScorer, PlaceholderScorer, QualityScorer
from .supervision import SupervisionRunner, classify_line

RUNNERS: dict[ModeKind, type[ModeRunner]] = {
    ModeKind.SUPERVISION: SupervisionRunner,
    ModeKind.PARALLEL: ParallelAgentsRunner,
    ModeKind.INFINITE_LOOP: InfiniteLoopRunner,
    ModeKind.HIVEMIND: HivemindRunner,
}

__all__ = [
    "RUNNERS",
    "ModeRunner",
    "ProcessOutcome",
    "SupervisionRunner",
    "ParallelAgentsRunner",
    "InfiniteLoopRunner",
    "HivemindRunner",
    "QualityScorer",
    "PlaceholderScorer",
    "FixedScorer",
    "PRESETS",
    "select_agent_roles",
    "classify_line",
]
