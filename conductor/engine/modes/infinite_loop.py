"""InfiniteLoop: re-run the assistant on its own output until good enough."""
from __future__ import annotations

import asyncio
import logging
from typing import Any

from ..errors import ConfigError
from ..models import ModeKind, Session
from .base import ModeRunner
from .scoring import PlaceholderScorer, QualityScorer

logger = logging.getLogger(__name__)


def build_iteration_prompt(request: str, iteration: int, previous: str) -> str:
    if iteration == 1:
        return request
    return (
        f"Improve upon the previous iteration:\n{previous}\n\n"
        f"Original request: {request}"
    )


class InfiniteLoopRunner(ModeRunner):
    mode = ModeKind.INFINITE_LOOP

    def __init__(
        self,
        *args: Any,
        max_iterations: int | None = None,
        quality_threshold: float | None = None,
        scorer: QualityScorer | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(*args, **kwargs)
        self.max_iterations = (
            max_iterations if max_iterations is not None
            else self.config.max_iterations
        )
        self.quality_threshold = (
            quality_threshold if quality_threshold is not None
            else self.config.quality_threshold
        )
        if self.max_iterations < 1:
            raise ConfigError(
                f"max_iterations must be at least 1, got {self.max_iterations}"
            )
        self.scorer = scorer or PlaceholderScorer()

    def prepare(self, session: Session) -> None:
        session.iteration = 0
        session.max_iterations = self.max_iterations
        session.quality_threshold = self.quality_threshold
        session.last_output = ""
        session.scores = []

    async def run(self, session: Session) -> str | None:
        for k in range(1, session.max_iterations + 1):
            session.iteration = k
            self.publish(session, {
                "event": "iteration_started",
                "iteration": k,
                "max_iterations": session.max_iterations,
            })
            prompt = build_iteration_prompt(session.request, k, session.last_output)
            outcome = await self.run_process(session, ["--print", prompt])
            if not outcome.ok:
                return f"Iteration {k} exited with code {outcome.exit_code}"

            session.last_output = outcome.output
            score = self.scorer.score(k, outcome.output, session.request)
            session.scores.append(score)
            reached = score >= session.quality_threshold
            self.publish(session, {
                "event": "quality_score",
                "iteration": k,
                "score": score,
                "threshold": session.quality_threshold,
                "reached": reached,
            })
            logger.info(
                "Loop %s iteration %d/%d scored %.2f",
                session.session_id[:12], k, session.max_iterations, score,
            )
            if reached:
                break
            if k < session.max_iterations:
                await asyncio.sleep(self.config.iteration_delay_seconds)
        return None
