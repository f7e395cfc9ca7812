"""Quality scoring strategies for InfiniteLoop."""
from __future__ import annotations

from abc import ABC, abstractmethod


class QualityScorer(ABC):
    """Scores one iteration's output; InfiniteLoop stops at the threshold."""

    @abstractmethod
    def score(self, iteration: int, output: str, request: str) -> float:
        ...


class PlaceholderScorer(QualityScorer):
    """Score grows linearly with the iteration number, ignoring the output.

    With the defaults: 0.8, 0.9, 1.0, ...
    """

    def __init__(self, base: float = 0.7, step: float = 0.1) -> None:
        self.base = base
        self.step = step

    def score(self, iteration: int, output: str, request: str) -> float:
        return self.base + self.step * iteration


class FixedScorer(QualityScorer):
    """Always the same score. Useful to force every iteration to run."""

    def __init__(self, value: float) -> None:
        self.value = value

    def score(self, iteration: int, output: str, request: str) -> float:
        return self.value
