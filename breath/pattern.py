"""Fixed vortex breathing pattern and its derived constants."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence


@dataclass(frozen=True)
class BreathCycle:
    """One inhale/exhale pair, in whole seconds."""

    inhale: int
    exhale: int

    def __post_init__(self) -> None:
        if self.inhale <= 0 or self.exhale <= 0:
            raise ValueError("inhale and exhale must be positive")

    @property
    def duration(self) -> int:
        return self.inhale + self.exhale


VORTEX_PATTERN: tuple[BreathCycle, ...] = (
    BreathCycle(13, 13),
    BreathCycle(8, 8),
    BreathCycle(5, 5),
    BreathCycle(3, 3),
    BreathCycle(2, 2),
    BreathCycle(1, 1),
)

COUNTDOWN_SECONDS = 3


def total_duration(pattern: Sequence[BreathCycle]) -> int:
    return sum(cycle.duration for cycle in pattern)


TOTAL_DURATION_SECONDS = total_duration(VORTEX_PATTERN)
