"""Session state snapshots and the phrases spoken at phase transitions."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence

from .pattern import COUNTDOWN_SECONDS, VORTEX_PATTERN, BreathCycle

STARTING_PHRASE = f"Starting in {COUNTDOWN_SECONDS}"
BEGIN_PHRASE = "Begin. Inhale deeply"
INHALE_PHRASE = "Inhale deeply"
EXHALE_PHRASE = "Exhale slowly"
COMPLETE_PHRASE = "Meditation complete. Take a moment to observe how you feel."
ENDED_PHRASE = "Meditation ended"


class Phase(str, Enum):
    IDLE = "idle"
    COUNTDOWN = "countdown"
    INHALE = "inhale"
    EXHALE = "exhale"
    COMPLETE = "complete"


@dataclass(frozen=True)
class SessionState:
    """Read-only view of a breathing session at one observation point."""

    phase: Phase = Phase.IDLE
    countdown_remaining: int = COUNTDOWN_SECONDS
    cycle_index: int = 0
    phase_time_remaining: int = 0
    elapsed_seconds: int = 0
    progress_percent: float = 0.0
    is_running: bool = False

    @classmethod
    def idle(cls) -> "SessionState":
        return cls()

    @property
    def is_breathing(self) -> bool:
        return self.phase in (Phase.INHALE, Phase.EXHALE)

    def current_cycle(self, pattern: Sequence[BreathCycle] = VORTEX_PATTERN) -> Optional[BreathCycle]:
        if 0 <= self.cycle_index < len(pattern):
            return pattern[self.cycle_index]
        return None

    def as_dict(self) -> dict:
        return {
            "phase": self.phase.value,
            "countdown_remaining": self.countdown_remaining,
            "cycle_index": self.cycle_index,
            "phase_time_remaining": self.phase_time_remaining,
            "elapsed_seconds": self.elapsed_seconds,
            "progress_percent": round(self.progress_percent, 2),
            "is_running": self.is_running,
        }


@dataclass(frozen=True)
class Transition:
    """Next state plus the announcements to speak, in order."""

    state: SessionState
    announcements: tuple[str, ...] = ()
