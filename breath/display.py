"""Text helpers for presenting a session snapshot."""

from __future__ import annotations

from typing import List, Sequence

from .pattern import VORTEX_PATTERN, BreathCycle
from .state import Phase, SessionState

TITLE = "Vortex Breath Meditation"
DESCRIPTION = "A phi ratio vortex breathing technique to instantly center your mind"


def instruction_text(state: SessionState) -> str:
    if state.phase is Phase.COUNTDOWN:
        return f"Starting in {state.countdown_remaining}..."
    if state.phase is Phase.INHALE:
        return f"Inhale ({state.phase_time_remaining}s)"
    if state.phase is Phase.EXHALE:
        return f"Exhale ({state.phase_time_remaining}s)"
    if state.phase is Phase.COMPLETE:
        return "Meditation complete"
    return "Press Start to begin"


def cycle_info(state: SessionState, pattern: Sequence[BreathCycle] = VORTEX_PATTERN) -> str:
    if state.phase in (Phase.IDLE, Phase.COUNTDOWN):
        return TITLE
    if state.phase is Phase.COMPLETE:
        return "Practice completed"
    cycle = state.current_cycle(pattern)
    if cycle is None:
        return "Practice completed"
    return (
        f"Cycle {state.cycle_index + 1} of {len(pattern)}: "
        f"{cycle.inhale}s inhale, {cycle.exhale}s exhale"
    )


def pattern_lines(pattern: Sequence[BreathCycle] = VORTEX_PATTERN) -> List[str]:
    return [f"Inhale {cycle.inhale}s, Exhale {cycle.exhale}s" for cycle in pattern]


def progress_bar(percent: float, width: int = 30) -> str:
    width = max(1, width)
    clamped = max(0.0, min(100.0, percent))
    filled = int(round(clamped / 100.0 * width))
    return "#" * filled + "-" * (width - filled)


def render_console_line(
    state: SessionState,
    *,
    width: int = 30,
    pattern: Sequence[BreathCycle] = VORTEX_PATTERN,
) -> str:
    """Single terminal line: instruction, progress bar, cycle description."""

    return (
        f"{instruction_text(state):<22} "
        f"[{progress_bar(state.progress_percent, width)}] "
        f"{state.progress_percent:5.1f}%  {cycle_info(state, pattern)}"
    )
