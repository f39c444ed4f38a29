"""Vortex breathing pattern, session state and its pure state machine."""

from .display import DESCRIPTION, TITLE, cycle_info, instruction_text, pattern_lines, render_console_line
from .machine import advance, begin_session, stop_session
from .pattern import (
    COUNTDOWN_SECONDS,
    TOTAL_DURATION_SECONDS,
    VORTEX_PATTERN,
    BreathCycle,
    total_duration,
)
from .state import Phase, SessionState, Transition

__all__ = [
    "BreathCycle",
    "COUNTDOWN_SECONDS",
    "DESCRIPTION",
    "Phase",
    "SessionState",
    "TITLE",
    "TOTAL_DURATION_SECONDS",
    "Transition",
    "VORTEX_PATTERN",
    "advance",
    "begin_session",
    "cycle_info",
    "instruction_text",
    "pattern_lines",
    "render_console_line",
    "stop_session",
    "total_duration",
]
