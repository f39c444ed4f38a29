"""Pure transition functions for the breathing session state machine.

Each function takes a :class:`SessionState` and returns a :class:`Transition`
holding the next state and the phrases to speak. Nothing here touches timers
or audio; the controller owns both.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Optional, Sequence

from .pattern import COUNTDOWN_SECONDS, TOTAL_DURATION_SECONDS, VORTEX_PATTERN, BreathCycle, total_duration
from .state import (
    BEGIN_PHRASE,
    COMPLETE_PHRASE,
    ENDED_PHRASE,
    EXHALE_PHRASE,
    INHALE_PHRASE,
    STARTING_PHRASE,
    Phase,
    SessionState,
    Transition,
)


def begin_session() -> Transition:
    state = SessionState(
        phase=Phase.COUNTDOWN,
        countdown_remaining=COUNTDOWN_SECONDS,
        cycle_index=0,
        phase_time_remaining=0,
        elapsed_seconds=0,
        progress_percent=0.0,
        is_running=True,
    )
    return Transition(state, (STARTING_PHRASE,))


def stop_session() -> Transition:
    return Transition(SessionState.idle(), (ENDED_PHRASE,))


def advance(
    state: SessionState,
    *,
    pattern: Sequence[BreathCycle] = VORTEX_PATTERN,
    total_seconds: Optional[int] = None,
) -> Transition:
    """Apply one tick to ``state``.

    ``total_seconds`` defaults to the duration of ``pattern``.
    """

    if total_seconds is None:
        total_seconds = TOTAL_DURATION_SECONDS if pattern is VORTEX_PATTERN else total_duration(pattern)
    if state.phase is Phase.COUNTDOWN:
        return _advance_countdown(state, pattern)
    if state.phase in (Phase.INHALE, Phase.EXHALE):
        return _advance_breathing(state, pattern, total_seconds)
    return Transition(state)


def _advance_countdown(state: SessionState, pattern: Sequence[BreathCycle]) -> Transition:
    remaining = state.countdown_remaining - 1
    if remaining > 0:
        return Transition(replace(state, countdown_remaining=remaining), (str(remaining),))
    nxt = replace(
        state,
        phase=Phase.INHALE,
        countdown_remaining=0,
        cycle_index=0,
        phase_time_remaining=pattern[0].inhale,
        elapsed_seconds=0,
    )
    return Transition(nxt, (BEGIN_PHRASE,))


def _advance_breathing(
    state: SessionState,
    pattern: Sequence[BreathCycle],
    total_seconds: int,
) -> Transition:
    elapsed = state.elapsed_seconds + 1
    ticked = replace(
        state,
        phase_time_remaining=state.phase_time_remaining - 1,
        elapsed_seconds=elapsed,
        progress_percent=elapsed / total_seconds * 100,
    )
    if ticked.phase_time_remaining > 0:
        return Transition(ticked)

    index = ticked.cycle_index
    if ticked.phase is Phase.INHALE:
        nxt = replace(ticked, phase=Phase.EXHALE, phase_time_remaining=pattern[index].exhale)
        return Transition(nxt, (EXHALE_PHRASE,))

    index += 1
    if index < len(pattern):
        nxt = replace(
            ticked,
            phase=Phase.INHALE,
            cycle_index=index,
            phase_time_remaining=pattern[index].inhale,
        )
        return Transition(nxt, (INHALE_PHRASE,))

    # Progress keeps its last value once the session completes.
    done = replace(ticked, phase=Phase.COMPLETE, cycle_index=index, is_running=False)
    return Transition(done, (COMPLETE_PHRASE,))
