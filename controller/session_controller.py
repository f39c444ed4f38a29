"""Session controller that drives the breathing state machine on a 1-second tick."""

from __future__ import annotations

import json
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, List, Optional, Protocol

from breath import SessionState, Transition, advance, begin_session, stop_session
from tts import Announcer, NullAnnouncer

LOGGER = logging.getLogger("session_controller")
if not LOGGER.handlers:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("%(message)s"))
    LOGGER.addHandler(handler)
LOGGER.setLevel(logging.INFO)

StateListener = Callable[[SessionState], None]


class TimerHandle(Protocol):
    def cancel(self) -> None:  # pragma: no cover - structural
        ...


class TickScheduler(Protocol):
    """Subset of the asyncio event loop API the controller relies on."""

    def time(self) -> float:  # pragma: no cover - structural
        ...

    def call_at(self, when: float, callback: Callable[..., Any], *args: Any) -> TimerHandle:  # pragma: no cover - structural
        ...


@dataclass(frozen=True)
class SessionControllerConfig:
    """Configuration knobs for the session controller."""

    tick_interval: float = 1.0
    log_path: Optional[Path] = None

    def __post_init__(self) -> None:
        if self.tick_interval <= 0:
            raise ValueError("tick_interval must be positive")


class SessionController:
    """Owns the tick source and the session state; the only writer of either."""

    def __init__(
        self,
        *,
        scheduler: TickScheduler,
        announcer: Optional[Announcer] = None,
        config: Optional[SessionControllerConfig] = None,
    ) -> None:
        self.scheduler = scheduler
        self.announcer: Announcer = announcer if announcer is not None else NullAnnouncer()
        self.config = config or SessionControllerConfig()

        self._state = SessionState.idle()
        self._tick_handle: Optional[TimerHandle] = None
        self._next_deadline = 0.0
        self._generation = 0
        self._ticks = 0
        self._current_session_id: Optional[str] = None
        self._listeners: List[StateListener] = []

        self._log_path = self.config.log_path
        self._log_file = None
        if self._log_path is not None:
            self._log_path.parent.mkdir(parents=True, exist_ok=True)
            self._log_file = self._log_path.open("a", encoding="utf-8")

    # ------------------------------------------------------------------
    # Public API

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state.is_running

    @property
    def has_pending_tick(self) -> bool:
        return self._tick_handle is not None

    def add_listener(self, listener: StateListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: StateListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def start(self) -> None:
        """Begin a new session, resetting any session already in progress."""

        restarted = self._tick_handle is not None
        self._retire_tick_source()
        self._cancel_speech()
        self._current_session_id = uuid.uuid4().hex[:8]
        self._ticks = 0
        self._apply(begin_session(), reason="session.start", restarted=restarted)
        self._next_deadline = self.scheduler.time()
        self._schedule_next_tick()
        self._notify()

    def stop(self) -> None:
        """End the session in any phase. No tick fires after this returns."""

        self._retire_tick_source()
        self._cancel_speech()
        self._apply(stop_session(), reason="session.stop", ticks=self._ticks)
        self._current_session_id = None
        self._notify()

    def close(self) -> None:
        self._retire_tick_source()
        if self._log_file is not None:
            self._log_file.close()
            self._log_file = None

    # ------------------------------------------------------------------
    # Tick handling

    def _on_tick(self, generation: int) -> None:
        if generation != self._generation:
            return
        self._tick_handle = None
        self._ticks += 1
        self._apply(advance(self._state), reason="tick", tick=self._ticks)
        if self._state.is_running:
            self._schedule_next_tick()
        else:
            self._transition("TickSourceRetired", reason="session.complete", ticks=self._ticks)
        self._notify()

    def _schedule_next_tick(self) -> None:
        self._next_deadline += self.config.tick_interval
        now = self.scheduler.time()
        if self._next_deadline < now:
            # Fell behind; resynchronise instead of firing a burst of ticks.
            self._next_deadline = now
        self._tick_handle = self.scheduler.call_at(self._next_deadline, self._on_tick, self._generation)

    def _retire_tick_source(self) -> None:
        self._generation += 1
        if self._tick_handle is not None:
            self._tick_handle.cancel()
            self._tick_handle = None

    # ------------------------------------------------------------------
    # Helpers

    def _apply(self, transition: Transition, **metadata: Any) -> None:
        previous = self._state
        self._state = transition.state
        if previous.phase is not self._state.phase or transition.announcements:
            self._transition(
                self._state.phase.value,
                announcements=list(transition.announcements),
                **self._state.as_dict(),
                **metadata,
            )
        else:
            LOGGER.debug(json.dumps({"state": self._state.phase.value, **self._state.as_dict(), **metadata}))
        for text in transition.announcements:
            self._speak(text)

    def _speak(self, text: str) -> None:
        try:
            self.announcer.announce(text)
        except Exception as exc:
            LOGGER.warning(
                json.dumps({"event": "announce.skipped", "text": text, "error": str(exc), "error_type": exc.__class__.__name__})
            )

    def _cancel_speech(self) -> None:
        try:
            self.announcer.cancel()
        except Exception as exc:
            LOGGER.warning(
                json.dumps({"event": "cancel.skipped", "error": str(exc), "error_type": exc.__class__.__name__})
            )

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self._state)

    def _transition(self, state: str, **metadata: Any) -> None:
        payload = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "state": state,
        }
        if self._current_session_id:
            payload["session"] = self._current_session_id
        payload.update(metadata)
        line = json.dumps(payload, ensure_ascii=False)
        LOGGER.info(line)
        if self._log_file is not None:
            self._log_file.write(line + "\n")
            self._log_file.flush()
