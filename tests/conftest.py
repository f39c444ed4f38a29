"""Shared fixtures: a manual tick scheduler and a recording announcer."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Any, Callable, List, Optional

import pytest

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


class ManualHandle:
    def __init__(self, when: float, callback: Callable[..., Any], args: tuple) -> None:
        self.when = when
        self.callback = callback
        self.args = args
        self.cancelled = False
        self.fired = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Fake clock exposing the ``time``/``call_at`` pair of an asyncio loop."""

    def __init__(self) -> None:
        self.now = 0.0
        self.handles: List[ManualHandle] = []

    def time(self) -> float:
        return self.now

    def call_at(self, when: float, callback: Callable[..., Any], *args: Any) -> ManualHandle:
        handle = ManualHandle(when, callback, args)
        self.handles.append(handle)
        return handle

    @property
    def pending(self) -> List[ManualHandle]:
        return [h for h in self.handles if not h.cancelled and not h.fired]

    def advance(self, seconds: float) -> None:
        target = self.now + seconds
        while True:
            due = sorted((h for h in self.pending if h.when <= target), key=lambda h: h.when)
            if not due:
                break
            handle = due[0]
            self.now = max(self.now, handle.when)
            handle.fired = True
            handle.callback(*handle.args)
        self.now = target

    def tick(self, count: int = 1) -> None:
        for _ in range(count):
            self.advance(1.0)


class RecordingAnnouncer:
    def __init__(self) -> None:
        self.spoken: List[str] = []
        self.cancels = 0
        self.closed = False

    def announce(self, text: str) -> None:
        self.spoken.append(text)

    def cancel(self) -> None:
        self.cancels += 1

    def drain(self, timeout: Optional[float] = None) -> bool:
        return True

    def close(self) -> None:
        self.closed = True


class BrokenAnnouncer(RecordingAnnouncer):
    def announce(self, text: str) -> None:
        super().announce(text)
        raise RuntimeError("speech backend missing")

    def cancel(self) -> None:
        super().cancel()
        raise OSError("audio device gone")


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def announcer() -> RecordingAnnouncer:
    return RecordingAnnouncer()


@pytest.fixture
def broken_announcer() -> BrokenAnnouncer:
    return BrokenAnnouncer()
