"""Session controller package: tick-driven orchestration of a breathing session."""

from .session_controller import (
    SessionController,
    SessionControllerConfig,
    StateListener,
    TickScheduler,
    TimerHandle,
)

__all__ = [
    "SessionController",
    "SessionControllerConfig",
    "StateListener",
    "TickScheduler",
    "TimerHandle",
]
