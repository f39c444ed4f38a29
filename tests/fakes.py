"""In-memory stand-ins for requests sessions, serial ports and audio sinks."""

from __future__ import annotations

import threading
import time
from typing import Callable, List, Optional, Tuple


class FakeResponse:
    def __init__(self, chunks=(), status_code=200, headers=None, json_body=None, text=""):
        self._chunks = list(chunks)
        self.status_code = status_code
        self.headers = headers or {"Content-Type": "application/octet-stream"}
        self._json_body = json_body
        self.text = text
        self.closed = False

    def iter_content(self, chunk_size=1):
        yield from self._chunks

    def json(self):
        if self._json_body is None:
            raise ValueError("no json")
        return self._json_body

    def close(self):
        self.closed = True


class FakeSession:
    """Returns ``response`` (or a fresh one from ``factory``) for every POST."""

    def __init__(self, response=None, *, factory=None, error: Optional[Exception] = None):
        self.response = response
        self.factory = factory
        self.error = error
        self.requests = []
        self.closed = False

    def post(self, url, **kwargs):
        self.requests.append((url, kwargs))
        if self.error is not None:
            raise self.error
        if self.factory is not None:
            return self.factory(kwargs["json"]["input"])
        return self.response

    def close(self):
        self.closed = True


class RecordingSink:
    def __init__(self) -> None:
        self.played: List[Tuple[bytes, int]] = []
        self.closed = False

    def play_pcm(self, pcm: bytes, *, sample_rate: int, should_stop: Optional[Callable[[], bool]] = None) -> bool:
        self.played.append((pcm, sample_rate))
        return True

    def close(self) -> None:
        self.closed = True


class BlockingSink(RecordingSink):
    """First utterance blocks until it is told to stop; later ones play at once."""

    def __init__(self) -> None:
        super().__init__()
        self.started = threading.Event()
        self.interrupted = threading.Event()

    def play_pcm(self, pcm: bytes, *, sample_rate: int, should_stop: Optional[Callable[[], bool]] = None) -> bool:
        if not self.started.is_set():
            self.started.set()
            deadline = time.monotonic() + 5.0
            while time.monotonic() < deadline:
                if should_stop is not None and should_stop():
                    self.interrupted.set()
                    return False
                time.sleep(0.002)
            return True
        return super().play_pcm(pcm, sample_rate=sample_rate, should_stop=should_stop)


class FakeSerial:
    def __init__(self, *, banner: bytes = b"READY\n", short_write: bool = False, **kwargs) -> None:
        self.kwargs = kwargs
        self._lines = [b"booting\n", banner]
        self.writes: List[bytes] = []
        self.short_write = short_write
        self.closed = False
        self.input_resets = 0
        self.output_resets = 0

    def readline(self) -> bytes:
        if self._lines:
            return self._lines.pop(0)
        return b""

    def write(self, data: bytes) -> int:
        self.writes.append(bytes(data))
        if self.short_write and _as_command(data) is None:
            return len(data) - 1
        return len(data)

    def flush(self) -> None:
        return None

    def reset_input_buffer(self) -> None:
        self.input_resets += 1

    def reset_output_buffer(self) -> None:
        self.output_resets += 1

    def close(self) -> None:
        self.closed = True

    @property
    def commands(self) -> List[str]:
        return [cmd for cmd in (_as_command(w) for w in self.writes) if cmd is not None]


def _as_command(data: bytes) -> Optional[str]:
    if not data.endswith(b"\n"):
        return None
    try:
        text = data.decode("ascii").strip()
    except UnicodeDecodeError:
        return None
    if text.split(" ", 1)[0] in {"START", "END", "PAUSE"}:
        return text
    return None
