"""Audio sink that records each utterance to a numbered WAV file."""

from __future__ import annotations

import threading
import wave
from pathlib import Path
from typing import Callable, List, Optional

BYTES_PER_SAMPLE = 2


class WaveFileSink:
    """Writes mono 16-bit PCM utterances into ``directory``."""

    def __init__(self, directory: Path, *, prefix: str = "announcement") -> None:
        self.directory = directory
        self.prefix = prefix
        self.directory.mkdir(parents=True, exist_ok=True)
        self._counter = 0
        self._lock = threading.Lock()
        self.written: List[Path] = []

    def play_pcm(
        self,
        pcm: bytes,
        *,
        sample_rate: int,
        should_stop: Optional[Callable[[], bool]] = None,
    ) -> bool:
        if sample_rate <= 0:
            raise ValueError("sample_rate must be positive")
        if should_stop is not None and should_stop():
            return False
        with self._lock:
            self._counter += 1
            path = self.directory / f"{self.prefix}_{self._counter:03d}.wav"
        with wave.open(str(path), "wb") as handle:
            handle.setnchannels(1)
            handle.setsampwidth(BYTES_PER_SAMPLE)
            handle.setframerate(sample_rate)
            handle.writeframes(pcm)
        self.written.append(path)
        return True

    def close(self) -> None:
        return None
