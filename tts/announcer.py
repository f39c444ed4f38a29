"""Fire-and-forget voice announcements backed by Kokoro-FastAPI."""

from __future__ import annotations

import io
import json
import logging
import math
import threading
import wave
from array import array
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Callable, Optional, Protocol

import requests

from .kokoro_stream import KokoroConfig, KokoroStreamer

SPEECH_RATE = 0.8
SUPPORTED_FORMATS = ("pcm", "wav")

LOGGER = logging.getLogger("announcer")
if not LOGGER.handlers:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("%(message)s"))
    LOGGER.addHandler(handler)
LOGGER.setLevel(logging.INFO)


class AudioSink(Protocol):
    """Anything that can play mono 16-bit PCM."""

    def play_pcm(
        self,
        pcm: bytes,
        *,
        sample_rate: int,
        should_stop: Optional[Callable[[], bool]] = None,
    ) -> bool:  # pragma: no cover - structural
        ...

    def close(self) -> None:  # pragma: no cover - structural
        ...


class Announcer(Protocol):
    """Protocol shared by announcement backends."""

    def announce(self, text: str) -> None:  # pragma: no cover - structural
        ...

    def cancel(self) -> None:  # pragma: no cover - structural
        ...

    def drain(self, timeout: Optional[float] = None) -> bool:  # pragma: no cover - structural
        ...

    def close(self) -> None:  # pragma: no cover - structural
        ...


class NullAnnouncer:
    """Used when no speech backend is available. Every call is a no-op."""

    def announce(self, text: str) -> None:
        return None

    def cancel(self) -> None:
        return None

    def drain(self, timeout: Optional[float] = None) -> bool:
        return True

    def close(self) -> None:
        return None


@dataclass(frozen=True)
class AnnouncerConfig:
    """Playback settings for synthesised speech."""

    playback_sample_rate: int = 16_000
    tts_expected_sample_rate: int = 24_000
    playback_gain_db: float = 0.0

    def __post_init__(self) -> None:
        if self.playback_sample_rate <= 0 or self.tts_expected_sample_rate <= 0:
            raise ValueError("sample rates must be positive")


class _Utterance:
    def __init__(self, text: str) -> None:
        self.text = text
        self.cancelled = threading.Event()
        self.finished = threading.Event()


class KokoroAnnouncer:
    """Speaks one phrase at a time; a new phrase replaces the current one.

    ``announce`` returns immediately. Synthesis and playback run on a daemon
    worker per utterance. Only one utterance owns the sink at a time.
    """

    def __init__(
        self,
        kokoro_config: KokoroConfig,
        sink: AudioSink,
        *,
        config: Optional[AnnouncerConfig] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        if kokoro_config.response_format.lower() not in SUPPORTED_FORMATS:
            raise ValueError(
                f"response_format must be one of {', '.join(SUPPORTED_FORMATS)} for playback"
            )
        # Rate is fixed; extra_payload entries take precedence in build_payload.
        extras = {k: v for k, v in kokoro_config.extra_payload.items() if k != "speed"}
        self.streamer = KokoroStreamer(
            replace(kokoro_config, speed=SPEECH_RATE, extra_payload=extras),
            session=session,
        )
        self.sink = sink
        self.config = config or AnnouncerConfig()
        self._slot_lock = threading.Lock()
        self._playback_lock = threading.Lock()
        self._current: Optional[_Utterance] = None
        self._closed = False

    # ------------------------------------------------------------------
    # Public API

    def announce(self, text: str) -> None:
        if self._closed or not text or not text.strip():
            return
        utterance = _Utterance(text.strip())
        with self._slot_lock:
            if self._current is not None:
                self._current.cancelled.set()
            self._current = utterance
        worker = threading.Thread(
            target=self._speak,
            args=(utterance,),
            name="announcer",
            daemon=True,
        )
        worker.start()

    def cancel(self) -> None:
        with self._slot_lock:
            if self._current is not None:
                self._current.cancelled.set()
                self._current = None

    def drain(self, timeout: Optional[float] = None) -> bool:
        """Wait for the current utterance to finish. True if nothing is left."""

        with self._slot_lock:
            current = self._current
        if current is None:
            return True
        return current.finished.wait(timeout)

    def close(self) -> None:
        self.cancel()
        self._closed = True
        self.streamer.close()

    # ------------------------------------------------------------------
    # Worker

    def _speak(self, utterance: _Utterance) -> None:
        try:
            audio = self._synthesize(utterance)
            if audio is None:
                return
            pcm, sample_rate = audio
            with self._playback_lock:
                if utterance.cancelled.is_set():
                    return
                completed = self.sink.play_pcm(
                    pcm,
                    sample_rate=sample_rate,
                    should_stop=utterance.cancelled.is_set,
                )
            self._log_event(
                logging.DEBUG,
                "announce.played" if completed else "announce.interrupted",
                text=utterance.text,
                sample_rate=sample_rate,
                bytes=len(pcm),
            )
        except (requests.RequestException, RuntimeError, OSError, ValueError, wave.Error) as exc:
            self._log_event(
                logging.WARNING,
                "announce.failed",
                text=utterance.text,
                error=str(exc),
                error_type=exc.__class__.__name__,
            )
        finally:
            utterance.finished.set()
            with self._slot_lock:
                if self._current is utterance:
                    self._current = None

    def _synthesize(self, utterance: _Utterance) -> Optional[tuple[bytes, int]]:
        buffer = bytearray()
        headers: dict = {}
        content_type: Optional[str] = None
        for chunk in self.streamer.stream_synthesis(utterance.text, should_stop=utterance.cancelled.is_set):
            if chunk.headers:
                headers.update(chunk.headers)
            if chunk.content_type:
                content_type = chunk.content_type
            if chunk.is_last:
                break
            buffer.extend(chunk.data)
        if utterance.cancelled.is_set():
            return None
        if not buffer:
            raise RuntimeError("Kokoro synthesis returned no audio data")

        data = bytes(buffer)
        if data[:4] == b"RIFF":
            pcm, sample_rate = self._decode_wav(data)
        else:
            pcm = data[: len(data) - len(data) % 2]
            sample_rate = self._infer_sample_rate(headers, content_type) or self.config.tts_expected_sample_rate

        pcm, sample_rate = self._resample_if_needed(pcm, sample_rate, self.config.playback_sample_rate)
        return self._apply_gain(pcm, self.config.playback_gain_db), sample_rate

    def _log_event(self, level: int, event: str, **metadata) -> None:
        payload = {"ts": datetime.now(timezone.utc).isoformat(), "event": event}
        payload.update(metadata)
        LOGGER.log(level, json.dumps(payload, ensure_ascii=False))

    # ------------------------------------------------------------------
    # PCM helpers

    @staticmethod
    def _decode_wav(data: bytes) -> tuple[bytes, int]:
        with wave.open(io.BytesIO(data), "rb") as handle:
            if handle.getsampwidth() != 2:
                raise ValueError("Only 16-bit WAV audio is supported")
            frames = handle.readframes(handle.getnframes())
            if handle.getnchannels() > 1:
                samples = array("h", frames)
                channels = handle.getnchannels()
                frames = array("h", samples[::channels]).tobytes()
            return frames, handle.getframerate()

    @staticmethod
    def _infer_sample_rate(headers: dict, content_type: Optional[str]) -> Optional[int]:
        for key in ("x-audio-sample-rate", "x-sample-rate", "sample-rate", "samplerate"):
            if key in headers:
                try:
                    return int(str(headers[key]).strip())
                except ValueError:
                    continue
        if content_type:
            for part in content_type.split(";"):
                if "=" in part:
                    name, value = part.split("=", 1)
                    if name.strip().lower() in {"rate", "samplerate"}:
                        try:
                            return int(value.strip())
                        except ValueError:
                            continue
        return None

    @staticmethod
    def _apply_gain(pcm: bytes, gain_db: float) -> bytes:
        if not pcm or gain_db == 0.0:
            return pcm
        factor = math.pow(10.0, gain_db / 20.0)
        samples = array("h", pcm)
        for i, sample in enumerate(samples):
            samples[i] = max(-32768, min(32767, int(round(sample * factor))))
        return samples.tobytes()

    @staticmethod
    def _resample_if_needed(pcm: bytes, src_rate: int, target_rate: int) -> tuple[bytes, int]:
        # Only downsampling; slower sources are played at their own rate.
        if target_rate <= 0 or src_rate <= target_rate:
            return pcm, src_rate

        samples = array("h", pcm)
        if not samples:
            return pcm, target_rate
        ratio = src_rate / target_rate
        target_length = max(1, int(len(samples) / ratio))
        resampled = array("h", [0] * target_length)
        for i in range(target_length):
            src_index = i * ratio
            left = int(math.floor(src_index))
            right = min(left + 1, len(samples) - 1)
            frac = src_index - left
            if right == left:
                value = samples[left]
            else:
                value = int(round(samples[left] + (samples[right] - samples[left]) * frac))
            resampled[i] = value
        return resampled.tobytes(), target_rate
