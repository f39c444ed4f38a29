"""Serial speaker sink for the ESP32-S3 audio firmware."""

from __future__ import annotations

import math
import time
from array import array
from typing import Callable, Optional

import serial


DEFAULT_BAUD = 921_600
SERIAL_READ_TIMEOUT = 0.2  # seconds per underlying read
BYTES_PER_SAMPLE = 2
STREAM_CHUNK_BYTES = 1024
DEFAULT_HIGHPASS_CUTOFF_HZ = 250.0
READY_BANNER_TIMEOUT = 5.0


class HighPassFilter:
    """First-order high-pass filter with int16 clamping."""

    def __init__(self, alpha: float) -> None:
        self.alpha = alpha
        self.prev_input: float = 0.0
        self.prev_output: float = 0.0

    def reset(self) -> None:
        self.prev_input = 0.0
        self.prev_output = 0.0

    def process_sample(self, sample: int) -> int:
        output = self.alpha * (self.prev_output + sample - self.prev_input)
        self.prev_input = float(sample)
        self.prev_output = output
        return max(min(int(round(output)), 32767), -32768)


def compute_high_pass_alpha(sample_rate: int, cutoff_hz: float = DEFAULT_HIGHPASS_CUTOFF_HZ) -> float:
    if sample_rate <= 0:
        raise ValueError("sample_rate must be positive")
    rc = 1.0 / (2.0 * math.pi * cutoff_hz)
    dt = 1.0 / float(sample_rate)
    return rc / (rc + dt)


class SerialTimeoutError(RuntimeError):
    """Raised when the ESP does not accept data within the expected time."""


class ESPSpeaker:
    """Plays mono 16-bit PCM on the ESP speaker over the serial link.

    The microphone stream is paused on connect; this sink only ever talks.
    """

    def __init__(
        self,
        port: str,
        baudrate: int = DEFAULT_BAUD,
        *,
        read_timeout: float = SERIAL_READ_TIMEOUT,
        write_timeout: float = 2.0,
        verbose: bool = False,
        serial_factory: Callable[..., serial.Serial] = serial.Serial,
    ) -> None:
        self._serial = serial_factory(
            port=port,
            baudrate=baudrate,
            timeout=read_timeout,
            write_timeout=write_timeout,
        )
        self._verbose = verbose
        self._high_pass_filter: Optional[HighPassFilter] = None
        self._serial.reset_output_buffer()
        if not self._await_ready_banner() and self._verbose:
            self._log("<=", "READY banner not observed; continuing")
        self._send_command("PAUSE")
        self._serial.reset_input_buffer()

    def close(self) -> None:
        self._serial.close()

    def play_pcm(
        self,
        pcm: bytes,
        *,
        sample_rate: int,
        should_stop: Optional[Callable[[], bool]] = None,
    ) -> bool:
        """Stream ``pcm`` in real time. Returns False if playback was cut short."""

        if sample_rate <= 0:
            raise ValueError("sample_rate must be positive")
        sample_count = len(pcm) // BYTES_PER_SAMPLE
        self._send_command(f"START {sample_rate} 1 16 {sample_count}")
        try:
            return self._stream_bytes(
                pcm,
                sample_rate * BYTES_PER_SAMPLE,
                high_pass_filter=self._prepare_high_pass_filter(sample_rate),
                should_stop=should_stop,
            )
        finally:
            self._send_command("END")

    # ------------------------------------------------------------------
    # Helpers

    def _await_ready_banner(self) -> bool:
        deadline = time.monotonic() + READY_BANNER_TIMEOUT
        while time.monotonic() < deadline:
            line = self._serial.readline()
            if not line:
                continue
            text = line.decode("utf-8", errors="replace").strip()
            if not text:
                continue
            self._log("<=", text)
            if text == "READY":
                return True
        return False

    def _log(self, direction: str, message: str) -> None:
        if self._verbose:
            print(f"{direction} {message}")

    def _send_command(self, line: str) -> None:
        self._log("=>", line)
        self._serial.write(f"{line}\n".encode("ascii"))
        self._serial.flush()

    def _prepare_high_pass_filter(self, sample_rate: int) -> HighPassFilter:
        alpha = compute_high_pass_alpha(sample_rate)
        if self._high_pass_filter is None:
            self._high_pass_filter = HighPassFilter(alpha)
        else:
            self._high_pass_filter.alpha = alpha
            self._high_pass_filter.reset()
        return self._high_pass_filter

    def _stream_bytes(
        self,
        payload: bytes,
        bytes_per_second: int,
        *,
        high_pass_filter: Optional[HighPassFilter] = None,
        should_stop: Optional[Callable[[], bool]] = None,
    ) -> bool:
        next_deadline = time.perf_counter()
        for start in range(0, len(payload), STREAM_CHUNK_BYTES):
            if should_stop is not None and should_stop():
                self._serial.reset_output_buffer()
                return False
            chunk = payload[start:start + STREAM_CHUNK_BYTES]
            if high_pass_filter is not None:
                samples = array("h")
                samples.frombytes(chunk[: len(chunk) - len(chunk) % BYTES_PER_SAMPLE])
                for i, sample in enumerate(samples):
                    samples[i] = high_pass_filter.process_sample(sample)
                chunk = samples.tobytes()
            written = self._serial.write(chunk)
            if written != len(chunk):  # pragma: no cover - serial guard
                raise SerialTimeoutError(
                    f"Short write while streaming PCM ({written}/{len(chunk)} bytes)"
                )
            self._serial.flush()
            next_deadline += len(chunk) / bytes_per_second
            sleep_time = next_deadline - time.perf_counter()
            if sleep_time > 0:
                time.sleep(sleep_time)
            else:
                next_deadline = time.perf_counter()
        return True
