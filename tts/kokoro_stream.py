"""Streaming client for Kokoro-FastAPI's OpenAI-compatible TTS endpoint."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Dict, Iterator, Optional

try:
    import requests
except ImportError as exc:  # pragma: no cover - import guard
    raise ImportError(
        "The requests package is required for the Kokoro TTS client. Install it with `pip install requests`."
    ) from exc


_ACCEPT_HEADER_MAP = {
    "mp3": "audio/mpeg",
    "wav": "audio/wav",
    "flac": "audio/flac",
    "opus": "audio/ogg",
    "pcm": "application/octet-stream",
}


@dataclass(frozen=True)
class KokoroConfig:
    """Runtime configuration for streaming against Kokoro-FastAPI."""

    base_url: str = "http://127.0.0.1:8880/v1"
    endpoint: str = "/audio/speech"
    model: str = "kokoro"
    voice: Optional[str] = None
    response_format: str = "pcm"
    speed: Optional[float] = None
    stream_chunk_bytes: int = 8_192
    connect_timeout: float = 2.0
    read_timeout: float = 15.0
    extra_payload: Dict[str, object] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.base_url:
            raise ValueError("base_url must be provided")
        object.__setattr__(self, "base_url", self.base_url.rstrip("/"))

        if not self.endpoint:
            raise ValueError("endpoint must be provided")
        if not self.endpoint.startswith("/"):
            object.__setattr__(self, "endpoint", f"/{self.endpoint}")

        if not self.model:
            raise ValueError("model must be provided")
        if self.speed is not None and self.speed <= 0:
            raise ValueError("speed must be positive")
        if self.stream_chunk_bytes <= 0:
            raise ValueError("stream_chunk_bytes must be positive")
        if self.connect_timeout <= 0 or self.read_timeout <= 0:
            raise ValueError("timeouts must be positive")

    def build_payload(self, text: str) -> Dict[str, object]:
        if not text or not text.strip():
            raise ValueError("text to synthesise must be non-empty")
        payload: Dict[str, object] = dict(self.extra_payload)
        payload.setdefault("model", self.model)
        payload["input"] = text
        if self.voice:
            payload.setdefault("voice", self.voice)
        if self.response_format:
            payload.setdefault("response_format", self.response_format)
        if self.speed is not None:
            payload.setdefault("speed", self.speed)
        return payload

    def build_url(self) -> str:
        return f"{self.base_url}{self.endpoint}"

    def accept_header(self) -> str:
        return _ACCEPT_HEADER_MAP.get(self.response_format.lower(), "*/*")


@dataclass(frozen=True)
class SynthesisChunk:
    """A chunk of streamed audio, or the terminal signal when ``is_last``."""

    data: bytes
    is_last: bool
    total_bytes: int
    content_type: Optional[str] = None
    headers: Dict[str, str] | None = None


class KokoroStreamer:
    """Client for streaming audio from Kokoro-FastAPI."""

    def __init__(self, config: KokoroConfig, *, session: Optional[requests.Session] = None) -> None:
        self.config = config
        self._session = session if session is not None else requests.Session()

    def close(self) -> None:
        self._session.close()

    def stream_synthesis(
        self,
        text: str,
        *,
        should_stop: Optional[Callable[[], bool]] = None,
    ) -> Iterator[SynthesisChunk]:
        """Yield audio chunks as soon as Kokoro produces them.

        When ``should_stop`` returns true the HTTP stream is closed and the
        generator ends without a terminal chunk.
        """

        payload = self.config.build_payload(text)
        response = self._session.post(
            self.config.build_url(),
            json=payload,
            headers={"accept": self.config.accept_header()},
            stream=True,
            timeout=(self.config.connect_timeout, self.config.read_timeout),
        )
        try:
            if response.status_code >= 400:
                detail = self._extract_error_detail(response)
                raise RuntimeError(
                    f"Kokoro TTS request failed with status {response.status_code}: {detail}"
                )

            content_type = response.headers.get("Content-Type")
            if content_type and "application/json" in content_type.lower():
                detail = self._extract_error_detail(response)
                raise RuntimeError(f"Kokoro TTS returned JSON payload instead of audio: {detail}")

            headers = {k.lower(): v for k, v in response.headers.items()}

            total_bytes = 0

            for raw_chunk in response.iter_content(chunk_size=self.config.stream_chunk_bytes):
                if should_stop is not None and should_stop():
                    return
                if not raw_chunk:
                    continue
                total_bytes += len(raw_chunk)
                yield SynthesisChunk(
                    data=raw_chunk,
                    is_last=False,
                    total_bytes=total_bytes,
                    content_type=content_type,
                    headers=headers,
                )

            yield SynthesisChunk(
                data=b"",
                is_last=True,
                total_bytes=total_bytes,
                content_type=content_type,
                headers=headers,
            )
        finally:
            response.close()

    def _extract_error_detail(self, response: requests.Response) -> str:
        try:
            data = response.json()
            return str(data)
        except ValueError:
            return response.text[:400]
