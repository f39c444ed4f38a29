"""Voice announcements: Kokoro-FastAPI synthesis and PCM audio sinks."""

from .announcer import (
    SPEECH_RATE,
    Announcer,
    AnnouncerConfig,
    AudioSink,
    KokoroAnnouncer,
    NullAnnouncer,
)
from .esp_speaker import ESPSpeaker, SerialTimeoutError
from .kokoro_stream import KokoroConfig, KokoroStreamer, SynthesisChunk
from .wave_sink import WaveFileSink

__all__ = [
    "Announcer",
    "AnnouncerConfig",
    "AudioSink",
    "ESPSpeaker",
    "KokoroAnnouncer",
    "KokoroConfig",
    "KokoroStreamer",
    "NullAnnouncer",
    "SPEECH_RATE",
    "SerialTimeoutError",
    "SynthesisChunk",
    "WaveFileSink",
]
