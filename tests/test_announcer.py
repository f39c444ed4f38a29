"""Tests for KokoroAnnouncer: fire-and-forget, single-slot replacement, silent failure."""

import io
import wave
from array import array

import pytest
import requests

from fakes import BlockingSink, FakeResponse, FakeSession, RecordingSink
from tts import SPEECH_RATE, AnnouncerConfig, KokoroAnnouncer, KokoroConfig, NullAnnouncer

PCM_16K = array("h", [100, -100, 200, -200] * 8).tobytes()


def pcm_response(_text=None, *, pcm=PCM_16K, rate=16_000):
    return FakeResponse(
        chunks=[pcm[:16], pcm[16:]],
        headers={"Content-Type": "application/octet-stream", "X-Sample-Rate": str(rate)},
    )


def make_announcer(session, sink, **config):
    return KokoroAnnouncer(KokoroConfig(), sink, config=AnnouncerConfig(**config), session=session)


def test_announce_plays_synthesised_pcm():
    sink = RecordingSink()
    session = FakeSession(factory=pcm_response)
    announcer = make_announcer(session, sink)

    announcer.announce("Inhale deeply")
    assert announcer.drain(2.0)

    assert sink.played == [(PCM_16K, 16_000)]
    payload = session.requests[0][1]["json"]
    assert payload["input"] == "Inhale deeply"
    assert payload["speed"] == SPEECH_RATE == 0.8
    assert "pitch" not in payload


def test_speech_rate_overrides_configured_speed():
    announcer = KokoroAnnouncer(KokoroConfig(speed=1.3), RecordingSink(), session=FakeSession(factory=pcm_response))
    assert announcer.streamer.config.speed == SPEECH_RATE


def test_extra_payload_cannot_change_speech_rate():
    session = FakeSession(factory=pcm_response)
    config = KokoroConfig(extra_payload={"speed": 1.5, "lang_code": "a"})
    announcer = KokoroAnnouncer(config, RecordingSink(), session=session)

    announcer.announce("Inhale deeply")
    announcer.drain(2.0)

    payload = session.requests[0][1]["json"]
    assert payload["speed"] == SPEECH_RATE
    assert payload["lang_code"] == "a"


def test_new_announcement_replaces_current_one():
    sink = BlockingSink()
    session = FakeSession(factory=pcm_response)
    announcer = make_announcer(session, sink)

    announcer.announce("Starting in 3")
    assert sink.started.wait(2.0)
    announcer.announce("2")

    assert sink.interrupted.wait(2.0)
    assert announcer.drain(2.0)
    assert len(sink.played) == 1
    assert [r[1]["json"]["input"] for r in session.requests] == ["Starting in 3", "2"]


def test_cancel_interrupts_playback():
    sink = BlockingSink()
    announcer = make_announcer(FakeSession(factory=pcm_response), sink)

    announcer.announce("Exhale slowly")
    assert sink.started.wait(2.0)
    announcer.cancel()

    assert sink.interrupted.wait(2.0)
    assert announcer.drain(0.5)
    assert sink.played == []


def test_unreachable_backend_is_silent(caplog):
    sink = RecordingSink()
    session = FakeSession(error=requests.ConnectionError("connection refused"))
    announcer = make_announcer(session, sink)

    announcer.announce("Begin. Inhale deeply")
    announcer.drain(2.0)

    assert sink.played == []
    assert any("announce.failed" in record.getMessage() for record in caplog.records)


def test_http_error_is_logged_not_raised(caplog):
    sink = RecordingSink()
    session = FakeSession(FakeResponse(status_code=500, text="boom"))
    announcer = make_announcer(session, sink)

    announcer.announce("Exhale slowly")
    announcer.drain(2.0)

    assert sink.played == []
    assert any("RuntimeError" in record.getMessage() for record in caplog.records)


def test_blank_text_is_ignored():
    session = FakeSession(factory=pcm_response)
    announcer = make_announcer(session, RecordingSink())
    announcer.announce("   ")
    announcer.announce("")
    assert announcer.drain(0.1)
    assert session.requests == []


def test_downsamples_to_playback_rate():
    sink = RecordingSink()
    pcm_24k = array("h", list(range(0, 240))).tobytes()
    session = FakeSession(factory=lambda text: pcm_response(pcm=pcm_24k, rate=24_000))
    announcer = make_announcer(session, sink, playback_sample_rate=16_000)

    announcer.announce("Inhale deeply")
    announcer.drain(2.0)

    pcm, rate = sink.played[0]
    assert rate == 16_000
    assert len(pcm) // 2 == 160


def test_wav_response_is_decoded():
    buffer = io.BytesIO()
    with wave.open(buffer, "wb") as handle:
        handle.setnchannels(1)
        handle.setsampwidth(2)
        handle.setframerate(16_000)
        handle.writeframes(PCM_16K)
    body = buffer.getvalue()

    sink = RecordingSink()
    session = FakeSession(factory=lambda text: FakeResponse(chunks=[body], headers={"Content-Type": "audio/wav"}))
    announcer = KokoroAnnouncer(KokoroConfig(response_format="wav"), sink, session=session)

    announcer.announce("Meditation ended")
    announcer.drain(2.0)

    assert sink.played == [(PCM_16K, 16_000)]


def test_unplayable_format_is_rejected():
    with pytest.raises(ValueError):
        KokoroAnnouncer(KokoroConfig(response_format="mp3"), RecordingSink())


def test_close_stops_new_announcements():
    session = FakeSession(factory=pcm_response)
    announcer = make_announcer(session, RecordingSink())
    announcer.close()
    announcer.announce("Inhale deeply")
    assert session.requests == []
    assert session.closed


def test_apply_gain_clamps():
    pcm = array("h", [20_000, -20_000, 10]).tobytes()
    boosted = array("h", KokoroAnnouncer._apply_gain(pcm, 6.0))
    assert boosted[0] == 32767
    assert boosted[1] == -32768
    assert boosted[2] == 20


def test_infer_sample_rate_from_content_type():
    assert KokoroAnnouncer._infer_sample_rate({}, "audio/L16; rate=22050") == 22050
    assert KokoroAnnouncer._infer_sample_rate({"x-sample-rate": "24000"}, None) == 24000
    assert KokoroAnnouncer._infer_sample_rate({}, "application/octet-stream") is None


def test_null_announcer_is_a_no_op():
    announcer = NullAnnouncer()
    announcer.announce("Inhale deeply")
    announcer.cancel()
    assert announcer.drain(0) is True
    announcer.close()
