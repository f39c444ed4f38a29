#!/usr/bin/env python3
"""Speak one or more phrases through the announcer to check the voice setup."""

from __future__ import annotations

import argparse
import sys
import time
from pathlib import Path
from typing import Iterable

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from tts import AnnouncerConfig, AudioSink, ESPSpeaker, KokoroAnnouncer, KokoroConfig, WaveFileSink

DEFAULT_PHRASES = ("Starting in 3", "Begin. Inhale deeply", "Exhale slowly")


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Probe Kokoro speech through a speaker or WAV directory")
    parser.add_argument("phrases", nargs="*", help="Phrases to speak (default: a few session cues)")
    target = parser.add_mutually_exclusive_group(required=True)
    target.add_argument("--esp-port", help="Serial port of the ESP speaker")
    target.add_argument("--record-dir", type=Path, help="Directory to write WAV files into")
    parser.add_argument("--baud", type=int, default=921_600, help="Serial baudrate (default 921600)")
    parser.add_argument("--kokoro-base-url", default="http://127.0.0.1:8880/v1", help="Kokoro base URL")
    parser.add_argument("--kokoro-voice", help="Voice identifier (e.g. af_bella)")
    parser.add_argument("--playback-rate", type=int, default=16_000, help="Playback sample rate (default 16000)")
    parser.add_argument(
        "--interrupt-after",
        type=float,
        default=None,
        help="Announce the next phrase after this many seconds instead of waiting (tests replacement)",
    )
    parser.add_argument("--timeout", type=float, default=15.0, help="Seconds to wait per phrase")
    return parser


def open_sink(args: argparse.Namespace) -> AudioSink:
    if args.record_dir is not None:
        return WaveFileSink(args.record_dir)
    return ESPSpeaker(args.esp_port, args.baud)


def main(argv: Iterable[str] | None = None) -> int:
    parser = build_arg_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)
    phrases = args.phrases or list(DEFAULT_PHRASES)

    try:
        sink = open_sink(args)
    except (OSError, ValueError) as exc:
        print(f"Failed to open audio sink: {exc}", file=sys.stderr)
        return 1

    announcer = KokoroAnnouncer(
        KokoroConfig(base_url=args.kokoro_base_url, voice=args.kokoro_voice),
        sink,
        config=AnnouncerConfig(playback_sample_rate=args.playback_rate),
    )
    try:
        for phrase in phrases:
            print(f"=> {phrase}", flush=True)
            start = time.monotonic()
            announcer.announce(phrase)
            if args.interrupt_after is not None:
                time.sleep(args.interrupt_after)
                continue
            if not announcer.drain(args.timeout):
                print(f"   still speaking after {args.timeout:.1f}s", file=sys.stderr)
                continue
            print(f"<= done in {time.monotonic() - start:.2f}s", flush=True)
        announcer.drain(args.timeout)
    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
    finally:
        announcer.close()
        sink.close()

    if isinstance(sink, WaveFileSink):
        for path in sink.written:
            print(f"Saved {path}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
