#!/usr/bin/env python3
"""Run a guided vortex breathing session in the terminal with spoken cues."""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import json
import logging
import signal
import sys
from datetime import datetime
from pathlib import Path
from typing import Iterable, Mapping, Optional

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from breath import DESCRIPTION, TITLE, Phase, SessionState, pattern_lines, render_console_line
from controller import SessionController, SessionControllerConfig
from tts import (
    Announcer,
    AnnouncerConfig,
    AudioSink,
    ESPSpeaker,
    KokoroAnnouncer,
    KokoroConfig,
    NullAnnouncer,
    WaveFileSink,
)

DEFAULT_SERIAL_PORT = "/dev/gradi-esp-mediate"


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Guided vortex breathing: countdown, six shrinking breath cycles, spoken cues",
    )
    parser.add_argument(
        "--esp-port",
        default=None,
        help=f"Serial port of the ESP speaker (e.g. {DEFAULT_SERIAL_PORT})",
    )
    parser.add_argument("--baud", type=int, default=921_600, help="Serial baudrate (default 921600)")
    parser.add_argument(
        "--record-dir",
        type=Path,
        default=None,
        help="Write each spoken cue to a WAV file in this directory instead of a speaker",
    )
    parser.add_argument("--silent", action="store_true", help="Disable voice cues entirely")
    parser.add_argument("--kokoro-base-url", default="http://127.0.0.1:8880/v1", help="Kokoro base URL")
    parser.add_argument("--kokoro-endpoint", default="/audio/speech", help="Kokoro endpoint path")
    parser.add_argument("--kokoro-voice", help="Voice identifier (e.g. af_bella)")
    parser.add_argument(
        "--kokoro-format",
        default="pcm",
        choices=("pcm", "wav"),
        help="Requested audio format from Kokoro",
    )
    parser.add_argument(
        "--kokoro-extra",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Additional JSON payload fields forwarded to Kokoro (repeatable)",
    )
    parser.add_argument("--playback-rate", type=int, default=16_000, help="Playback sample rate (default 16000)")
    parser.add_argument("--tts-expected-rate", type=int, default=24_000, help="Expected Kokoro sample rate")
    parser.add_argument("--playback-gain-db", type=float, default=0.0, help="Gain applied to spoken cues")
    parser.add_argument(
        "--log-dir",
        type=Path,
        default=Path("logs/sessions"),
        help="Directory to write JSONL session logs",
    )
    parser.add_argument(
        "--no-log",
        dest="log_dir",
        action="store_const",
        const=None,
        help="Do not write a session log",
    )
    parser.add_argument(
        "--drain-timeout",
        type=float,
        default=8.0,
        help="Seconds to wait for the final cue to finish speaking",
    )
    parser.add_argument("--verbose", action="store_true", help="Echo state transitions to stderr")
    parser.add_argument("--verbose-esp", action="store_true", help="Print raw ESP protocol logs")
    return parser


def parse_extra(values: Iterable[str]) -> Mapping[str, object]:
    extras = {}
    for item in values:
        if "=" not in item:
            raise ValueError(f"Invalid extra payload entry (expected key=value): {item}")
        key, raw_value = item.split("=", 1)
        extras[key.strip()] = auto_cast(raw_value.strip())
    return extras


def auto_cast(value: str) -> object:
    lowered = value.lower()
    if lowered in {"true", "false"}:
        return lowered == "true"
    try:
        return json.loads(value)
    except json.JSONDecodeError:
        pass
    try:
        return float(value) if "." in value else int(value)
    except ValueError:
        return value


def build_sink(args: argparse.Namespace) -> Optional[AudioSink]:
    if args.record_dir is not None:
        return WaveFileSink(args.record_dir)
    if args.esp_port:
        try:
            return ESPSpeaker(args.esp_port, args.baud, verbose=args.verbose_esp)
        except (OSError, ValueError) as exc:
            print(f"Speaker unavailable ({exc}); continuing without voice cues", file=sys.stderr)
    return None


def build_announcer(args: argparse.Namespace, sink: Optional[AudioSink], extras: Mapping[str, object]) -> Announcer:
    if args.silent or sink is None:
        return NullAnnouncer()
    kokoro_cfg = KokoroConfig(
        base_url=args.kokoro_base_url,
        endpoint=args.kokoro_endpoint,
        voice=args.kokoro_voice,
        response_format=args.kokoro_format,
        extra_payload=dict(extras),
    )
    announcer_cfg = AnnouncerConfig(
        playback_sample_rate=args.playback_rate,
        tts_expected_sample_rate=args.tts_expected_rate,
        playback_gain_db=args.playback_gain_db,
    )
    return KokoroAnnouncer(kokoro_cfg, sink, config=announcer_cfg)


def session_log_path(args: argparse.Namespace) -> Optional[Path]:
    if args.log_dir is None:
        return None
    args.log_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    return args.log_dir / f"session_{timestamp}.jsonl"


def print_intro() -> None:
    print(TITLE)
    print(DESCRIPTION)
    print()
    print("The Vortex Breath Pattern:")
    for line in pattern_lines():
        print(f"  - {line}")
    print()
    print("Press Ctrl+C to end the session.")
    print()


async def run_session(
    controller: SessionController,
    announcer: Announcer,
    *,
    drain_timeout: float,
    render: bool = True,
) -> SessionState:
    """Start a session, wait until it completes or is stopped, then drain speech."""

    loop = asyncio.get_running_loop()
    finished = asyncio.Event()

    def on_change(state: SessionState) -> None:
        if render:
            print("\r" + render_console_line(state) + "    ", end="", flush=True)
        if not state.is_running:
            finished.set()

    controller.add_listener(on_change)
    installed = []
    for sig in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError, RuntimeError):
            loop.add_signal_handler(sig, controller.stop)
            installed.append(sig)
    try:
        controller.start()
        await finished.wait()
    finally:
        for sig in installed:
            loop.remove_signal_handler(sig)
        controller.remove_listener(on_change)

    await asyncio.to_thread(announcer.drain, drain_timeout)
    if render:
        print()
    return controller.state


async def _main_async(args: argparse.Namespace, announcer: Announcer, log_path: Optional[Path]) -> SessionState:
    loop = asyncio.get_running_loop()
    controller = SessionController(
        scheduler=loop,
        announcer=announcer,
        config=SessionControllerConfig(log_path=log_path),
    )
    try:
        return await run_session(controller, announcer, drain_timeout=args.drain_timeout)
    finally:
        controller.close()


def main(argv: Iterable[str] | None = None) -> int:
    parser = build_arg_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    try:
        extras = parse_extra(args.kokoro_extra)
    except ValueError as exc:
        parser.error(str(exc))
        return 2

    if not args.verbose:
        logging.getLogger("session_controller").setLevel(logging.WARNING)

    log_path = session_log_path(args)

    with contextlib.ExitStack() as stack:
        sink = build_sink(args)
        if sink is not None:
            stack.callback(sink.close)
        try:
            announcer = build_announcer(args, sink, extras)
        except ValueError as exc:
            print(f"ERROR: {exc}", file=sys.stderr)
            return 1
        stack.callback(announcer.close)

        print_intro()
        final_state = asyncio.run(_main_async(args, announcer, log_path))

    if final_state.phase is Phase.COMPLETE:
        print("Practice completed")
    else:
        print("Session ended")
    if log_path is not None:
        print(f"Logs written to {log_path}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
