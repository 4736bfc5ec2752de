# tools/live_transcribe.py
"""
Manual live transcription check.

Loads AppConfig from the environment, starts the manager and prints every
transcript until Ctrl-C (or --seconds elapses).

    PYTHONPATH=backend DEEPGRAM_API_KEY=... python tools/live_transcribe.py
    PYTHONPATH=backend python tools/live_transcribe.py        (reads .env)
    PYTHONPATH=backend python tools/live_transcribe.py --check-permissions
    PYTHONPATH=backend python tools/live_transcribe.py --list-devices
"""
from __future__ import annotations

import argparse
import asyncio
import sys
from typing import Any

from dotenv import load_dotenv

from config import AppConfig, build_manager_config
from events.types import (
    AudioLevelEvent,
    BatchProgressEvent,
    EventType,
    TranscriptEvent,
    UtteranceEndEvent,
)
from observability import logger
from transcription.manager import TranscriptionManager


def _print_transcript(event: TranscriptEvent) -> None:
    tag = "final" if event.is_final else "interim"
    source = event.source.value if event.source is not None else "?"
    print(f"[{source}:{tag}] {event.transcript} (conf={event.confidence:.2f})")


def _print_utterance_end(event: UtteranceEndEvent) -> None:
    print(f"[{event.source.value}] -- utterance end @ {event.last_word_end}")


def _print_level(event: AudioLevelEvent) -> None:
    bar = "#" * int(event.rms * 40)
    print(f"[{event.source.value}] {bar:<40} peak={event.peak:.2f}", file=sys.stderr)


def _print_progress(event: BatchProgressEvent) -> None:
    print(f"[batch] {event.phase.value} ({event.bytes_recorded} bytes)")


def _print_error(error: Any) -> None:
    print(f"[error] {type(error).__name__}: {error}", file=sys.stderr)


async def _run(seconds: float | None, show_levels: bool) -> int:
    app_config = AppConfig.load_from_env()
    logger.set_level(app_config.log_level)
    manager = TranscriptionManager(build_manager_config(app_config))

    manager.on(EventType.TRANSCRIPT, _print_transcript)
    manager.on(EventType.UTTERANCE_END, _print_utterance_end)
    manager.on(EventType.BATCH_PROGRESS, _print_progress)
    manager.on(EventType.ERROR, _print_error)
    if show_levels:
        manager.on(EventType.AUDIO_LEVEL, _print_level)

    await manager.start()
    print(f"[asr] capturing ({app_config.transcription_mode.value}); Ctrl-C to stop")
    try:
        if seconds is None:
            await asyncio.Event().wait()
        else:
            await asyncio.sleep(seconds)
    except asyncio.CancelledError:
        pass
    finally:
        await manager.stop()
    return 0


async def _check_permissions() -> int:
    result = await TranscriptionManager.check_permissions()
    print(f"system_audio: {result.system_audio.value}")
    print(f"microphone:   {result.microphone.value}")
    return 0


async def _list_devices() -> int:
    for device in await TranscriptionManager.list_input_devices():
        marker = "*" if device.is_default else " "
        print(f"{marker} {device.id}\t{device.name}")
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(description="Live desktop transcription")
    parser.add_argument("--seconds", type=float, default=None, help="Stop after N seconds")
    parser.add_argument("--levels", action="store_true", help="Print audio levels to stderr")
    parser.add_argument("--check-permissions", action="store_true")
    parser.add_argument("--list-devices", action="store_true")
    args = parser.parse_args()
    load_dotenv()

    if args.check_permissions:
        return asyncio.run(_check_permissions())
    if args.list_devices:
        return asyncio.run(_list_devices())

    try:
        return asyncio.run(_run(args.seconds, args.levels))
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    raise SystemExit(main())
