"""
Capture source factories.

Maps a logical source (system audio / microphone) plus its resolved options
onto a CaptureProcess with the right binary and command line. Also hosts the
one-shot binary invocations: permission check and input device listing.

Binary command line:
    --sample-rate N --chunk-duration MS
    --mute                              (system only)
    --include-processes 1,2             (system only)
    --exclude-processes 3,4             (system only)
    --device-id ID                      (mic only)
    --levels --fft-bins N --level-interval MS
    --check-permission                  (check mode)
    --list-devices                      (mic only; JSON array on stdout)
"""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass
from typing import Union

from audio.levels import LEVELS_DISABLED, ResolvedAudioLevels
from capture.binary import resolve_binary_path
from capture.options import ResolvedMicOptions, ResolvedSystemAudioOptions
from capture.process import CaptureProcess
from constants import (
    LIST_DEVICES_TIMEOUT_S,
    MIC_AUDIO_BINARY,
    PERMISSION_CHECK_READY_TIMEOUT_S,
    READY_TIMEOUT_S,
    SYSTEM_AUDIO_BINARY,
)
from enums.permission import PermissionKind
from enums.source import AudioSource
from errors import DeepgramCaptureError, PermissionDeniedError, SubprocessError
from observability.logger import log_event
from protocol.control import ControlChannelDecoder, ErrorMessage


ResolvedSourceOptions = Union[ResolvedSystemAudioOptions, ResolvedMicOptions]


@dataclass(frozen=True)
class InputDevice:
    """One microphone input device reported by the mic binary."""

    id: str
    name: str
    is_default: bool


# source -> (binary name, process name, permission)
_SOURCE_TABLE: dict[AudioSource, tuple[str, str, PermissionKind]] = {
    AudioSource.SYSTEM: (SYSTEM_AUDIO_BINARY, "system-audio", PermissionKind.SYSTEM_AUDIO),
    AudioSource.MIC: (MIC_AUDIO_BINARY, "mic-audio", PermissionKind.MICROPHONE),
}

_PERMISSION_SOURCES: dict[PermissionKind, AudioSource] = {
    PermissionKind.SYSTEM_AUDIO: AudioSource.SYSTEM,
    PermissionKind.MICROPHONE: AudioSource.MIC,
}


# -------------------------------------------------------------------------
# Command lines
# -------------------------------------------------------------------------

def _level_args(levels: ResolvedAudioLevels) -> list[str]:
    if not levels.enabled:
        return []
    return [
        "--levels",
        "--fft-bins", str(levels.fft_bins),
        "--level-interval", str(levels.interval_ms),
    ]


def system_audio_args(
    options: ResolvedSystemAudioOptions,
    levels: ResolvedAudioLevels = LEVELS_DISABLED,
) -> list[str]:
    args = [
        "--sample-rate", str(options.sample_rate),
        "--chunk-duration", str(options.chunk_duration_ms),
    ]
    if options.mute:
        args.append("--mute")
    if options.include_processes:
        args += ["--include-processes", ",".join(str(p) for p in options.include_processes)]
    if options.exclude_processes:
        args += ["--exclude-processes", ",".join(str(p) for p in options.exclude_processes)]
    return args + _level_args(levels)


def mic_args(
    options: ResolvedMicOptions,
    levels: ResolvedAudioLevels = LEVELS_DISABLED,
) -> list[str]:
    args = [
        "--sample-rate", str(options.sample_rate),
        "--chunk-duration", str(options.chunk_duration_ms),
    ]
    if options.device_id:
        args += ["--device-id", options.device_id]
    return args + _level_args(levels)


# -------------------------------------------------------------------------
# Factories
# -------------------------------------------------------------------------

def build_capture_process(
    source: AudioSource,
    options: ResolvedSourceOptions,
    levels: ResolvedAudioLevels = LEVELS_DISABLED,
    *,
    binary_path: str | None = None,
    ready_timeout_s: float = READY_TIMEOUT_S,
) -> CaptureProcess:
    """
    Build (but do not start) the capture process for one logical source.

    Raises:
        SubprocessError if the binary cannot be located.
        TypeError if options do not match source.
    """
    binary_name, process_name, permission = _SOURCE_TABLE[source]

    if source is AudioSource.SYSTEM:
        if not isinstance(options, ResolvedSystemAudioOptions):
            raise TypeError("system source requires ResolvedSystemAudioOptions")
        args = system_audio_args(options, levels)
    else:
        if not isinstance(options, ResolvedMicOptions):
            raise TypeError("mic source requires ResolvedMicOptions")
        args = mic_args(options, levels)

    return CaptureProcess(
        binary_path=binary_path or resolve_binary_path(binary_name),
        args=args,
        name=process_name,
        permission=permission,
        ready_timeout_s=ready_timeout_s,
    )


# -------------------------------------------------------------------------
# One-shot invocations
# -------------------------------------------------------------------------

async def check_permission(
    kind: PermissionKind,
    *,
    binary_path: str | None = None,
    ready_timeout_s: float = PERMISSION_CHECK_READY_TIMEOUT_S,
) -> bool:
    """
    Check one capture permission by starting the binary in check mode.

    Returns True when the binary becomes ready, False on any startup
    failure. Raises SubprocessError only if the binary cannot be located.
    """
    binary_name, process_name, _ = _SOURCE_TABLE[_PERMISSION_SOURCES[kind]]
    proc = CaptureProcess(
        binary_path=binary_path or resolve_binary_path(binary_name),
        args=["--check-permission"],
        name=f"{process_name}-permission-check",
        permission=kind,
        ready_timeout_s=ready_timeout_s,
    )

    try:
        await proc.start()
    except PermissionDeniedError:
        return False
    except DeepgramCaptureError as e:
        log_event({
            "event_type": "PERMISSION_CHECK_FAILED",
            "level": "warn",
            "component": proc.name,
            "error": str(e),
        })
        return False

    await proc.stop()
    return True


def _parse_devices(payload: bytes) -> list[InputDevice]:
    try:
        data = json.loads(payload.decode("utf-8", errors="replace") or "[]")
    except ValueError as e:
        raise SubprocessError(MIC_AUDIO_BINARY, f"Invalid device list: {e}") from e

    if not isinstance(data, list):
        raise SubprocessError(MIC_AUDIO_BINARY, "Invalid device list: expected a JSON array")

    devices: list[InputDevice] = []
    for raw in data:
        if not isinstance(raw, dict) or "id" not in raw:
            continue
        devices.append(
            InputDevice(
                id=str(raw["id"]),
                name=str(raw.get("name", "")),
                is_default=raw.get("isDefault") is True,
            )
        )
    return devices


async def list_input_devices(
    *,
    binary_path: str | None = None,
    timeout_s: float = LIST_DEVICES_TIMEOUT_S,
) -> list[InputDevice]:
    """
    List microphone input devices.

    Raises:
        PermissionDeniedError: the binary reported PERMISSION_DENIED.
        SubprocessError: spawn failure, timeout, non-zero exit, bad output.
    """
    path = binary_path or resolve_binary_path(MIC_AUDIO_BINARY)
    try:
        proc = await asyncio.create_subprocess_exec(
            path,
            "--list-devices",
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        raise SubprocessError(MIC_AUDIO_BINARY, f"Failed to spawn {path}: {e}") from e

    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout_s)
    except asyncio.TimeoutError:
        proc.kill()
        await proc.wait()
        raise SubprocessError(
            MIC_AUDIO_BINARY,
            f"Device listing did not finish within {int(timeout_s * 1000)}ms",
        ) from None

    if proc.returncode != 0:
        decoder = ControlChannelDecoder()
        for message in decoder.feed(stderr + b"\n"):
            if isinstance(message, ErrorMessage):
                if message.is_permission_denied:
                    raise PermissionDeniedError(PermissionKind.MICROPHONE, message.message)
                raise SubprocessError(
                    MIC_AUDIO_BINARY,
                    f"[{message.code}] {message.message}",
                    exit_code=proc.returncode,
                )
        raise SubprocessError(
            MIC_AUDIO_BINARY,
            f"Device listing failed (code: {proc.returncode})",
            exit_code=proc.returncode,
        )

    devices = _parse_devices(stdout)
    log_event({
        "event_type": "INPUT_DEVICES_LISTED",
        "level": "debug",
        "component": "mic-audio",
        "count": len(devices),
    })
    return devices
