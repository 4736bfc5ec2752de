"""
Capture option resolution.

Caller-facing option objects carry optional fields; the resolve functions
apply every default exactly once and return a fully-resolved, immutable
object that the capture binaries and pipelines consume unchanged.
"""

from __future__ import annotations

from dataclasses import dataclass

from constants import DEFAULT_CHUNK_DURATION_MS, DEFAULT_SAMPLE_RATE_HZ
from errors import ValidationError


# =============================================================================
# Caller-facing options
# =============================================================================

@dataclass(frozen=True)
class SystemAudioOptions:
    enabled: bool | None = None
    sample_rate: int | None = None
    chunk_duration_ms: int | None = None
    mute: bool = False
    include_processes: tuple[int, ...] = ()
    exclude_processes: tuple[int, ...] = ()


@dataclass(frozen=True)
class MicOptions:
    enabled: bool | None = None
    sample_rate: int | None = None
    chunk_duration_ms: int | None = None
    device_id: str | None = None


# =============================================================================
# Resolved options
# =============================================================================

@dataclass(frozen=True)
class ResolvedSystemAudioOptions:
    enabled: bool
    sample_rate: int
    chunk_duration_ms: int
    mute: bool
    include_processes: tuple[int, ...]
    exclude_processes: tuple[int, ...]


@dataclass(frozen=True)
class ResolvedMicOptions:
    enabled: bool
    sample_rate: int
    chunk_duration_ms: int
    device_id: str | None


def _positive(name: str, value: int | None, default: int) -> int:
    if value is None:
        return default
    if value <= 0:
        raise ValidationError(f"{name} must be positive, got {value}")
    return value


def resolve_system_audio_options(
    options: SystemAudioOptions | None,
) -> ResolvedSystemAudioOptions:
    """
    Sources are enabled unless explicitly disabled.

    Raises:
        ValidationError on a non-positive sample rate / chunk duration.
    """
    options = options or SystemAudioOptions()
    return ResolvedSystemAudioOptions(
        enabled=options.enabled is not False,
        sample_rate=_positive("sample_rate", options.sample_rate, DEFAULT_SAMPLE_RATE_HZ),
        chunk_duration_ms=_positive(
            "chunk_duration_ms", options.chunk_duration_ms, DEFAULT_CHUNK_DURATION_MS
        ),
        mute=options.mute,
        include_processes=tuple(options.include_processes),
        exclude_processes=tuple(options.exclude_processes),
    )


def resolve_mic_options(options: MicOptions | None) -> ResolvedMicOptions:
    options = options or MicOptions()
    return ResolvedMicOptions(
        enabled=options.enabled is not False,
        sample_rate=_positive("sample_rate", options.sample_rate, DEFAULT_SAMPLE_RATE_HZ),
        chunk_duration_ms=_positive(
            "chunk_duration_ms", options.chunk_duration_ms, DEFAULT_CHUNK_DURATION_MS
        ),
        device_id=options.device_id or None,
    )
