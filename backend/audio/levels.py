"""
Audio level analysis configuration and fan-out helpers.

The capture binary computes RMS / peak / FFT itself; this module only
resolves what to ask it for and converts its control messages into public
AudioLevelEvent payloads.
"""

from __future__ import annotations

from dataclasses import dataclass

from constants import (
    LEVEL_PRESETS,
    LEVELS_DEFAULT_FFT_BINS,
    LEVELS_DEFAULT_INTERVAL_MS,
)
from enums.source import AudioSource
from events.types import AudioLevelEvent
from protocol.control import AudioLevelMessage


@dataclass(frozen=True)
class AudioLevelsConfig:
    """
    Caller-facing level configuration.

    preset wins over the explicit fields when set.
    """
    preset: str | None = None
    enabled: bool | None = None
    fft_bins: int | None = None
    interval_ms: int | None = None


@dataclass(frozen=True)
class ResolvedAudioLevels:
    """Fully-resolved level analysis settings passed to capture binaries."""
    enabled: bool
    fft_bins: int
    interval_ms: int


LEVELS_DISABLED = ResolvedAudioLevels(
    enabled=False,
    fft_bins=0,
    interval_ms=LEVELS_DEFAULT_INTERVAL_MS,
)


def resolve_audio_levels(config: AudioLevelsConfig | None) -> ResolvedAudioLevels:
    """
    Resolve level analysis settings.

    - No config: disabled
    - Known preset: preset values, enabled
    - Unknown preset: disabled
    - Explicit fields: disabled unless enabled=True; 128 bins / 50 ms defaults
    """
    if config is None:
        return LEVELS_DISABLED

    if config.preset:
        preset = LEVEL_PRESETS.get(config.preset)
        if preset is None:
            return LEVELS_DISABLED
        fft_bins, interval_ms = preset
        return ResolvedAudioLevels(enabled=True, fft_bins=fft_bins, interval_ms=interval_ms)

    return ResolvedAudioLevels(
        enabled=bool(config.enabled),
        fft_bins=(
            config.fft_bins if config.fft_bins is not None else LEVELS_DEFAULT_FFT_BINS
        ),
        interval_ms=(
            config.interval_ms if config.interval_ms is not None else LEVELS_DEFAULT_INTERVAL_MS
        ),
    )


def level_event_from_message(
    message: AudioLevelMessage,
    source: AudioSource,
) -> AudioLevelEvent:
    """Label a control-channel level message with its logical source."""
    return AudioLevelEvent(
        source=source,
        rms=message.rms,
        peak=message.peak,
        fft=message.fft,
        timestamp=message.timestamp,
    )
