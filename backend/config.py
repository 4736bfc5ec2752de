"""
Application configuration.

Responsibilities:
- Read environment variables
- Provide a typed, immutable config object
- Convert it into the option objects the manager consumes

Non-responsibilities:
- No behavioral constants (see constants.py)
- No runtime mutation
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from adapters.asr.options import DeepgramOptions
from audio.levels import AudioLevelsConfig
from capture.options import MicOptions, SystemAudioOptions
from constants import (
    DEEPGRAM_DEFAULT_LANGUAGE,
    DEEPGRAM_DEFAULT_MODEL,
    DEFAULT_CHUNK_DURATION_MS,
    DEFAULT_SAMPLE_RATE_HZ,
)
from enums.mode import TranscriptionMode
from errors import ValidationError
from transcription.manager import ManagerConfig


_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off"}


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    value = raw.strip().lower()
    if value in _TRUTHY:
        return True
    if value in _FALSY:
        return False
    raise ValidationError(f"{name} must be a boolean, got {raw!r}")


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValidationError(f"{name} must be an integer, got {raw!r}") from None


@dataclass(frozen=True)
class AppConfig:
    """
    Immutable application configuration.

    Constructed once at process startup.
    """

    # ------------------------------------------------------------------
    # Environment
    # ------------------------------------------------------------------

    log_level: str

    # ------------------------------------------------------------------
    # Deepgram
    # ------------------------------------------------------------------

    deepgram_api_key: str | None
    deepgram_api_url: str | None
    deepgram_model: str
    deepgram_language: str

    # ------------------------------------------------------------------
    # Capture
    # ------------------------------------------------------------------

    transcription_mode: TranscriptionMode
    system_audio_enabled: bool
    mic_enabled: bool
    sample_rate: int
    chunk_duration_ms: int
    mic_device_id: str | None
    audio_level_preset: str | None

    # ------------------------------------------------------------------
    # Factory
    # ------------------------------------------------------------------

    @staticmethod
    def load_from_env() -> AppConfig:
        """
        Load configuration from environment variables.

        Raises:
            ValidationError on malformed values (unknown mode, non-integer
            sample rate, non-boolean flag).
        """
        raw_mode = os.environ.get("TRANSCRIPTION_MODE", TranscriptionMode.STREAMING.value)
        try:
            mode = TranscriptionMode(raw_mode.strip().lower())
        except ValueError:
            raise ValidationError(
                f"TRANSCRIPTION_MODE must be one of "
                f"{[m.value for m in TranscriptionMode]}, got {raw_mode!r}"
            ) from None

        return AppConfig(
            log_level=os.environ.get("LOG_LEVEL", "warn").lower(),

            deepgram_api_key=os.environ.get("DEEPGRAM_API_KEY"),
            deepgram_api_url=os.environ.get("DEEPGRAM_API_URL") or None,
            deepgram_model=os.environ.get("DEEPGRAM_MODEL", DEEPGRAM_DEFAULT_MODEL),
            deepgram_language=os.environ.get("DEEPGRAM_LANGUAGE", DEEPGRAM_DEFAULT_LANGUAGE),

            transcription_mode=mode,
            system_audio_enabled=_env_bool("SYSTEM_AUDIO_ENABLED", True),
            mic_enabled=_env_bool("MIC_ENABLED", True),
            sample_rate=_env_int("SAMPLE_RATE", DEFAULT_SAMPLE_RATE_HZ),
            chunk_duration_ms=_env_int("CHUNK_DURATION_MS", DEFAULT_CHUNK_DURATION_MS),
            mic_device_id=os.environ.get("MIC_DEVICE_ID") or None,
            audio_level_preset=os.environ.get("AUDIO_LEVEL_PRESET") or None,
        )


def build_manager_config(config: AppConfig) -> ManagerConfig:
    """
    Convert environment configuration into manager options.

    Raises:
        ValidationError when the API key is missing or a value is unusable.
    """
    if not config.deepgram_api_key:
        raise ValidationError("DEEPGRAM_API_KEY is not set")

    return ManagerConfig(
        deepgram=DeepgramOptions(
            api_key=config.deepgram_api_key,
            model=config.deepgram_model,
            language=config.deepgram_language,
            api_url=config.deepgram_api_url,
        ),
        system_audio=SystemAudioOptions(
            enabled=config.system_audio_enabled,
            sample_rate=config.sample_rate,
            chunk_duration_ms=config.chunk_duration_ms,
        ),
        mic=MicOptions(
            enabled=config.mic_enabled,
            sample_rate=config.sample_rate,
            chunk_duration_ms=config.chunk_duration_ms,
            device_id=config.mic_device_id,
        ),
        mode=config.transcription_mode,
        audio_levels=(
            AudioLevelsConfig(preset=config.audio_level_preset)
            if config.audio_level_preset
            else None
        ),
    )
