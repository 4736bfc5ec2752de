"""
Public event definitions exposed to the host application.

Rules:
- Events describe facts that have occurred.
- Events carry data only (no behavior).
- Payloads are immutable; consumers may accumulate them, pipelines do not.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum

from enums.mode import BatchPhase
from enums.source import AudioSource


# =============================================================================
# Event Names
# =============================================================================

class EventType(str, Enum):
    """
    Event names on the public surface.

    Values double as Emitter keys.
    """

    TRANSCRIPT = "transcript"
    SYSTEM_TRANSCRIPT = "system_transcript"
    MIC_TRANSCRIPT = "mic_transcript"
    UTTERANCE_END = "utterance_end"
    AUDIO_LEVEL = "audio_level"
    BATCH_PROGRESS = "batch_progress"
    STARTED = "started"
    STOPPED = "stopped"
    ERROR = "error"


# =============================================================================
# Transcripts
# =============================================================================

@dataclass(frozen=True)
class TranscriptWord:
    """One recognized word with timing in seconds from stream start."""

    word: str
    start: float
    end: float
    confidence: float
    punctuated_word: str | None = None


@dataclass(frozen=True)
class TranscriptEvent:
    """
    One transcript result.

    source:
        None while the event is still source-agnostic (batch parsing);
        pipelines tag it via with_source() before emitting.
    """

    transcript: str
    is_final: bool
    confidence: float
    words: tuple[TranscriptWord, ...] = ()
    source: AudioSource | None = None
    speech_final: bool | None = None
    channel_index: tuple[int, ...] | None = None
    duration: float | None = None
    start: float | None = None

    def with_source(self, source: AudioSource) -> TranscriptEvent:
        """Return a copy labelled with source."""
        return replace(self, source=source)


@dataclass(frozen=True)
class UtteranceEndEvent:
    """Utterance boundary reported in streaming mode only."""

    source: AudioSource
    last_word_end: float | None = None


# =============================================================================
# Audio Levels
# =============================================================================

@dataclass(frozen=True)
class FFTBin:
    """One labelled frequency bin."""

    freq: float
    magnitude: float


@dataclass(frozen=True)
class AudioLevelEvent:
    """
    Throttled level analysis for one source.

    rms / peak are in [0, 1]. fft is empty unless bins were requested.
    """

    source: AudioSource
    rms: float
    peak: float
    fft: tuple[FFTBin, ...] = field(default_factory=tuple)
    timestamp: float = 0.0


# =============================================================================
# Batch Progress
# =============================================================================

@dataclass(frozen=True)
class BatchProgressEvent:
    """Phase transition of a batch pipeline."""

    phase: BatchPhase
    bytes_recorded: int
    source: AudioSource | None = None
