"""
Transcription delivery modes.

Modes are orthogonal to lifecycle states:
- State answers: "Is the pipeline running?"
- Mode answers:  "When does audio reach Deepgram?"
"""

from __future__ import annotations

from enum import Enum


class TranscriptionMode(str, Enum):
    """
    STREAMING:
        Frames are forwarded to a live socket as they arrive.

    BATCH:
        Frames are accumulated in memory and uploaded once on stop.
    """

    STREAMING = "streaming"
    BATCH = "batch"


class BatchPhase(str, Enum):
    """Progress phases reported by a batch pipeline."""

    RECORDING = "recording"
    UPLOADING = "uploading"
    PROCESSING = "processing"
