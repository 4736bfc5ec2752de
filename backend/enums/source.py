"""
Logical audio source enumeration.
"""

from __future__ import annotations

from enum import Enum


class AudioSource(str, Enum):
    """
    Label distinguishing independently-run pipelines.

    Each source has its own capture binary, its own remote connection and
    no shared mutable state with the other.
    """

    SYSTEM = "system"
    MIC = "mic"
