"""
OS capture permission enumerations.
"""

from __future__ import annotations

from enum import Enum


class PermissionKind(str, Enum):
    """Which OS permission a capture binary depends on."""

    SYSTEM_AUDIO = "system_audio"
    MICROPHONE = "microphone"


class PermissionStatus(str, Enum):
    """Outcome of a one-shot permission check."""

    GRANTED = "granted"
    DENIED = "denied"
    UNKNOWN = "unknown"
