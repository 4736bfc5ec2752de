"""
Platform checks.

System audio capture needs Core Audio Taps (macOS 14.2+).
"""

from __future__ import annotations

import platform
import sys

from constants import MIN_MACOS_VERSION
from errors import PlatformError


def get_macos_version() -> tuple[int, int, int]:
    """
    Return (major, minor, patch) of the running macOS.

    Raises:
        PlatformError when not on macOS or the version is unreadable.
    """
    if sys.platform != "darwin":
        raise PlatformError("Audio capture is only supported on macOS.")

    release = platform.mac_ver()[0]
    if not release:
        raise PlatformError("Failed to determine macOS version.")

    parts: list[int] = []
    for piece in release.split(".")[:3]:
        try:
            parts.append(int(piece))
        except ValueError:
            raise PlatformError(f"Unparseable macOS version {release!r}.") from None
    while len(parts) < 3:
        parts.append(0)
    return parts[0], parts[1], parts[2]


def assert_platform() -> None:
    """Raise PlatformError unless running on a supported macOS version."""
    major, minor, _ = get_macos_version()
    if (major, minor) < MIN_MACOS_VERSION:
        need_major, need_minor = MIN_MACOS_VERSION
        raise PlatformError(
            f"macOS {major}.{minor} detected. Audio capture requires macOS "
            f"{need_major}.{need_minor}+ (Sonoma with Core Audio Taps)."
        )
