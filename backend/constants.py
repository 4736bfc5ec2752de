"""
CONSTANTS
---------
Single source of truth for all behavioral constants in the capture core.

Rules:
- If changing a value changes runtime behavior, it belongs here.
- No magic numbers elsewhere in the codebase.
- Other modules MUST import from this file.
"""

from __future__ import annotations

from typing import Final, Tuple

# =============================================================================
# Audio Format (PCM16 mono @ 16kHz, 200ms chunks)
# =============================================================================

DEFAULT_SAMPLE_RATE_HZ: Final[int] = 16_000
DEFAULT_CHANNELS: Final[int] = 1
DEFAULT_BIT_DEPTH: Final[int] = 16
DEFAULT_CHUNK_DURATION_MS: Final[int] = 200
DEFAULT_ENCODING: Final[str] = "linear16"

# =============================================================================
# Capture Subprocess Lifecycle
# =============================================================================

READY_TIMEOUT_S: Final[float] = 10.0
PERMISSION_CHECK_READY_TIMEOUT_S: Final[float] = 5.0
STOP_GRACE_S: Final[float] = 3.0
FORCE_KILL_REAP_S: Final[float] = 3.0
LIST_DEVICES_TIMEOUT_S: Final[float] = 5.0

# Bytes requested per read() on the PCM pipe. The child decides chunk size;
# this only bounds a single read.
PIPE_READ_BYTES: Final[int] = 64 * 1024

# =============================================================================
# Native Capture Binaries
# =============================================================================

SYSTEM_AUDIO_BINARY: Final[str] = "dg-system-audio"
MIC_AUDIO_BINARY: Final[str] = "dg-mic-audio"
BINARY_DIR_ENV: Final[str] = "DG_CAPTURE_BINARY_DIR"

# Control-channel error codes emitted by the binaries
ERROR_CODE_PERMISSION_DENIED: Final[str] = "PERMISSION_DENIED"
ERROR_CODE_CAPTURE_ERROR: Final[str] = "CAPTURE_ERROR"
ERROR_CODE_DEVICE_NOT_FOUND: Final[str] = "DEVICE_NOT_FOUND"
ERROR_CODE_INVALID_ARGS: Final[str] = "INVALID_ARGS"

# =============================================================================
# Platform
# =============================================================================

MIN_MACOS_VERSION: Final[Tuple[int, int]] = (14, 2)

# =============================================================================
# Deepgram Endpoints & Defaults
# =============================================================================

DEEPGRAM_STREAMING_URL: Final[str] = "wss://api.deepgram.com/v1/listen"
DEEPGRAM_BATCH_URL: Final[str] = "https://api.deepgram.com/v1/listen"
DEEPGRAM_DEFAULT_MODEL: Final[str] = "nova-3"
DEEPGRAM_DEFAULT_LANGUAGE: Final[str] = "en"

WS_MAX_MESSAGE_BYTES: Final[int] = 2**22
BATCH_UPLOAD_TIMEOUT_S: Final[float] = 120.0

# =============================================================================
# Streaming Socket Lifecycle
# =============================================================================

KEEPALIVE_INTERVAL_S: Final[float] = 5.0
SOCKET_CLOSE_TIMEOUT_S: Final[float] = 3.0

# =============================================================================
# Reconnect Policy
# =============================================================================

RECONNECT_BASE_DELAY_S: Final[float] = 1.0
RECONNECT_MAX_ATTEMPTS: Final[int] = 5

CLOSE_CODE_NORMAL: Final[int] = 1000
CLOSE_CODE_POLICY_VIOLATION: Final[int] = 1008
CLOSE_CODE_AUTH_FAILED: Final[int] = 4001

# Close codes that must never trigger a reconnect. This is a property of the
# remote protocol version, not of the client.
NON_RETRYABLE_CLOSE_CODES: Final[frozenset[int]] = frozenset({
    CLOSE_CODE_NORMAL,
    CLOSE_CODE_POLICY_VIOLATION,
    CLOSE_CODE_AUTH_FAILED,
})

# =============================================================================
# Audio Level Analysis
# =============================================================================

LEVELS_DEFAULT_FFT_BINS: Final[int] = 128
LEVELS_DEFAULT_INTERVAL_MS: Final[int] = 50

# preset name -> (fft_bins, interval_ms)
LEVEL_PRESETS: Final[dict[str, Tuple[int, int]]] = {
    "spectrogram": (128, 50),
    "vu-meter": (0, 100),
    "waveform": (0, 20),
}


# =============================================================================
# Helper Functions
# =============================================================================

def bytes_per_second(
    sample_rate_hz: int = DEFAULT_SAMPLE_RATE_HZ,
    channels: int = DEFAULT_CHANNELS,
    bit_depth: int = DEFAULT_BIT_DEPTH,
) -> int:
    """Return the PCM byte rate for the given format."""
    return sample_rate_hz * channels * (bit_depth // 8)


def bytes_to_seconds(
    num_bytes: int,
    sample_rate_hz: int = DEFAULT_SAMPLE_RATE_HZ,
    channels: int = DEFAULT_CHANNELS,
    bit_depth: int = DEFAULT_BIT_DEPTH,
) -> float:
    """
    Convert a PCM byte count to duration in seconds.

    Non-positive input returns 0.0.
    """
    if num_bytes <= 0:
        return 0.0
    return num_bytes / bytes_per_second(sample_rate_hz, channels, bit_depth)
