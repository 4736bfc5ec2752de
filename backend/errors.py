"""
Error taxonomy for the capture core.

Propagation rules:
- Errors during start() are raised to the caller (fail fast).
- Errors during normal operation are emitted as `error` events, never raised
  into unrelated call stacks.
- stop() never raises; termination problems are logged and absorbed.
"""

from __future__ import annotations

from enums.permission import PermissionKind


class DeepgramCaptureError(Exception):
    """Base class for all capture core errors."""


class PermissionDeniedError(DeepgramCaptureError):
    """
    Raised when the OS has not granted capture permission.

    Kept distinct from SubprocessError so hosts can show remediation UI.
    """

    def __init__(self, permission: PermissionKind, message: str | None = None) -> None:
        if message is None:
            what = (
                "System audio recording"
                if permission is PermissionKind.SYSTEM_AUDIO
                else "Microphone access"
            )
            message = (
                f"Permission denied: {what} not granted. "
                "Please grant permission in System Settings > Privacy & Security."
            )
        super().__init__(message)
        self.permission = permission


class PlatformError(DeepgramCaptureError):
    """Raised when running on an unsupported platform or OS version."""

    def __init__(self, message: str | None = None) -> None:
        super().__init__(
            message
            or "Audio capture requires macOS 14.2 (Sonoma) or later with Core Audio Taps support."
        )


class SubprocessError(DeepgramCaptureError):
    """
    Raised when a capture binary fails to start, reports a failure, or crashes.

    exit_code / signal are set when the process is known to have exited.
    """

    def __init__(
        self,
        binary_name: str,
        message: str,
        *,
        exit_code: int | None = None,
        signal: str | None = None,
    ) -> None:
        super().__init__(f"{binary_name}: {message}")
        self.binary_name = binary_name
        self.exit_code = exit_code
        self.signal = signal


class RemoteConnectionError(DeepgramCaptureError):
    """
    Raised (or emitted) on Deepgram socket / HTTP failures.

    code:
        WebSocket close code or HTTP status, when known.

    retryable:
        False once automatic recovery has been exhausted or is pointless
        (auth failure, policy violation).
    """

    def __init__(
        self,
        message: str,
        *,
        code: int | None = None,
        retryable: bool = True,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.retryable = retryable


class ValidationError(DeepgramCaptureError):
    """Raised synchronously when caller configuration is unusable."""


class NoAudioError(ValidationError):
    """Raised when a batch upload is requested with nothing recorded."""
