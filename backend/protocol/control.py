"""
Control-channel codec for native capture binaries.

The capture binary writes raw PCM on stdout and line-delimited JSON on
stderr, one object per line:

    {"type":"ready","sampleRate":16000,"channels":1,"bitDepth":16,
     "chunkDurationMs":200,"frequencyBands":[0,125,...]}
    {"type":"error","code":"PERMISSION_DENIED","message":"..."}
    {"type":"stopped","reason":"signal"}
    {"type":"audio_level","rms":0.1,"peak":0.4,
     "fft":[{"freq":0,"magnitude":0.2}],"timestamp":1712345678.9}

Decoding rules:
- The trailing fragment after the last newline is retained, never emitted.
- Lines that are not JSON objects, or carry an unknown "type", are
  diagnostic noise: dropped, never raised.
- Unknown fields are ignored.

Usage example:

    decoder = ControlChannelDecoder()
    for message in decoder.feed(chunk):
        if isinstance(message, ReadyMessage):
            ...
"""

from __future__ import annotations

import codecs
import json
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Union

from constants import (
    DEFAULT_BIT_DEPTH,
    DEFAULT_CHANNELS,
    DEFAULT_CHUNK_DURATION_MS,
    DEFAULT_SAMPLE_RATE_HZ,
    ERROR_CODE_CAPTURE_ERROR,
    ERROR_CODE_PERMISSION_DENIED,
)
from events.types import FFTBin


# -------------------------
# Message variants
# -------------------------

@dataclass(frozen=True)
class CaptureHandshake:
    """
    Audio format agreed at subprocess startup.

    Received exactly once per subprocess lifetime; never renegotiated.
    frequency_bands is present only when level analysis is enabled.
    """
    sample_rate: int
    channels: int
    bit_depth: int
    chunk_duration_ms: int
    frequency_bands: tuple[float, ...] | None = None


@dataclass(frozen=True)
class ReadyMessage:
    handshake: CaptureHandshake


@dataclass(frozen=True)
class ErrorMessage:
    code: str
    message: str

    @property
    def is_permission_denied(self) -> bool:
        return self.code == ERROR_CODE_PERMISSION_DENIED


@dataclass(frozen=True)
class StoppedMessage:
    reason: str


@dataclass(frozen=True)
class AudioLevelMessage:
    rms: float
    peak: float
    fft: tuple[FFTBin, ...]
    timestamp: float


ControlMessage = Union[ReadyMessage, ErrorMessage, StoppedMessage, AudioLevelMessage]


# -------------------------
# Per-type decoders
# -------------------------

def _number(data: Mapping[str, Any], key: str, default: float) -> float:
    value = data.get(key, default)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    return value


def _decode_ready(data: Mapping[str, Any]) -> ReadyMessage:
    bands = data.get("frequencyBands")
    frequency_bands = (
        tuple(float(b) for b in bands if isinstance(b, (int, float)))
        if isinstance(bands, list)
        else None
    )
    return ReadyMessage(
        handshake=CaptureHandshake(
            sample_rate=int(_number(data, "sampleRate", DEFAULT_SAMPLE_RATE_HZ)),
            channels=int(_number(data, "channels", DEFAULT_CHANNELS)),
            bit_depth=int(_number(data, "bitDepth", DEFAULT_BIT_DEPTH)),
            chunk_duration_ms=int(_number(data, "chunkDurationMs", DEFAULT_CHUNK_DURATION_MS)),
            frequency_bands=frequency_bands,
        )
    )


def _decode_error(data: Mapping[str, Any]) -> ErrorMessage:
    return ErrorMessage(
        code=str(data.get("code") or ERROR_CODE_CAPTURE_ERROR),
        message=str(data.get("message") or "Unknown binary error"),
    )


def _decode_stopped(data: Mapping[str, Any]) -> StoppedMessage:
    return StoppedMessage(reason=str(data.get("reason") or "unknown"))


def _decode_audio_level(data: Mapping[str, Any]) -> AudioLevelMessage:
    raw_bins = data.get("fft")
    bins: list[FFTBin] = []
    if isinstance(raw_bins, list):
        for raw in raw_bins:
            if isinstance(raw, dict):
                bins.append(
                    FFTBin(
                        freq=float(_number(raw, "freq", 0.0)),
                        magnitude=float(_number(raw, "magnitude", 0.0)),
                    )
                )
    return AudioLevelMessage(
        rms=float(_number(data, "rms", 0.0)),
        peak=float(_number(data, "peak", 0.0)),
        fft=tuple(bins),
        timestamp=float(_number(data, "timestamp", 0.0)),
    )


_DECODERS: dict[str, Callable[[Mapping[str, Any]], ControlMessage]] = {
    "ready": _decode_ready,
    "error": _decode_error,
    "stopped": _decode_stopped,
    "audio_level": _decode_audio_level,
}


def decode_line(line: str) -> ControlMessage | None:
    """
    Decode one control line.

    Returns None for blank lines, non-JSON, non-object JSON and unknown
    message types. Pure function; never raises.
    """
    stripped = line.strip()
    if not stripped:
        return None

    try:
        data = json.loads(stripped)
    except ValueError:
        return None

    if not isinstance(data, dict):
        return None

    tag = data.get("type")
    if not isinstance(tag, str):
        return None

    decoder = _DECODERS.get(tag)
    if decoder is None:
        # Unknown tag: forward-compatible ignore
        return None

    try:
        return decoder(data)
    except (TypeError, ValueError, OverflowError):
        # Non-finite or out-of-range numbers
        return None


# -------------------------
# Streaming decoder
# -------------------------

class ControlChannelDecoder:
    """
    Incremental line decoder for the stderr control channel.

    State is limited to the trailing partial line (and any partial UTF-8
    sequence split across reads).
    """

    def __init__(self) -> None:
        self._utf8 = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        self._noise: list[str] = []

    @property
    def pending(self) -> str:
        """The retained, not-yet-terminated fragment."""
        return self._buffer

    def feed(self, chunk: bytes) -> list[ControlMessage]:
        """Append chunk and return every complete message, in order."""
        self._buffer += self._utf8.decode(chunk)
        *lines, self._buffer = self._buffer.split("\n")

        messages: list[ControlMessage] = []
        for line in lines:
            message = decode_line(line)
            if message is None:
                if line.strip():
                    self._noise.append(line.strip())
                continue
            messages.append(message)
        return messages

    def take_noise(self) -> list[str]:
        """Return and forget the non-message lines seen since the last call."""
        noise, self._noise = self._noise, []
        return noise
