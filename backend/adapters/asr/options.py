"""
Deepgram transcription options.

One resolution point for every Deepgram query parameter, shared by the
streaming socket and the batch uploader so the two never drift apart.
"""

from __future__ import annotations

import urllib.parse
from dataclasses import dataclass

from constants import (
    DEEPGRAM_BATCH_URL,
    DEEPGRAM_DEFAULT_LANGUAGE,
    DEEPGRAM_DEFAULT_MODEL,
    DEEPGRAM_STREAMING_URL,
    DEFAULT_CHANNELS,
    DEFAULT_ENCODING,
)
from errors import ValidationError


@dataclass(frozen=True)
class DeepgramOptions:
    """
    Immutable Deepgram connection options.

    api_url:
        Custom streaming endpoint (wss:// or ws://). The batch endpoint is
        derived from it by swapping the scheme.
    """

    api_key: str
    model: str = DEEPGRAM_DEFAULT_MODEL
    language: str = DEEPGRAM_DEFAULT_LANGUAGE
    encoding: str = DEFAULT_ENCODING
    punctuate: bool = True
    smart_format: bool = True
    interim_results: bool = True
    utterances: bool = False
    utterance_end_ms: int | None = None
    vad_events: bool = False
    api_url: str | None = None

    def __post_init__(self) -> None:
        if not self.api_key:
            raise ValidationError("Deepgram API key is required")
        if self.utterance_end_ms is not None and self.utterance_end_ms <= 0:
            raise ValidationError(
                f"utterance_end_ms must be positive, got {self.utterance_end_ms}"
            )

    # -------------------------------------------------------------------------
    # Query parameters
    # -------------------------------------------------------------------------

    def _common_params(self, sample_rate: int, channels: int) -> dict[str, str]:
        params: dict[str, str] = {
            "encoding": self.encoding,
            "sample_rate": str(sample_rate),
            "channels": str(channels),
            "model": self.model,
            "language": self.language,
        }
        if self.punctuate:
            params["punctuate"] = "true"
        if self.smart_format:
            params["smart_format"] = "true"
        if self.utterances:
            params["utterances"] = "true"
        return params

    def streaming_params(
        self,
        sample_rate: int,
        channels: int = DEFAULT_CHANNELS,
    ) -> dict[str, str]:
        params = self._common_params(sample_rate, channels)
        if self.interim_results:
            params["interim_results"] = "true"
        if self.utterance_end_ms:
            params["utterance_end_ms"] = str(self.utterance_end_ms)
        if self.vad_events:
            params["vad_events"] = "true"
        return params

    def batch_params(
        self,
        sample_rate: int,
        channels: int = DEFAULT_CHANNELS,
    ) -> dict[str, str]:
        """Same set as streaming, minus the streaming-only flags."""
        return self._common_params(sample_rate, channels)

    # -------------------------------------------------------------------------
    # Endpoints
    # -------------------------------------------------------------------------

    @property
    def streaming_endpoint(self) -> str:
        return self.api_url or DEEPGRAM_STREAMING_URL

    @property
    def batch_endpoint(self) -> str:
        if not self.api_url:
            return DEEPGRAM_BATCH_URL
        return self.api_url.replace("wss://", "https://").replace("ws://", "http://")

    def streaming_url(self, sample_rate: int, channels: int = DEFAULT_CHANNELS) -> str:
        qs = urllib.parse.urlencode(self.streaming_params(sample_rate, channels))
        return f"{self.streaming_endpoint}?{qs}"

    def batch_url(self, sample_rate: int, channels: int = DEFAULT_CHANNELS) -> str:
        qs = urllib.parse.urlencode(self.batch_params(sample_rate, channels))
        return f"{self.batch_endpoint}?{qs}"

    def auth_header(self) -> dict[str, str]:
        return {"Authorization": f"Token {self.api_key}"}
