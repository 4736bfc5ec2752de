"""
Deepgram pre-recorded (batch) uploader.

Accumulate-then-upload:
- add_chunk() appends PCM to an in-memory accumulator
- transcribe() performs ONE buffered HTTP POST of everything recorded
- The uploader is source-agnostic: it returns unlabelled TranscriptEvents
  and never clears its own accumulator (the owning pipeline decides)

An empty recording never touches the network.
"""

from __future__ import annotations

import httpx

from adapters.asr.options import DeepgramOptions
from adapters.asr.responses import parse_batch_response
from audio.accumulator import BatchAccumulator
from constants import BATCH_UPLOAD_TIMEOUT_S, DEFAULT_CHANNELS
from errors import NoAudioError, RemoteConnectionError
from events.types import TranscriptEvent
from observability.logger import log_event
from observability.metrics import timed


class DeepgramBatch:
    """
    One recording window's worth of PCM plus the upload call.

    client:
        Optional shared httpx.AsyncClient. When omitted a client is created
        per upload and closed afterwards.
    """

    def __init__(
        self,
        options: DeepgramOptions,
        *,
        sample_rate: int,
        channels: int = DEFAULT_CHANNELS,
        name: str = "deepgram-batch",
        client: httpx.AsyncClient | None = None,
        timeout_s: float = BATCH_UPLOAD_TIMEOUT_S,
    ) -> None:
        self._options = options
        self._sample_rate = sample_rate
        self._channels = channels
        self._name = name
        self._client = client
        self._timeout_s = timeout_s
        self._accumulator = BatchAccumulator()

    @property
    def bytes_recorded(self) -> int:
        return self._accumulator.total_bytes

    def add_chunk(self, chunk: bytes) -> None:
        self._accumulator.append(chunk)

    def clear(self) -> None:
        self._accumulator.clear()

    def build_url(self) -> str:
        return self._options.batch_url(self._sample_rate, self._channels)

    async def transcribe(self) -> list[TranscriptEvent]:
        """
        Upload everything recorded and parse the result.

        Raises:
            NoAudioError: nothing recorded (no request is made).
            RemoteConnectionError: transport failure, non-2xx status
                (code = status), or a body that is not JSON.
        """
        if self._accumulator.is_empty():
            raise NoAudioError("No audio data recorded")

        audio = self._accumulator.join()
        url = self.build_url()

        log_event({
            "event_type": "BATCH_UPLOAD_STARTED",
            "level": "info",
            "component": self._name,
            "url": url,
            **self._accumulator.snapshot(self._sample_rate),
        })

        with timed("batch_upload", component=self._name, details={"bytes": len(audio)}):
            response = await self._post(url, audio)

        if not 200 <= response.status_code < 300:
            raise RemoteConnectionError(
                f"Deepgram batch API error ({response.status_code}): {response.text}",
                code=response.status_code,
                retryable=response.status_code >= 500,
            )

        try:
            body = response.json()
        except ValueError as e:
            # JSONDecodeError and UnicodeDecodeError
            raise RemoteConnectionError(
                "Invalid JSON response from Deepgram",
                code=response.status_code,
                retryable=False,
            ) from e

        events = parse_batch_response(body)
        log_event({
            "event_type": "BATCH_UPLOAD_COMPLETED",
            "level": "info",
            "component": self._name,
            "status": response.status_code,
            "transcripts": len(events),
        })
        return events

    async def _post(self, url: str, audio: bytes) -> httpx.Response:
        headers = {
            **self._options.auth_header(),
            "Content-Type": "audio/raw",
        }
        try:
            if self._client is not None:
                return await self._client.post(
                    url, content=audio, headers=headers, timeout=self._timeout_s
                )
            async with httpx.AsyncClient(timeout=self._timeout_s) as client:
                return await client.post(url, content=audio, headers=headers)
        except httpx.HTTPError as e:
            raise RemoteConnectionError(f"Batch upload failed: {e}") from e
