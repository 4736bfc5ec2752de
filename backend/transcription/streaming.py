"""
Streaming pipeline: capture process -> Deepgram live socket.

Ordering (IMPORTANT):
- start(): socket connects BEFORE the capture process starts, so no audio is
  produced before there is somewhere to send it.
- stop(): capture process stops BEFORE the socket closes, so no frame is sent
  into a socket that is already closing.
- Frames are forwarded synchronously from the capture event to socket.send();
  no reordering buffer exists anywhere on the path.

Unexpected capture exit while running is an unrequested stop: an `error`
carrying the exit code, then `stopped`. Nothing is raised.
"""

from __future__ import annotations

import asyncio

from adapters.asr.deepgram_socket import DeepgramSocket, SocketEvent
from adapters.asr.responses import (
    DeepgramResponse,
    ErrorResponse,
    ResultsResponse,
    UtteranceEndResponse,
    transcript_from_results,
)
from capture.process import CaptureEvent, CaptureProcess, ProcessExit
from enums.source import AudioSource
from errors import DeepgramCaptureError, RemoteConnectionError, ValidationError
from events.types import EventType, UtteranceEndEvent
from observability.logger import log_event
from transcription.base import PipelineBase


class StreamingPipeline(PipelineBase):
    """
    One source, one capture process, one DeepgramSocket.

    Events: transcript, utterance_end, audio_level, error, started, stopped.
    """

    _kind = "streaming"

    def __init__(
        self,
        process: CaptureProcess,
        socket: DeepgramSocket,
        source: AudioSource,
    ) -> None:
        super().__init__(process, source)
        self._socket = socket
        self._stopping = False
        self._cleanup_task: asyncio.Task[None] | None = None

    async def start(self) -> None:
        """
        Connect, wire, then start capture.

        Raises whatever the socket or capture process raised; on failure the
        socket is closed and nothing is left running.
        """
        if self._running or self._stopping:
            raise ValidationError(f"{self._name}: already started")

        await self._socket.connect()
        self._wire()

        try:
            handshake = await self._process.start()
        except (DeepgramCaptureError, asyncio.CancelledError):
            self._detach()
            await self._socket.close()
            raise

        self._running = True
        log_event({
            "event_type": "PIPELINE_STARTED",
            "level": "info",
            "component": self._name,
            "sample_rate": handshake.sample_rate,
            "chunk_duration_ms": handshake.chunk_duration_ms,
        })
        self._emit(EventType.STARTED)

    async def stop(self) -> None:
        """Stop capture, close the socket, detach, emit stopped. Idempotent."""
        if not self._running:
            cleanup = self._cleanup_task
            if cleanup is not None:
                await cleanup
            return

        self._running = False
        self._stopping = True
        try:
            await self._process.stop()
            await self._socket.close()
        finally:
            self._detach()
            self._stopping = False

        log_event({
            "event_type": "PIPELINE_STOPPED",
            "level": "info",
            "component": self._name,
            "frames_dropped": self._socket.frames_dropped,
        })
        self._emit(EventType.STOPPED)

    # -------------------------------------------------------------------------
    # Wiring
    # -------------------------------------------------------------------------

    def _wire(self) -> None:
        self._track(self._process.on(CaptureEvent.FRAME, self._socket.send))
        self._track(self._process.on(CaptureEvent.LEVEL, self._on_level))
        self._track(self._process.on(CaptureEvent.ERROR, self._on_process_error))
        self._track(self._process.on(CaptureEvent.EXIT, self._on_exit))
        self._track(self._socket.on(SocketEvent.RESPONSE, self._on_response))
        self._track(self._socket.on(SocketEvent.ERROR, self._on_socket_error))

    def _on_response(self, response: DeepgramResponse) -> None:
        if isinstance(response, ResultsResponse):
            event = transcript_from_results(response)
            if event is not None:
                self._emit(EventType.TRANSCRIPT, event.with_source(self._source))
        elif isinstance(response, UtteranceEndResponse):
            self._emit(
                EventType.UTTERANCE_END,
                UtteranceEndEvent(source=self._source, last_word_end=response.last_word_end),
            )
        elif isinstance(response, ErrorResponse):
            log_event({
                "event_type": "DEEPGRAM_ERROR_RESPONSE",
                "level": "warn",
                "component": self._name,
                "message": response.message,
            })
            self._emit(
                EventType.ERROR,
                RemoteConnectionError(f"Deepgram error: {response.message}", retryable=False),
            )
        else:
            log_event({
                "event_type": "DEEPGRAM_RESPONSE_IGNORED",
                "level": "debug",
                "component": self._name,
                "response": type(response).__name__,
            })

    def _on_socket_error(self, error: RemoteConnectionError) -> None:
        self._emit(EventType.ERROR, error)

    def _on_exit(self, exit_info: ProcessExit) -> None:
        if not self._running or self._stopping:
            return

        self._running = False
        log_event({
            "event_type": "PIPELINE_CAPTURE_EXITED",
            "level": "warn",
            "component": self._name,
            "exit_code": exit_info.exit_code,
            "signal": exit_info.signal,
        })
        self._emit(EventType.ERROR, self._exit_error(exit_info))
        self._cleanup_task = asyncio.create_task(self._close_after_exit())

    async def _close_after_exit(self) -> None:
        try:
            await self._socket.close()
        finally:
            self._detach()
        self._emit(EventType.STOPPED)
