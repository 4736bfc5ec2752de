"""
Batch pipeline: capture process -> in-memory recording -> one upload.

Phases (batch_progress):
    recording   emitted once capture is running (bytes_recorded = 0)
    uploading   emitted on stop when there is audio to send
    processing  emitted right before the upload call

Rules:
- The recording buffer is owned by this pipeline's DeepgramBatch only.
- An empty recording is valid: stop() emits `stopped` with no network call.
- Upload / parse failures are surfaced as `error` events; the pipeline still
  reaches `stopped`, and the recording is always cleared.
- If capture exits unexpectedly, whatever was recorded is still uploaded.
"""

from __future__ import annotations

import asyncio

from adapters.asr.deepgram_batch import DeepgramBatch
from capture.process import CaptureEvent, CaptureProcess, ProcessExit
from enums.mode import BatchPhase
from enums.source import AudioSource
from errors import DeepgramCaptureError, ValidationError
from events.types import BatchProgressEvent, EventType
from observability.logger import log_event
from transcription.base import PipelineBase


class BatchPipeline(PipelineBase):
    """
    One source, one capture process, one DeepgramBatch.

    Events: transcript, audio_level, batch_progress, error, started, stopped.
    """

    _kind = "batch"

    def __init__(
        self,
        process: CaptureProcess,
        uploader: DeepgramBatch,
        source: AudioSource,
    ) -> None:
        super().__init__(process, source)
        self._uploader = uploader
        self._finish_task: asyncio.Task[None] | None = None

    @property
    def bytes_recorded(self) -> int:
        return self._uploader.bytes_recorded

    async def start(self) -> None:
        if self._running or self._finish_task is not None:
            raise ValidationError(f"{self._name}: already started")

        self._track(self._process.on(CaptureEvent.FRAME, self._uploader.add_chunk))
        self._track(self._process.on(CaptureEvent.LEVEL, self._on_level))
        self._track(self._process.on(CaptureEvent.ERROR, self._on_process_error))
        self._track(self._process.on(CaptureEvent.EXIT, self._on_exit))

        try:
            await self._process.start()
        except (DeepgramCaptureError, asyncio.CancelledError):
            self._detach()
            raise

        self._running = True
        self._emit(EventType.STARTED)
        self._emit_progress(BatchPhase.RECORDING, 0)

    async def stop(self) -> None:
        """Stop capture, then upload what was recorded. Idempotent."""
        if not self._running:
            finish = self._finish_task
            if finish is not None:
                await finish
            return

        self._running = False
        self._finish_task = asyncio.create_task(self._finish(stop_capture=True))
        await self._finish_task

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _emit_progress(self, phase: BatchPhase, bytes_recorded: int) -> None:
        self._emit(
            EventType.BATCH_PROGRESS,
            BatchProgressEvent(phase=phase, bytes_recorded=bytes_recorded, source=self._source),
        )

    def _on_exit(self, exit_info: ProcessExit) -> None:
        if not self._running:
            return

        self._running = False
        log_event({
            "event_type": "PIPELINE_CAPTURE_EXITED",
            "level": "warn",
            "component": self._name,
            "exit_code": exit_info.exit_code,
            "signal": exit_info.signal,
            "bytes_recorded": self._uploader.bytes_recorded,
        })
        self._emit(EventType.ERROR, self._exit_error(exit_info))
        self._finish_task = asyncio.create_task(self._finish(stop_capture=False))

    async def _finish(self, *, stop_capture: bool) -> None:
        if stop_capture:
            await self._process.stop()
        self._detach()

        recorded = self._uploader.bytes_recorded
        if recorded == 0:
            log_event({
                "event_type": "BATCH_EMPTY_RECORDING",
                "level": "warn",
                "component": self._name,
            })
            self._emit(EventType.STOPPED)
            return

        self._emit_progress(BatchPhase.UPLOADING, recorded)
        try:
            self._emit_progress(BatchPhase.PROCESSING, recorded)
            events = await self._uploader.transcribe()
            for event in events:
                self._emit(EventType.TRANSCRIPT, event.with_source(self._source))
        except DeepgramCaptureError as e:
            log_event({
                "event_type": "BATCH_UPLOAD_FAILED",
                "level": "error",
                "component": self._name,
                "error": str(e),
            })
            self._emit(EventType.ERROR, e)
        except Exception as e:  # pylint: disable=broad-exception-caught
            log_event({
                "event_type": "BATCH_UPLOAD_CRASHED",
                "level": "error",
                "component": self._name,
                "error": repr(e),
            })
            self._emit(EventType.ERROR, e)
        finally:
            self._uploader.clear()

        self._emit(EventType.STOPPED)
