"""
TranscriptionManager: host-facing entry point.

Responsibilities:
- Validate configuration before any I/O
- Verify the platform
- Build one pipeline per enabled source (streaming or batch)
- Start pipelines concurrently; roll back every started pipeline if any fails
- Re-emit pipeline events on one public surface, adding per-source
  system_transcript / mic_transcript
- Emit started / stopped for the whole session

Non-responsibilities:
- No audio handling (pipelines own their capture processes and sinks)
- No retry of failed starts (the host decides)
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Callable, Union

from adapters.asr.deepgram_batch import DeepgramBatch
from adapters.asr.deepgram_socket import DeepgramSocket
from adapters.asr.options import DeepgramOptions
from audio.levels import AudioLevelsConfig, ResolvedAudioLevels, resolve_audio_levels
from capture import sources
from capture.options import (
    MicOptions,
    SystemAudioOptions,
    resolve_mic_options,
    resolve_system_audio_options,
)
from capture.platform import assert_platform
from capture.process import CaptureProcess
from capture.sources import InputDevice, ResolvedSourceOptions
from enums.mode import TranscriptionMode
from enums.permission import PermissionKind, PermissionStatus
from enums.source import AudioSource
from errors import DeepgramCaptureError, ValidationError
from events.emitter import Emitter, Listener
from events.types import EventType, TranscriptEvent
from observability.logger import log_event
from transcription.batch import BatchPipeline
from transcription.streaming import StreamingPipeline


Pipeline = Union[StreamingPipeline, BatchPipeline]

ProcessFactory = Callable[[AudioSource, ResolvedSourceOptions, ResolvedAudioLevels], CaptureProcess]
SocketFactory = Callable[[DeepgramOptions, int, str], DeepgramSocket]
UploaderFactory = Callable[[DeepgramOptions, int, str], DeepgramBatch]

_PER_SOURCE_TRANSCRIPT: dict[AudioSource, EventType] = {
    AudioSource.SYSTEM: EventType.SYSTEM_TRANSCRIPT,
    AudioSource.MIC: EventType.MIC_TRANSCRIPT,
}

_FORWARDED_EVENTS: tuple[EventType, ...] = (
    EventType.UTTERANCE_END,
    EventType.AUDIO_LEVEL,
    EventType.BATCH_PROGRESS,
    EventType.ERROR,
)


# =============================================================================
# Configuration & results
# =============================================================================

@dataclass(frozen=True)
class ManagerConfig:
    """Everything a capture session needs, before default resolution."""

    deepgram: DeepgramOptions
    system_audio: SystemAudioOptions | None = None
    mic: MicOptions | None = None
    mode: TranscriptionMode = TranscriptionMode.STREAMING
    audio_levels: AudioLevelsConfig | None = None


@dataclass(frozen=True)
class PermissionResult:
    system_audio: PermissionStatus
    microphone: PermissionStatus


# =============================================================================
# Default factories
# =============================================================================

def _default_process_factory(
    source: AudioSource,
    options: ResolvedSourceOptions,
    levels: ResolvedAudioLevels,
) -> CaptureProcess:
    return sources.build_capture_process(source, options, levels)


def _default_socket_factory(options: DeepgramOptions, sample_rate: int, name: str) -> DeepgramSocket:
    return DeepgramSocket(options, sample_rate=sample_rate, name=name)


def _default_uploader_factory(options: DeepgramOptions, sample_rate: int, name: str) -> DeepgramBatch:
    return DeepgramBatch(options, sample_rate=sample_rate, name=name)


# =============================================================================
# Manager
# =============================================================================

class TranscriptionManager:
    """
    Runs system audio and microphone pipelines side by side.

    Events: transcript, system_transcript, mic_transcript, utterance_end,
    audio_level, batch_progress, started, stopped, error.
    """

    def __init__(
        self,
        config: ManagerConfig,
        *,
        process_factory: ProcessFactory = _default_process_factory,
        socket_factory: SocketFactory = _default_socket_factory,
        uploader_factory: UploaderFactory = _default_uploader_factory,
        platform_check: Callable[[], None] = assert_platform,
    ) -> None:
        if not isinstance(config.mode, TranscriptionMode):
            raise ValidationError(f"Unknown transcription mode {config.mode!r}")

        self._config = config
        self._process_factory = process_factory
        self._socket_factory = socket_factory
        self._uploader_factory = uploader_factory
        self._platform_check = platform_check

        self._emitter = Emitter("manager")
        self._pipelines: list[Pipeline] = []
        self._unsubscribers: list[Callable[[], None]] = []
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def mode(self) -> TranscriptionMode:
        return self._config.mode

    def on(self, event: EventType, listener: Listener) -> Callable[[], None]:
        return self._emitter.on(event.value, listener)

    def once(self, event: EventType, listener: Listener) -> Callable[[], None]:
        return self._emitter.once(event.value, listener)

    def off(self, event: EventType, listener: Listener) -> None:
        self._emitter.off(event.value, listener)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def start(self) -> None:
        """
        Start every enabled source. No-op if already running.

        Raises:
            ValidationError: no source enabled / invalid options.
            PlatformError: unsupported OS.
            PermissionDeniedError, SubprocessError, RemoteConnectionError:
                the first pipeline failure, after rolling back the others.
        """
        if self._running:
            return

        system = resolve_system_audio_options(self._config.system_audio)
        mic = resolve_mic_options(self._config.mic)
        if not system.enabled and not mic.enabled:
            raise ValidationError("At least one audio source must be enabled")
        levels = resolve_audio_levels(self._config.audio_levels)

        self._platform_check()

        pipelines: list[Pipeline] = []
        if system.enabled:
            pipelines.append(self._build_pipeline(AudioSource.SYSTEM, system, levels))
        if mic.enabled:
            pipelines.append(self._build_pipeline(AudioSource.MIC, mic, levels))

        log_event({
            "event_type": "MANAGER_STARTING",
            "level": "info",
            "component": "manager",
            "mode": self._config.mode.value,
            "sources": [p.source.value for p in pipelines],
            "levels_enabled": levels.enabled,
        })

        for pipeline in pipelines:
            self._wire(pipeline)

        results = await asyncio.gather(
            *(p.start() for p in pipelines),
            return_exceptions=True,
        )
        failures = [r for r in results if isinstance(r, BaseException)]
        if failures:
            await asyncio.gather(*(p.stop() for p in pipelines if p.is_running))
            self._detach()
            log_event({
                "event_type": "MANAGER_START_FAILED",
                "level": "error",
                "component": "manager",
                "errors": [repr(f) for f in failures],
            })
            raise failures[0]

        self._pipelines = pipelines
        self._running = True
        self._emitter.emit(EventType.STARTED.value)

    async def stop(self) -> None:
        """Stop every pipeline concurrently. Idempotent; never raises."""
        if not self._running:
            return
        self._running = False

        pipelines, self._pipelines = self._pipelines, []
        results = await asyncio.gather(
            *(p.stop() for p in pipelines),
            return_exceptions=True,
        )
        for pipeline, result in zip(pipelines, results):
            if isinstance(result, Exception):
                log_event({
                    "event_type": "PIPELINE_STOP_FAILED",
                    "level": "error",
                    "component": pipeline.name,
                    "error": repr(result),
                })

        self._detach()
        self._emitter.emit(EventType.STOPPED.value)

    # -------------------------------------------------------------------------
    # Static helpers
    # -------------------------------------------------------------------------

    @staticmethod
    async def check_permissions(
        *,
        system_binary: str | None = None,
        mic_binary: str | None = None,
    ) -> PermissionResult:
        """Check both capture permissions. A check that cannot run is UNKNOWN."""

        async def _check(kind: PermissionKind, binary: str | None) -> PermissionStatus:
            try:
                granted = await sources.check_permission(kind, binary_path=binary)
            except DeepgramCaptureError as e:
                log_event({
                    "event_type": "PERMISSION_CHECK_UNAVAILABLE",
                    "level": "warn",
                    "component": "manager",
                    "permission": kind.value,
                    "error": str(e),
                })
                return PermissionStatus.UNKNOWN
            return PermissionStatus.GRANTED if granted else PermissionStatus.DENIED

        system_status, mic_status = await asyncio.gather(
            _check(PermissionKind.SYSTEM_AUDIO, system_binary),
            _check(PermissionKind.MICROPHONE, mic_binary),
        )
        return PermissionResult(system_audio=system_status, microphone=mic_status)

    @staticmethod
    async def list_input_devices(*, binary_path: str | None = None) -> list[InputDevice]:
        return await sources.list_input_devices(binary_path=binary_path)

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _build_pipeline(
        self,
        source: AudioSource,
        options: ResolvedSourceOptions,
        levels: ResolvedAudioLevels,
    ) -> Pipeline:
        process = self._process_factory(source, options, levels)
        deepgram = self._config.deepgram

        if self._config.mode is TranscriptionMode.BATCH:
            uploader = self._uploader_factory(
                deepgram, options.sample_rate, f"deepgram-batch:{source.value}"
            )
            return BatchPipeline(process, uploader, source)

        socket = self._socket_factory(deepgram, options.sample_rate, f"deepgram:{source.value}")
        return StreamingPipeline(process, socket, source)

    def _wire(self, pipeline: Pipeline) -> None:
        self._unsubscribers.append(pipeline.on(EventType.TRANSCRIPT, self._on_transcript))
        for event in _FORWARDED_EVENTS:
            self._unsubscribers.append(pipeline.on(event, self._forwarder(event)))

    def _forwarder(self, event: EventType) -> Listener:
        def _forward(*args: object) -> None:
            self._emitter.emit(event.value, *args)
        return _forward

    def _on_transcript(self, event: TranscriptEvent) -> None:
        self._emitter.emit(EventType.TRANSCRIPT.value, event)
        if event.source is not None:
            self._emitter.emit(_PER_SOURCE_TRANSCRIPT[event.source].value, event)

    def _detach(self) -> None:
        while self._unsubscribers:
            self._unsubscribers.pop()()
