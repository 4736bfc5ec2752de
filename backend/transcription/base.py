"""
Shared plumbing for per-source transcription pipelines.

A pipeline binds one CaptureProcess to one Deepgram sink for one logical
source. Pipelines of different sources share nothing; they only meet on the
manager's public event surface.
"""

from __future__ import annotations

from typing import Any, Callable

from capture.process import CaptureProcess, ProcessExit
from audio.levels import level_event_from_message
from enums.source import AudioSource
from errors import SubprocessError
from events.emitter import Emitter, Listener
from events.types import EventType
from protocol.control import AudioLevelMessage


class PipelineBase:
    """Emitter, listener bookkeeping and level forwarding common to both modes."""

    _kind = "pipeline"

    def __init__(self, process: CaptureProcess, source: AudioSource) -> None:
        self._process = process
        self._source = source
        self._name = f"{self._kind}:{source.value}"
        self._emitter = Emitter(self._name)
        self._unsubscribers: list[Callable[[], None]] = []
        self._running = False

    @property
    def name(self) -> str:
        return self._name

    @property
    def source(self) -> AudioSource:
        return self._source

    @property
    def is_running(self) -> bool:
        return self._running

    def on(self, event: EventType, listener: Listener) -> Callable[[], None]:
        return self._emitter.on(event.value, listener)

    def _emit(self, event: EventType, *args: Any) -> None:
        self._emitter.emit(event.value, *args)

    def _track(self, unsubscribe: Callable[[], None]) -> None:
        self._unsubscribers.append(unsubscribe)

    def _detach(self) -> None:
        """Remove every internal listener this pipeline registered."""
        while self._unsubscribers:
            self._unsubscribers.pop()()

    def _on_level(self, message: AudioLevelMessage) -> None:
        self._emit(EventType.AUDIO_LEVEL, level_event_from_message(message, self._source))

    def _on_process_error(self, error: Exception) -> None:
        self._emit(EventType.ERROR, error)

    def _exit_error(self, exit_info: ProcessExit) -> SubprocessError:
        return SubprocessError(
            self._process.name,
            "Capture process exited unexpectedly "
            f"(code: {exit_info.exit_code}, signal: {exit_info.signal})",
            exit_code=exit_info.exit_code,
            signal=exit_info.signal,
        )
