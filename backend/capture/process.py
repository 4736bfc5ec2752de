"""
Capture subprocess supervisor.

Core model (IMPORTANT):
- One CaptureProcess owns at most one native capture child, for its whole
  lifetime. TERMINATED is final; retry with a new instance.
- stdout carries raw PCM; stderr carries the line-delimited JSON control
  channel (see protocol.control).
- Nothing is emitted before the ready handshake: PCM or level messages that
  arrive earlier are dropped.

Startup is a single race over four named outcomes:
    READY          first ready message
    CAPTURE_ERROR  error message before ready (permission or generic)
    EARLY_EXIT     process exited before ready
    TIMEOUT        nothing decisive within ready_timeout_s
Every non-READY outcome is terminal and reaps the child before raising.

Shutdown:
- stop(): SIGTERM, wait stop_grace_s, then SIGKILL and wait again.
  Never raises; a child that outlives SIGKILL is logged, not surfaced.
- kill(): immediate SIGKILL without awaiting, for teardown paths.

Events (Emitter keys from CaptureEvent):
    frame  (bytes)                 one PCM chunk, in pipe order
    level  (AudioLevelMessage)     throttled analysis from the binary
    error  (DeepgramCaptureError)  post-startup error; process keeps running
    exit   (ProcessExit)           exactly once per child
"""

from __future__ import annotations

import asyncio
import signal as signal_mod
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Sequence

from constants import (
    FORCE_KILL_REAP_S,
    PIPE_READ_BYTES,
    READY_TIMEOUT_S,
    STOP_GRACE_S,
)
from enums.permission import PermissionKind
from enums.state import ProcessState
from errors import DeepgramCaptureError, PermissionDeniedError, SubprocessError
from events.emitter import Emitter, Listener
from observability.logger import log_event
from protocol.control import (
    AudioLevelMessage,
    CaptureHandshake,
    ControlChannelDecoder,
    ControlMessage,
    ErrorMessage,
    ReadyMessage,
    StoppedMessage,
)


class CaptureEvent(str, Enum):
    """Emitter keys published by CaptureProcess."""

    FRAME = "frame"
    LEVEL = "level"
    ERROR = "error"
    EXIT = "exit"


class StartupOutcome(str, Enum):
    """Which arm of the startup race fired first."""

    READY = "ready"
    CAPTURE_ERROR = "capture_error"
    EARLY_EXIT = "early_exit"
    TIMEOUT = "timeout"


@dataclass(frozen=True)
class ProcessExit:
    """
    How the child ended.

    Exactly one of exit_code / signal is set for a reaped child.
    """
    exit_code: int | None
    signal: str | None


def _describe_exit(returncode: int | None) -> ProcessExit:
    if returncode is None:
        return ProcessExit(exit_code=None, signal=None)
    if returncode < 0:
        try:
            name = signal_mod.Signals(-returncode).name
        except ValueError:
            name = f"SIG{-returncode}"
        return ProcessExit(exit_code=None, signal=name)
    return ProcessExit(exit_code=returncode, signal=None)


class CaptureProcess:
    """
    Supervisor for one native capture binary.

    The binary is spawned with supervisor-provided arguments; its audio
    format is fixed by the handshake and never renegotiated.
    """

    def __init__(
        self,
        *,
        binary_path: str,
        args: Sequence[str],
        name: str,
        permission: PermissionKind,
        ready_timeout_s: float = READY_TIMEOUT_S,
        stop_grace_s: float = STOP_GRACE_S,
    ) -> None:
        self._binary_path = binary_path
        self._args = list(args)
        self._name = name
        self._permission = permission
        self._ready_timeout_s = ready_timeout_s
        self._stop_grace_s = stop_grace_s

        self._emitter = Emitter(name)
        self._decoder = ControlChannelDecoder()

        self._state = ProcessState.IDLE
        self._proc: asyncio.subprocess.Process | None = None
        self._handshake: CaptureHandshake | None = None
        self._startup: asyncio.Future[CaptureHandshake] | None = None
        self._exit: ProcessExit | None = None

        self._stdout_task: asyncio.Task[None] | None = None
        self._stderr_task: asyncio.Task[None] | None = None
        self._exit_task: asyncio.Task[ProcessExit] | None = None

        self._early_bytes_dropped = 0

    # -------------------------------------------------------------------------
    # Introspection
    # -------------------------------------------------------------------------

    @property
    def name(self) -> str:
        return self._name

    @property
    def permission(self) -> PermissionKind:
        return self._permission

    @property
    def state(self) -> ProcessState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state is ProcessState.RUNNING

    @property
    def handshake(self) -> CaptureHandshake | None:
        return self._handshake

    @property
    def exit_info(self) -> ProcessExit | None:
        return self._exit

    @property
    def pid(self) -> int | None:
        return self._proc.pid if self._proc is not None else None

    @property
    def returncode(self) -> int | None:
        return self._proc.returncode if self._proc is not None else None

    # -------------------------------------------------------------------------
    # Subscriptions
    # -------------------------------------------------------------------------

    def on(self, event: CaptureEvent, listener: Listener) -> Callable[[], None]:
        return self._emitter.on(event.value, listener)

    def remove_all_listeners(self) -> None:
        self._emitter.remove_all_listeners()

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def start(self) -> CaptureHandshake:
        """
        Spawn the binary and wait for its handshake.

        Raises:
            PermissionDeniedError: binary reported PERMISSION_DENIED.
            SubprocessError: spawn failure, other startup error, exit before
                ready, readiness timeout, or start() called twice.
        """
        if self._state is not ProcessState.IDLE:
            raise SubprocessError(
                self._name, f"Process already started (state={self._state.value})"
            )

        self._state = ProcessState.STARTING
        self._startup = asyncio.get_running_loop().create_future()

        log_event({
            "event_type": "CAPTURE_SPAWN",
            "level": "debug",
            "component": self._name,
            "binary": self._binary_path,
            "args": self._args,
        })

        try:
            proc = await asyncio.create_subprocess_exec(
                self._binary_path,
                *self._args,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            self._state = ProcessState.TERMINATED
            self._startup.cancel()
            raise SubprocessError(
                self._name, f"Failed to spawn {self._binary_path}: {exc}"
            ) from exc

        self._proc = proc
        assert proc.stdout is not None and proc.stderr is not None
        self._stdout_task = asyncio.create_task(self._pump_frames(proc.stdout))
        self._stderr_task = asyncio.create_task(self._pump_control(proc.stderr))
        self._exit_task = asyncio.create_task(self._watch_exit(proc))

        try:
            outcome = await self._race_startup()
        except asyncio.CancelledError:
            self.kill()
            raise

        log_event({
            "event_type": "CAPTURE_STARTUP_OUTCOME",
            "level": "info" if outcome is StartupOutcome.READY else "warn",
            "component": self._name,
            "outcome": outcome.value,
            "pid": proc.pid,
        })

        if outcome is StartupOutcome.READY:
            return self._startup.result()

        if outcome is StartupOutcome.CAPTURE_ERROR:
            error = self._startup.exception()
            await self._reap()
            assert error is not None
            raise error

        if outcome is StartupOutcome.EARLY_EXIT:
            self._startup.cancel()
            exit_info = self._exit or _describe_exit(proc.returncode)
            raise SubprocessError(
                self._name,
                "Process exited before ready "
                f"(code: {exit_info.exit_code}, signal: {exit_info.signal})",
                exit_code=exit_info.exit_code,
                signal=exit_info.signal,
            )

        # StartupOutcome.TIMEOUT
        self._startup.cancel()
        await self._reap()
        raise SubprocessError(
            self._name,
            f"Binary did not send ready message within {int(self._ready_timeout_s * 1000)}ms",
        )

    async def stop(self) -> None:
        """
        Gracefully stop the binary. Idempotent; never raises.

        No-op unless RUNNING (a concurrent stop() waits for the first one).
        """
        proc = self._proc
        exit_task = self._exit_task
        if proc is None or exit_task is None or exit_task.done():
            return

        if self._state is ProcessState.STOPPING:
            await self._wait_exit(self._stop_grace_s + FORCE_KILL_REAP_S)
            return

        if self._state is not ProcessState.RUNNING:
            return

        self._state = ProcessState.STOPPING
        self._send_signal(proc, signal_mod.SIGTERM)

        # Grace timer
        if await self._wait_exit(self._stop_grace_s):
            return

        log_event({
            "event_type": "CAPTURE_STOP_ESCALATED",
            "level": "warn",
            "component": self._name,
            "pid": proc.pid,
            "grace_s": self._stop_grace_s,
        })
        self._send_signal(proc, signal_mod.SIGKILL)

        # Force timer
        if not await self._wait_exit(FORCE_KILL_REAP_S):
            log_event({
                "event_type": "CAPTURE_REFUSED_TO_EXIT",
                "level": "error",
                "component": self._name,
                "pid": proc.pid,
            })

    def kill(self) -> None:
        """
        Force kill immediately.

        Must not await. The exit watcher still runs and emits `exit`.
        """
        proc = self._proc
        if proc is None or proc.returncode is not None:
            return
        self._send_signal(proc, signal_mod.SIGKILL)

    # -------------------------------------------------------------------------
    # Startup race
    # -------------------------------------------------------------------------

    async def _race_startup(self) -> StartupOutcome:
        startup = self._startup
        exit_task = self._exit_task
        assert startup is not None and exit_task is not None

        await asyncio.wait(
            {startup, exit_task},
            timeout=self._ready_timeout_s,
            return_when=asyncio.FIRST_COMPLETED,
        )

        # The exit watcher drains stderr before finishing, so an error line
        # written just before exit has already settled `startup`.
        if startup.done():
            if startup.exception() is not None:
                return StartupOutcome.CAPTURE_ERROR
            return StartupOutcome.READY
        if exit_task.done():
            return StartupOutcome.EARLY_EXIT
        return StartupOutcome.TIMEOUT

    async def _reap(self) -> None:
        """Force-kill after a failed startup and wait for the child to go."""
        self.kill()
        if not await self._wait_exit(FORCE_KILL_REAP_S):
            log_event({
                "event_type": "CAPTURE_REFUSED_TO_EXIT",
                "level": "error",
                "component": self._name,
                "pid": self.pid,
            })
        self._state = ProcessState.TERMINATED

    async def _wait_exit(self, timeout_s: float) -> bool:
        exit_task = self._exit_task
        if exit_task is None:
            return True
        done, _ = await asyncio.wait({exit_task}, timeout=timeout_s)
        return bool(done)

    def _send_signal(self, proc: asyncio.subprocess.Process, sig: signal_mod.Signals) -> None:
        try:
            if sig is signal_mod.SIGKILL:
                proc.kill()
            else:
                proc.send_signal(sig)
        except ProcessLookupError:
            # Already gone; the exit watcher reports it
            pass

    # -------------------------------------------------------------------------
    # Background readers
    # -------------------------------------------------------------------------

    async def _pump_frames(self, stream: asyncio.StreamReader) -> None:
        while True:
            try:
                chunk = await stream.read(PIPE_READ_BYTES)
            except OSError as exc:
                log_event({
                    "event_type": "CAPTURE_STDOUT_FAILED",
                    "level": "error",
                    "component": self._name,
                    "error": repr(exc),
                })
                return

            if not chunk:
                return

            if self._handshake is None:
                self._early_bytes_dropped += len(chunk)
                log_event({
                    "event_type": "CAPTURE_FRAME_BEFORE_READY",
                    "level": "debug",
                    "component": self._name,
                    "bytes": len(chunk),
                })
                continue

            self._emitter.emit(CaptureEvent.FRAME.value, chunk)

    async def _pump_control(self, stream: asyncio.StreamReader) -> None:
        while True:
            try:
                chunk = await stream.read(PIPE_READ_BYTES)
            except OSError as exc:
                log_event({
                    "event_type": "CAPTURE_STDERR_FAILED",
                    "level": "error",
                    "component": self._name,
                    "error": repr(exc),
                })
                return

            if not chunk:
                return

            for message in self._decoder.feed(chunk):
                self._handle_control(message)

            for line in self._decoder.take_noise():
                log_event({
                    "event_type": "CAPTURE_STDERR_NOISE",
                    "level": "debug",
                    "component": self._name,
                    "line": line,
                })

    async def _watch_exit(self, proc: asyncio.subprocess.Process) -> ProcessExit:
        returncode = await proc.wait()

        # Deliver everything written before exit
        readers = {t for t in (self._stdout_task, self._stderr_task) if t is not None}
        if readers:
            _, pending = await asyncio.wait(readers, timeout=FORCE_KILL_REAP_S)
            for task in pending:
                task.cancel()

        exit_info = _describe_exit(returncode)
        previous = self._state
        self._state = ProcessState.TERMINATED
        self._exit = exit_info

        log_event({
            "event_type": "CAPTURE_EXITED",
            "level": "warn" if previous is ProcessState.RUNNING else "debug",
            "component": self._name,
            "previous_state": previous.value,
            "exit_code": exit_info.exit_code,
            "signal": exit_info.signal,
            "early_bytes_dropped": self._early_bytes_dropped,
        })

        self._emitter.emit(CaptureEvent.EXIT.value, exit_info)
        return exit_info

    # -------------------------------------------------------------------------
    # Control messages
    # -------------------------------------------------------------------------

    def _handle_control(self, message: ControlMessage) -> None:
        if isinstance(message, ReadyMessage):
            self._on_ready(message.handshake)
        elif isinstance(message, ErrorMessage):
            self._on_error(message)
        elif isinstance(message, AudioLevelMessage):
            if self._handshake is not None:
                self._emitter.emit(CaptureEvent.LEVEL.value, message)
        elif isinstance(message, StoppedMessage):
            log_event({
                "event_type": "CAPTURE_STOPPED_MESSAGE",
                "level": "debug",
                "component": self._name,
                "reason": message.reason,
            })

    def _on_ready(self, handshake: CaptureHandshake) -> None:
        if self._handshake is not None or self._state is not ProcessState.STARTING:
            log_event({
                "event_type": "CAPTURE_READY_IGNORED",
                "level": "warn",
                "component": self._name,
                "state": self._state.value,
            })
            return

        self._handshake = handshake
        self._state = ProcessState.RUNNING

        startup = self._startup
        if startup is not None and not startup.done():
            startup.set_result(handshake)

    def _on_error(self, message: ErrorMessage) -> None:
        error = self._classify_error(message)

        startup = self._startup
        if startup is not None and not startup.done():
            startup.set_exception(error)
            return

        log_event({
            "event_type": "CAPTURE_ERROR_REPORTED",
            "level": "warn",
            "component": self._name,
            "code": message.code,
            "message": message.message,
        })
        self._emitter.emit(CaptureEvent.ERROR.value, error)

    def _classify_error(self, message: ErrorMessage) -> DeepgramCaptureError:
        if message.is_permission_denied:
            return PermissionDeniedError(self._permission, message.message)
        return SubprocessError(self._name, f"[{message.code}] {message.message}")
