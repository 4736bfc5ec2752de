"""
Deepgram live streaming WebSocket client.

Core model (IMPORTANT):
- One DeepgramSocket serves one logical source for one capture session.
- The live connection handle is owned here and never exposed; consumers see
  send() / close() / state and the emitted events only.
- Outbound frames go through ONE queue drained by ONE writer task per
  connection, so PCM reaches Deepgram in exactly the order send() was called.
- send() never suspends and never buffers across connections: frames sent
  while not CONNECTED are dropped. The producer decides whether audio lost
  during a reconnect window matters.

States:
    DISCONNECTED -> CONNECTING -> CONNECTED -> CLOSING -> DISCONNECTED
    CONNECTED -> CONNECTING on unexpected closure (reconnect loop),
    unless close() was requested.

Reconnect (see adapters.asr.reconnect):
- Only after an unexpected close with a retryable code.
- Delay base * 2^(attempt-1), capped attempt count.
- Exhaustion emits a non-retryable RemoteConnectionError.
- A successful reconnect resets the counter.

Events (Emitter keys from SocketEvent):
    open      ()
    close     (code: int | None, reason: str)
    response  (DeepgramResponse)
    error     (RemoteConnectionError)
"""

from __future__ import annotations

import asyncio
import json
from enum import Enum
from typing import Any, Awaitable, Callable

from websockets.asyncio.client import ClientConnection, connect as ws_connect
from websockets.exceptions import ConnectionClosed, InvalidStatus, WebSocketException

from adapters.asr.options import DeepgramOptions
from adapters.asr.reconnect import (
    ReconnectPolicy,
    RetryAttempt,
    next_attempt,
    reset_attempt,
)
from adapters.asr.responses import decode_response
from constants import (
    CLOSE_CODE_NORMAL,
    DEFAULT_CHANNELS,
    KEEPALIVE_INTERVAL_S,
    SOCKET_CLOSE_TIMEOUT_S,
    WS_MAX_MESSAGE_BYTES,
)
from enums.state import ConnectionState
from errors import RemoteConnectionError
from events.emitter import Emitter, Listener
from observability.logger import log_event


KEEPALIVE_MESSAGE = json.dumps({"type": "KeepAlive"})
CLOSE_STREAM_MESSAGE = json.dumps({"type": "CloseStream"})

Connector = Callable[..., Awaitable[ClientConnection]]
Sleeper = Callable[[float], Awaitable[Any]]


class SocketEvent(str, Enum):
    """Emitter keys published by DeepgramSocket."""

    OPEN = "open"
    CLOSE = "close"
    RESPONSE = "response"
    ERROR = "error"


class DeepgramSocket:
    """
    Persistent Deepgram live connection with keepalive and reconnect.

    connect / sleep are injectable so tests can drive the state machine with
    an in-memory transport and a recorded clock.
    """

    def __init__(
        self,
        options: DeepgramOptions,
        *,
        sample_rate: int,
        channels: int = DEFAULT_CHANNELS,
        name: str = "deepgram",
        policy: ReconnectPolicy | None = None,
        keepalive_interval_s: float = KEEPALIVE_INTERVAL_S,
        close_timeout_s: float = SOCKET_CLOSE_TIMEOUT_S,
        connect: Connector = ws_connect,
        sleep: Sleeper = asyncio.sleep,
    ) -> None:
        self._options = options
        self._sample_rate = sample_rate
        self._channels = channels
        self._name = name
        self._policy = policy or ReconnectPolicy()
        self._keepalive_interval_s = keepalive_interval_s
        self._close_timeout_s = close_timeout_s
        self._connect = connect
        self._sleep = sleep

        self._emitter = Emitter(name)

        self._state = ConnectionState.DISCONNECTED
        self._ws: ClientConnection | None = None
        self._outbox: asyncio.Queue[bytes | str] | None = None

        self._recv_task: asyncio.Task[None] | None = None
        self._writer_task: asyncio.Task[None] | None = None
        self._keepalive_task: asyncio.Task[None] | None = None
        self._reconnect_task: asyncio.Task[None] | None = None

        self._attempt: RetryAttempt = reset_attempt()
        self._closing = False
        self._frames_dropped = 0

    # -------------------------------------------------------------------------
    # Introspection
    # -------------------------------------------------------------------------

    @property
    def name(self) -> str:
        return self._name

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state is ConnectionState.CONNECTED

    @property
    def frames_dropped(self) -> int:
        return self._frames_dropped

    def build_url(self) -> str:
        return self._options.streaming_url(self._sample_rate, self._channels)

    def on(self, event: SocketEvent, listener: Listener) -> Callable[[], None]:
        return self._emitter.on(event.value, listener)

    def remove_all_listeners(self) -> None:
        self._emitter.remove_all_listeners()

    # -------------------------------------------------------------------------
    # Public operations
    # -------------------------------------------------------------------------

    async def connect(self) -> None:
        """
        Open the first connection.

        Raises:
            RemoteConnectionError: already connected, or the first attempt
                failed. The first attempt is never retried here.
        """
        if self._state is not ConnectionState.DISCONNECTED or self._ws is not None:
            raise RemoteConnectionError(
                f"{self._name}: already connected (state={self._state.value})",
                retryable=False,
            )

        self._closing = False
        self._attempt = reset_attempt()
        self._state = ConnectionState.CONNECTING

        try:
            await self._open()
        except RemoteConnectionError:
            self._state = ConnectionState.DISCONNECTED
            raise

    def send(self, frame: bytes) -> None:
        """Queue one PCM frame. Dropped silently unless CONNECTED."""
        outbox = self._outbox
        if self._state is not ConnectionState.CONNECTED or outbox is None:
            self._frames_dropped += 1
            return
        outbox.put_nowait(frame)

    async def close(self) -> None:
        """
        Graceful shutdown. Idempotent; suppresses any reconnect loop.

        Sends CloseStream so Deepgram flushes final results, waits up to
        close_timeout_s for the server to close, then forces closure.
        """
        self._closing = True

        reconnect = self._reconnect_task
        self._reconnect_task = None
        if reconnect is not None and not reconnect.done() and reconnect is not asyncio.current_task():
            reconnect.cancel()

        ws = self._ws
        if ws is None:
            self._state = ConnectionState.DISCONNECTED
            return

        if self._state is ConnectionState.CLOSING:
            recv_task = self._recv_task
            if recv_task is not None:
                await asyncio.wait({recv_task}, timeout=self._close_timeout_s)
            return

        self._state = ConnectionState.CLOSING
        self._cancel_task(self._keepalive_task)
        self._keepalive_task = None

        if self._outbox is not None:
            self._outbox.put_nowait(CLOSE_STREAM_MESSAGE)

        recv_task = self._recv_task
        if recv_task is not None:
            done, _ = await asyncio.wait({recv_task}, timeout=self._close_timeout_s)
            if done:
                return

        log_event({
            "event_type": "DEEPGRAM_CLOSE_TIMEOUT",
            "level": "warn",
            "component": self._name,
            "timeout_s": self._close_timeout_s,
        })

        self._cancel_task(recv_task)
        try:
            await ws.close()
        except (OSError, WebSocketException) as e:
            log_event({
                "event_type": "DEEPGRAM_FORCE_CLOSE_FAILED",
                "level": "warn",
                "component": self._name,
                "error": repr(e),
            })
        self._on_closed(ws)

    # -------------------------------------------------------------------------
    # Connection management
    # -------------------------------------------------------------------------

    async def _open(self) -> None:
        url = self.build_url()
        log_event({
            "event_type": "DEEPGRAM_CONNECTING",
            "level": "debug",
            "component": self._name,
            "url": url,
            "attempt": self._attempt.attempt,
        })

        try:
            ws = await self._connect(
                url,
                additional_headers=self._options.auth_header(),
                max_size=WS_MAX_MESSAGE_BYTES,
                ping_interval=None,
                close_timeout=self._close_timeout_s,
            )
        except InvalidStatus as e:
            raise RemoteConnectionError(
                f"Failed to connect: {e}",
                code=e.response.status_code,
            ) from e
        except (OSError, WebSocketException, asyncio.TimeoutError) as e:
            raise RemoteConnectionError(f"Failed to connect: {e}") from e

        if self._closing:
            # close() won the race against an in-flight reconnect
            await ws.close()
            return

        outbox: asyncio.Queue[bytes | str] = asyncio.Queue()
        self._ws = ws
        self._outbox = outbox
        self._state = ConnectionState.CONNECTED
        self._attempt = reset_attempt()

        self._writer_task = asyncio.create_task(self._write_loop(ws, outbox))
        self._recv_task = asyncio.create_task(self._recv_loop(ws))
        self._keepalive_task = asyncio.create_task(self._keepalive_loop(outbox))

        log_event({
            "event_type": "DEEPGRAM_CONNECTED",
            "level": "info",
            "component": self._name,
        })
        self._emitter.emit(SocketEvent.OPEN.value)

    def _on_closed(self, ws: ClientConnection) -> None:
        """Handle the end of one connection. Runs at most once per connection."""
        if self._ws is not ws:
            return

        code = ws.close_code
        reason = ws.close_reason or ""

        self._teardown()
        self._state = ConnectionState.DISCONNECTED

        log_event({
            "event_type": "DEEPGRAM_CLOSED",
            "level": "debug" if self._closing else "warn",
            "component": self._name,
            "code": code,
            "reason": reason,
            "requested": self._closing,
        })
        self._emitter.emit(SocketEvent.CLOSE.value, code, reason)

        if self._closing:
            return

        if not self._policy.is_retryable_code(code):
            if code != CLOSE_CODE_NORMAL:
                self._emit_error(
                    RemoteConnectionError(
                        f"Connection closed by Deepgram (code {code}): {reason}",
                        code=code,
                        retryable=False,
                    )
                )
            return

        self._state = ConnectionState.CONNECTING
        self._reconnect_task = asyncio.create_task(self._reconnect_loop())

    def _teardown(self) -> None:
        self._cancel_task(self._keepalive_task)
        self._cancel_task(self._writer_task)
        self._keepalive_task = None
        self._writer_task = None
        self._recv_task = None
        self._outbox = None
        self._ws = None

    async def _reconnect_loop(self) -> None:
        while not self._closing:
            if not self._policy.can_retry(self._attempt):
                self._state = ConnectionState.DISCONNECTED
                log_event({
                    "event_type": "DEEPGRAM_RECONNECT_EXHAUSTED",
                    "level": "error",
                    "component": self._name,
                    "attempts": self._attempt.attempt,
                })
                self._emit_error(
                    RemoteConnectionError(
                        f"Failed to reconnect after {self._policy.max_attempts} attempts",
                        retryable=False,
                    )
                )
                return

            self._attempt = next_attempt(self._attempt)
            delay_s = self._policy.delay_for(self._attempt)
            log_event({
                "event_type": "DEEPGRAM_RECONNECT_SCHEDULED",
                "level": "info",
                "component": self._name,
                "attempt": self._attempt.attempt,
                "max_attempts": self._policy.max_attempts,
                "delay_s": delay_s,
            })

            await self._sleep(delay_s)
            if self._closing:
                return

            try:
                await self._open()
                return
            except RemoteConnectionError as e:
                log_event({
                    "event_type": "DEEPGRAM_RECONNECT_FAILED",
                    "level": "warn",
                    "component": self._name,
                    "attempt": self._attempt.attempt,
                    "error": str(e),
                })
                self._emit_error(e)

    # -------------------------------------------------------------------------
    # Background loops
    # -------------------------------------------------------------------------

    async def _write_loop(
        self,
        ws: ClientConnection,
        outbox: asyncio.Queue[bytes | str],
    ) -> None:
        while True:
            item = await outbox.get()
            try:
                await ws.send(item)
            except ConnectionClosed:
                # The receive loop observes the same closure and handles it
                return

    async def _recv_loop(self, ws: ClientConnection) -> None:
        try:
            async for raw in ws:
                self._handle_frame(raw)
        except ConnectionClosed:
            pass
        self._on_closed(ws)

    async def _keepalive_loop(self, outbox: asyncio.Queue[bytes | str]) -> None:
        while True:
            await asyncio.sleep(self._keepalive_interval_s)
            if self._state is ConnectionState.CONNECTED:
                outbox.put_nowait(KEEPALIVE_MESSAGE)

    def _handle_frame(self, raw: str | bytes) -> None:
        if isinstance(raw, (bytes, bytearray)):
            log_event({
                "event_type": "DEEPGRAM_BINARY_FRAME_DROPPED",
                "level": "debug",
                "component": self._name,
                "bytes": len(raw),
            })
            return

        try:
            data = json.loads(raw)
        except ValueError as e:
            log_event({
                "event_type": "DEEPGRAM_MALFORMED_FRAME",
                "level": "warn",
                "component": self._name,
                "error": str(e),
                "frame": raw[:200],
            })
            return

        response = decode_response(data)
        if response is None:
            log_event({
                "event_type": "DEEPGRAM_UNKNOWN_FRAME",
                "level": "debug",
                "component": self._name,
                "type": data.get("type") if isinstance(data, dict) else None,
            })
            return

        self._emitter.emit(SocketEvent.RESPONSE.value, response)

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _emit_error(self, error: RemoteConnectionError) -> None:
        self._emitter.emit(SocketEvent.ERROR.value, error)

    @staticmethod
    def _cancel_task(task: asyncio.Task[Any] | None) -> None:
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
