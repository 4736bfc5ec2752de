"""
Synchronous event fan-out.

Every component in the capture core exposes its outputs through an Emitter:
subscribers register per event name and are called in registration order,
on the emitting call stack, without suspension. This preserves in-order
delivery of frames and events inside one pipeline.

A listener that raises is logged and skipped; it never breaks the emitter
or the other listeners.
"""

from __future__ import annotations

from typing import Any, Callable

from observability.logger import log_event


Listener = Callable[..., None]


class Emitter:
    """Named, ordered listener registry."""

    def __init__(self, name: str) -> None:
        self._name = name
        self._listeners: dict[str, list[Listener]] = {}

    def on(self, event: str, listener: Listener) -> Callable[[], None]:
        """
        Register a listener.

        Returns a callable that removes exactly this registration.
        """
        self._listeners.setdefault(event, []).append(listener)
        removed = False

        def _unsubscribe() -> None:
            nonlocal removed
            if removed:
                return
            removed = True
            self.off(event, listener)

        return _unsubscribe

    def once(self, event: str, listener: Listener) -> Callable[[], None]:
        """Register a listener that is removed after its first call."""
        def _wrapper(*args: Any) -> None:
            self.off(event, _wrapper)
            listener(*args)

        return self.on(event, _wrapper)

    def off(self, event: str, listener: Listener) -> None:
        """Remove one registration of listener; unknown listeners are ignored."""
        listeners = self._listeners.get(event)
        if not listeners:
            return
        try:
            listeners.remove(listener)
        except ValueError:
            return
        if not listeners:
            del self._listeners[event]

    def remove_all_listeners(self, event: str | None = None) -> None:
        """Drop every listener, or every listener for one event."""
        if event is None:
            self._listeners.clear()
        else:
            self._listeners.pop(event, None)

    def listener_count(self, event: str) -> int:
        return len(self._listeners.get(event, ()))

    def emit(self, event: str, *args: Any) -> bool:
        """
        Call every listener for event with args.

        Returns True if at least one listener was registered.
        """
        listeners = list(self._listeners.get(event, ()))
        for listener in listeners:
            try:
                listener(*args)
            except Exception as exc:  # pylint: disable=broad-exception-caught
                log_event({
                    "event_type": "LISTENER_FAILED",
                    "level": "error",
                    "component": self._name,
                    "event": event,
                    "error": f"{type(exc).__name__}: {exc}",
                })
        return bool(listeners)
