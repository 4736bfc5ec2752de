# pylint: disable=missing-module-docstring,missing-function-docstring

import json

import pytest

from events.emitter import Emitter
from observability import logger


def test_listeners_run_in_registration_order() -> None:
    emitter = Emitter("unit")
    calls: list[tuple[str, int]] = []
    emitter.on("x", lambda v: calls.append(("a", v)))
    emitter.on("x", lambda v: calls.append(("b", v)))

    assert emitter.emit("x", 1) is True
    assert calls == [("a", 1), ("b", 1)]


def test_emit_without_listeners_returns_false() -> None:
    assert Emitter("unit").emit("nothing") is False


def test_unsubscribe_removes_exactly_one_registration() -> None:
    emitter = Emitter("unit")
    calls: list[int] = []
    first = emitter.on("x", calls.append)
    emitter.on("x", calls.append)

    first()
    first()
    emitter.emit("x", 7)

    assert calls == [7]
    assert emitter.listener_count("x") == 1


def test_once_fires_a_single_time() -> None:
    emitter = Emitter("unit")
    calls: list[int] = []
    emitter.once("x", calls.append)

    emitter.emit("x", 1)
    emitter.emit("x", 2)

    assert calls == [1]
    assert emitter.listener_count("x") == 0


def test_remove_all_listeners_per_event_and_globally() -> None:
    emitter = Emitter("unit")
    emitter.on("a", lambda: None)
    emitter.on("b", lambda: None)

    emitter.remove_all_listeners("a")
    assert emitter.listener_count("a") == 0
    assert emitter.listener_count("b") == 1

    emitter.remove_all_listeners()
    assert emitter.listener_count("b") == 0


def test_failing_listener_is_logged_and_others_still_run(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    captured: list[str] = []
    monkeypatch.setattr(logger, "_print", captured.append)
    emitter = Emitter("unit")
    calls: list[int] = []

    def broken(_value: int) -> None:
        raise RuntimeError("listener bug")

    emitter.on("x", broken)
    emitter.on("x", calls.append)
    emitter.emit("x", 3)

    assert calls == [3]
    record = json.loads(captured[0])
    assert record["event_type"] == "LISTENER_FAILED"
    assert "listener bug" in record["error"]


def test_listener_may_unsubscribe_during_emit() -> None:
    emitter = Emitter("unit")
    calls: list[str] = []
    unsubscribe = None

    def first() -> None:
        calls.append("first")
        unsubscribe()

    unsubscribe = emitter.on("x", first)
    emitter.on("x", lambda: calls.append("second"))

    emitter.emit("x")
    emitter.emit("x")

    assert calls == ["first", "second", "second"]


def test_stale_unsubscribe_handle_is_a_no_op() -> None:
    emitter = Emitter("unit")
    calls: list[str] = []

    def listener() -> None:
        calls.append("hit")

    stale = emitter.on("x", listener)
    stale()
    emitter.on("x", listener)
    stale()
    emitter.emit("x")

    assert calls == ["hit"]
    assert emitter.listener_count("x") == 1
