"""
JSONL event logger.

- Write one JSON object per line
- Output to stderr (stdout of a host app is often a protocol channel)
- Drop records below the configured level
- No buffering, no batching
- Never raises
"""

from __future__ import annotations

import json
import sys
import time
from typing import Any, Callable, Final, Mapping


LEVELS: Final[dict[str, int]] = {
    "debug": 10,
    "info": 20,
    "warn": 30,
    "error": 40,
    "silent": 100,
}

DEFAULT_LEVEL: Final[str] = "warn"


# ------------------------------------------------------------------
# Explicit output sink (patchable in tests)
# ------------------------------------------------------------------

def _stderr_print(line: str) -> None:
    sys.stderr.write(line + "\n")
    sys.stderr.flush()

_print: Callable[[str], None] = _stderr_print

_min_level: int = LEVELS[DEFAULT_LEVEL]


def set_level(level: str) -> None:
    """
    Set the process-wide minimum level.

    Raises:
        ValueError on an unknown level name.
    """
    global _min_level  # pylint: disable=global-statement
    try:
        _min_level = LEVELS[level.lower()]
    except KeyError:
        raise ValueError(
            f"Unknown log level {level!r}; expected one of {sorted(LEVELS)}"
        ) from None


def get_level() -> str:
    """Return the current minimum level name."""
    for name, value in LEVELS.items():
        if value == _min_level:
            return name
    return DEFAULT_LEVEL


def log_event(event: Mapping[str, Any]) -> None:
    """
    Write a single JSONL event.

    The caller supplies:
    - event_type
    - level ("debug" | "info" | "warn" | "error"), default "info"
    - component, plus any context fields

    This function:
    - Stamps ts_ms when absent
    - Serializes to JSON (non-JSON values via repr)
    - Writes exactly one line
    """
    level = str(event.get("level", "info"))
    if LEVELS.get(level, LEVELS["info"]) < _min_level:
        return

    record: dict[str, Any] = {"ts_ms": time.time_ns() // 1_000_000, "level": level}
    record.update(event)

    try:
        line = json.dumps(record, ensure_ascii=False, separators=(",", ":"), default=repr)
    except (TypeError, ValueError) as e:
        # Logging must never crash the runtime
        fallback: dict[str, Any] = {
            "ts_ms": record.get("ts_ms"),
            "level": "error",
            "event_type": "LOGGER_SERIALIZATION_ERROR",
            "error": str(e),
            "original_event_repr": repr(event),
        }
        line = json.dumps(fallback, ensure_ascii=False, separators=(",", ":"))

    _print(line)
