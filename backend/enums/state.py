"""
Lifecycle state enumerations.

Rules:
- These enums define ONLY lifecycle states.
- No behavior, no helper methods, no side effects.
- Transitions are owned by the component that holds the state.
"""

from __future__ import annotations

from enum import Enum


class ProcessState(str, Enum):
    """
    Lifecycle of one capture subprocess.

    IDLE -> STARTING -> RUNNING -> STOPPING -> TERMINATED
    STARTING -> TERMINATED on any startup failure.

    TERMINATED is final; a new CaptureProcess is needed to retry.
    """

    IDLE = "IDLE"
    STARTING = "STARTING"
    RUNNING = "RUNNING"
    STOPPING = "STOPPING"
    TERMINATED = "TERMINATED"


class ConnectionState(str, Enum):
    """
    Lifecycle of one Deepgram streaming connection.

    DISCONNECTED -> CONNECTING -> CONNECTED -> CLOSING -> DISCONNECTED
    CONNECTED -> CONNECTING on unexpected closure (reconnect loop),
    unless close() was requested.
    """

    DISCONNECTED = "DISCONNECTED"
    CONNECTING = "CONNECTING"
    CONNECTED = "CONNECTED"
    CLOSING = "CLOSING"
