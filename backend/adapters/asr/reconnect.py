"""
Reconnect policy for the streaming socket.

Purpose:
- Centralize the reconnect rules (close-code table, backoff, attempt cap)
- Keep the socket's recovery loop a thin driver over pure decisions

This module contains NO timers, NO async, NO side effects.
"""
from __future__ import annotations

from dataclasses import dataclass, field

from constants import (
    NON_RETRYABLE_CLOSE_CODES,
    RECONNECT_BASE_DELAY_S,
    RECONNECT_MAX_ATTEMPTS,
)


# =============================================================================
# Retry State
# =============================================================================

@dataclass(frozen=True)
class RetryAttempt:
    """
    Immutable reconnect attempt counter.

    Semantics:
    - attempt == 0: connected, or never failed (no reconnect yet).
    - attempt >= 1: the Nth consecutive reconnect attempt.
    """
    attempt: int


def next_attempt(current: RetryAttempt) -> RetryAttempt:
    """Return a new RetryAttempt with attempt incremented by 1."""
    return RetryAttempt(attempt=current.attempt + 1)


def reset_attempt() -> RetryAttempt:
    """Returns a fresh retry attempt counter."""
    return RetryAttempt(attempt=0)


# =============================================================================
# Policy
# =============================================================================

@dataclass(frozen=True)
class ReconnectPolicy:
    """
    Decides whether and when to reconnect after an unexpected close.

    non_retryable_codes:
        Close codes that end the session for good (normal close, policy
        violation, auth failure by default). The table belongs to the remote
        protocol version, so it is configurable rather than hard-coded.
    """

    base_delay_s: float = RECONNECT_BASE_DELAY_S
    max_attempts: int = RECONNECT_MAX_ATTEMPTS
    non_retryable_codes: frozenset[int] = field(
        default_factory=lambda: NON_RETRYABLE_CLOSE_CODES
    )

    def is_retryable_code(self, code: int | None) -> bool:
        return code not in self.non_retryable_codes

    def can_retry(self, attempt: RetryAttempt) -> bool:
        """attempt = number of reconnects already performed."""
        return attempt.attempt < self.max_attempts

    def should_reconnect(self, code: int | None, attempt: RetryAttempt) -> bool:
        return self.is_retryable_code(code) and self.can_retry(attempt)

    def delay_for(self, attempt: RetryAttempt) -> float:
        """
        Delay before reconnect attempt N (N >= 1).

        base * 2^(N-1): 1s, 2s, 4s, 8s, 16s with the defaults.
        """
        exponent = max(attempt.attempt - 1, 0)
        return self.base_delay_s * (2 ** exponent)
