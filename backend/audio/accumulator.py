"""
In-memory PCM accumulator for batch transcription.

Rules:
- Unbounded append-only FIFO of raw chunks (one recording window)
- Byte count is monotonically non-decreasing between clear() calls
- Owned by exactly one batch uploader; never shared
- Deterministic, synchronous behavior
"""

from __future__ import annotations

from collections import deque
from typing import Deque

from constants import bytes_to_seconds


class BatchAccumulator:
    """
    Ordered PCM chunk buffer.

    append() is O(1); join() concatenates once, at upload time.
    """

    def __init__(self) -> None:
        self._chunks: Deque[bytes] = deque()
        self._total_bytes: int = 0

    def append(self, chunk: bytes) -> None:
        """Append one chunk. Empty chunks are ignored."""
        if not chunk:
            return
        self._chunks.append(bytes(chunk))
        self._total_bytes += len(chunk)

    def clear(self) -> None:
        """Drop all accumulated audio."""
        self._chunks.clear()
        self._total_bytes = 0

    def join(self) -> bytes:
        """Return all chunks concatenated in arrival order."""
        return b"".join(self._chunks)

    # -------------------------
    # Introspection helpers
    # -------------------------

    def __len__(self) -> int:
        return len(self._chunks)

    @property
    def total_bytes(self) -> int:
        return self._total_bytes

    def is_empty(self) -> bool:
        return self._total_bytes == 0

    def snapshot(self, sample_rate_hz: int) -> dict[str, float | int]:
        """
        Lightweight snapshot for logging.
        """
        return {
            "chunks": len(self._chunks),
            "bytes": self._total_bytes,
            "duration_s": bytes_to_seconds(self._total_bytes, sample_rate_hz),
        }
