"""Bounded output backlog for terminal sessions."""

from __future__ import annotations

import threading
from collections import deque

DEFAULT_MAX_CHUNKS = 5000


class OutputBuffer:
    """Thread-safe FIFO of recent output chunks.

    Holds at most ``max_chunks`` chunks; every append beyond the bound
    evicts the oldest chunk. The bound counts chunks, not bytes. The
    buffer exists to replay recent history to newly attached clients and
    is not a durable log.
    """

    def __init__(self, max_chunks: int = DEFAULT_MAX_CHUNKS) -> None:
        if max_chunks <= 0:
            raise ValueError("max_chunks must be positive")
        self._chunks: deque[str] = deque(maxlen=max_chunks)
        self._total_chunks = 0
        self._lock = threading.Lock()

    def append(self, chunk: str) -> None:
        with self._lock:
            self._chunks.append(chunk)
            self._total_chunks += 1

    def snapshot(self) -> list[str]:
        """Return the buffered chunks, oldest first."""
        with self._lock:
            return list(self._chunks)

    @property
    def max_chunks(self) -> int:
        return self._chunks.maxlen or 0

    @property
    def total_chunks(self) -> int:
        """Total number of chunks ever appended, evicted ones included."""
        with self._lock:
            return self._total_chunks

    def clear(self) -> None:
        with self._lock:
            self._chunks.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._chunks)
