"""Bounded output history for terminal sessions."""

from __future__ import annotations

import threading
from collections import deque


class HistoryBuffer:
    """Thread-safe FIFO of raw output chunks.

    Holds at most ``capacity`` chunks; appending to a full buffer silently
    evicts the oldest one. Concatenating the chunks in order reproduces the
    tail of the session's raw output (ANSI sequences included), which is
    what a newly attached observer is sent as its ``init`` replay.
    """

    def __init__(self, capacity: int = 2000) -> None:
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self._chunks: deque[str] = deque(maxlen=capacity)
        self._lock = threading.Lock()

    def append(self, chunk: str) -> None:
        """Append a chunk, evicting from the front once over capacity."""
        with self._lock:
            self._chunks.append(chunk)

    def snapshot(self) -> list[str]:
        """Copy of the current contents, oldest first.

        Taken under the same lock as ``append`` so a replay never sees a
        half-applied append.
        """
        with self._lock:
            return list(self._chunks)

    def read_all(self) -> str:
        """All buffered output as a single string, i.e. the replay text."""
        with self._lock:
            return "".join(self._chunks)
