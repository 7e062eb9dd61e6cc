"""Keystroke and resize batching for terminal clients.

Typing sends one request per flush rather than per key, and resize bursts
(dragging a window edge) collapse into a single request.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)

SendInput = Callable[[str, bool], Awaitable[None]]
SendResize = Callable[[int, int], Awaitable[None]]

ENTER = "\r"


class InputCoalescer:
    """Batches keystrokes into ordered ``send(text, enter)`` calls.

    - A lone carriage return flushes the pending text at once with
      ``enter=True``.
    - Any other input starts a timer on the first buffered character; the
      batch is flushed when it fires.
    - Flushes go through a single chain of tasks: each send starts only
      after the previous one finished or failed, so keystrokes arrive in
      the order they were typed even when requests are slow.

    Must be used from within a running event loop.
    """

    def __init__(self, send: SendInput, interval: float = 0.03) -> None:
        self._send = send
        self.interval = interval
        self._pending = ""
        self._timer: asyncio.TimerHandle | None = None
        self._tail: asyncio.Future[None] | None = None

    @property
    def pending(self) -> str:
        return self._pending

    def feed(self, chunk: str) -> None:
        if chunk == ENTER:
            self.flush(enter=True)
            return
        self._pending += chunk
        if self._timer is None:
            loop = asyncio.get_running_loop()
            self._timer = loop.call_later(self.interval, self.flush)

    def flush(self, enter: bool = False) -> None:
        data, self._pending = self._pending, ""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if not enter and not data:
            return
        self._tail = asyncio.ensure_future(self._send_after(self._tail, data, enter))

    async def _send_after(
        self, previous: asyncio.Future[None] | None, data: str, enter: bool
    ) -> None:
        if previous is not None:
            await asyncio.wait([previous])
        try:
            await self._send(data, enter)
        except Exception as e:
            logger.warning("Input send failed (%d chars): %s", len(data), e)

    async def drain(self) -> None:
        """Flush anything pending and wait until every send has finished."""
        self.flush()
        if self._tail is not None:
            await asyncio.wait([self._tail])


class ResizeDebouncer:
    """Sends only the last size requested within ``window`` seconds.

    The window opens on the first request of a burst; requests that arrive
    while it is open just replace the size to send.
    """

    def __init__(self, send: SendResize, window: float = 0.05) -> None:
        self._send = send
        self.window = window
        self._size: tuple[int, int] | None = None
        self._timer: asyncio.TimerHandle | None = None
        self._tasks: set[asyncio.Task[None]] = set()

    def request(self, cols: int, rows: int) -> None:
        if not isinstance(cols, int) or not isinstance(rows, int):
            return
        if cols <= 0 or rows <= 0:
            return
        self._size = (cols, rows)
        if self._timer is None:
            loop = asyncio.get_running_loop()
            self._timer = loop.call_later(self.window, self._fire)

    def _fire(self) -> None:
        self._timer = None
        size, self._size = self._size, None
        if size is None:
            return
        task = asyncio.ensure_future(self._send_resize(*size))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _send_resize(self, cols: int, rows: int) -> None:
        try:
            await self._send(cols, rows)
        except Exception as e:
            logger.debug("Resize to %dx%d failed: %s", cols, rows, e)

    def cancel(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self._size = None

    async def drain(self) -> None:
        """Wait for in-flight resize requests."""
        if self._tasks:
            await asyncio.wait(list(self._tasks))
