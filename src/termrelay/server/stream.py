"""Server-sent event stream for one observer of one terminal session."""

from __future__ import annotations

import asyncio
import enum
import json
import logging
from typing import Any, AsyncIterator

from termrelay.exception import NotFoundError, TransportClosed
from termrelay.pty.manager import SessionRegistry
from termrelay.pty.session import TerminalSession
from termrelay.session.wire import ExitEvent, Subscription, Wire, WireEvent

logger = logging.getLogger(__name__)

KEEPALIVE_FRAME = ":keepalive\n\n"
MAX_PENDING_EVENTS = 10_000


def sse_frame(payload: dict[str, Any]) -> str:
    return f"data: {json.dumps(payload)}\n\n"


class StreamState(enum.Enum):
    ATTACHING = "attaching"
    REPLAYING = "replaying"
    LIVE = "live"
    CLOSED = "closed"


class TerminalStream:
    """attaching -> replaying -> live -> closed.

    ``attach()`` resolves the session (or raises ``NotFoundError`` before
    anything is streamed). ``frames()`` then takes the history snapshot and
    subscribes to the wire in one step with no await in between, so every
    chunk is either in the ``init`` replay or delivered afterwards as
    ``data``, never both and never neither.

    Wire callbacks only enqueue; frames are produced by the consumer of
    ``frames()``. At most ``max_pending`` events wait for a slow client:
    past that the observer is dropped, and it catches up by attaching again
    and taking a fresh replay. Closing the stream (exit event, client
    disconnect, overflow, wire shutdown) only ever affects this observer.
    """

    def __init__(
        self,
        registry: SessionRegistry,
        wire: Wire,
        session_id: str,
        keepalive_interval: float = 25.0,
        max_pending: int = MAX_PENDING_EVENTS,
    ) -> None:
        self._registry = registry
        self._wire = wire
        self.session_id = session_id
        self.keepalive_interval = keepalive_interval
        self.state = StreamState.ATTACHING
        self._session: TerminalSession | None = None
        self._queue: asyncio.Queue[WireEvent | None] = asyncio.Queue(maxsize=max_pending)
        self._overflowed = False
        self._subscription: Subscription | None = None

    def attach(self) -> TerminalSession:
        session = self._registry.get(self.session_id)
        if session is None:
            self.state = StreamState.CLOSED
            raise NotFoundError("session not found")
        self._session = session
        self.state = StreamState.REPLAYING
        return session

    def _replay_and_subscribe(self) -> tuple[str, bool]:
        """Snapshot the history and subscribe; returns (history, already_closed)."""
        assert self._session is not None
        history = self._session.buffer.read_all()
        if self._session.closed:
            return history, True
        self._subscription = self._wire.subscribe(
            self.session_id, self._enqueue, on_close=self._on_wire_closed
        )
        return history, False

    def _enqueue(self, event: WireEvent) -> None:
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            self._overflowed = True
            logger.warning(
                "Observer of session %s fell %d events behind, dropping it",
                self.session_id,
                self._queue.maxsize,
            )
            raise TransportClosed("observer too slow")

    def _on_wire_closed(self) -> None:
        if self._queue.full():
            self._overflowed = True
            return
        self._queue.put_nowait(None)

    async def frames(self) -> AsyncIterator[str]:
        """Yield SSE frames until the session exits or the client leaves."""
        if self.state == StreamState.ATTACHING:
            self.attach()
        if self.state != StreamState.REPLAYING:
            return

        history, already_closed = self._replay_and_subscribe()
        assert self._session is not None
        logger.info(
            "Observer attached to session %s (%d attached)",
            self.session_id,
            self._wire.subscriber_count(self.session_id),
        )
        try:
            yield sse_frame({"type": "init", "data": history})
            self.state = StreamState.LIVE

            if already_closed:
                # Exited between attach() and the first frame.
                yield sse_frame(
                    ExitEvent(
                        self.session_id,
                        self._session.exit_code,
                        self._session.exit_signal,
                    ).to_payload()
                )
                return

            loop = asyncio.get_running_loop()
            next_keepalive = loop.time() + self.keepalive_interval
            while True:
                if self._overflowed and self._queue.empty():
                    # Dropped by the wire; everything queued has been sent.
                    return
                timeout = max(0.0, next_keepalive - loop.time())
                try:
                    event = await asyncio.wait_for(self._queue.get(), timeout=timeout)
                except asyncio.TimeoutError:
                    yield KEEPALIVE_FRAME
                    next_keepalive = loop.time() + self.keepalive_interval
                    continue

                if event is None:
                    # Server shutdown
                    return
                yield sse_frame(event.to_payload())
                if isinstance(event, ExitEvent):
                    return
        finally:
            self.close()

    def close(self) -> None:
        if self.state == StreamState.CLOSED:
            return
        self.state = StreamState.CLOSED
        if self._subscription is not None:
            self._wire.unsubscribe(self._subscription)
            self._subscription = None
        logger.info("Observer detached from session %s", self.session_id)
