"""Wire: in-process event bus between terminal sessions and observers.

Sessions publish Data and Exit events; each observer subscribes with the id
of the session it watches. One Wire is created per server and injected into
the registry and the stream endpoint.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Union

from termrelay.exception import TransportClosed

logger = logging.getLogger(__name__)


class EventType(enum.Enum):
    DATA = "data"
    EXIT = "exit"


@dataclass(frozen=True)
class DataEvent:
    """A chunk of (filtered) terminal output."""

    session_id: str
    data: str
    type: EventType = field(default=EventType.DATA, init=False)

    def to_payload(self) -> dict[str, Any]:
        return {"type": self.type.value, "data": self.data}


@dataclass(frozen=True)
class ExitEvent:
    """The session's process has terminated."""

    session_id: str
    code: int | None = None
    signal: int | None = None
    type: EventType = field(default=EventType.EXIT, init=False)

    def to_payload(self) -> dict[str, Any]:
        return {"type": self.type.value, "code": self.code, "signal": self.signal}


WireEvent = Union[DataEvent, ExitEvent]


@dataclass(eq=False)
class Subscription:
    """One observer's interest in one session.

    ``on_close`` is called when the wire itself shuts down.
    """

    session_id: str
    callback: Callable[[WireEvent], None]
    on_close: Callable[[], None] | None = None
    active: bool = True


class Wire:
    """Synchronous publish/subscribe, filtered by session id.

    Delivery happens inside ``send`` in subscription order. A subscriber
    that raises is logged and skipped; it never affects other subscribers
    or the process output path that called ``send``. Raising
    ``TransportClosed`` unsubscribes the callback quietly.
    """

    def __init__(self) -> None:
        self._subscribers: list[Subscription] = []
        self._closed: bool = False

    @property
    def closed(self) -> bool:
        return self._closed

    def send(self, event: WireEvent) -> None:
        """Deliver an event to every subscriber of its session.

        Silently drops events after ``close()`` has been called.
        """
        if self._closed:
            return
        # Iterate a copy: callbacks may subscribe or unsubscribe.
        for sub in list(self._subscribers):
            if not sub.active or sub.session_id != event.session_id:
                continue
            try:
                sub.callback(event)
            except TransportClosed:
                logger.debug("Observer of session %s went away", sub.session_id)
                self.unsubscribe(sub)
            except Exception:
                logger.exception(
                    "Subscriber for session %s failed on %s event",
                    sub.session_id,
                    event.type.value,
                )

    def send_data(self, session_id: str, data: str) -> None:
        self.send(DataEvent(session_id=session_id, data=data))

    def send_exit(
        self, session_id: str, code: int | None, signal: int | None
    ) -> None:
        self.send(ExitEvent(session_id=session_id, code=code, signal=signal))

    def subscribe(
        self,
        session_id: str,
        callback: Callable[[WireEvent], None],
        on_close: Callable[[], None] | None = None,
    ) -> Subscription:
        """Subscribe to one session's events.

        On a closed wire the subscription is born inactive and ``on_close``
        is called right away.
        """
        sub = Subscription(session_id=session_id, callback=callback, on_close=on_close)
        if self._closed:
            sub.active = False
            if on_close is not None:
                on_close()
            return sub
        self._subscribers.append(sub)
        return sub

    def unsubscribe(self, sub: Subscription) -> None:
        """Unsubscribe. Safe to call more than once."""
        sub.active = False
        if sub in self._subscribers:
            self._subscribers.remove(sub)

    def subscriber_count(self, session_id: str | None = None) -> int:
        if session_id is None:
            return len(self._subscribers)
        return sum(1 for s in self._subscribers if s.session_id == session_id)

    def close(self) -> None:
        """Signal all subscribers that the wire is closing."""
        if self._closed:
            return
        self._closed = True
        subscribers, self._subscribers = self._subscribers, []
        for sub in subscribers:
            sub.active = False
            if sub.on_close is None:
                continue
            try:
                sub.on_close()
            except Exception:
                logger.exception("Error closing subscriber for %s", sub.session_id)
