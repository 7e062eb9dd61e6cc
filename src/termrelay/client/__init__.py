"""Client side: HTTP API client, local session store and input batching."""

from termrelay.client.api import TerminalClient, iter_sse
from termrelay.client.coalescer import InputCoalescer, ResizeDebouncer
from termrelay.client.store import SessionStore

__all__ = [
    "InputCoalescer",
    "ResizeDebouncer",
    "SessionStore",
    "TerminalClient",
    "iter_sse",
]
