"""HTTP server: FastAPI routes and the SSE stream endpoint."""

from termrelay.server.app import create_app
from termrelay.server.stream import StreamState, TerminalStream

__all__ = ["create_app", "StreamState", "TerminalStream"]
