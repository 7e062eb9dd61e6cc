"""Terminal session: one interactive process bound to a working directory."""

from __future__ import annotations

import enum
import time
import uuid
from dataclasses import dataclass, field
from typing import Any

from termrelay.pty.buffer import HistoryBuffer
from termrelay.pty.noise import NoiseFilter
from termrelay.pty.process import ProcessAdapter


def _now_ms() -> int:
    return int(time.time() * 1000)


def new_session_id() -> str:
    return uuid.uuid4().hex


class SessionStatus(enum.Enum):
    """Lifecycle states for a terminal session."""

    RUNNING = "running"
    STOPPED = "stopped"  # Killed through the registry
    EXITED = "exited"  # Process exited on its own


@dataclass
class TerminalSession:
    """The registry's record of one live or recently-live process.

    A session never comes back once closed: resuming the same directory
    afterwards creates a new session with a new id.
    """

    cwd: str
    process: ProcessAdapter
    noise: NoiseFilter
    buffer: HistoryBuffer = field(default_factory=HistoryBuffer)
    id: str = field(default_factory=new_session_id)
    created_at: int = field(default_factory=_now_ms)
    last_output_at: int = field(default_factory=_now_ms)
    status: SessionStatus = SessionStatus.RUNNING
    exit_code: int | None = None
    exit_signal: int | None = None

    @property
    def closed(self) -> bool:
        return self.status != SessionStatus.RUNNING

    def record_output(self, chunk: str) -> None:
        self.buffer.append(chunk)
        self.last_output_at = _now_ms()

    def info(self) -> dict[str, Any]:
        """Read-only projection sent to clients."""
        return {
            "id": self.id,
            "cwd": self.cwd,
            "createdAt": self.created_at,
            "lastOutputAt": self.last_output_at,
        }
