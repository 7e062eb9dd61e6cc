"""PTY session engine: processes, output history and the session registry.

Each working directory runs at most one interactive command on its own
pseudo-terminal. Output is filtered, kept in a bounded history buffer for
replay, and published on the wire for live observers.
"""

from termrelay.pty.buffer import HistoryBuffer
from termrelay.pty.manager import SessionRegistry
from termrelay.pty.noise import NoiseFilter
from termrelay.pty.process import ProcessAdapter, PtyProcess, SpawnRequest
from termrelay.pty.scripted import ScriptedProcess, ScriptedSpawner
from termrelay.pty.session import SessionStatus, TerminalSession

__all__ = [
    "HistoryBuffer",
    "NoiseFilter",
    "ProcessAdapter",
    "PtyProcess",
    "ScriptedProcess",
    "ScriptedSpawner",
    "SessionRegistry",
    "SessionStatus",
    "SpawnRequest",
    "TerminalSession",
]
