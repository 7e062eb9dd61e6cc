"""Session registry: owns every terminal session."""

from __future__ import annotations

import asyncio
import logging
import signal
from typing import Any, Callable

from termrelay.config import TerminalConfig
from termrelay.exception import NotFoundError
from termrelay.pty.buffer import HistoryBuffer
from termrelay.pty.noise import NoiseFilter
from termrelay.pty.process import SpawnRequest, Spawner, spawn_pty
from termrelay.pty.session import SessionStatus, TerminalSession
from termrelay.session.wire import Wire

logger = logging.getLogger(__name__)

MIN_COLS = 20
MIN_ROWS = 8
MAX_COLS = 1000
MAX_ROWS = 1000


class SessionRegistry:
    """Creates, tracks and destroys terminal sessions.

    The registry ensures:
    - At most one live session per working directory. The lookup and the
      spawn happen under one lock, so concurrent start requests for the
      same directory share a single process.
    - Sessions are indexed by id and by directory; both entries are removed
      together when the session stops or its process exits.
    - Output flows process -> noise filter -> history buffer -> wire.
    - Closed sessions are never handed out again.
    """

    def __init__(
        self,
        wire: Wire,
        validate: Callable[[str], str],
        config: TerminalConfig | None = None,
        spawner: Spawner = spawn_pty,
    ) -> None:
        self._wire = wire
        self._validate = validate
        self._config = config or TerminalConfig()
        self._spawner = spawner
        self._sessions: dict[str, TerminalSession] = {}
        self._session_by_cwd: dict[str, str] = {}
        self._lock = asyncio.Lock()

    async def start_or_resume(self, working_directory: str) -> TerminalSession:
        """Return the live session for a directory, spawning one if needed.

        Raises:
            ValidationError: The directory is not allowed; nothing is spawned.
            SpawnError: The command failed to start; no session is recorded.
        """
        cwd = self._validate(working_directory)

        async with self._lock:
            existing = self._live_session_for(cwd)
            if existing is not None:
                logger.info("Resuming session %s for %s", existing.id, cwd)
                return existing

            cfg = self._config
            process = await self._spawner(
                SpawnRequest(
                    command=cfg.command,
                    args=list(cfg.args),
                    cwd=cwd,
                    env={"TERM": cfg.term_type},
                    term_type=cfg.term_type,
                    cols=cfg.cols,
                    rows=cfg.rows,
                )
            )
            session = TerminalSession(
                cwd=cwd,
                process=process,
                noise=NoiseFilter(process.write, cfg.update_dismiss_keys),
                buffer=HistoryBuffer(cfg.buffer_capacity),
            )
            self._wire_up(session)
            self._sessions[session.id] = session
            self._session_by_cwd[cwd] = session.id
            process.start()

        logger.info(
            "Started session %s for %s (pid=%d)", session.id, cwd, process.pid
        )
        return session

    def _live_session_for(self, cwd: str) -> TerminalSession | None:
        session_id = self._session_by_cwd.get(cwd)
        if session_id is None:
            return None
        session = self._sessions.get(session_id)
        if session is not None and not session.closed:
            return session
        self._session_by_cwd.pop(cwd, None)
        return None

    def _wire_up(self, session: TerminalSession) -> None:
        wire = self._wire

        def _on_data(chunk: str) -> None:
            session.record_output(chunk)
            wire.send_data(session.id, chunk)

        def _on_exit(exit_code: int | None, sig: int | None) -> None:
            if session.status == SessionStatus.RUNNING:
                session.status = SessionStatus.EXITED
            session.exit_code = exit_code
            session.exit_signal = sig
            self._forget(session)
            logger.info(
                "Session %s exited (code=%s, signal=%s)", session.id, exit_code, sig
            )
            wire.send_exit(session.id, exit_code, sig)

        session.process.on_data(session.noise.wrap(_on_data))
        session.process.on_exit(_on_exit)

    def _forget(self, session: TerminalSession) -> None:
        if self._sessions.get(session.id) is session:
            del self._sessions[session.id]
        # Only drop the directory entry if it still points at this session.
        if self._session_by_cwd.get(session.cwd) == session.id:
            del self._session_by_cwd[session.cwd]

    def _require(self, session_id: str) -> TerminalSession:
        session = self._sessions.get(session_id)
        if session is None or session.closed:
            raise NotFoundError("session not found")
        return session

    def get(self, session_id: str) -> TerminalSession | None:
        """Get a live session by id."""
        session = self._sessions.get(session_id)
        if session is None or session.closed:
            return None
        return session

    def info(self, session_id: str) -> dict[str, Any] | None:
        session = self.get(session_id)
        return session.info() if session else None

    def write(self, session_id: str, text: str, press_enter: bool = False) -> None:
        """Send keystrokes, optionally followed by a carriage return.

        Raises:
            NotFoundError: Unknown or closed session.
        """
        session = self._require(session_id)
        payload = f"{text}\r" if press_enter else text
        logger.debug(
            "Write to %s: %d chars (enter=%s)", session_id, len(text), press_enter
        )
        if payload:
            try:
                session.process.write(payload)
            except (OSError, RuntimeError) as e:
                # Terminal closed, exit not reported yet
                logger.debug("Write to %s failed: %s", session_id, e)
                raise NotFoundError("session not found") from e

    def resize(self, session_id: str, cols: int | None, rows: int | None) -> None:
        """Resize the PTY.

        Missing sizes fall back to the configured spawn size; the result is
        clamped to ``MIN_COLS..MAX_COLS`` by ``MIN_ROWS..MAX_ROWS``.

        Raises:
            NotFoundError: Unknown or closed session.
        """
        session = self._require(session_id)
        cols = min(MAX_COLS, max(MIN_COLS, cols or self._config.cols))
        rows = min(MAX_ROWS, max(MIN_ROWS, rows or self._config.rows))
        logger.debug("Resize %s to %dx%d", session_id, cols, rows)
        try:
            session.process.resize(cols, rows)
        except (OSError, RuntimeError) as e:
            logger.debug("Resize of %s failed: %s", session_id, e)
            raise NotFoundError("session not found") from e

    def stop(self, session_id: str) -> None:
        """Kill a session and remove it from tracking. Unknown ids are ignored."""
        session = self._sessions.get(session_id)
        if session is None:
            return
        logger.info("Stopping session %s (%s)", session.id, session.cwd)
        session.status = SessionStatus.STOPPED
        self._forget(session)
        try:
            session.process.kill(signal.SIGKILL)
        except OSError as e:
            logger.error("Failed to kill session %s: %s", session_id, e)

    def list_sessions(self) -> list[dict[str, Any]]:
        """Info for every live session."""
        return [s.info() for s in self._sessions.values() if not s.closed]

    async def shutdown(self) -> None:
        """Kill all sessions. Called on server shutdown."""
        for session_id in list(self._sessions.keys()):
            self.stop(session_id)
        logger.info("All terminal sessions stopped")

    def __len__(self) -> int:
        return len(self._sessions)
