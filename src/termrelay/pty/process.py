"""Process adapters: the child processes behind terminal sessions.

Two implementations share the :class:`ProcessAdapter` contract:

* :class:`PtyProcess` runs the command on a real pseudo-terminal.
* :class:`termrelay.pty.scripted.ScriptedProcess` replays scripted output
  for tests.

Usage is always spawn, register callbacks, then ``start()``. Output is only
delivered after ``start()``, so no chunk can be produced before the
callbacks are in place.
"""

from __future__ import annotations

import abc
import asyncio
import codecs
import fcntl
import logging
import os
import pty
import signal
import struct
import subprocess
import termios
from dataclasses import dataclass, field
from typing import Callable, Protocol

from termrelay.exception import SpawnError

logger = logging.getLogger(__name__)

DataCallback = Callable[[str], None]
ExitCallback = Callable[["int | None", "int | None"], None]


@dataclass
class SpawnRequest:
    """Everything needed to start one interactive process."""

    command: str
    args: list[str] = field(default_factory=list)
    cwd: str = "."
    env: dict[str, str] = field(default_factory=dict)
    term_type: str = "xterm-256color"
    cols: int = 120
    rows: int = 32


class Spawner(Protocol):
    async def __call__(self, request: SpawnRequest) -> ProcessAdapter: ...


class ProcessAdapter(abc.ABC):
    """One interactive child process.

    Guarantees to callers:
    - data callbacks fire in the order the bytes were produced;
    - the exit callback fires exactly once, and no data callback fires
      after it.
    """

    def __init__(self) -> None:
        self._data_callback: DataCallback | None = None
        self._exit_callback: ExitCallback | None = None
        self._exited = False

    def on_data(self, callback: DataCallback) -> None:
        self._data_callback = callback

    def on_exit(self, callback: ExitCallback) -> None:
        self._exit_callback = callback

    @property
    def exited(self) -> bool:
        return self._exited

    def _emit_data(self, text: str) -> None:
        if self._exited or self._data_callback is None:
            return
        try:
            self._data_callback(text)
        except Exception:
            logger.exception("Error in data callback")

    def _emit_exit(self, exit_code: int | None, sig: int | None) -> None:
        if self._exited:
            return
        self._exited = True
        if self._exit_callback is None:
            return
        try:
            self._exit_callback(exit_code, sig)
        except Exception:
            logger.exception("Error in exit callback")

    @abc.abstractmethod
    def start(self) -> None:
        """Begin delivering output to the registered callbacks."""

    @abc.abstractmethod
    def write(self, data: str) -> None: ...

    @abc.abstractmethod
    def resize(self, cols: int, rows: int) -> None: ...

    @abc.abstractmethod
    def kill(self, sig: int = signal.SIGKILL) -> None: ...

    @property
    @abc.abstractmethod
    def pid(self) -> int: ...


def _set_winsize(fd: int, cols: int, rows: int) -> None:
    # Pack window size: (rows, cols, xpixel, ypixel)
    winsize = struct.pack("HHHH", rows, cols, 0, 0)
    fcntl.ioctl(fd, termios.TIOCSWINSZ, winsize)


def _acquire_controlling_tty() -> None:
    # Runs in the child after setsid(): make the PTY slave on stdin the
    # controlling terminal so SIGWINCH reaches the foreground job.
    fcntl.ioctl(0, termios.TIOCSCTTY, 0)


class PtyProcess(ProcessAdapter):
    """A command running on an OS pseudo-terminal.

    The child runs in its own session/process group (``start_new_session``)
    so ``kill`` can take down the whole tree. Output is read on the event
    loop thread with ``add_reader``; decoding is incremental so multi-byte
    UTF-8 sequences split across reads are not mangled. Input is written
    the same way: the master fd stays non-blocking and bytes the PTY cannot
    take yet wait for an ``add_writer`` callback.
    """

    READ_SIZE = 4096

    def __init__(self, proc: subprocess.Popen, master_fd: int) -> None:
        super().__init__()
        self._proc = proc
        self._master_fd = master_fd
        # start_new_session makes the child its own group leader
        self._pgid = proc.pid
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._loop: asyncio.AbstractEventLoop | None = None
        self._reading = False
        self._writing = False
        self._hung_up = False
        self._pending_input = bytearray()
        self._closed_fd = False

    @classmethod
    async def spawn(cls, request: SpawnRequest) -> PtyProcess:
        """Start ``request.command`` on a new PTY.

        Raises:
            SpawnError: The command could not be executed (missing binary,
                bad cwd, PTY allocation failure).
        """
        env = {**os.environ, **request.env}
        env["TERM"] = request.term_type

        try:
            master_fd, slave_fd = pty.openpty()
        except OSError as e:
            raise SpawnError(f"failed to allocate pty: {e}") from e

        try:
            _set_winsize(slave_fd, request.cols, request.rows)
            proc = subprocess.Popen(
                [request.command, *request.args],
                stdin=slave_fd,
                stdout=slave_fd,
                stderr=slave_fd,
                start_new_session=True,
                preexec_fn=_acquire_controlling_tty,
                env=env,
                cwd=request.cwd,
            )
        except (OSError, subprocess.SubprocessError) as e:
            os.close(master_fd)
            raise SpawnError(f"failed to start {request.command}: {e}") from e
        finally:
            # Parent always closes slave fd
            os.close(slave_fd)

        os.set_blocking(master_fd, False)
        logger.info(
            "Spawned pid=%d cwd=%s cmd=%s",
            proc.pid,
            request.cwd,
            " ".join([request.command, *request.args]),
        )
        return cls(proc, master_fd)

    @property
    def pid(self) -> int:
        return self._proc.pid

    def start(self) -> None:
        self._loop = asyncio.get_running_loop()
        self._loop.add_reader(self._master_fd, self._on_readable)
        self._reading = True

    def _on_readable(self) -> None:
        try:
            data = os.read(self._master_fd, self.READ_SIZE)
        except BlockingIOError:
            return
        except OSError:
            # EIO: every slave fd is closed, i.e. the child is gone.
            data = b""

        if not data:
            # The child is gone; input is refused until the exit is reported.
            self._hung_up = True
            self._stop_reading()
            self._stop_writing()
            tail = self._decoder.decode(b"", final=True)
            if tail:
                self._emit_data(tail)
            assert self._loop is not None
            self._loop.create_task(self._reap())
            return

        text = self._decoder.decode(data)
        if text:
            self._emit_data(text)

    def _stop_reading(self) -> None:
        if self._reading and self._loop is not None:
            self._loop.remove_reader(self._master_fd)
            self._reading = False

    async def _reap(self) -> None:
        loop = asyncio.get_running_loop()
        returncode = await loop.run_in_executor(None, self._proc.wait)
        self._close_fd()
        if returncode < 0:
            exit_code, sig = None, -returncode
        else:
            exit_code, sig = returncode, None
        logger.info(
            "Process %d exited (code=%s, signal=%s)", self._proc.pid, exit_code, sig
        )
        self._emit_exit(exit_code, sig)

    def _close_fd(self) -> None:
        if self._closed_fd:
            return
        self._stop_writing()
        self._closed_fd = True
        try:
            os.close(self._master_fd)
        except OSError:
            pass

    def _check_running(self) -> None:
        if self._exited or self._closed_fd or self._hung_up:
            raise RuntimeError(f"process {self._proc.pid} is not running")

    def write(self, data: str) -> None:
        """Queue ``data`` for the child without blocking the event loop.

        Whatever the PTY does not accept right away is written from an
        ``add_writer`` callback as the child drains its input.
        """
        self._check_running()
        self._pending_input += data.encode("utf-8")
        if self._writing:
            return
        self._flush_input()
        if self._pending_input and not self._hung_up:
            loop = self._loop or asyncio.get_running_loop()
            loop.add_writer(self._master_fd, self._on_writable)
            self._loop = loop
            self._writing = True
            logger.debug(
                "PTY input full for pid=%d, %d bytes queued",
                self._proc.pid,
                len(self._pending_input),
            )

    def _flush_input(self) -> None:
        while self._pending_input:
            try:
                written = os.write(self._master_fd, self._pending_input)
            except BlockingIOError:
                return
            except OSError as e:
                logger.debug(
                    "Dropping %d queued bytes for pid=%d: %s",
                    len(self._pending_input),
                    self._proc.pid,
                    e,
                )
                self._pending_input.clear()
                return
            del self._pending_input[:written]

    def _on_writable(self) -> None:
        self._flush_input()
        if not self._pending_input:
            self._stop_writing()

    def _stop_writing(self) -> None:
        if self._writing and self._loop is not None:
            self._loop.remove_writer(self._master_fd)
            self._writing = False
        self._pending_input.clear()

    @property
    def pending_input(self) -> int:
        """Bytes accepted by ``write`` but not yet taken by the PTY."""
        return len(self._pending_input)

    def resize(self, cols: int, rows: int) -> None:
        self._check_running()
        _set_winsize(self._master_fd, cols, rows)

    def kill(self, sig: int = signal.SIGKILL) -> None:
        """Signal the whole process group.

        The exit callback still fires once the reader sees EOF and the
        child has been reaped.
        """
        if self._exited:
            return
        try:
            os.killpg(self._pgid, sig)
            logger.info("Sent signal %d to pgid=%d", sig, self._pgid)
        except ProcessLookupError:
            logger.debug("Process group already gone: %d", self._pgid)
        except PermissionError as e:
            logger.warning("Error killing pgid=%d: %s", self._pgid, e)


async def spawn_pty(request: SpawnRequest) -> ProcessAdapter:
    """Default :class:`Spawner` used by the registry."""
    return await PtyProcess.spawn(request)
