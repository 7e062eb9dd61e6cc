"""Deterministic in-memory process adapter.

Lets the registry, bus and HTTP layer run without spawning anything: tests
push output with :meth:`ScriptedProcess.emit` and end it with
:meth:`ScriptedProcess.exit`, and inspect what the registry wrote back.
"""

from __future__ import annotations

import itertools
import signal

from termrelay.exception import SpawnError
from termrelay.pty.process import ProcessAdapter, SpawnRequest

_pids = itertools.count(10_000)


class ScriptedProcess(ProcessAdapter):
    """Fake process that records every interaction.

    ``script`` chunks are emitted, in order, when ``start()`` is called.
    Killing the process reports an exit by signal, mirroring a real PTY.
    """

    def __init__(
        self,
        request: SpawnRequest | None = None,
        script: list[str] | None = None,
        exit_on_kill: bool = True,
    ) -> None:
        super().__init__()
        self.request = request or SpawnRequest(command="scripted")
        self.script = list(script or [])
        self.exit_on_kill = exit_on_kill
        self.writes: list[str] = []
        self.resizes: list[tuple[int, int]] = []
        self.signals: list[int] = []
        self.started = False
        self.hung_up = False
        self._pid = next(_pids)

    @property
    def pid(self) -> int:
        return self._pid

    @property
    def written(self) -> str:
        """Everything written to the process, concatenated."""
        return "".join(self.writes)

    def start(self) -> None:
        self.started = True
        for chunk in self.script:
            self._emit_data(chunk)

    def emit(self, text: str) -> None:
        self._emit_data(text)

    def exit(self, code: int | None = 0, sig: int | None = None) -> None:
        self._emit_exit(code, sig)

    def hangup(self) -> None:
        """Close the terminal without reporting the exit yet.

        Like a real PTY between end-of-file and reaping the child: the
        process is still registered but refuses input and resizes.
        """
        self.hung_up = True

    def write(self, data: str) -> None:
        if self._exited or self.hung_up:
            raise RuntimeError(f"process {self._pid} is not running")
        self.writes.append(data)

    def resize(self, cols: int, rows: int) -> None:
        if self._exited or self.hung_up:
            raise RuntimeError(f"process {self._pid} is not running")
        self.resizes.append((cols, rows))

    def kill(self, sig: int = signal.SIGKILL) -> None:
        if self._exited:
            return
        self.signals.append(sig)
        if self.exit_on_kill:
            self._emit_exit(None, int(sig))


class ScriptedSpawner:
    """A :class:`~termrelay.pty.process.Spawner` handing out ScriptedProcess.

    Every spawned process is kept in ``processes``. Set ``fail`` to make the
    next spawns raise :class:`SpawnError`.
    """

    def __init__(self, script: list[str] | None = None) -> None:
        self.script = script
        self.processes: list[ScriptedProcess] = []
        self.requests: list[SpawnRequest] = []
        self.fail: str | None = None

    async def __call__(self, request: SpawnRequest) -> ScriptedProcess:
        self.requests.append(request)
        if self.fail:
            raise SpawnError(self.fail)
        proc = ScriptedProcess(request, script=self.script)
        self.processes.append(proc)
        return proc

    @property
    def last(self) -> ScriptedProcess:
        return self.processes[-1]
