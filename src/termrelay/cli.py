"""CLI entry point for termrelay."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import shutil
import signal
import sys
import termios
import tty

import typer

from termrelay.client.store import DEFAULT_STORE_PATH
from termrelay.config import TermRelayConfig
from termrelay.exception import ConfigError, TermRelayError

app = typer.Typer(
    name="termrelay",
    help="Run interactive terminal sessions on a server and attach to them from anywhere.",
    no_args_is_help=True,
)


def setup_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


@app.command()
def serve(
    host: str | None = typer.Option(None, "--host", help="Bind address (default: from env/config)."),
    port: int | None = typer.Option(None, "--port", "-p", help="Port (default: from env/config)."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
    config_file: str | None = typer.Option(None, "--config", "-c", help="Config file path."),
) -> None:
    """Serve the terminal API."""
    import uvicorn

    from termrelay.server.app import create_app

    setup_logging(verbose)

    try:
        config = TermRelayConfig.load(config_file)
    except ConfigError as e:
        typer.echo(f"Error: {e.message}", err=True)
        raise typer.Exit(1)
    if host:
        config.server.host = host
    if port:
        config.server.port = port

    typer.echo(f"Repo root: {config.repo_root}")
    typer.echo(f"Command: {' '.join([config.terminal.command, *config.terminal.args])}")
    typer.echo(f"Listening on http://{config.server.host}:{config.server.port}")

    uvicorn.run(
        create_app(config),
        host=config.server.host,
        port=config.server.port,
        log_level="debug" if verbose else "info",
        timeout_graceful_shutdown=3,
    )


@app.command()
def attach(
    path: str = typer.Argument(help="Working directory on the server."),
    url: str = typer.Option("http://127.0.0.1:8788", "--url", "-u", help="Server URL."),
    username: str = typer.Option(
        ..., "--username", envvar="LOGIN_USERNAME", help="Login user name."
    ),
    password: str = typer.Option(
        ..., "--password", envvar="LOGIN_PASSWORD", help="Login password."
    ),
    store_path: str = typer.Option(
        DEFAULT_STORE_PATH, "--store", help="Where remembered session ids are kept."
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    """Attach this terminal to the session for PATH, starting one if needed.

    Detach with Ctrl-] ; the session keeps running on the server.
    """
    setup_logging(verbose)
    if not sys.stdin.isatty():
        typer.echo("Error: attach needs an interactive terminal", err=True)
        raise typer.Exit(1)
    try:
        code = asyncio.run(_run_attach(path, url, username, password, store_path))
    except TermRelayError as e:
        typer.echo(f"Error: {e.message}", err=True)
        raise typer.Exit(1)
    if code:
        raise typer.Exit(code)


DETACH_KEY = "\x1d"  # Ctrl-]


def exit_status(code: int | None, sig: int | None) -> int:
    """Shell-style status for a session that ended: 128 + signal if killed."""
    if sig:
        return 128 + sig
    return code or 0


async def _run_attach(
    path: str, url: str, username: str, password: str, store_path: str
) -> int:
    """Stream output to stdout and forward stdin until exit or detach."""
    from termrelay.client.api import TerminalClient
    from termrelay.client.coalescer import InputCoalescer, ResizeDebouncer
    from termrelay.client.store import SessionStore

    store = SessionStore(store_path)
    loop = asyncio.get_running_loop()
    detached = asyncio.Event()
    exit_code = 0
    ended = False

    async with TerminalClient(url) as client:
        await client.login(username, password)
        session_id = await client.start_or_resume(path, store)

        async def _send_input(text: str, enter: bool) -> None:
            await client.send_input(session_id, text, enter)

        async def _send_resize(cols: int, rows: int) -> None:
            await client.resize(session_id, cols, rows)

        coalescer = InputCoalescer(_send_input)
        debouncer = ResizeDebouncer(_send_resize)

        stdin_fd = sys.stdin.fileno()

        def _on_stdin() -> None:
            chunk = os.read(stdin_fd, 1024).decode("utf-8", errors="replace")
            if not chunk:
                detached.set()
                return
            if DETACH_KEY in chunk:
                chunk = chunk.split(DETACH_KEY, 1)[0]
                if chunk:
                    coalescer.feed(chunk)
                detached.set()
                return
            coalescer.feed(chunk)

        def _on_winch() -> None:
            size = shutil.get_terminal_size()
            debouncer.request(size.columns, size.lines)

        async def _pump_output() -> None:
            nonlocal exit_code, ended
            async for event in client.stream(session_id):
                kind = event.get("type")
                if kind in ("init", "data"):
                    sys.stdout.write(event.get("data") or "")
                    sys.stdout.flush()
                elif kind == "exit":
                    store.clear(path)
                    ended = True
                    exit_code = exit_status(event.get("code"), event.get("signal"))
                    return

        saved_attrs = termios.tcgetattr(stdin_fd)
        tty.setraw(stdin_fd)
        loop.add_reader(stdin_fd, _on_stdin)
        loop.add_signal_handler(signal.SIGWINCH, _on_winch)
        _on_winch()

        pump = asyncio.create_task(_pump_output())
        waiter = asyncio.create_task(detached.wait())
        try:
            await asyncio.wait({pump, waiter}, return_when=asyncio.FIRST_COMPLETED)
            # A resize still waiting for its window is moot once we leave.
            debouncer.cancel()
            await coalescer.drain()
            await debouncer.drain()
        finally:
            loop.remove_reader(stdin_fd)
            loop.remove_signal_handler(signal.SIGWINCH)
            termios.tcsetattr(stdin_fd, termios.TCSADRAIN, saved_attrs)
            for task in (pump, waiter):
                task.cancel()
            for task in (pump, waiter):
                with contextlib.suppress(asyncio.CancelledError):
                    await task

        if pump.done() and not pump.cancelled() and pump.exception() is not None:
            raise pump.exception()

    if detached.is_set():
        sys.stderr.write("\r\n[detached]\r\n")
    elif not ended:
        # Dropped by the server; the session may still be running.
        sys.stderr.write("\r\n[connection closed]\r\n")
        return 1
    else:
        sys.stderr.write(f"\r\n[session ended, code={exit_code}]\r\n")
    return exit_code


@app.command()
def sessions(
    url: str = typer.Option("http://127.0.0.1:8788", "--url", "-u", help="Server URL."),
    username: str = typer.Option(..., "--username", envvar="LOGIN_USERNAME"),
    password: str = typer.Option(..., "--password", envvar="LOGIN_PASSWORD"),
) -> None:
    """List the sessions running on the server."""

    async def _list() -> list[dict]:
        from termrelay.client.api import TerminalClient

        async with TerminalClient(url) as client:
            await client.login(username, password)
            return await client.list_sessions()

    try:
        rows = asyncio.run(_list())
    except TermRelayError as e:
        typer.echo(f"Error: {e.message}", err=True)
        raise typer.Exit(1)

    if not rows:
        typer.echo("No running sessions.")
        return
    for info in rows:
        typer.echo(f"{info['id']}  {info['cwd']}")


if __name__ == "__main__":
    app()
