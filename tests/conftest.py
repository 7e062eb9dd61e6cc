"""Shared fixtures: a registry backed by scripted processes."""

from __future__ import annotations

import functools
from pathlib import Path

import pytest

from termrelay.config import AuthConfig, TermRelayConfig, TerminalConfig
from termrelay.pty.manager import SessionRegistry
from termrelay.pty.scripted import ScriptedSpawner
from termrelay.session.wire import Wire
from termrelay.workspace import validate_working_directory


@pytest.fixture
def repo_root(tmp_path: Path) -> Path:
    for name in ("projA", "projB"):
        (tmp_path / name).mkdir()
    (tmp_path / "projA" / ".git").mkdir()
    return tmp_path.resolve()


@pytest.fixture
def spawner() -> ScriptedSpawner:
    return ScriptedSpawner()


@pytest.fixture
def wire() -> Wire:
    return Wire()


@pytest.fixture
def terminal_config() -> TerminalConfig:
    return TerminalConfig(command="codex", args=["--yolo"], buffer_capacity=50)


@pytest.fixture
def registry(
    wire: Wire,
    spawner: ScriptedSpawner,
    repo_root: Path,
    terminal_config: TerminalConfig,
) -> SessionRegistry:
    return SessionRegistry(
        wire=wire,
        validate=functools.partial(validate_working_directory, str(repo_root)),
        config=terminal_config,
        spawner=spawner,
    )


@pytest.fixture
def config(repo_root: Path, terminal_config: TerminalConfig) -> TermRelayConfig:
    return TermRelayConfig(
        repo_root=str(repo_root),
        auth=AuthConfig(username="alice", password="s3cret", session_secret="pepper"),
        terminal=terminal_config,
    )
