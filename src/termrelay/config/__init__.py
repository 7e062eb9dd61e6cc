"""Configuration: Pydantic models for termrelay settings."""

from __future__ import annotations

import hashlib
import json
import os
import shlex
from typing import Any

from dotenv import find_dotenv, load_dotenv
from pydantic import BaseModel, Field

from termrelay.exception import ConfigError


class ServerConfig(BaseModel):
    """HTTP listener settings."""

    host: str = Field(default="127.0.0.1")
    port: int = Field(default=8788)


class AuthConfig(BaseModel):
    """Single-user login settings.

    The session cookie value is derived from all three secrets, so rotating
    any of them logs every client out.
    """

    username: str = Field(default="")
    password: str = Field(default="")
    session_secret: str = Field(default="")
    cookie_name: str = Field(default="termrelay_session")
    cookie_max_age: int = Field(
        default=60 * 60 * 24 * 30, description="Cookie lifetime in seconds"
    )

    @property
    def session_token(self) -> str:
        raw = f"{self.username}:{self.password}:{self.session_secret}"
        return hashlib.sha256(raw.encode()).hexdigest()


class TerminalConfig(BaseModel):
    """How terminal sessions are spawned and streamed."""

    command: str = Field(default="codex", description="Interactive command to run")
    args: list[str] = Field(default_factory=lambda: ["--yolo"])
    term_type: str = Field(default="xterm-256color")
    cols: int = Field(default=120)
    rows: int = Field(default=32)
    buffer_capacity: int = Field(
        default=2000, description="Output chunks kept per session for replay"
    )
    keepalive_interval: float = Field(
        default=25.0, description="Seconds between SSE keepalive comments"
    )
    update_dismiss_keys: str = Field(
        default="2\r",
        description=(
            "Keystrokes written back the first time the command prints an "
            "'update available' prompt. The default picks the 'skip' entry "
            "of the codex upgrade menu."
        ),
    )


class TermRelayConfig(BaseModel):
    """Top-level termrelay configuration."""

    repo_root: str = Field(description="Only directories under this root can host sessions")
    server: ServerConfig = Field(default_factory=ServerConfig)
    auth: AuthConfig = Field(default_factory=AuthConfig)
    terminal: TerminalConfig = Field(default_factory=TerminalConfig)

    @classmethod
    def load(cls, config_path: str | None = None) -> TermRelayConfig:
        """Load config from file, env vars, or defaults.

        Priority: env vars > config file > defaults.

        Env vars:
            REPO_ROOT                      - Root directory sessions may run in (required)
            LOGIN_USERNAME                 - Login user name (required)
            LOGIN_PASSWORD                 - Login password (required)
            SESSION_SECRET                 - Secret mixed into the session cookie (required)
            HOST / PORT                    - Listener address
            TERMRELAY_COMMAND              - Interactive command to spawn
            TERMRELAY_ARGS                 - Arguments, shell-quoted
            TERMRELAY_BUFFER_CAPACITY      - Replay buffer size in chunks
            TERMRELAY_KEEPALIVE            - SSE keepalive interval in seconds
            TERMRELAY_UPDATE_DISMISS_KEYS  - Reply to the update prompt
        """
        load_dotenv(find_dotenv(usecwd=True), override=True)

        config_data: dict[str, Any] = {}

        if config_path and os.path.exists(config_path):
            with open(config_path) as f:
                config_data = json.load(f)

        env_root = os.environ.get("REPO_ROOT", "").strip()
        if env_root:
            config_data["repo_root"] = env_root
        if not config_data.get("repo_root"):
            raise ConfigError("Missing required setting: REPO_ROOT")
        config_data["repo_root"] = os.path.realpath(
            os.path.expanduser(config_data["repo_root"])
        )

        auth = config_data.get("auth", {})
        for env_name, key in (
            ("LOGIN_USERNAME", "username"),
            ("LOGIN_PASSWORD", "password"),
            ("SESSION_SECRET", "session_secret"),
        ):
            value = os.environ.get(env_name, "").strip()
            if value:
                auth[key] = value
            if not auth.get(key):
                raise ConfigError(f"Missing required setting: {env_name}")
        config_data["auth"] = auth

        server = config_data.get("server", {})
        if os.environ.get("HOST"):
            server["host"] = os.environ["HOST"]
        if os.environ.get("PORT"):
            server["port"] = int(os.environ["PORT"])
        if server:
            config_data["server"] = server

        terminal = config_data.get("terminal", {})

        env_command = os.environ.get("TERMRELAY_COMMAND")
        if env_command:
            terminal["command"] = env_command

        env_args = os.environ.get("TERMRELAY_ARGS")
        if env_args is not None:
            terminal["args"] = shlex.split(env_args)

        env_capacity = os.environ.get("TERMRELAY_BUFFER_CAPACITY")
        if env_capacity:
            terminal["buffer_capacity"] = int(env_capacity)

        env_keepalive = os.environ.get("TERMRELAY_KEEPALIVE")
        if env_keepalive:
            terminal["keepalive_interval"] = float(env_keepalive)

        env_dismiss = os.environ.get("TERMRELAY_UPDATE_DISMISS_KEYS")
        if env_dismiss:
            # Allow "\r" to be written literally in .env files.
            terminal["update_dismiss_keys"] = env_dismiss.replace("\\r", "\r")

        if terminal:
            config_data["terminal"] = terminal

        return cls.model_validate(config_data)
