"""Exceptions shared by the server, the registry and the client.

Every error carries a machine-readable ``code``; the HTTP layer maps each
class to a status code (see ``termrelay.server.app``).
"""

from __future__ import annotations


class TermRelayError(Exception):
    """Base class for all termrelay errors."""

    code = "ERROR"

    def __init__(self, message: str, code: str | None = None) -> None:
        self.message = message
        if code is not None:
            self.code = code
        super().__init__(message)


class ConfigError(TermRelayError):
    """Missing or malformed configuration."""

    code = "CONFIG_ERROR"


class ValidationError(TermRelayError):
    """Rejected input, e.g. a working directory outside the repo root."""

    code = "VALIDATION_ERROR"


class NotFoundError(TermRelayError):
    """Unknown or already-closed terminal session."""

    code = "NOT_FOUND"


class SpawnError(TermRelayError):
    """The interactive command could not be started."""

    code = "SPAWN_ERROR"


class UnauthorizedError(TermRelayError):
    """Missing or invalid session cookie / credentials."""

    code = "UNAUTHORIZED"


class TransportClosed(TermRelayError):
    """The observer's connection went away.

    Never surfaced to clients; streams treat it as a normal unsubscribe.
    """

    code = "TRANSPORT_CLOSED"
