"""Async HTTP client for a termrelay server."""

from __future__ import annotations

import json
import logging
from typing import Any, AsyncIterator

import httpx

from termrelay.client.store import SessionStore
from termrelay.exception import NotFoundError, UnauthorizedError, ValidationError

logger = logging.getLogger(__name__)


def _raise_for_error(response: httpx.Response) -> None:
    if response.is_success:
        return
    try:
        message = response.json().get("error", response.text)
    except ValueError:
        message = response.text
    if response.status_code == 404:
        raise NotFoundError(message)
    if response.status_code == 401:
        raise UnauthorizedError(message)
    if response.status_code == 400:
        raise ValidationError(message)
    response.raise_for_status()


async def iter_sse(lines: AsyncIterator[str]) -> AsyncIterator[dict[str, Any]]:
    """Parse server-sent event lines into JSON payloads.

    Comment lines (keepalives) are skipped; multi-line ``data:`` fields
    are joined with newlines as the SSE format specifies.
    """
    data_lines: list[str] = []
    async for line in lines:
        if not line:
            if data_lines:
                raw = "\n".join(data_lines)
                data_lines = []
                try:
                    yield json.loads(raw)
                except ValueError:
                    logger.debug("Skipping malformed event: %r", raw[:200])
            continue
        if line.startswith(":"):
            continue
        if line.startswith("data:"):
            value = line[5:]
            data_lines.append(value[1:] if value.startswith(" ") else value)


class TerminalClient:
    """Talks to the ``/api`` endpoints of one server.

    Wraps a single ``httpx.AsyncClient`` so the login cookie is reused by
    every call. Use as an async context manager.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=f"{self.base_url}/api", timeout=timeout, transport=transport
        )

    async def __aenter__(self) -> TerminalClient:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def login(self, username: str, password: str) -> None:
        response = await self._client.post(
            "/login", json={"username": username, "password": password}
        )
        _raise_for_error(response)

    async def start(self, path: str) -> dict[str, Any]:
        """Start (or resume server-side) the session for ``path``."""
        response = await self._client.post("/terminal/start", json={"path": path})
        _raise_for_error(response)
        return response.json()

    async def info(self, session_id: str) -> dict[str, Any] | None:
        """Session info, or None when the server no longer knows the id."""
        response = await self._client.get(f"/terminal/{session_id}")
        if response.status_code == 404:
            return None
        _raise_for_error(response)
        return response.json()

    async def list_sessions(self) -> list[dict[str, Any]]:
        response = await self._client.get("/terminal")
        _raise_for_error(response)
        return response.json()["sessions"]

    async def send_input(self, session_id: str, text: str, enter: bool = False) -> None:
        response = await self._client.post(
            f"/terminal/{session_id}/input", json={"data": text, "enter": enter}
        )
        _raise_for_error(response)

    async def resize(self, session_id: str, cols: int, rows: int) -> None:
        response = await self._client.post(
            f"/terminal/{session_id}/resize", json={"cols": cols, "rows": rows}
        )
        _raise_for_error(response)

    async def stop(self, session_id: str) -> None:
        response = await self._client.post(f"/terminal/{session_id}/stop")
        _raise_for_error(response)

    async def stream(self, session_id: str) -> AsyncIterator[dict[str, Any]]:
        """Yield ``init``, ``data`` and ``exit`` events until the stream ends."""
        async with self._client.stream(
            "GET", f"/terminal/{session_id}/stream", timeout=None
        ) as response:
            if not response.is_success:
                await response.aread()
                _raise_for_error(response)
            async for event in iter_sse(response.aiter_lines()):
                yield event
                if event.get("type") == "exit":
                    return

    async def start_or_resume(self, path: str, store: SessionStore) -> str:
        """Reattach to the remembered session for ``path`` or start a new one.

        A remembered id that the server no longer knows, or that now points
        at another directory, is forgotten silently.
        """
        remembered = store.get(path)
        if remembered:
            session_id = remembered["sessionId"]
            info = await self.info(session_id)
            if info is not None and info.get("cwd") == remembered.get("cwd", path):
                logger.info("Resuming session %s for %s", session_id, path)
                return session_id
            logger.info("Stored session %s for %s is gone", session_id, path)
            store.clear(path)

        started = await self.start(path)
        store.put(path, started["sessionId"], started["cwd"])
        logger.info("Started session %s for %s", started["sessionId"], path)
        return started["sessionId"]
