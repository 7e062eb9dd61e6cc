"""Tests for the HTTP API in termrelay.server."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path

import httpx
import pytest
from fastapi.testclient import TestClient

from termrelay.config import TermRelayConfig
from termrelay.pty.scripted import ScriptedSpawner
from termrelay.server.app import create_app


@pytest.fixture
def app(config: TermRelayConfig, spawner: ScriptedSpawner):
    return create_app(config, spawner=spawner)


@pytest.fixture
def client(app) -> TestClient:
    with TestClient(app) as c:
        resp = c.post("/api/login", json={"username": "alice", "password": "s3cret"})
        assert resp.status_code == 200
        yield c


def _events(body: str) -> list[dict]:
    return [
        json.loads(block[len("data: ") :])
        for block in body.split("\n\n")
        if block.startswith("data: ")
    ]


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


class TestAuth:
    def test_requires_cookie(self, app) -> None:
        with TestClient(app) as c:
            resp = c.post("/api/terminal/start", json={"path": "projA"})
            assert resp.status_code == 401
            assert resp.json() == {"error": "unauthorized", "code": "UNAUTHORIZED"}
            assert c.get("/api/health").status_code == 401

    def test_bad_credentials(self, app) -> None:
        with TestClient(app) as c:
            resp = c.post("/api/login", json={"username": "alice", "password": "nope"})
            assert resp.status_code == 401
            assert "termrelay_session" not in resp.cookies

    def test_login_sets_cookie(self, app, config: TermRelayConfig) -> None:
        with TestClient(app) as c:
            resp = c.post("/api/login", json={"username": "alice", "password": "s3cret"})
            assert resp.json() == {"status": "ok"}
            assert resp.cookies["termrelay_session"] == config.auth.session_token
            assert c.get("/api/health").json() == {"status": "ok"}


# ---------------------------------------------------------------------------
# Workspace
# ---------------------------------------------------------------------------


class TestRepos:
    def test_lists_directories(self, client: TestClient, repo_root: Path) -> None:
        body = client.get("/api/repos").json()
        assert body["root"] == str(repo_root)
        names = [r["name"] for r in body["repos"]]
        assert names == ["projA", "projB"]
        assert body["repos"][0]["isGit"] is True


# ---------------------------------------------------------------------------
# Terminal control
# ---------------------------------------------------------------------------


class TestTerminal:
    def test_start_and_info(self, client: TestClient, repo_root: Path) -> None:
        started = client.post("/api/terminal/start", json={"path": str(repo_root / "projA")})
        assert started.status_code == 200
        body = started.json()
        assert body["cwd"] == str(repo_root / "projA")
        assert set(body) == {"sessionId", "cwd", "createdAt"}

        info = client.get(f"/api/terminal/{body['sessionId']}").json()
        assert info["id"] == body["sessionId"]
        assert info["cwd"] == body["cwd"]
        assert info["createdAt"] == body["createdAt"]
        assert "lastOutputAt" in info

    def test_start_twice_resumes(self, client: TestClient, spawner: ScriptedSpawner) -> None:
        a = client.post("/api/terminal/start", json={"path": "projA"}).json()
        b = client.post("/api/terminal/start", json={"path": "projA"}).json()
        assert a["sessionId"] == b["sessionId"]
        assert len(spawner.processes) == 1

    def test_start_outside_root(self, client: TestClient) -> None:
        resp = client.post("/api/terminal/start", json={"path": "/etc"})
        assert resp.status_code == 400
        assert resp.json()["code"] == "VALIDATION_ERROR"

    def test_start_missing_path(self, client: TestClient) -> None:
        resp = client.post("/api/terminal/start", json={})
        assert resp.status_code == 400

    def test_start_path_with_nul(self, client: TestClient, spawner: ScriptedSpawner) -> None:
        resp = client.post("/api/terminal/start", json={"path": "proj\u0000A"})
        assert resp.status_code == 400
        assert resp.json()["code"] == "VALIDATION_ERROR"
        assert spawner.processes == []

    def test_start_spawn_failure(self, client: TestClient, spawner: ScriptedSpawner) -> None:
        spawner.fail = "codex: command not found"
        resp = client.post("/api/terminal/start", json={"path": "projA"})
        assert resp.status_code == 400
        assert resp.json() == {"error": "codex: command not found", "code": "SPAWN_ERROR"}

    def test_info_unknown(self, client: TestClient) -> None:
        resp = client.get("/api/terminal/nope")
        assert resp.status_code == 404
        assert resp.json()["code"] == "NOT_FOUND"

    def test_input(self, client: TestClient, spawner: ScriptedSpawner) -> None:
        sid = client.post("/api/terminal/start", json={"path": "projA"}).json()["sessionId"]
        assert client.post(f"/api/terminal/{sid}/input", json={"data": "ls"}).json() == {"status": "ok"}
        client.post(f"/api/terminal/{sid}/input", json={"data": "-la", "enter": True})
        client.post(f"/api/terminal/{sid}/input", json={"enter": True})
        assert spawner.last.writes == ["ls", "-la\r", "\r"]

    def test_input_requires_data_or_enter(self, client: TestClient) -> None:
        sid = client.post("/api/terminal/start", json={"path": "projA"}).json()["sessionId"]
        resp = client.post(f"/api/terminal/{sid}/input", json={})
        assert resp.status_code == 400

    def test_input_unknown(self, client: TestClient) -> None:
        resp = client.post("/api/terminal/nope/input", json={"data": "x"})
        assert resp.status_code == 404

    def test_resize(self, client: TestClient, spawner: ScriptedSpawner) -> None:
        sid = client.post("/api/terminal/start", json={"path": "projA"}).json()["sessionId"]
        assert client.post(f"/api/terminal/{sid}/resize", json={"cols": 100, "rows": 40}).status_code == 200
        client.post(f"/api/terminal/{sid}/resize", json={"cols": 3, "rows": 1})
        assert spawner.last.resizes == [(100, 40), (20, 8)]

    def test_resize_unknown(self, client: TestClient) -> None:
        resp = client.post("/api/terminal/nope/resize", json={"cols": 80, "rows": 24})
        assert resp.status_code == 404

    def test_resize_oversized(self, client: TestClient, spawner: ScriptedSpawner) -> None:
        sid = client.post("/api/terminal/start", json={"path": "projA"}).json()["sessionId"]
        resp = client.post(f"/api/terminal/{sid}/resize", json={"cols": 70000, "rows": 40})
        assert resp.status_code == 200
        assert spawner.last.resizes == [(1000, 40)]

    def test_closed_terminal_is_not_found(
        self, client: TestClient, spawner: ScriptedSpawner
    ) -> None:
        sid = client.post("/api/terminal/start", json={"path": "projA"}).json()["sessionId"]
        spawner.last.hangup()
        assert client.post(f"/api/terminal/{sid}/input", json={"data": "x"}).status_code == 404
        assert client.post(f"/api/terminal/{sid}/resize", json={"cols": 80, "rows": 24}).status_code == 404

    def test_stop(self, client: TestClient, spawner: ScriptedSpawner) -> None:
        sid = client.post("/api/terminal/start", json={"path": "projA"}).json()["sessionId"]
        assert client.post(f"/api/terminal/{sid}/stop").json() == {"status": "stopped"}
        assert client.get(f"/api/terminal/{sid}").status_code == 404
        assert client.post(f"/api/terminal/{sid}/input", json={"data": "x"}).status_code == 404
        assert client.post(f"/api/terminal/{sid}/resize", json={"cols": 80, "rows": 24}).status_code == 404
        # Idempotent
        assert client.post(f"/api/terminal/{sid}/stop").json() == {"status": "stopped"}
        assert client.post("/api/terminal/never-existed/stop").status_code == 200

    def test_list(self, client: TestClient) -> None:
        a = client.post("/api/terminal/start", json={"path": "projA"}).json()["sessionId"]
        b = client.post("/api/terminal/start", json={"path": "projB"}).json()["sessionId"]
        sessions = client.get("/api/terminal").json()["sessions"]
        assert {s["id"] for s in sessions} == {a, b}

    def test_stream_unknown(self, client: TestClient) -> None:
        resp = client.get("/api/terminal/nope/stream")
        assert resp.status_code == 404

    def test_shutdown_kills_sessions(self, app, spawner: ScriptedSpawner) -> None:
        with TestClient(app) as c:
            c.post("/api/login", json={"username": "alice", "password": "s3cret"})
            c.post("/api/terminal/start", json={"path": "projA"})
        assert spawner.last.signals
        assert app.state.wire.closed


# ---------------------------------------------------------------------------
# Streaming (same event loop as the app, so the scripted process can emit)
# ---------------------------------------------------------------------------


class TestStream:
    @pytest.mark.asyncio
    async def test_stream_scenario(self, app, spawner: ScriptedSpawner) -> None:
        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as c:
            await c.post("/api/login", json={"username": "alice", "password": "s3cret"})
            sid = (await c.post("/api/terminal/start", json={"path": "projA"})).json()["sessionId"]
            proc = spawner.last

            loop = asyncio.get_running_loop()
            loop.call_later(0.05, proc.emit, "hello")
            loop.call_later(0.1, proc.exit, 0)

            resp = await c.get(f"/api/terminal/{sid}/stream")

        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith("text/event-stream")
        assert resp.headers["cache-control"] == "no-cache, no-transform"
        assert _events(resp.text) == [
            {"type": "init", "data": ""},
            {"type": "data", "data": "hello"},
            {"type": "exit", "code": 0, "signal": None},
        ]

    @pytest.mark.asyncio
    async def test_stream_replays_history(self, app, spawner: ScriptedSpawner) -> None:
        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as c:
            await c.post("/api/login", json={"username": "alice", "password": "s3cret"})
            sid = (await c.post("/api/terminal/start", json={"path": "projA"})).json()["sessionId"]
            proc = spawner.last
            proc.emit("$ ")
            proc.emit("\x1b[6n")
            proc.emit("ls\r\n")

            asyncio.get_running_loop().call_later(0.05, proc.exit, None, 9)
            resp = await c.get(f"/api/terminal/{sid}/stream")

        events = _events(resp.text)
        assert events[0] == {"type": "init", "data": "$ ls\r\n"}
        assert events[-1] == {"type": "exit", "code": None, "signal": 9}
        assert proc.writes == ["\x1b[1;1R"]
