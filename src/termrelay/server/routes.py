"""HTTP API endpoints: login, workspace listing and terminal control."""

import hmac
import logging

from fastapi import APIRouter, Depends, Response
from fastapi.responses import StreamingResponse

from termrelay.exception import NotFoundError, SpawnError, UnauthorizedError, ValidationError
from termrelay.server.dep import ConfigDep, RegistryDep, WireDep, require_auth
from termrelay.server.schema import (
    InputRequest,
    LoginRequest,
    ResizeRequest,
    SessionInfo,
    SessionList,
    SessionStarted,
    StartSessionRequest,
    StatusResponse,
)
from termrelay.server.stream import TerminalStream
from termrelay.workspace import list_repos

logger = logging.getLogger(__name__)

auth_router = APIRouter(tags=["Auth"])
router = APIRouter(dependencies=[Depends(require_auth)])


# ==================== Auth ====================

@auth_router.post("/login", response_model=StatusResponse)
async def login(body: LoginRequest, response: Response, config: ConfigDep):
    """Check credentials and issue the session cookie."""
    auth = config.auth
    user_ok = hmac.compare_digest(body.username.encode(), auth.username.encode())
    password_ok = hmac.compare_digest(body.password.encode(), auth.password.encode())
    if not (user_ok and password_ok):
        logger.warning("Failed login for user %r", body.username)
        raise UnauthorizedError("invalid credentials")

    response.set_cookie(
        auth.cookie_name,
        auth.session_token,
        max_age=auth.cookie_max_age,
        httponly=True,
        samesite="lax",
        path="/",
    )
    return StatusResponse()


@router.get("/health", response_model=StatusResponse)
async def health():
    return StatusResponse()


# ==================== Workspace ====================

@router.get("/repos")
async def repos(config: ConfigDep):
    return {"root": config.repo_root, "repos": list_repos(config.repo_root)}


# ==================== Terminal ====================

@router.post("/terminal/start", response_model=SessionStarted)
async def start_terminal(body: StartSessionRequest, registry: RegistryDep):
    """Start a session for a directory, or return the one already running there."""
    try:
        session = await registry.start_or_resume(body.path)
    except (ValidationError, SpawnError) as e:
        logger.error("Terminal start failed for %s: %s", body.path, e.message)
        raise
    return SessionStarted(
        session_id=session.id, cwd=session.cwd, created_at=session.created_at
    )


@router.get("/terminal", response_model=SessionList)
async def list_terminals(registry: RegistryDep):
    return {"sessions": registry.list_sessions()}


@router.get("/terminal/{session_id}", response_model=SessionInfo)
async def terminal_info(session_id: str, registry: RegistryDep):
    info = registry.info(session_id)
    if info is None:
        raise NotFoundError("session not found")
    return info


@router.get("/terminal/{session_id}/stream")
async def terminal_stream(
    session_id: str, registry: RegistryDep, wire: WireDep, config: ConfigDep
):
    """Push the session's output as server-sent events.

    The first frame is ``init`` with the buffered history, followed by
    ``data`` frames and a final ``exit`` frame. Comment frames keep idle
    connections open.
    """
    stream = TerminalStream(
        registry,
        wire,
        session_id,
        keepalive_interval=config.terminal.keepalive_interval,
    )
    stream.attach()
    return StreamingResponse(
        stream.frames(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache, no-transform",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )


@router.post("/terminal/{session_id}/input", response_model=StatusResponse)
async def terminal_input(session_id: str, body: InputRequest, registry: RegistryDep):
    if body.data is None and not body.enter:
        raise ValidationError("data required")
    registry.write(session_id, body.data or "", body.enter)
    return StatusResponse()


@router.post("/terminal/{session_id}/resize", response_model=StatusResponse)
async def terminal_resize(session_id: str, body: ResizeRequest, registry: RegistryDep):
    registry.resize(session_id, body.cols, body.rows)
    return StatusResponse()


@router.post("/terminal/{session_id}/stop", response_model=StatusResponse)
async def terminal_stop(session_id: str, registry: RegistryDep):
    registry.stop(session_id)
    return StatusResponse(status="stopped")
