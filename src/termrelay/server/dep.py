"""Dependency injection functions for FastAPI routes"""

import hmac
import logging
from typing import Annotated

from fastapi import Depends, Request

from termrelay.config import TermRelayConfig
from termrelay.exception import UnauthorizedError
from termrelay.pty.manager import SessionRegistry
from termrelay.session.wire import Wire

logger = logging.getLogger(__name__)


def get_config(request: Request) -> TermRelayConfig:
    return request.app.state.config


def get_registry(request: Request) -> SessionRegistry:
    return request.app.state.registry


def get_wire(request: Request) -> Wire:
    return request.app.state.wire


def require_auth(request: Request) -> None:
    """Reject requests without a valid session cookie.

    The cookie holds a token derived from the configured credentials; see
    ``AuthConfig.session_token``.
    """
    auth = request.app.state.config.auth
    cookie = request.cookies.get(auth.cookie_name, "")
    if not cookie or not hmac.compare_digest(cookie.encode(), auth.session_token.encode()):
        raise UnauthorizedError("unauthorized")


ConfigDep = Annotated[TermRelayConfig, Depends(get_config)]
RegistryDep = Annotated[SessionRegistry, Depends(get_registry)]
WireDep = Annotated[Wire, Depends(get_wire)]
