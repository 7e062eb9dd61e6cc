"""FastAPI application factory"""

import functools
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from termrelay.config import TermRelayConfig
from termrelay.exception import (
    NotFoundError,
    SpawnError,
    TermRelayError,
    UnauthorizedError,
    ValidationError,
)
from termrelay.pty.manager import SessionRegistry
from termrelay.pty.process import Spawner, spawn_pty
from termrelay.server.routes import auth_router, router
from termrelay.server.schema import ErrorResponse
from termrelay.session.wire import Wire
from termrelay.workspace import validate_working_directory

logger = logging.getLogger(__name__)

STATUS_BY_ERROR = {
    ValidationError: 400,
    SpawnError: 400,
    NotFoundError: 404,
    UnauthorizedError: 401,
}


def create_app(config: TermRelayConfig, spawner: Spawner = spawn_pty) -> FastAPI:
    """Create and configure the FastAPI application.

    One Wire and one SessionRegistry are created per app and kept on
    ``app.state`` for the route dependencies. On shutdown every session is
    killed and every open stream is closed.

    Args:
        config: Loaded configuration.
        spawner: Process factory; tests pass a scripted one.
    """
    wire = Wire()
    registry = SessionRegistry(
        wire=wire,
        validate=functools.partial(validate_working_directory, config.repo_root),
        config=config.terminal,
        spawner=spawner,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Serving terminals under %s", config.repo_root)
        yield
        await registry.shutdown()
        wire.close()

    app = FastAPI(
        title="termrelay",
        description="Attach to long-lived terminal sessions over HTTP",
        lifespan=lifespan,
    )
    app.state.config = config
    app.state.wire = wire
    app.state.registry = registry

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ==================== Exception Handlers ====================

    @app.exception_handler(TermRelayError)
    async def termrelay_exception_handler(
        request: Request, exc: TermRelayError
    ) -> JSONResponse:
        status_code = STATUS_BY_ERROR.get(type(exc), 500)
        return JSONResponse(
            status_code=status_code,
            content=ErrorResponse(error=exc.message, code=exc.code).model_dump(
                exclude_none=True
            ),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        return JSONResponse(
            status_code=400,
            content=ErrorResponse(
                error="invalid request",
                code=ValidationError.code,
                details=[
                    {"loc": list(e["loc"]), "msg": e["msg"], "type": e["type"]}
                    for e in exc.errors()
                ],
            ).model_dump(),
        )

    # ==================== Router Registration ====================

    app.include_router(auth_router, prefix="/api")
    app.include_router(router, prefix="/api")

    return app
