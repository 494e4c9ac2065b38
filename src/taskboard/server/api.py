"""FastAPI web server for the taskboard API."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger

from .. import __version__
from ..board.service import OrderCommitService
from ..constants import STATE_DIR_NAME
from ..errors import BoardError, PersistenceError
from .task_api import create_task_router


def create_app(
    project_dir: Optional[Path] = None,
    enable_cors: bool = True,
    service: Optional[OrderCommitService] = None,
) -> FastAPI:
    """Create and configure FastAPI application.

    Args:
        project_dir: Directory whose ``.taskboard/`` holds the board store.
        enable_cors: Whether to enable CORS.
        service: Pre-built commit service (overrides *project_dir*).

    Returns:
        Configured FastAPI app.
    """
    app = FastAPI(
        title="Taskboard",
        description="Kanban task ordering and status-transition API",
        version=__version__,
    )

    if enable_cors:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    if service is None:
        root = (project_dir or Path.cwd()).resolve()
        service = OrderCommitService.for_state_dir(root / STATE_DIR_NAME)
    app.state.service = service

    @app.exception_handler(BoardError)
    async def _board_error(request: Request, exc: BoardError) -> JSONResponse:
        if isinstance(exc, PersistenceError):
            logger.error("{} {} failed to persist: {}", request.method, request.url.path, exc.message)
        else:
            logger.info("{} {} -> {}: {}", request.method, request.url.path, exc.status_code, exc.message)
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def _invalid_body(request: Request, exc: RequestValidationError) -> JSONResponse:
        logger.info("{} {} -> 400: {}", request.method, request.url.path, exc.errors())
        return JSONResponse(
            status_code=400,
            content={"error": "Invalid input data", "details": jsonable_errors(exc)},
        )

    @app.get("/")
    async def root():
        """Root endpoint."""
        return {"name": "Taskboard", "version": __version__, "status": "running"}

    app.include_router(create_task_router(lambda: app.state.service))
    return app


def jsonable_errors(exc: RequestValidationError) -> list[dict[str, object]]:
    """Strip non-serializable context from pydantic error entries."""
    return [
        {"loc": list(err.get("loc", ())), "msg": str(err.get("msg", "")), "type": str(err.get("type", ""))}
        for err in exc.errors()
    ]
