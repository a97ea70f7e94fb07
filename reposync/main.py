"""FastAPI application entry point."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import sys
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from reposync.api.files import router as files_router
from reposync.api.health import router as health_router
from reposync.config import Settings
from reposync.exceptions import FileServeError, SyncError
from reposync.services.git_service import GitService
from reposync.services.status_store import StatusStore
from reposync.services.sync_service import SyncEngine

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

logger = logging.getLogger(__name__)


def _configure_logging(debug: bool) -> None:
    """Configure application logging."""
    level = logging.DEBUG if debug else logging.INFO
    fmt = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"
    logging.basicConfig(
        level=level,
        format=fmt,
        stream=sys.stdout,
        force=True,
    )
    # Quiet noisy libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def create_sync_engine(settings: Settings, store: StatusStore) -> SyncEngine:
    """Build the sync engine for the configured mirror."""
    git_service = GitService(
        settings.mirror_dir,
        token=settings.token_value(),
        timeout=settings.git_timeout_seconds,
    )
    return SyncEngine(settings, git_service, store)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    """Application lifespan: initial sync, background sync loop, shutdown."""
    settings: Settings = app.state.settings
    settings.validate_runtime()
    _configure_logging(settings.debug)
    logger.info(
        "Starting reposync for %s (branch=%s, mirror=%s)",
        settings.public_repo_url,
        settings.git_branch,
        settings.mirror_dir,
    )

    engine = create_sync_engine(settings, app.state.status_store)
    app.state.sync_engine = engine

    try:
        await engine.sync_once()
    except SyncError as exc:
        if settings.initial_sync_required:
            logger.critical("Initial sync failed: %s.", exc)
            raise
        logger.error("Initial sync failed, serving degraded until a sync succeeds: %s", exc)

    sync_task = asyncio.create_task(
        engine.run_forever(settings.git_sync_interval_seconds), name="reposync-sync-loop"
    )
    app.state.sync_task = sync_task

    yield

    sync_task.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await sync_task
    logger.info("reposync stopped")


def create_app(
    settings: Settings | None = None,
    status_store: StatusStore | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""
    if settings is None:
        settings = Settings()

    docs_enabled = settings.debug

    app = FastAPI(
        title="reposync",
        description="Read-only HTTP server for an auto-refreshing git mirror",
        version="0.1.0",
        lifespan=lifespan,
        docs_url="/docs" if docs_enabled else None,
        redoc_url="/redoc" if docs_enabled else None,
        openapi_url="/openapi.json" if docs_enabled else None,
    )
    app.state.settings = settings
    app.state.status_store = status_store if status_store is not None else StatusStore()

    app.include_router(health_router)
    app.include_router(files_router)

    @app.exception_handler(FileServeError)
    async def file_serve_error_handler(request: Request, exc: FileServeError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        errors = []
        for err in exc.errors():
            loc = err.get("loc", ())
            field = str(loc[-1]) if loc else "unknown"
            errors.append({"field": field, "message": err.get("msg", "Invalid value")})
        logger.warning(
            "RequestValidationError in %s %s: %s",
            request.method,
            request.url.path,
            errors,
        )
        return JSONResponse(status_code=422, content={"detail": errors})

    @app.exception_handler(OSError)
    async def os_error_handler(request: Request, exc: OSError) -> JSONResponse:
        if isinstance(exc, (ConnectionError, TimeoutError)):
            raise exc
        logger.error("OSError in %s %s: %s", request.method, request.url.path, exc, exc_info=exc)
        return JSONResponse(
            status_code=500,
            content={"detail": "Storage operation failed"},
        )

    return app


app = create_app()


def cli_entry() -> None:
    """CLI entry point for running the server."""
    import uvicorn

    settings: Settings = app.state.settings
    uvicorn.run(
        "reposync.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
