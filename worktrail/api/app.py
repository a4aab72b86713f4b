from __future__ import annotations

import time
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from worktrail import __version__
from worktrail.api.routes.health import router as health_router
from worktrail.api.routes.snapshots import router as snapshots_router
from worktrail.errors import (
    IntegrityError,
    OperationCancelled,
    ValidationError,
    WorkTrailError,
)
from worktrail.services.engine import reset_engines
from worktrail.utils.logger import api_logger, request_log


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: hot-reload config and drop cached engines when it changes
    try:
        if getattr(app.state, "config_manager", None) is not None:

            def on_config_change(new_config):
                api_logger.info(
                    "Configuration changed, resetting project engines",
                    changed_keys=list(new_config.keys()),
                )
                reset_engines()

            app.state.config_manager.register_change_callback(on_config_change)
            await app.state.config_manager.start_watching()
            api_logger.info("Config file watcher started with change callback")
    except Exception as e:
        api_logger.error("Startup initialization failed", exc_info=True, error=str(e))

    yield

    try:
        if getattr(app.state, "config_manager", None) is not None:
            await app.state.config_manager.stop_watching()
            api_logger.info("Config file watcher stopped")
    except Exception as e:
        api_logger.error("Shutdown cleanup failed", exc_info=True, error=str(e))


def _error_response(status_code: int, exc: WorkTrailError) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "detail": str(exc),
            "repair_available": getattr(exc, "repair_available", False),
        },
    )


def create_app(
    workspace: str | Path | None = None, home: str | Path | None = None
) -> FastAPI:
    app = FastAPI(
        title="WorkTrail Server",
        description="Snapshot history, diffs and restore for a working directory",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.workspace = Path(workspace) if workspace is not None else None
    app.state.home = Path(home) if home is not None else None

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health_router)
    app.include_router(snapshots_router)

    @app.exception_handler(OperationCancelled)
    async def handle_cancelled(request: Request, exc: OperationCancelled):
        return _error_response(409, exc)

    @app.exception_handler(ValidationError)
    async def handle_validation(request: Request, exc: ValidationError):
        return _error_response(400, exc)

    @app.exception_handler(IntegrityError)
    async def handle_integrity(request: Request, exc: IntegrityError):
        return _error_response(409, exc)

    @app.exception_handler(WorkTrailError)
    async def handle_worktrail(request: Request, exc: WorkTrailError):
        api_logger.error(
            "Operation failed",
            path=request.url.path,
            error_type=type(exc).__name__,
            error=str(exc),
        )
        return _error_response(500, exc)

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        started = time.perf_counter()
        response = await call_next(request)
        request_log(
            api_logger,
            request.method,
            request.url.path,
            response.status_code,
            round((time.perf_counter() - started) * 1000, 2),
        )
        return response

    return app
