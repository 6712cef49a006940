"""DepAudit REST API — FastAPI application factory."""

from __future__ import annotations

import os
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from depaudit.api.deps import (
    dispose_engine,
    get_scan_config,
    get_scan_service,
    init_scan_runner,
    init_session_factory,
    shutdown_scan_runner,
)
from depaudit.api.errors import register_error_handlers
from depaudit.api.middleware.request_id import RequestIDMiddleware
from depaudit.api.routers import projects, stats
from depaudit.core.logging import setup_logging
from depaudit.scheduler import create_scheduler


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup: init DB, scan runner and reaper. Shutdown: stop them in reverse."""
    factory = init_session_factory()
    config = get_scan_config()
    init_scan_runner(factory, config)

    scheduler = create_scheduler(factory, scan_service=get_scan_service(), config=config)
    await scheduler.start()
    yield
    await scheduler.stop()
    await shutdown_scan_runner()
    await dispose_engine()


def create_app() -> FastAPI:
    """Build and return the FastAPI application."""
    setup_logging()

    app = FastAPI(
        title="DepAudit",
        docs_url="/api/v1/docs",
        openapi_url="/api/v1/openapi.json",
        lifespan=_lifespan,
    )

    register_error_handlers(app)

    cors_origins = os.environ.get("DEPAUDIT_CORS_ORIGINS", "http://localhost:3000")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[o.strip() for o in cors_origins.split(",")],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestIDMiddleware)

    @app.get("/health", tags=["ops"])
    async def health() -> JSONResponse:
        return JSONResponse({"status": "ok"})

    app.include_router(projects.router, prefix="/api/v1/projects", tags=["projects"])
    app.include_router(stats.router, prefix="/api/v1/stats", tags=["stats"])

    return app
