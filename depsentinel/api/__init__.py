"""DepSentinel REST API — FastAPI application factory."""

from __future__ import annotations

import os
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from depsentinel import __version__
from depsentinel.api.deps import dispose_scan_service, get_settings, init_scan_service
from depsentinel.api.errors import register_error_handlers
from depsentinel.api.middleware.request_id import RequestIDMiddleware
from depsentinel.api.routers import scans
from depsentinel.core.logging import setup_logging
from depsentinel.scheduler import create_eviction_loop


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup: wire the scan service, start eviction. Shutdown: reverse."""
    service = init_scan_service()
    eviction = create_eviction_loop(service, get_settings())
    await eviction.start()
    yield
    await eviction.stop()
    await dispose_scan_service()


def create_app() -> FastAPI:
    """Build and return the FastAPI application."""
    setup_logging()

    app = FastAPI(
        title="DepSentinel",
        version=__version__,
        docs_url="/api/v1/docs",
        openapi_url="/api/v1/openapi.json",
        lifespan=_lifespan,
    )

    register_error_handlers(app)

    cors_origins = os.environ.get("DEPSENTINEL_CORS_ORIGINS", "http://localhost:3000")
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

    app.include_router(scans.router, prefix="/api/v1/scans", tags=["scans"])

    return app
