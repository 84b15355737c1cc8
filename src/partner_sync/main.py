"""FastAPI application factory.

Creates the app with logging middleware, lifespan events for database
initialization and partner sync wiring, and the v1 API router.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from collections.abc import AsyncGenerator

import structlog
from fastapi import FastAPI

from src.partner_sync.config import get_settings
from src.partner_sync.core.database import close_db, init_db
from src.partner_sync.api.middleware.logging import LoggingMiddleware, configure_structlog
from src.partner_sync.api.v1.router import router as v1_router
from src.partner_sync.errors import ConfigError
from src.partner_sync.sync.service import build_service


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: init DB and the sync service on startup, close on shutdown."""
    log = structlog.get_logger(__name__)
    settings = get_settings()
    configure_structlog()
    await init_db()

    # Missing partner credentials leave the sync endpoints answering 503
    # while health checks stay available
    try:
        app.state.sync_service = build_service(settings)
        log.info("partner_sync.initialized", environment=settings.ENVIRONMENT.value)
    except ConfigError as exc:
        app.state.sync_service = None
        app.state.sync_service_error = exc.message
        log.error("partner_sync.init_failed", error=exc.message, **exc.context)

    yield

    await close_db()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Partner Sync API",
        version="0.1.0",
        description="Partner client synchronization service",
        lifespan=lifespan,
    )

    # Logging middleware (logs every request with timing)
    app.add_middleware(LoggingMiddleware)

    app.include_router(v1_router)

    return app


# Module-level app for uvicorn
app = create_app()
