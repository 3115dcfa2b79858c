"""
TaskHub API Server

Entry point for the FastAPI application. Collaborators (store, rate limiter)
are built by the lifespan handler unless injected by the caller.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Optional

import redis.asyncio as redis
import structlog
import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from taskhub.api.errors import install_error_handlers
from taskhub.api.v1 import router as api_v1_router
from taskhub.api.v1.auth import router as auth_router
from taskhub.core.config import Settings, get_settings
from taskhub.core.database import Database
from taskhub.core.logging import configure_logging
from taskhub.core.middleware import RequestContextMiddleware
from taskhub.core.rate_limit import NoopRateLimiter, RateLimiter, RedisRateLimiter
from taskhub.store.base import Store
from taskhub.store.sql import SqlStore

log = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings: Settings = app.state.settings
    database: Optional[Database] = None
    redis_client: Optional[redis.Redis] = None

    if app.state.store is None:
        database = Database(settings.database_url, echo=settings.debug)
        if settings.create_tables:
            await database.init_db()
        app.state.database = database
        app.state.store = SqlStore(database.session_factory)

    if app.state.rate_limiter is None:
        if settings.rate_limit_enabled:
            redis_client = redis.from_url(settings.redis_url, decode_responses=True)
            app.state.rate_limiter = RedisRateLimiter.from_settings(redis_client, settings)
        else:
            app.state.rate_limiter = NoopRateLimiter()

    log.info("taskhub.starting", debug=settings.debug)
    try:
        yield
    finally:
        log.info("taskhub.shutting_down")
        if redis_client is not None:
            await redis_client.aclose()
        if database is not None:
            await database.dispose()


def create_app(
    settings: Optional[Settings] = None,
    store: Optional[Store] = None,
    rate_limiter: Optional[RateLimiter] = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = settings or get_settings()
    configure_logging(settings.log_level, settings.log_format)

    app = FastAPI(
        title="TaskHub",
        description="Multi-tenant task management with organizations, roles and join requests.",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.store = store
    app.state.rate_limiter = rate_limiter
    app.state.database = None

    app.add_middleware(RequestContextMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE"],
        allow_headers=["Content-Type", "Authorization", "X-Request-ID"],
    )
    install_error_handlers(app)

    app.include_router(auth_router, prefix="/auth", tags=["Authentication"])
    app.include_router(api_v1_router, prefix="/api/v1")

    @app.get("/health", tags=["System"])
    async def health_check():
        """Liveness probe."""
        return {"status": "ok"}

    @app.get("/ready", tags=["System"])
    async def readiness_check():
        """Readiness probe: the store is wired and, if SQL-backed, reachable."""
        if app.state.store is None:
            return JSONResponse(status_code=503, content={"status": "starting"})
        database: Optional[Database] = app.state.database
        if database is not None:
            async with database.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        return {"status": "ready"}

    return app


def run() -> None:
    settings = get_settings()
    uvicorn.run(
        "taskhub.main:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )


if __name__ == "__main__":
    run()
