#!/usr/bin/env python3
"""
FastAPI Application Entry Point

Builds the cache administration service: the CacheService and the
WarmupScheduler are created in the lifespan, stored on ``app.state`` and
injected into routes through ``dependencies.py``.

Embedding applications pass their system-of-record as ``data_source`` to
``create_app``; without one the warmup job has nothing to warm and every
dataset is reported as skipped.
"""

import asyncio
import contextlib
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from dormcache.application.api.middleware.error_handler import ErrorHandlingMiddleware
from dormcache.application.api.routes.cache import router as cache_router
from dormcache.application.api.routes.health import router as health_router
from dormcache.application.services.cached_queries import (
    CachedQueries,
    DataSource,
    build_warmup_datasets,
)
from dormcache.core.config.constants import HEADER_THREAD_ID
from dormcache.core.config.settings import Settings, get_settings
from dormcache.core.exceptions import (
    ConfigurationError,
    DormCacheError,
    WarmupInProgressError,
)
from dormcache.core.logging.logger import (
    clear_thread_id,
    get_logger,
    get_thread_id,
    set_thread_id,
    setup_logging,
)
from dormcache.infrastructure.cache.cache_service import CacheService
from dormcache.infrastructure.cache.warmup import WarmupScheduler

logger = get_logger(__name__)

# HTTP status for errors that reach the exception handler
ERROR_STATUS_CODES: dict[type[DormCacheError], int] = {
    WarmupInProgressError: status.HTTP_409_CONFLICT,
    ConfigurationError: status.HTTP_503_SERVICE_UNAVAILABLE,
}


# ============================================================================
# Application Lifespan
# ============================================================================


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application lifecycle (startup and shutdown).
    """
    settings: Settings = app.state.settings

    setup_logging(log_level=settings.logging.LOG_LEVEL, log_format=settings.logging.LOG_FORMAT)

    logger.info(
        "Starting cache service",
        environment=settings.app.ENVIRONMENT,
        version=settings.app.APP_VERSION,
    )

    cache = CacheService.from_settings(settings)
    warmup_task: asyncio.Task | None = None

    try:
        # Degrades to always-miss when Redis is down
        await cache.init()

        data_source: DataSource | None = app.state.data_source
        sources = []
        if data_source is not None:
            queries = CachedQueries(cache, data_source)
            app.state.cached_queries = queries
            sources = build_warmup_datasets(queries)

        scheduler = WarmupScheduler(sources, settings.warmup)

        app.state.cache_service = cache
        app.state.warmup_scheduler = scheduler

        if settings.warmup.WARMUP_ON_STARTUP and sources:
            warmup_task = asyncio.create_task(scheduler.run())
            logger.info("Startup warmup scheduled")

        logger.info("Application startup complete")

        yield

    finally:
        logger.info("Shutting down application")

        if warmup_task is not None and not warmup_task.done():
            warmup_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await warmup_task

        await cache.shutdown()

        logger.info("Application shutdown complete")


# ============================================================================
# Application Factory
# ============================================================================


def create_app(settings: Settings | None = None, data_source: DataSource | None = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        settings: Configuration; defaults to the global settings
        data_source: System-of-record queried on cache misses and warmup

    Returns:
        FastAPI: Configured application instance
    """
    settings = settings or get_settings()

    app = FastAPI(
        title=settings.app.APP_NAME,
        version=settings.app.APP_VERSION,
        description="Two-tier cache administration service for the dormitory expense system",
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.state.settings = settings
    app.state.data_source = data_source

    # ========================================================================
    # MIDDLEWARE REGISTRATION
    # ========================================================================
    # Executed in reverse order of registration: thread id first, then CORS,
    # then the catch-all error handler closest to the routes.

    app.add_middleware(
        ErrorHandlingMiddleware,
        include_traceback=(settings.app.ENVIRONMENT == "development")
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.app.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=[HEADER_THREAD_ID],
    )

    @app.middleware("http")
    async def thread_id_middleware(request: Request, call_next):
        """
        Inject thread ID into all requests for correlation.
        """
        thread_id = request.headers.get(HEADER_THREAD_ID) or str(uuid.uuid4())
        set_thread_id(thread_id)

        try:
            response = await call_next(request)
            response.headers[HEADER_THREAD_ID] = thread_id
            return response

        finally:
            clear_thread_id()

    # ========================================================================
    # EXCEPTION HANDLERS
    # ========================================================================

    @app.exception_handler(DormCacheError)
    async def dormcache_exception_handler(request: Request, exc: DormCacheError):
        """Handle service-specific exceptions."""
        status_code = next(
            (code for exc_type, code in ERROR_STATUS_CODES.items() if isinstance(exc, exc_type)),
            status.HTTP_500_INTERNAL_SERVER_ERROR,
        )
        thread_id = exc.thread_id or get_thread_id()
        logger.error(
            f"Service exception: {exc.message}",
            error_type=type(exc).__name__,
            status_code=status_code,
            thread_id=thread_id,
        )
        return JSONResponse(
            status_code=status_code, content=exc.to_dict(), headers={HEADER_THREAD_ID: thread_id or ""}
        )

    # ========================================================================
    # ROUTER REGISTRATION
    # ========================================================================
    # Every router is mounted under API_BASE_PATH (default /api/v1)

    base_path = settings.app.API_BASE_PATH

    app.include_router(health_router, prefix=base_path)
    app.include_router(cache_router, prefix=base_path)

    @app.get("/", tags=["Root"])
    async def root():
        """
        Root endpoint with API information.
        """
        return {
            "name": settings.app.APP_NAME,
            "version": settings.app.APP_VERSION,
            "environment": settings.app.ENVIRONMENT,
            "docs": "/docs",
            "health": f"{base_path}/health",
        }

    return app


# Create application instance
app = create_app()


# ============================================================================
# Main Entry Point
# ============================================================================

if __name__ == "__main__":
    import uvicorn

    settings = get_settings()

    uvicorn.run(
        "dormcache.application.app:app",
        host=settings.app.API_HOST,
        port=settings.app.API_PORT,
        reload=settings.app.ENVIRONMENT == "development",
        log_level=settings.logging.LOG_LEVEL.lower(),
    )
