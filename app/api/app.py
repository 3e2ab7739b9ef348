"""API application factory."""

from __future__ import annotations

import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from starlette.middleware.base import BaseHTTPMiddleware

from app.core.config import settings
from app.core.exceptions import register_exception_handlers
from app.core.logging import get_logger, setup_logging
from app.schemas.common import ErrorResponse

from .routes import feed, health, jobs


logger = get_logger("api")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialise logging, the database and the scheduler; tear down in reverse."""
    from app.cache.client import close_valkey_client
    from app.database.connection import close_database, init_database
    from app.jobs import close_context, start_scheduler, stop_scheduler
    from app.services.openai import close_client_manager

    setup_logging()
    try:
        await init_database()
    except Exception as e:
        logger.warning(f"Database initialization failed: {e}")
    await start_scheduler()

    yield

    await stop_scheduler()
    try:
        await close_context()
        await close_client_manager()
        await close_valkey_client()
        await close_database()
    except Exception as e:
        logger.warning(f"Resource cleanup failed: {e}")


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log every request's method, path, status and duration."""

    async def dispatch(self, request: Request, call_next):
        start_time = time.monotonic()
        response = await call_next(request)
        duration = time.monotonic() - start_time

        # Path only; query strings are not logged
        path = request.url.path
        logger.info(
            f"{request.method} {path} -> {response.status_code} ({duration:.3f}s)",
            extra={
                "extra_fields": {
                    "method": request.method,
                    "path": path,
                    "status_code": response.status_code,
                    "duration_ms": int(duration * 1000),
                }
            },
        )
        return response


def create_api_app(use_lifespan: bool = True) -> FastAPI:
    """Create and configure the API application."""
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Holdings-aware news signal pipeline",
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_url="/openapi.json" if settings.debug else None,
        lifespan=lifespan if use_lifespan else None,
        responses={
            404: {"model": ErrorResponse, "description": "Not Found"},
            422: {"model": ErrorResponse, "description": "Validation Error"},
            500: {"model": ErrorResponse, "description": "Internal Server Error"},
        },
    )

    app.add_middleware(RequestLoggingMiddleware)
    register_exception_handlers(app)

    app.include_router(health.router, tags=["Health"])
    app.include_router(jobs.router, prefix="/jobs", tags=["Jobs"])
    app.include_router(feed.router, prefix="/feed", tags=["Feed"])

    return app
