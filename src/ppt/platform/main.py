"""
FastAPI application for the feature access service.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Any

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from ppt.platform.db import check_database_health, create_all_tables_async, dispose_engine
from ppt.platform.features.admin_router import admin_router
from ppt.platform.features.exceptions import FeatureError
from ppt.platform.features.package_router import package_router
from ppt.platform.features.router import router as features_router
from ppt.platform.logging import setup_logging
from ppt.platform.settings import get_settings

logger = structlog.get_logger(__name__)


async def feature_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Render feature errors with their own status code and error payload."""
    if not isinstance(exc, FeatureError):
        raise exc
    if exc.status_code >= 500:
        logger.error("feature.error", path=request.url.path, **exc.to_dict())
    else:
        logger.info(
            "feature.request.rejected",
            path=request.url.path,
            error_code=exc.error_code,
            status_code=exc.status_code,
        )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(FeatureError, feature_error_handler)


def register_routers(app: FastAPI) -> None:
    app.include_router(features_router, prefix="/api/v1/features")
    app.include_router(admin_router, prefix="/api/v1/admin/features")
    app.include_router(package_router, prefix="/api/v1/feature-packages")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage application lifecycle events."""
    settings = get_settings()
    setup_logging(settings)

    # Development databases are built from the models, other environments run alembic
    if settings.is_development:
        await create_all_tables_async()

    logger.info(
        "service.startup.complete",
        service=settings.app_name,
        version=settings.app_version,
        environment=settings.environment.value,
    )

    yield

    await dispose_engine()
    logger.info("service.shutdown.complete")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()
    app = FastAPI(
        title="PPT Platform",
        description="Feature flags, packages and per-user feature resolution",
        version=settings.app_version,
        lifespan=lifespan,
        docs_url="/docs" if not settings.is_production else None,
        redoc_url="/redoc" if not settings.is_production else None,
    )

    register_exception_handlers(app)
    register_routers(app)

    # Health check endpoint (public - no auth required)
    @app.get("/health")
    async def health_check() -> dict[str, Any]:
        return {
            "status": "healthy",
            "version": settings.app_version,
            "environment": settings.environment.value,
            "timestamp": datetime.now(UTC).isoformat(),
        }

    @app.get("/health/ready")
    async def readiness_check() -> dict[str, Any]:
        database_ok = await check_database_health()
        return {
            "status": "ready" if database_ok else "not ready",
            "database": database_ok,
            "timestamp": datetime.now(UTC).isoformat(),
        }

    return app


app = create_app()
