"""Health check endpoints."""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from storefront_recommender import __version__
from storefront_recommender.api.dependencies import get_cache
from storefront_recommender.config import get_settings
from storefront_recommender.infrastructure.database.connection import get_db_session
from storefront_recommender.infrastructure.redis import CacheService

router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response model."""

    status: str
    version: str
    environment: str
    timestamp: str


class ReadinessResponse(BaseModel):
    """Readiness check response model."""

    ready: bool
    checks: dict[str, bool]


async def check_database() -> bool:
    """Run a trivial query against PostgreSQL."""
    try:
        async with get_db_session() as session:
            await session.execute(text("SELECT 1"))
        return True
    except (SQLAlchemyError, OSError):
        return False


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """
    Basic health check endpoint.

    Returns the service status and version information.
    """
    settings = get_settings()

    return HealthResponse(
        status="healthy",
        version=__version__,
        environment=settings.app_env,
        timestamp=datetime.now(timezone.utc).isoformat(),
    )


@router.get("/health/ready", response_model=ReadinessResponse)
async def readiness_check(
    cache: CacheService = Depends(get_cache),
    database_ok: bool = Depends(check_database),
) -> ReadinessResponse:
    """
    Readiness check endpoint.

    PostgreSQL is required. Redis is reported but does not gate readiness,
    since the response cache degrades to a no-op without it.
    """
    checks = {
        "postgres": database_ok,
        "redis": await cache.health_check(),
    }
    return ReadinessResponse(ready=checks["postgres"], checks=checks)


@router.get("/health/live")
async def liveness_check() -> dict[str, str]:
    """Returns 200 while the process is running."""
    return {"status": "alive"}
