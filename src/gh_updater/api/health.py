"""Health check endpoints for monitoring and load balancers."""
import logging
from typing import Literal

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy import text

from gh_updater.api.deps import UpdaterContainer, get_container

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


class HealthStatus(BaseModel):
    """Health check response."""

    status: Literal["healthy", "unhealthy", "degraded"]
    version: str
    database: Literal["connected", "disconnected"]
    cache: str
    details: dict | None = None


@router.get("/health", response_model=HealthStatus)
async def health_check(
    container: UpdaterContainer = Depends(get_container),
) -> HealthStatus:
    """
    Readiness check with dependency verification.

    Checks database connectivity and, with the Redis backend, Redis.
    """
    from gh_updater import __version__

    db_status: Literal["connected", "disconnected"] = "disconnected"
    details = {}

    try:
        async with container.session_factory() as session:
            result = await session.execute(text("SELECT 1"))
            result.scalar()
        db_status = "connected"
    except Exception as e:
        logger.warning("Database health check failed", extra={"error": str(e)})
        details["database_error"] = str(e)

    cache_status = container.settings.cache_backend
    if container.redis is not None:
        redis_health = await container.redis.health_check()
        cache_status = f"redis:{redis_health['status']}"
        if redis_health["status"] != "healthy":
            details["redis_error"] = redis_health.get("error")

    if db_status != "connected":
        status: Literal["healthy", "unhealthy", "degraded"] = "unhealthy"
    elif details:
        status = "degraded"
    else:
        status = "healthy"

    return HealthStatus(
        status=status,
        version=__version__,
        database=db_status,
        cache=cache_status,
        details=details if details else None,
    )
