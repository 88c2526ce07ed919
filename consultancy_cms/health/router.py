"""Health check endpoints."""

from typing import Any

from fastapi import APIRouter, Request, Response, status

from consultancy_cms.core.database import AsyncCassandraConnection
from consultancy_cms.core.logging import get_logger
from consultancy_cms.core.redis import get_redis


logger = get_logger(__name__)

router = APIRouter(prefix="/health", tags=["health"])


async def _redis_state() -> str:
    client = get_redis()
    if client is None:
        return "disabled"
    try:
        await client.ping()
    except Exception as e:
        logger.warning("health_redis_unreachable", error=str(e))
        return "unreachable"
    return "ok"


@router.get("/live")
async def liveness() -> dict[str, str]:
    """The process is up."""
    return {"status": "alive"}


@router.get("/ready")
async def readiness(request: Request, response: Response) -> dict[str, Any]:
    """Storage is wired and notifications are flowing.

    Redis only backs the comment rate limit, so an unreachable Redis is
    reported but does not fail the readiness check.
    """
    settings = request.app.state.settings
    services = getattr(request.app.state, "services", None)
    if services is None:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return {"status": "starting", "storage_backend": settings.storage_backend}

    if (
        settings.storage_backend == "cassandra"
        and not AsyncCassandraConnection.is_connected()
    ):
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return {"status": "storage_unavailable", "storage_backend": "cassandra"}

    return {
        "status": "ready",
        "environment": settings.environment,
        "storage_backend": settings.storage_backend,
        "redis": await _redis_state(),
        "notifications": services.dispatcher.stats,
    }


@router.get("")
async def health(request: Request) -> dict[str, str]:
    settings = request.app.state.settings
    return {
        "status": "healthy",
        "app_name": settings.app_name,
        "version": settings.app_version,
        "environment": settings.environment,
    }
