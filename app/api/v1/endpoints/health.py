"""Health check endpoints."""

from fastapi import APIRouter, status
from pydantic import BaseModel

from app.config import settings
from app.core.redis_client import check_redis_connection
from app.database import check_database_connection
from app.dependencies import DatabaseSession
from app.repositories import events as event_repo

router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response model."""

    status: str
    version: str
    environment: str


class DetailedHealthResponse(BaseModel):
    """Detailed health check response model."""

    status: str
    version: str
    environment: str
    database: str
    redis: str
    lock_backend: str
    event_publisher: str
    unpublished_events: int | None = None


@router.get(
    "/health",
    response_model=HealthResponse,
    status_code=status.HTTP_200_OK,
    tags=["Health"],
    summary="Basic health check",
)
async def health_check() -> HealthResponse:
    """
    Basic health check endpoint.

    Returns:
        Basic health status
    """
    return HealthResponse(
        status="healthy",
        version=settings.app_version,
        environment=settings.environment,
    )


@router.get(
    "/health/detailed",
    response_model=DetailedHealthResponse,
    status_code=status.HTTP_200_OK,
    tags=["Health"],
    summary="Detailed health check",
)
async def detailed_health_check(db: DatabaseSession) -> DetailedHealthResponse:
    """
    Detailed health check with database and Redis status.

    Redis is only required when locks or events go through it.

    Args:
        db: Database session

    Returns:
        Detailed health status including dependencies and the event outbox backlog
    """
    db_healthy = await check_database_connection()
    redis_healthy = await check_redis_connection()
    redis_required = settings.booking_lock_backend == "redis" or settings.event_publisher == "redis"

    unpublished = None
    if db_healthy:
        unpublished = await event_repo.count_unpublished(db)

    return DetailedHealthResponse(
        status="healthy" if db_healthy and (redis_healthy or not redis_required) else "degraded",
        version=settings.app_version,
        environment=settings.environment,
        database="healthy" if db_healthy else "unhealthy",
        redis="healthy" if redis_healthy else "unhealthy",
        lock_backend=settings.booking_lock_backend,
        event_publisher=settings.event_publisher,
        unpublished_events=unpublished,
    )


@router.get(
    "/ping",
    status_code=status.HTTP_200_OK,
    tags=["Health"],
    summary="Simple ping",
)
async def ping() -> dict[str, str]:
    """
    Simple ping endpoint.

    Returns:
        Pong response
    """
    return {"message": "pong"}
