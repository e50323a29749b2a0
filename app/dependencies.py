"""FastAPI dependencies."""

from typing import Annotated
from uuid import UUID

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.locks import LockManager, get_lock_manager
from app.core.redis_client import CacheManager, get_redis_client
from app.core.security import decode_access_token
from app.database import get_db
from app.schemas.common import Actor, RequestMetadata
from app.services.event_service import (
    EventPublisher,
    WorkflowEventRecorder,
    get_event_publisher,
)

# Security
security = HTTPBearer()


async def get_current_actor(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(security)],
) -> Actor:
    """
    Extract the acting identity from the JWT issued by the authentication service.

    Args:
        credentials: Bearer token credentials

    Returns:
        Actor with the ``sub`` claim as id and the ``role`` claim as role

    Raises:
        HTTPException: If token is invalid or expired
    """
    token = credentials.credentials
    payload = decode_access_token(token)

    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    actor_id_str = payload.get("sub")
    if actor_id_str is None or not isinstance(actor_id_str, str):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        actor_id = UUID(actor_id_str)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid actor ID format",
            headers={"WWW-Authenticate": "Bearer"},
        )

    role = payload.get("role")
    return Actor(id=actor_id, role=role if isinstance(role, str) else None)


def get_request_metadata(request: Request) -> RequestMetadata:
    """Capture the request context persisted with audit rows."""
    return RequestMetadata(
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
        request_id=getattr(request.state, "request_id", None)
        or request.headers.get("x-request-id"),
    )


def get_cache_manager() -> CacheManager:
    """Get cache manager backed by the shared Redis client."""
    return CacheManager(get_redis_client())


def get_event_recorder(
    db: Annotated[AsyncSession, Depends(get_db)],
    publisher: Annotated[EventPublisher, Depends(get_event_publisher)],
) -> WorkflowEventRecorder:
    """One outbox recorder per request, shared by every service the request touches."""
    return WorkflowEventRecorder(db, publisher)


# Type aliases for dependency injection
DatabaseSession = Annotated[AsyncSession, Depends(get_db)]
CurrentActor = Annotated[Actor, Depends(get_current_actor)]
RequestMeta = Annotated[RequestMetadata, Depends(get_request_metadata)]
Cache = Annotated[CacheManager | None, Depends(get_cache_manager)]
Events = Annotated[WorkflowEventRecorder, Depends(get_event_recorder)]
Locks = Annotated[LockManager, Depends(get_lock_manager)]
