"""Workflow event endpoints."""

from uuid import UUID

from fastapi import APIRouter, Query, status

from app.dependencies import CurrentActor, DatabaseSession
from app.schemas.events import EntityType, TransitionEvent
from app.services.event_service import list_entity_events

router = APIRouter()


@router.get(
    "/",
    response_model=list[TransitionEvent],
    status_code=status.HTTP_200_OK,
    tags=["Events"],
    summary="List transitions of an entity",
)
async def list_events(
    actor: CurrentActor,
    db: DatabaseSession,
    entity_type: EntityType = Query(...),
    entity_id: UUID = Query(...),
) -> list[TransitionEvent]:
    """
    Get the recorded transitions of one entity, oldest first.

    Args:
        actor: Authenticated caller
        db: Database session
        entity_type: Assessment, referral, appointment or waiting list entry
        entity_id: Entity ID

    Returns:
        Transition events as handed to the notification dispatcher
    """
    return await list_entity_events(db, entity_type, entity_id)
