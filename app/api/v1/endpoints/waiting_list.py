"""Waiting list endpoints."""

from uuid import UUID

from fastapi import APIRouter, Query, status

from app.dependencies import Cache, CurrentActor, DatabaseSession, Events, Locks, RequestMeta
from app.schemas.waiting_list import (
    PromotionRequest,
    PromotionResult,
    WaitingListContact,
    WaitingListCreate,
    WaitingListQueueResponse,
    WaitingListResponse,
)
from app.services.appointment_service import AppointmentScheduler
from app.services.availability_service import AvailabilityService
from app.services.waiting_list_service import WaitingListService

router = APIRouter()


@router.post(
    "/",
    response_model=WaitingListResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["Waiting List"],
    summary="Enroll on waiting list",
)
async def enroll(
    data: WaitingListCreate,
    actor: CurrentActor,
    db: DatabaseSession,
    events: Events,
    locks: Locks,
    request_meta: RequestMeta,
) -> WaitingListResponse:
    """
    Add a patient to the end of a facility's waiting list.

    Args:
        data: Patient, facility and slot preferences
        actor: Enrolling staff member
        db: Database session
        events: Workflow event recorder
        locks: Keyed lock manager
        request_meta: Caller address, user agent and request ID

    Returns:
        Created entry with its queue position
    """
    service = WaitingListService(db, events, locks)
    return await service.enroll(data, actor, request_meta)


@router.get(
    "/",
    response_model=WaitingListQueueResponse,
    status_code=status.HTTP_200_OK,
    tags=["Waiting List"],
    summary="Get facility queue",
)
async def get_queue(
    actor: CurrentActor,
    db: DatabaseSession,
    facility_id: UUID = Query(...),
) -> WaitingListQueueResponse:
    """Get a facility's active queue in position order."""
    service = WaitingListService(db)
    return await service.queue(facility_id)


@router.post(
    "/promote",
    response_model=PromotionResult,
    status_code=status.HTTP_200_OK,
    tags=["Waiting List"],
    summary="Promote next entry into a slot",
)
async def promote_next(
    data: PromotionRequest,
    actor: CurrentActor,
    db: DatabaseSession,
    events: Events,
    locks: Locks,
    cache: Cache,
    request_meta: RequestMeta,
) -> PromotionResult:
    """
    Offer a free slot to the best eligible entry of the facility's queue.

    Args:
        data: Facility, doctor, start time and duration of the slot
        actor: Staff member releasing the slot
        db: Database session
        events: Workflow event recorder
        locks: Keyed lock manager
        cache: Availability cache
        request_meta: Caller address, user agent and request ID

    Returns:
        Promotion outcome
    """
    scheduler = AppointmentScheduler(
        db,
        events=events,
        locks=locks,
        availability=AvailabilityService(db, cache),
    )
    return await scheduler.promote_next(data, actor, request_meta)


@router.get(
    "/{entry_id}",
    response_model=WaitingListResponse,
    status_code=status.HTTP_200_OK,
    tags=["Waiting List"],
    summary="Get waiting list entry",
)
async def get_entry(
    entry_id: UUID,
    actor: CurrentActor,
    db: DatabaseSession,
) -> WaitingListResponse:
    service = WaitingListService(db)
    return await service.get_entry(entry_id)


@router.post(
    "/{entry_id}/contact",
    response_model=WaitingListResponse,
    status_code=status.HTTP_200_OK,
    tags=["Waiting List"],
    summary="Record contact attempt",
)
async def record_contact(
    entry_id: UUID,
    data: WaitingListContact,
    actor: CurrentActor,
    db: DatabaseSession,
    events: Events,
    request_meta: RequestMeta,
) -> WaitingListResponse:
    """Count an attempt to reach the patient."""
    service = WaitingListService(db, events)
    return await service.record_contact(entry_id, data, actor, request_meta)


@router.post(
    "/{entry_id}/cancel",
    response_model=WaitingListResponse,
    status_code=status.HTTP_200_OK,
    tags=["Waiting List"],
    summary="Leave waiting list",
)
async def cancel_entry(
    entry_id: UUID,
    actor: CurrentActor,
    db: DatabaseSession,
    events: Events,
    locks: Locks,
    request_meta: RequestMeta,
) -> WaitingListResponse:
    """Take an entry off the queue; positions behind it move up."""
    service = WaitingListService(db, events, locks)
    return await service.cancel(entry_id, actor, request_meta)
