"""Doctor availability endpoints."""

from datetime import date
from uuid import UUID

from fastapi import APIRouter, Query, status

from app.dependencies import Cache, CurrentActor, DatabaseSession
from app.schemas.availability import AvailabilityCreate, AvailabilityResponse, DaySlotsResponse
from app.services.appointment_service import AppointmentScheduler
from app.services.availability_service import AvailabilityService

router = APIRouter()


@router.post(
    "/",
    response_model=AvailabilityResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["Availability"],
    summary="Create availability row",
)
async def create_availability(
    data: AvailabilityCreate,
    actor: CurrentActor,
    db: DatabaseSession,
    cache: Cache,
) -> AvailabilityResponse:
    """
    Register a regular window, a date-specific window or a block.

    Args:
        data: Availability row
        actor: Authenticated caller
        db: Database session
        cache: Availability cache, invalidated for the doctor

    Returns:
        Created availability row
    """
    service = AvailabilityService(db, cache)
    return await service.create_availability(data)


@router.get(
    "/",
    response_model=list[AvailabilityResponse],
    status_code=status.HTTP_200_OK,
    tags=["Availability"],
    summary="List doctor availability",
)
async def list_availability(
    actor: CurrentActor,
    db: DatabaseSession,
    doctor_id: UUID = Query(...),
    facility_id: UUID | None = Query(None),
) -> list[AvailabilityResponse]:
    """List a doctor's availability rows."""
    service = AvailabilityService(db)
    return await service.list_availability(doctor_id, facility_id)


@router.get(
    "/slots",
    response_model=DaySlotsResponse,
    status_code=status.HTTP_200_OK,
    tags=["Availability"],
    summary="List bookable slots",
)
async def list_slots(
    actor: CurrentActor,
    db: DatabaseSession,
    cache: Cache,
    doctor_id: UUID = Query(...),
    facility_id: UUID = Query(...),
    on_date: date = Query(..., alias="date"),
) -> DaySlotsResponse:
    """
    Enumerate a doctor's candidate slots on one local date.

    Args:
        actor: Authenticated caller
        db: Database session
        cache: Availability cache
        doctor_id: Doctor ID
        facility_id: Facility ID
        on_date: Date in the scheduling time zone

    Returns:
        Slots with availability and the reason for any that are taken
    """
    scheduler = AppointmentScheduler(db, availability=AvailabilityService(db, cache))
    return await scheduler.available_slots(doctor_id, facility_id, on_date)
