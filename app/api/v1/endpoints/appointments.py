"""Appointment endpoints."""

from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Query, status

from app.dependencies import Cache, CurrentActor, DatabaseSession, Events, Locks, RequestMeta
from app.schemas.appointments import (
    AppointmentCancel,
    AppointmentComplete,
    AppointmentConfirm,
    AppointmentCreate,
    AppointmentFilters,
    AppointmentListResponse,
    AppointmentReschedule,
    AppointmentResponse,
    AppointmentStatus,
    BookingConfirmation,
    CancellationResult,
    RescheduleResult,
)
from app.services.appointment_service import AppointmentScheduler
from app.services.availability_service import AvailabilityService

router = APIRouter()


def _scheduler(db, events, locks, cache=None) -> AppointmentScheduler:
    return AppointmentScheduler(
        db,
        events=events,
        locks=locks,
        availability=AvailabilityService(db, cache),
    )


@router.post(
    "/",
    response_model=BookingConfirmation,
    status_code=status.HTTP_201_CREATED,
    tags=["Appointments"],
    summary="Book appointment",
)
async def book_appointment(
    data: AppointmentCreate,
    actor: CurrentActor,
    db: DatabaseSession,
    events: Events,
    locks: Locks,
    cache: Cache,
    request_meta: RequestMeta,
) -> BookingConfirmation:
    """
    Book an appointment in a free slot.

    Args:
        data: Doctor, facility, start time and patient
        actor: Booking staff member
        db: Database session
        events: Workflow event recorder
        locks: Keyed lock manager
        cache: Availability cache
        request_meta: Caller address, user agent and request ID

    Returns:
        Booking confirmation with the patient's confirmation token
    """
    scheduler = _scheduler(db, events, locks, cache)
    return await scheduler.book(data, actor, request_meta)


@router.get(
    "/",
    response_model=AppointmentListResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="List appointments",
)
async def list_appointments(
    actor: CurrentActor,
    db: DatabaseSession,
    status_filter: AppointmentStatus | None = Query(None, alias="status"),
    doctor_id: UUID | None = Query(None),
    facility_id: UUID | None = Query(None),
    referral_id: UUID | None = Query(None),
    from_date: datetime | None = Query(None),
    to_date: datetime | None = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
) -> AppointmentListResponse:
    """
    List appointments with filters, earliest first.

    Args:
        actor: Authenticated caller
        db: Database session
        status_filter: Filter by status
        doctor_id: Filter by doctor
        facility_id: Filter by facility
        referral_id: Filter by originating referral
        from_date: Filter from start time
        to_date: Filter to start time
        page: Page number
        page_size: Items per page

    Returns:
        Paginated list of appointments
    """
    filters = AppointmentFilters(
        status=status_filter,
        doctor_id=doctor_id,
        facility_id=facility_id,
        referral_id=referral_id,
        from_date=from_date,
        to_date=to_date,
        page=page,
        page_size=page_size,
    )
    scheduler = AppointmentScheduler(db)
    return await scheduler.list_appointments(filters)


@router.post(
    "/confirm/{token}",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Confirm appointment by token",
)
async def confirm_by_token(
    token: str,
    db: DatabaseSession,
    events: Events,
    locks: Locks,
    request_meta: RequestMeta,
) -> AppointmentResponse:
    """
    Confirm attendance through the link sent to the patient.

    No bearer token is needed; the confirmation token identifies the appointment.
    """
    scheduler = _scheduler(db, events, locks)
    return await scheduler.confirm_by_token(token, request_meta)


@router.get(
    "/{appointment_id}",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Get appointment by ID",
)
async def get_appointment(
    appointment_id: UUID,
    actor: CurrentActor,
    db: DatabaseSession,
) -> AppointmentResponse:
    """Get a specific appointment."""
    scheduler = AppointmentScheduler(db)
    return await scheduler.get_appointment(appointment_id)


@router.post(
    "/{appointment_id}/confirm",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Confirm appointment",
)
async def confirm_appointment(
    appointment_id: UUID,
    data: AppointmentConfirm,
    actor: CurrentActor,
    db: DatabaseSession,
    events: Events,
    locks: Locks,
    request_meta: RequestMeta,
) -> AppointmentResponse:
    """Confirm attendance on the patient's behalf."""
    scheduler = _scheduler(db, events, locks)
    return await scheduler.confirm(appointment_id, actor, data, request_meta)


@router.post(
    "/{appointment_id}/check-in",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Check in patient",
)
async def check_in(
    appointment_id: UUID,
    actor: CurrentActor,
    db: DatabaseSession,
    events: Events,
    locks: Locks,
    request_meta: RequestMeta,
) -> AppointmentResponse:
    """Register the patient's arrival."""
    scheduler = _scheduler(db, events, locks)
    return await scheduler.check_in(appointment_id, actor, request_meta)


@router.post(
    "/{appointment_id}/start",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Start visit",
)
async def start_visit(
    appointment_id: UUID,
    actor: CurrentActor,
    db: DatabaseSession,
    events: Events,
    locks: Locks,
    request_meta: RequestMeta,
) -> AppointmentResponse:
    scheduler = _scheduler(db, events, locks)
    return await scheduler.start(appointment_id, actor, request_meta)


@router.post(
    "/{appointment_id}/complete",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Complete visit",
)
async def complete_visit(
    appointment_id: UUID,
    data: AppointmentComplete,
    actor: CurrentActor,
    db: DatabaseSession,
    events: Events,
    locks: Locks,
    request_meta: RequestMeta,
) -> AppointmentResponse:
    """Finish the visit with its summary."""
    scheduler = _scheduler(db, events, locks)
    return await scheduler.complete(appointment_id, actor, data, request_meta)


@router.post(
    "/{appointment_id}/no-show",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Mark no-show",
)
async def mark_no_show(
    appointment_id: UUID,
    actor: CurrentActor,
    db: DatabaseSession,
    events: Events,
    locks: Locks,
    request_meta: RequestMeta,
) -> AppointmentResponse:
    """Record that the patient did not attend."""
    scheduler = _scheduler(db, events, locks)
    return await scheduler.mark_no_show(appointment_id, actor, request_meta)


@router.post(
    "/{appointment_id}/cancel",
    response_model=CancellationResult,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Cancel appointment",
)
async def cancel_appointment(
    appointment_id: UUID,
    data: AppointmentCancel,
    actor: CurrentActor,
    db: DatabaseSession,
    events: Events,
    locks: Locks,
    cache: Cache,
    request_meta: RequestMeta,
) -> CancellationResult:
    """
    Cancel an appointment.

    The freed slot is offered to the facility's waiting list.

    Args:
        appointment_id: Appointment ID
        data: Cancellation reason
        actor: Cancelling user
        db: Database session
        events: Workflow event recorder
        locks: Keyed lock manager
        cache: Availability cache
        request_meta: Caller address, user agent and request ID

    Returns:
        Cancelled appointment and any waiting-list promotion
    """
    scheduler = _scheduler(db, events, locks, cache)
    return await scheduler.cancel(appointment_id, actor, data.reason, request_meta)


@router.post(
    "/{appointment_id}/reschedule",
    response_model=RescheduleResult,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Reschedule appointment",
)
async def reschedule_appointment(
    appointment_id: UUID,
    data: AppointmentReschedule,
    actor: CurrentActor,
    db: DatabaseSession,
    events: Events,
    locks: Locks,
    cache: Cache,
    request_meta: RequestMeta,
) -> RescheduleResult:
    """
    Move an appointment to a new start time.

    Args:
        appointment_id: Appointment ID
        data: New start time and reason
        actor: Rescheduling user
        db: Database session
        events: Workflow event recorder
        locks: Keyed lock manager
        cache: Availability cache
        request_meta: Caller address, user agent and request ID

    Returns:
        Original and successor appointments
    """
    scheduler = _scheduler(db, events, locks, cache)
    return await scheduler.reschedule(appointment_id, actor, data, request_meta)
