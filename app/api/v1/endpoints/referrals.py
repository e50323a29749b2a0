"""Referral endpoints."""

from uuid import UUID

from fastapi import APIRouter, Query, status

from app.dependencies import (
    Cache,
    CurrentActor,
    DatabaseSession,
    Events,
    Locks,
    RequestMeta,
)
from app.schemas.referrals import (
    ReferralAccept,
    ReferralComplete,
    ReferralCreate,
    ReferralEscalate,
    ReferralFilters,
    ReferralHistoryResponse,
    ReferralListResponse,
    ReferralNote,
    ReferralPriority,
    ReferralReason,
    ReferralReject,
    ReferralResponse,
    ReferralSchedule,
    ReferralStatus,
    ReferralTransit,
    ReferralUrgency,
)
from app.services.appointment_service import AppointmentScheduler
from app.services.availability_service import AvailabilityService
from app.services.referral_service import ReferralWorkflow

router = APIRouter()


def _workflow(db, events, locks, cache=None) -> ReferralWorkflow:
    scheduler = AppointmentScheduler(
        db,
        events=events,
        locks=locks,
        availability=AvailabilityService(db, cache),
    )
    return ReferralWorkflow(db, events=events, locks=locks, scheduler=scheduler)


@router.post(
    "/",
    response_model=ReferralResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["Referrals"],
    summary="Create referral",
)
async def create_referral(
    data: ReferralCreate,
    actor: CurrentActor,
    db: DatabaseSession,
    events: Events,
    locks: Locks,
    request_meta: RequestMeta,
) -> ReferralResponse:
    """
    Refer the patient of an assessment to another facility.

    Args:
        data: Assessment, facilities and clinical classification
        actor: Referring staff member
        db: Database session
        events: Workflow event recorder
        locks: Keyed lock manager
        request_meta: Request context for the history row

    Returns:
        Created referral in ``pending`` status
    """
    workflow = _workflow(db, events, locks)
    return await workflow.create(data, actor, request_meta)


@router.get(
    "/",
    response_model=ReferralListResponse,
    status_code=status.HTTP_200_OK,
    tags=["Referrals"],
    summary="List referrals",
)
async def list_referrals(
    actor: CurrentActor,
    db: DatabaseSession,
    status_filter: ReferralStatus | None = Query(None, alias="status"),
    priority: ReferralPriority | None = Query(None),
    urgency: ReferralUrgency | None = Query(None),
    target_facility_id: UUID | None = Query(None),
    source_facility_id: UUID | None = Query(None),
    assigned_doctor_id: UUID | None = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
) -> ReferralListResponse:
    """
    List referrals, most urgent first.

    Args:
        actor: Authenticated caller
        db: Database session
        status_filter: Filter by status
        priority: Filter by priority
        urgency: Filter by urgency
        target_facility_id: Filter by receiving facility
        source_facility_id: Filter by referring facility
        assigned_doctor_id: Filter by assigned doctor
        page: Page number
        page_size: Items per page

    Returns:
        Paginated list of referrals
    """
    filters = ReferralFilters(
        status=status_filter,
        priority=priority,
        urgency=urgency,
        target_facility_id=target_facility_id,
        source_facility_id=source_facility_id,
        assigned_doctor_id=assigned_doctor_id,
        page=page,
        page_size=page_size,
    )
    workflow = ReferralWorkflow(db)
    return await workflow.list_referrals(filters)


@router.get(
    "/{referral_id}",
    response_model=ReferralResponse,
    status_code=status.HTTP_200_OK,
    tags=["Referrals"],
    summary="Get referral by ID",
)
async def get_referral(
    referral_id: UUID,
    actor: CurrentActor,
    db: DatabaseSession,
) -> ReferralResponse:
    """Get a specific referral."""
    workflow = ReferralWorkflow(db)
    return await workflow.get_referral(referral_id)


@router.get(
    "/{referral_id}/history",
    response_model=list[ReferralHistoryResponse],
    status_code=status.HTTP_200_OK,
    tags=["Referrals"],
    summary="Get referral history",
)
async def get_referral_history(
    referral_id: UUID,
    actor: CurrentActor,
    db: DatabaseSession,
) -> list[ReferralHistoryResponse]:
    """Get the audit trail of a referral, newest first."""
    workflow = ReferralWorkflow(db)
    return await workflow.history(referral_id)


@router.post(
    "/{referral_id}/accept",
    response_model=ReferralResponse,
    status_code=status.HTTP_200_OK,
    tags=["Referrals"],
    summary="Accept referral",
)
async def accept_referral(
    referral_id: UUID,
    data: ReferralAccept,
    actor: CurrentActor,
    db: DatabaseSession,
    events: Events,
    locks: Locks,
    request_meta: RequestMeta,
) -> ReferralResponse:
    """Accept a pending referral, optionally assigning a doctor."""
    workflow = _workflow(db, events, locks)
    return await workflow.accept(referral_id, actor, data, request_meta)


@router.post(
    "/{referral_id}/reject",
    response_model=ReferralResponse,
    status_code=status.HTTP_200_OK,
    tags=["Referrals"],
    summary="Reject referral",
)
async def reject_referral(
    referral_id: UUID,
    data: ReferralReject,
    actor: CurrentActor,
    db: DatabaseSession,
    events: Events,
    locks: Locks,
    request_meta: RequestMeta,
) -> ReferralResponse:
    """Decline a pending referral with a reason."""
    workflow = _workflow(db, events, locks)
    return await workflow.reject(referral_id, actor, data, request_meta)


@router.post(
    "/{referral_id}/cancel",
    response_model=ReferralResponse,
    status_code=status.HTTP_200_OK,
    tags=["Referrals"],
    summary="Cancel referral",
)
async def cancel_referral(
    referral_id: UUID,
    data: ReferralReason,
    actor: CurrentActor,
    db: DatabaseSession,
    events: Events,
    locks: Locks,
    request_meta: RequestMeta,
) -> ReferralResponse:
    """Withdraw a referral before the patient arrives."""
    workflow = _workflow(db, events, locks)
    return await workflow.cancel(referral_id, actor, data, request_meta)


@router.post(
    "/{referral_id}/in-transit",
    response_model=ReferralResponse,
    status_code=status.HTTP_200_OK,
    tags=["Referrals"],
    summary="Mark referral in transit",
)
async def mark_in_transit(
    referral_id: UUID,
    data: ReferralTransit,
    actor: CurrentActor,
    db: DatabaseSession,
    events: Events,
    locks: Locks,
    request_meta: RequestMeta,
) -> ReferralResponse:
    """Record that the patient is on the way."""
    workflow = _workflow(db, events, locks)
    return await workflow.mark_in_transit(referral_id, actor, data, request_meta)


@router.post(
    "/{referral_id}/arrive",
    response_model=ReferralResponse,
    status_code=status.HTTP_200_OK,
    tags=["Referrals"],
    summary="Mark referral arrived",
)
async def mark_arrived(
    referral_id: UUID,
    data: ReferralNote,
    actor: CurrentActor,
    db: DatabaseSession,
    events: Events,
    locks: Locks,
    request_meta: RequestMeta,
) -> ReferralResponse:
    """Record the patient's arrival at the target facility."""
    workflow = _workflow(db, events, locks)
    return await workflow.mark_arrived(referral_id, actor, data, request_meta)


@router.post(
    "/{referral_id}/start",
    response_model=ReferralResponse,
    status_code=status.HTTP_200_OK,
    tags=["Referrals"],
    summary="Start care",
)
async def start_care(
    referral_id: UUID,
    data: ReferralNote,
    actor: CurrentActor,
    db: DatabaseSession,
    events: Events,
    locks: Locks,
    request_meta: RequestMeta,
) -> ReferralResponse:
    """Record that care has begun."""
    workflow = _workflow(db, events, locks)
    return await workflow.start_care(referral_id, actor, data, request_meta)


@router.post(
    "/{referral_id}/complete",
    response_model=ReferralResponse,
    status_code=status.HTTP_200_OK,
    tags=["Referrals"],
    summary="Complete referral",
)
async def complete_referral(
    referral_id: UUID,
    data: ReferralComplete,
    actor: CurrentActor,
    db: DatabaseSession,
    events: Events,
    locks: Locks,
    request_meta: RequestMeta,
) -> ReferralResponse:
    """Record the outcome and close the referral."""
    workflow = _workflow(db, events, locks)
    return await workflow.complete(referral_id, actor, data, request_meta)


@router.post(
    "/{referral_id}/escalate",
    response_model=ReferralResponse,
    status_code=status.HTTP_200_OK,
    tags=["Referrals"],
    summary="Escalate referral priority",
)
async def escalate_referral(
    referral_id: UUID,
    data: ReferralEscalate,
    actor: CurrentActor,
    db: DatabaseSession,
    events: Events,
    locks: Locks,
    request_meta: RequestMeta,
) -> ReferralResponse:
    """Raise the priority of an open referral."""
    workflow = _workflow(db, events, locks)
    return await workflow.escalate(referral_id, actor, data, request_meta)


@router.post(
    "/{referral_id}/schedule",
    response_model=ReferralResponse,
    status_code=status.HTTP_200_OK,
    tags=["Referrals"],
    summary="Schedule referral appointment",
)
async def schedule_referral_appointment(
    referral_id: UUID,
    data: ReferralSchedule,
    actor: CurrentActor,
    db: DatabaseSession,
    events: Events,
    locks: Locks,
    cache: Cache,
    request_meta: RequestMeta,
) -> ReferralResponse:
    """
    Book the referred patient at the target facility.

    Args:
        referral_id: Referral ID
        data: Doctor, start time and duration
        actor: Scheduling staff member
        db: Database session
        events: Workflow event recorder
        locks: Keyed lock manager
        cache: Availability cache
        request_meta: Request context for the history row

    Returns:
        Referral carrying the new appointment ID
    """
    workflow = _workflow(db, events, locks, cache)
    return await workflow.schedule_appointment(referral_id, actor, data, request_meta)
