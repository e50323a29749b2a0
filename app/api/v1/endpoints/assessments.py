"""Risk assessment endpoints."""

from uuid import UUID

from fastapi import APIRouter, Query, status

from app.dependencies import CurrentActor, DatabaseSession, Events, RequestMeta
from app.schemas.assessments import (
    AssessmentBulkCreate,
    AssessmentCreate,
    AssessmentFilters,
    AssessmentListResponse,
    AssessmentReject,
    AssessmentResponse,
    AssessmentStatus,
    AssessmentValidate,
    BulkIntakeResponse,
    RiskAdjustmentCreate,
    RiskAdjustmentResponse,
    RiskAdjustmentResult,
    RiskLevel,
)
from app.services.assessment_service import AssessmentWorkflow

router = APIRouter()


@router.post(
    "/",
    response_model=AssessmentResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["Assessments"],
    summary="Submit assessment",
)
async def submit_assessment(
    data: AssessmentCreate,
    actor: CurrentActor,
    db: DatabaseSession,
    events: Events,
    request_meta: RequestMeta,
) -> AssessmentResponse:
    """
    Intake an automated risk assessment.

    Resubmitting an ``external_id`` returns the existing assessment.

    Args:
        data: Assessment payload from the screening pipeline
        actor: Authenticated caller
        db: Database session
        events: Workflow event recorder
        request_meta: Caller address, user agent and request ID

    Returns:
        Created or existing assessment
    """
    workflow = AssessmentWorkflow(db, events)
    return await workflow.intake(data, actor, request_meta)


@router.post(
    "/bulk",
    response_model=BulkIntakeResponse,
    status_code=status.HTTP_200_OK,
    tags=["Assessments"],
    summary="Bulk submit assessments",
)
async def submit_assessments_bulk(
    data: AssessmentBulkCreate,
    actor: CurrentActor,
    db: DatabaseSession,
    events: Events,
    request_meta: RequestMeta,
) -> BulkIntakeResponse:
    """
    Intake a batch of assessments queued while a device was offline.

    Items are validated one by one; invalid items and already known
    ``external_id`` values are reported per index and never stored.

    Args:
        data: Between 1 and 100 raw assessment payloads
        actor: Authenticated caller
        db: Database session
        events: Workflow event recorder
        request_meta: Caller address, user agent and request ID

    Returns:
        Counts and a result for every submitted item
    """
    workflow = AssessmentWorkflow(db, events)
    return await workflow.intake_bulk(data.assessments, actor, request_meta)


@router.get(
    "/",
    response_model=AssessmentListResponse,
    status_code=status.HTTP_200_OK,
    tags=["Assessments"],
    summary="List assessments",
)
async def list_assessments(
    actor: CurrentActor,
    db: DatabaseSession,
    status_filter: AssessmentStatus | None = Query(None, alias="status"),
    risk_level: RiskLevel | None = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
) -> AssessmentListResponse:
    """
    List open assessments, newest first.

    Args:
        actor: Authenticated caller
        db: Database session
        status_filter: Filter by workflow status
        risk_level: Filter by current risk level
        page: Page number
        page_size: Items per page

    Returns:
        Paginated list of assessments
    """
    filters = AssessmentFilters(
        status=status_filter,
        risk_level=risk_level,
        page=page,
        page_size=page_size,
    )
    workflow = AssessmentWorkflow(db)
    return await workflow.list_assessments(filters)


@router.get(
    "/{assessment_id}",
    response_model=AssessmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Assessments"],
    summary="Get assessment by ID",
)
async def get_assessment(
    assessment_id: UUID,
    actor: CurrentActor,
    db: DatabaseSession,
) -> AssessmentResponse:
    """Get a specific assessment."""
    workflow = AssessmentWorkflow(db)
    return await workflow.get_assessment(assessment_id)


@router.post(
    "/{assessment_id}/review",
    response_model=AssessmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Assessments"],
    summary="Open clinician review",
)
async def open_review(
    assessment_id: UUID,
    actor: CurrentActor,
    db: DatabaseSession,
    events: Events,
    request_meta: RequestMeta,
) -> AssessmentResponse:
    """Move a pending assessment into review."""
    workflow = AssessmentWorkflow(db, events)
    return await workflow.open_review(assessment_id, actor, request_meta)


@router.post(
    "/{assessment_id}/release",
    response_model=AssessmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Assessments"],
    summary="Release clinician review",
)
async def release_review(
    assessment_id: UUID,
    actor: CurrentActor,
    db: DatabaseSession,
    events: Events,
    request_meta: RequestMeta,
) -> AssessmentResponse:
    """Return an assessment under review to the pending queue."""
    workflow = AssessmentWorkflow(db, events)
    return await workflow.release_review(assessment_id, actor, request_meta)


@router.post(
    "/{assessment_id}/validate",
    response_model=AssessmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Assessments"],
    summary="Validate assessment",
)
async def validate_assessment(
    assessment_id: UUID,
    data: AssessmentValidate,
    actor: CurrentActor,
    db: DatabaseSession,
    events: Events,
    request_meta: RequestMeta,
) -> AssessmentResponse:
    """
    Record the clinician's validated score and disposition.

    Args:
        assessment_id: Assessment ID
        data: Validated score, notes, agreement and disposition
        actor: Validating clinician
        db: Database session
        events: Workflow event recorder
        request_meta: Request context for the ledger entry

    Returns:
        Updated assessment
    """
    workflow = AssessmentWorkflow(db, events)
    return await workflow.validate(assessment_id, actor, data, request_meta)


@router.post(
    "/{assessment_id}/reject",
    response_model=AssessmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Assessments"],
    summary="Reject assessment",
)
async def reject_assessment(
    assessment_id: UUID,
    data: AssessmentReject,
    actor: CurrentActor,
    db: DatabaseSession,
    events: Events,
    request_meta: RequestMeta,
) -> AssessmentResponse:
    """Reject an assessment with a reason."""
    workflow = AssessmentWorkflow(db, events)
    return await workflow.reject(assessment_id, actor, data, request_meta)


@router.post(
    "/{assessment_id}/adjust-risk",
    response_model=RiskAdjustmentResult,
    status_code=status.HTTP_201_CREATED,
    tags=["Assessments"],
    summary="Adjust risk score",
)
async def adjust_risk(
    assessment_id: UUID,
    data: RiskAdjustmentCreate,
    actor: CurrentActor,
    db: DatabaseSession,
    events: Events,
    request_meta: RequestMeta,
) -> RiskAdjustmentResult:
    """
    Override the current risk score with a justification.

    Args:
        assessment_id: Assessment ID
        data: New score and justification
        actor: Adjusting clinician
        db: Database session
        events: Workflow event recorder
        request_meta: Request context persisted on the ledger entry

    Returns:
        Ledger entry summary including whether it raised an alert
    """
    workflow = AssessmentWorkflow(db, events)
    return await workflow.adjust_risk(assessment_id, actor, data, request_meta)


@router.get(
    "/{assessment_id}/risk-adjustments",
    response_model=list[RiskAdjustmentResponse],
    status_code=status.HTTP_200_OK,
    tags=["Assessments"],
    summary="Get risk ledger",
)
async def get_risk_adjustments(
    assessment_id: UUID,
    actor: CurrentActor,
    db: DatabaseSession,
) -> list[RiskAdjustmentResponse]:
    """Get every risk adjustment of an assessment, oldest first."""
    workflow = AssessmentWorkflow(db)
    return await workflow.risk_adjustments(assessment_id)


@router.post(
    "/{assessment_id}/complete",
    response_model=AssessmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Assessments"],
    summary="Complete assessment",
)
async def complete_assessment(
    assessment_id: UUID,
    actor: CurrentActor,
    db: DatabaseSession,
    events: Events,
    request_meta: RequestMeta,
) -> AssessmentResponse:
    """Close out a decided assessment."""
    workflow = AssessmentWorkflow(db, events)
    return await workflow.complete(assessment_id, actor, request_meta)


@router.delete(
    "/{assessment_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    tags=["Assessments"],
    summary="Close assessment",
)
async def close_assessment(
    assessment_id: UUID,
    actor: CurrentActor,
    db: DatabaseSession,
    events: Events,
    request_meta: RequestMeta,
) -> None:
    """
    Soft-delete an assessment.

    The row and its risk ledger are kept for audit.
    """
    workflow = AssessmentWorkflow(db, events)
    await workflow.close(assessment_id, actor, request_meta)
