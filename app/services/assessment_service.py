"""Assessment workflow: from intake to clinical disposition."""

from typing import Any
from uuid import UUID

import structlog
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.clock import utcnow
from app.core.exceptions import (
    IllegalTransitionException,
    NotFoundException,
    ValidationException,
)
from app.core.state_machine import TransitionTable
from app.repositories import assessments as assessment_repo
from app.schemas.assessments import (
    AgreementLevel,
    AssessmentCreate,
    AssessmentFilters,
    AssessmentListResponse,
    AssessmentReject,
    AssessmentResponse,
    AssessmentStatus,
    AssessmentValidate,
    BulkIntakeItemResult,
    BulkIntakeResponse,
    RiskAdjustmentCreate,
    RiskAdjustmentResponse,
    RiskAdjustmentResult,
    RiskLevel,
)
from app.schemas.common import Actor, RequestMetadata
from app.schemas.events import EntityType
from app.services.event_service import WorkflowEventRecorder
from app.services.risk_ledger import RiskLedger, risk_level_for

logger = structlog.get_logger(__name__)

S = AssessmentStatus

ASSESSMENT_TRANSITIONS = TransitionTable(
    "assessment",
    {
        S.PENDING.value: {
            S.IN_REVIEW.value,
            S.VALIDATED.value,
            S.REQUIRES_REFERRAL.value,
            S.REJECTED.value,
        },
        S.IN_REVIEW.value: {
            S.PENDING.value,
            S.VALIDATED.value,
            S.REQUIRES_REFERRAL.value,
            S.REJECTED.value,
        },
        S.REQUIRES_REFERRAL.value: {S.VALIDATED.value, S.COMPLETED.value},
        S.VALIDATED.value: {S.COMPLETED.value},
    },
)

VALIDATABLE = frozenset({S.PENDING.value, S.IN_REVIEW.value, S.REQUIRES_REFERRAL.value})
REJECTABLE = frozenset({S.PENDING.value, S.IN_REVIEW.value})
ADJUSTABLE = frozenset({S.IN_REVIEW.value, S.REQUIRES_REFERRAL.value})

# Statuses that carry a final clinical score
DECIDED = frozenset({S.VALIDATED.value, S.REQUIRES_REFERRAL.value, S.COMPLETED.value})


def agreement_level_for(agrees_with_ml: bool, final_score: int, ml_score: int) -> AgreementLevel:
    """Grade how closely the clinician's score matches the automated one."""
    if agrees_with_ml:
        return AgreementLevel.COMPLETE_AGREEMENT
    if abs(final_score - ml_score) >= settings.risk_alert_threshold:
        return AgreementLevel.SIGNIFICANT_DIFFERENCE
    return AgreementLevel.PARTIAL_AGREEMENT


def _ensure_from(
    assessment: dict[str, Any],
    allowed: frozenset[str],
    to_status: str,
    action: str,
    message: str | None = None,
) -> None:
    if assessment["status"] not in allowed:
        raise IllegalTransitionException(
            "assessment",
            assessment["status"],
            to_status,
            action=action,
            message=message,
        )


class AssessmentWorkflow:
    """Service for moving assessments through clinical review."""

    def __init__(self, db: AsyncSession, events: WorkflowEventRecorder | None = None):
        """Initialize workflow with database session."""
        self.db = db
        self.events = events or WorkflowEventRecorder(db)
        self.ledger = RiskLedger(db, self.events)

    async def _load(self, assessment_id: UUID, for_update: bool = False) -> dict[str, Any]:
        assessment = await assessment_repo.get_assessment(
            self.db, assessment_id, for_update=for_update
        )
        if not assessment:
            raise NotFoundException("Assessment not found")
        return assessment

    async def intake(
        self,
        data: AssessmentCreate,
        actor: Actor | None = None,
        request: RequestMetadata | None = None,
    ) -> AssessmentResponse:
        """
        Register an automated assessment.

        ``external_id`` is an idempotency key: submitting it again returns
        the stored assessment unchanged.

        Args:
            data: Intake payload
            actor: Submitting identity, if any
            request: Originating request, stored on the outbox row

        Returns:
            The new or previously stored assessment
        """
        existing = await assessment_repo.get_by_external_id(self.db, data.external_id)
        if existing:
            logger.info("assessment_intake_replayed", external_id=data.external_id)
            return AssessmentResponse.model_validate(existing)

        try:
            async with self.events.transaction():
                row = await self._insert(data, actor, request)
        except IntegrityError:
            # A concurrent intake with the same key won the insert
            existing = await assessment_repo.get_by_external_id(self.db, data.external_id)
            if not existing:
                raise
            return AssessmentResponse.model_validate(existing)

        logger.info(
            "assessment_received",
            assessment_id=str(row["id"]),
            external_id=data.external_id,
            ml_risk_level=row["ml_risk_level"],
        )
        return AssessmentResponse.model_validate(row)

    async def intake_bulk(
        self,
        items: list[dict[str, Any]],
        actor: Actor | None = None,
        request: RequestMetadata | None = None,
    ) -> BulkIntakeResponse:
        """
        Register a batch of assessments synced from an offline device.

        The batch is one unit of work. Items that fail validation are reported
        and skipped; items whose ``external_id`` is already stored, in the
        database or earlier in the same batch, are reported as duplicates and
        not inserted again.

        Args:
            items: Raw intake payloads
            actor: Submitting identity, if any
            request: Originating request, stored on the outbox rows

        Returns:
            Per-item results with created, duplicate and failed counts
        """
        results: list[BulkIntakeItemResult] = []

        async with self.events.transaction():
            for index, item in enumerate(items):
                try:
                    data = AssessmentCreate.model_validate(item)
                except PydanticValidationError as e:
                    raw_id = item.get("external_id")
                    results.append(
                        BulkIntakeItemResult(
                            index=index,
                            success=False,
                            external_id=str(raw_id) if raw_id is not None else None,
                            errors=[
                                f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
                                for error in e.errors()
                            ],
                        )
                    )
                    continue

                existing = await assessment_repo.get_by_external_id(self.db, data.external_id)
                if existing:
                    results.append(
                        BulkIntakeItemResult(
                            index=index,
                            success=False,
                            duplicate=True,
                            assessment_id=existing["id"],
                            external_id=data.external_id,
                        )
                    )
                    continue

                row = await self._insert(data, actor, request)
                results.append(
                    BulkIntakeItemResult(
                        index=index,
                        success=True,
                        assessment_id=row["id"],
                        external_id=data.external_id,
                    )
                )

        created = sum(1 for result in results if result.success)
        duplicates = sum(1 for result in results if result.duplicate)
        logger.info(
            "assessment_bulk_intake",
            total=len(items),
            created=created,
            duplicates=duplicates,
        )
        return BulkIntakeResponse(
            total=len(items),
            created=created,
            duplicates=duplicates,
            failed=len(items) - created - duplicates,
            results=results,
        )

    async def _insert(
        self,
        data: AssessmentCreate,
        actor: Actor | None,
        request: RequestMetadata | None,
    ) -> dict[str, Any]:
        level = (data.ml_risk_level or risk_level_for(data.ml_risk_score)).value
        now = utcnow()
        values = {
            "external_id": data.external_id,
            "submitted_by": actor.id if actor else None,
            "vital_signs": data.vital_signs.model_dump(exclude_none=True) if data.vital_signs else None,
            "symptoms": data.symptoms,
            "ml_risk_score": data.ml_risk_score,
            "ml_risk_level": level,
            "current_risk_score": data.ml_risk_score,
            "current_risk_level": level,
            "status": S.PENDING.value,
            "created_at": now,
            "updated_at": now,
        }
        if data.patient:
            values.update(data.patient.to_columns())

        row = await assessment_repo.insert_assessment(self.db, values)
        await self.events.record(
            EntityType.ASSESSMENT,
            row["id"],
            "assessment_received",
            actor=actor,
            to_status=S.PENDING.value,
            payload={"ml_risk_score": data.ml_risk_score, "ml_risk_level": level},
            request=request,
        )
        return row

    async def get_assessment(self, assessment_id: UUID) -> AssessmentResponse:
        """
        Get assessment by ID.

        Raises:
            NotFoundException: If assessment not found or closed
        """
        return AssessmentResponse.model_validate(await self._load(assessment_id))

    async def list_assessments(self, filters: AssessmentFilters) -> AssessmentListResponse:
        """List open assessments, newest first."""
        total, rows = await assessment_repo.list_assessments(self.db, filters)
        return AssessmentListResponse(
            total=total,
            page=filters.page,
            page_size=filters.page_size,
            items=[AssessmentResponse.model_validate(row) for row in rows],
        )

    async def _move(
        self,
        assessment_id: UUID,
        actor: Actor,
        to_status: AssessmentStatus,
        action: str,
        event_type: str,
        extra: dict[str, Any] | None = None,
        request: RequestMetadata | None = None,
    ) -> AssessmentResponse:
        async with self.events.transaction():
            assessment = await self._load(assessment_id, for_update=True)
            ASSESSMENT_TRANSITIONS.ensure(assessment["status"], to_status.value, action=action)
            row = await assessment_repo.update_assessment(
                self.db,
                assessment_id,
                {"status": to_status.value, "updated_at": utcnow(), **(extra or {})},
            )
            await self.events.record(
                EntityType.ASSESSMENT,
                assessment_id,
                event_type,
                actor=actor,
                from_status=assessment["status"],
                to_status=to_status.value,
                request=request,
            )

        logger.info(
            event_type,
            assessment_id=str(assessment_id),
            from_status=assessment["status"],
            to_status=to_status.value,
        )
        return AssessmentResponse.model_validate(row)

    async def open_review(
        self,
        assessment_id: UUID,
        actor: Actor,
        request: RequestMetadata | None = None,
    ) -> AssessmentResponse:
        """Start clinician review (``pending -> in_review``)."""
        now = utcnow()
        return await self._move(
            assessment_id,
            actor,
            S.IN_REVIEW,
            "open review",
            "assessment_review_opened",
            {"review_started_by": actor.id, "review_started_at": now},
            request,
        )

    async def release_review(
        self,
        assessment_id: UUID,
        actor: Actor,
        request: RequestMetadata | None = None,
    ) -> AssessmentResponse:
        """Hand an assessment back to the queue (``in_review -> pending``)."""
        return await self._move(
            assessment_id,
            actor,
            S.PENDING,
            "release review",
            "assessment_review_released",
            {"review_started_by": None, "review_started_at": None},
            request,
        )

    async def complete(
        self,
        assessment_id: UUID,
        actor: Actor,
        request: RequestMetadata | None = None,
    ) -> AssessmentResponse:
        """Close out a decided assessment once its follow-up has resolved."""
        return await self._move(
            assessment_id,
            actor,
            S.COMPLETED,
            "complete",
            "assessment_completed",
            {"completed_at": utcnow()},
            request,
        )

    async def validate(
        self,
        assessment_id: UUID,
        actor: Actor,
        data: AssessmentValidate,
        request: RequestMetadata | None = None,
    ) -> AssessmentResponse:
        """
        Record a clinician's validation decision.

        A validated score that differs from the current one is written to the
        risk ledger, with the notes as justification, in the same unit of work.

        Args:
            assessment_id: Assessment ID
            actor: Validating clinician
            data: Score, notes, agreement flag and disposition
            request: Request metadata for the ledger entry and outbox row

        Returns:
            Updated assessment

        Raises:
            NotFoundException: If assessment not found
            IllegalTransitionException: If the assessment is rejected or completed, or
                already carries the requested disposition
            ValidationException: If the score changes without notes
        """
        target = data.disposition.value

        async with self.events.transaction():
            assessment = await self._load(assessment_id, for_update=True)
            _ensure_from(assessment, VALIDATABLE, target, "validate")
            ASSESSMENT_TRANSITIONS.ensure(assessment["status"], target, action="validate")

            if data.validated_risk_score != assessment["current_risk_score"]:
                await self.ledger.record_adjustment(
                    assessment_id,
                    actor,
                    data.validated_risk_score,
                    data.notes,
                    request=request,
                )

            level = risk_level_for(data.validated_risk_score)
            agreement = agreement_level_for(
                data.agrees_with_ml,
                data.validated_risk_score,
                assessment["ml_risk_score"],
            )
            now = utcnow()
            row = await assessment_repo.update_assessment(
                self.db,
                assessment_id,
                {
                    "status": target,
                    "final_risk_score": data.validated_risk_score,
                    "final_risk_level": level.value,
                    "validated_by": actor.id,
                    "validated_at": now,
                    "validation_notes": data.notes,
                    "validation_agrees_with_ml": data.agrees_with_ml,
                    "agreement_level": agreement.value,
                    "updated_at": now,
                },
            )
            await self.events.record(
                EntityType.ASSESSMENT,
                assessment_id,
                "assessment_validated",
                actor=actor,
                from_status=assessment["status"],
                to_status=target,
                payload={
                    "final_risk_score": data.validated_risk_score,
                    "final_risk_level": level.value,
                    "agreement_level": agreement.value,
                    "referral_recommended": level == RiskLevel.HIGH,
                },
                request=request,
            )

        logger.info(
            "assessment_validated",
            assessment_id=str(assessment_id),
            disposition=target,
            final_risk_level=level.value,
            agreement_level=agreement.value,
        )
        return AssessmentResponse.model_validate(row)

    async def reject(
        self,
        assessment_id: UUID,
        actor: Actor,
        data: AssessmentReject,
        request: RequestMetadata | None = None,
    ) -> AssessmentResponse:
        """
        Reject an assessment. Terminal.

        Args:
            assessment_id: Assessment ID
            actor: Rejecting clinician
            data: Reason and the channel the dispatcher should notify the patient on
            request: Originating request, stored on the outbox row

        Returns:
            Updated assessment

        Raises:
            ValidationException: If the reason is empty
            IllegalTransitionException: If the assessment is past review
        """
        if not data.reason or not data.reason.strip():
            raise ValidationException("A reason is required to reject an assessment")

        async with self.events.transaction():
            assessment = await self._load(assessment_id, for_update=True)
            _ensure_from(assessment, REJECTABLE, S.REJECTED.value, "reject")
            now = utcnow()
            row = await assessment_repo.update_assessment(
                self.db,
                assessment_id,
                {
                    "status": S.REJECTED.value,
                    "validated_by": actor.id,
                    "validated_at": now,
                    "validation_notes": data.reason.strip(),
                    "validation_agrees_with_ml": False,
                    "agreement_level": AgreementLevel.COMPLETE_DISAGREEMENT.value,
                    "updated_at": now,
                },
            )
            await self.events.record(
                EntityType.ASSESSMENT,
                assessment_id,
                "assessment_rejected",
                actor=actor,
                from_status=assessment["status"],
                to_status=S.REJECTED.value,
                payload={
                    "reason": data.reason.strip(),
                    "notify_channel": data.notify_channel.value,
                },
                request=request,
            )

        logger.info(
            "assessment_rejected",
            assessment_id=str(assessment_id),
            notify_channel=data.notify_channel.value,
        )
        return AssessmentResponse.model_validate(row)

    async def adjust_risk(
        self,
        assessment_id: UUID,
        actor: Actor,
        data: RiskAdjustmentCreate,
        request: RequestMetadata | None = None,
    ) -> RiskAdjustmentResult:
        """
        Override the risk score during review. Does not change status.

        Args:
            assessment_id: Assessment ID
            actor: Adjusting clinician
            data: New score and justification
            request: Request metadata for the ledger entry

        Returns:
            Ledger entry id, alert flag and the new score

        Raises:
            IllegalTransitionException: If review has not been opened or is closed
            ValidationException: If justification is empty or the score is unchanged
        """
        async with self.events.transaction():
            assessment = await self._load(assessment_id, for_update=True)
            _ensure_from(
                assessment,
                ADJUSTABLE,
                assessment["status"],
                "adjust risk",
                message=(
                    f"cannot adjust risk: assessment is {assessment['status']},"
                    " review must be open"
                ),
            )

            if data.new_risk_score == assessment["current_risk_score"]:
                raise ValidationException(
                    "New risk score equals the current score",
                    details={"current_risk_score": assessment["current_risk_score"]},
                )

            entry = await self.ledger.record_adjustment(
                assessment_id,
                actor,
                data.new_risk_score,
                data.justification,
                request=request,
            )

            # A referral-bound assessment keeps its final score in step with the ledger
            if assessment["status"] in DECIDED:
                await assessment_repo.update_assessment(
                    self.db,
                    assessment_id,
                    {
                        "final_risk_score": entry.new_score,
                        "final_risk_level": entry.new_level.value,
                    },
                )

        return RiskAdjustmentResult(
            adjustment_id=entry.id,
            alert_triggered=entry.alert_triggered,
            difference=entry.difference,
            new_score=entry.new_score,
            new_level=entry.new_level,
            assessment_status=AssessmentStatus(assessment["status"]),
        )

    async def risk_adjustments(self, assessment_id: UUID) -> list[RiskAdjustmentResponse]:
        """Ledger entries of an assessment, oldest first."""
        return await self.ledger.history(assessment_id)

    async def close(
        self,
        assessment_id: UUID,
        actor: Actor,
        request: RequestMetadata | None = None,
    ) -> None:
        """
        Tombstone an assessment. Closed assessments disappear from every read path.

        Raises:
            NotFoundException: If assessment not found or already closed
        """
        async with self.events.transaction():
            assessment = await self._load(assessment_id, for_update=True)
            now = utcnow()
            await assessment_repo.update_assessment(
                self.db,
                assessment_id,
                {"deleted_at": now, "updated_at": now},
            )
            await self.events.record(
                EntityType.ASSESSMENT,
                assessment_id,
                "assessment_closed",
                actor=actor,
                from_status=assessment["status"],
                to_status=assessment["status"],
                request=request,
            )

        logger.info("assessment_closed", assessment_id=str(assessment_id))
