"""Append-only ledger of risk score changes."""

from uuid import UUID

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.clock import utcnow
from app.core.exceptions import NotFoundException, ValidationException
from app.repositories import assessments as assessment_repo
from app.schemas.assessments import RiskAdjustmentResponse, RiskLevel
from app.schemas.common import Actor, RequestMetadata
from app.schemas.events import EntityType
from app.services.event_service import WorkflowEventRecorder

logger = structlog.get_logger(__name__)


def risk_level_for(score: int) -> RiskLevel:
    """Map a 0-100 score onto its risk band."""
    if score >= settings.risk_level_high_min:
        return RiskLevel.HIGH
    if score >= settings.risk_level_moderate_min:
        return RiskLevel.MODERATE
    return RiskLevel.LOW


def is_alert(difference: int | None, old_level: str | None, new_level: str) -> bool:
    """
    Evaluate the alert rule for one score change.

    An entry alerts when the score moved by at least ``RISK_ALERT_THRESHOLD``
    points or the risk band changed. A first entry has nothing to compare with.
    """
    if difference is None or old_level is None:
        return False
    return abs(difference) >= settings.risk_alert_threshold or new_level != old_level


class RiskLedger:
    """Records every change of an assessment's risk score."""

    def __init__(self, db: AsyncSession, events: WorkflowEventRecorder):
        """Initialize ledger with database session and event recorder."""
        self.db = db
        self.events = events

    async def record_adjustment(
        self,
        assessment_id: UUID,
        actor: Actor,
        new_score: int,
        justification: str | None,
        new_level: RiskLevel | None = None,
        request: RequestMetadata | None = None,
    ) -> RiskAdjustmentResponse:
        """
        Append one ledger entry and move the assessment's current score pointer.

        Runs inside the caller's unit of work; nothing is committed here.

        Args:
            assessment_id: Assessment whose score changes
            actor: Clinician making the change
            new_score: New score, 0-100
            justification: Mandatory free-text reason
            new_level: New level, derived from the score bands when omitted
            request: Request metadata stored with the entry

        Returns:
            The appended entry

        Raises:
            ValidationException: If justification is empty or the score is out of range
            NotFoundException: If the assessment does not exist
        """
        if not justification or not justification.strip():
            raise ValidationException(
                "A justification is required for every risk score change",
                details={"field": "justification"},
            )
        if not 0 <= new_score <= 100:
            raise ValidationException(
                "Risk score must be between 0 and 100",
                details={"field": "new_score", "value": new_score},
            )

        assessment = await assessment_repo.get_assessment(self.db, assessment_id, for_update=True)
        if not assessment:
            raise NotFoundException("Assessment not found")

        old_score = assessment["current_risk_score"]
        old_level = assessment["current_risk_level"]
        level = (new_level or risk_level_for(new_score)).value
        difference = new_score - old_score if old_score is not None else None
        alert = is_alert(difference, old_level, level)
        now = utcnow()

        entry = await assessment_repo.insert_adjustment(
            self.db,
            {
                "assessment_id": assessment_id,
                "adjusted_by": actor.id,
                "actor_role": actor.role,
                "old_score": old_score,
                "old_level": old_level,
                "new_score": new_score,
                "new_level": level,
                "difference": difference,
                "justification": justification.strip(),
                "alert_triggered": alert,
                "metadata": request.model_dump() if request else None,
                "created_at": now,
            },
        )

        await assessment_repo.update_assessment(
            self.db,
            assessment_id,
            {
                "current_risk_score": new_score,
                "current_risk_level": level,
                "updated_at": now,
            },
        )

        await self.events.record(
            EntityType.ASSESSMENT,
            assessment_id,
            "risk_adjusted",
            actor=actor,
            from_status=assessment["status"],
            to_status=assessment["status"],
            alert_triggered=alert,
            payload={
                "adjustment_id": entry["id"],
                "old_score": old_score,
                "new_score": new_score,
                "old_level": old_level,
                "new_level": level,
                "difference": difference,
            },
            request=request,
        )

        logger.info(
            "risk_adjusted",
            assessment_id=str(assessment_id),
            adjustment_id=entry["id"],
            difference=difference,
            alert_triggered=alert,
        )

        return RiskAdjustmentResponse.model_validate(entry)

    async def history(self, assessment_id: UUID) -> list[RiskAdjustmentResponse]:
        """
        Get the full score evolution of an assessment.

        Args:
            assessment_id: Assessment ID

        Returns:
            Ledger entries, oldest first

        Raises:
            NotFoundException: If the assessment does not exist
        """
        if not await assessment_repo.get_assessment(self.db, assessment_id):
            raise NotFoundException("Assessment not found")
        rows = await assessment_repo.list_adjustments(self.db, assessment_id)
        return [RiskAdjustmentResponse.model_validate(row) for row in rows]
