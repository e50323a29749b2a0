"""Referral workflow: inter-facility transfer of care with an immutable history."""

from typing import Any
from uuid import UUID

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import as_utc, to_local, utcnow
from app.core.exceptions import (
    IllegalTransitionException,
    NotFoundException,
    ValidationException,
)
from app.core.locks import LockManager, booking_lock_key, get_lock_manager
from app.core.state_machine import TransitionTable
from app.repositories import assessments as assessment_repo
from app.repositories import referrals as referral_repo
from app.schemas.appointments import BookingSource
from app.schemas.assessments import AssessmentStatus
from app.schemas.common import Actor, RequestMetadata, patient_columns_from_row
from app.schemas.events import EntityType
from app.schemas.referrals import (
    ReferralAccept,
    ReferralAction,
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
from app.services.event_service import WorkflowEventRecorder

logger = structlog.get_logger(__name__)

R = ReferralStatus

REFERRAL_TRANSITIONS = TransitionTable(
    "referral",
    {
        R.PENDING.value: {R.ACCEPTED.value, R.REJECTED.value, R.CANCELLED.value},
        R.ACCEPTED.value: {R.IN_TRANSIT.value, R.CANCELLED.value},
        R.IN_TRANSIT.value: {R.ARRIVED.value, R.CANCELLED.value},
        R.ARRIVED.value: {R.IN_PROGRESS.value},
        R.IN_PROGRESS.value: {R.COMPLETED.value},
    },
)

# Timestamp column stamped on entry into each status
STATUS_TIMESTAMPS = {
    R.ACCEPTED: "accepted_at",
    R.REJECTED: "rejected_at",
    R.IN_TRANSIT: "in_transit_at",
    R.ARRIVED: "arrived_at",
    R.IN_PROGRESS: "in_progress_at",
    R.COMPLETED: "completed_at",
    R.CANCELLED: "cancelled_at",
}

SCHEDULABLE = frozenset({R.ACCEPTED.value, R.IN_TRANSIT.value, R.ARRIVED.value})

EMERGENCY_SYMPTOMS = frozenset(
    {
        "chest pain",
        "shortness of breath",
        "syncope",
        "loss of consciousness",
        "severe chest pain",
        "cardiac arrest",
    }
)


def classify(score: int, symptoms: list[str] | None = None) -> dict[str, Any]:
    """
    Derive priority, urgency, referral type and required services from a risk score.

    Emergency symptoms force emergency urgency whatever the score.
    """
    if score >= 75:
        derived = {
            "priority": ReferralPriority.CRITICAL,
            "urgency": ReferralUrgency.EMERGENCY,
            "referral_type": "Emergency Cardiology",
            "required_services": ["cardiology", "emergency", "ecg", "cardiac_monitoring"],
        }
    elif score >= 50:
        derived = {
            "priority": ReferralPriority.HIGH,
            "urgency": ReferralUrgency.URGENT,
            "referral_type": "Cardiology Consultation",
            "required_services": ["cardiology", "ecg", "echocardiography"],
        }
    elif score >= 25:
        derived = {
            "priority": ReferralPriority.MEDIUM,
            "urgency": ReferralUrgency.ROUTINE,
            "referral_type": "Cardiology Follow-up",
            "required_services": ["cardiology", "ecg"],
        }
    else:
        derived = {
            "priority": ReferralPriority.LOW,
            "urgency": ReferralUrgency.ROUTINE,
            "referral_type": "General Cardiovascular Screening",
            "required_services": ["general_medicine"],
        }

    if symptoms and any(symptom.strip().lower() in EMERGENCY_SYMPTOMS for symptom in symptoms):
        derived["urgency"] = ReferralUrgency.EMERGENCY

    return derived


class ReferralWorkflow:
    """Service for moving referrals between facilities."""

    def __init__(
        self,
        db: AsyncSession,
        events: WorkflowEventRecorder | None = None,
        locks: LockManager | None = None,
        scheduler: AppointmentScheduler | None = None,
    ):
        """Initialize workflow with database session and collaborators."""
        self.db = db
        self.events = events or WorkflowEventRecorder(db)
        self.locks = locks or get_lock_manager()
        self.scheduler = scheduler or AppointmentScheduler(db, events=self.events, locks=self.locks)

    async def _load(self, referral_id: UUID, for_update: bool = False) -> dict[str, Any]:
        referral = await referral_repo.get_referral(self.db, referral_id, for_update=for_update)
        if not referral:
            raise NotFoundException("Referral not found")
        return referral

    async def _append_history(
        self,
        referral_id: UUID,
        actor: Actor,
        action: ReferralAction,
        previous_status: str | None,
        new_status: str | None,
        notes: str | None = None,
        metadata: dict[str, Any] | None = None,
        request: RequestMetadata | None = None,
    ) -> dict[str, Any]:
        return await referral_repo.insert_history(
            self.db,
            {
                "referral_id": referral_id,
                "actor_id": actor.id,
                "actor_role": actor.role,
                "action": action.value,
                "previous_status": previous_status,
                "new_status": new_status,
                "notes": notes,
                "metadata": metadata,
                "ip_address": request.ip_address if request else None,
                "user_agent": request.user_agent if request else None,
                "request_id": request.request_id if request else None,
                "created_at": utcnow(),
            },
        )

    async def create(
        self,
        data: ReferralCreate,
        actor: Actor,
        request: RequestMetadata | None = None,
    ) -> ReferralResponse:
        """
        Open a referral for an assessment.

        Priority, urgency, type and required services not supplied are derived
        from the assessment's final score, or its automated score before validation.

        Args:
            data: Assessment, facilities and optional clinical classification
            actor: Referring staff member
            request: Request metadata for the history row

        Returns:
            Created referral, status ``pending``

        Raises:
            NotFoundException: If the assessment does not exist
            ValidationException: If the assessment was rejected
        """
        async with self.events.transaction():
            assessment = await assessment_repo.get_assessment(self.db, data.assessment_id)
            if not assessment:
                raise NotFoundException("Assessment not found")
            if assessment["status"] == AssessmentStatus.REJECTED.value:
                raise ValidationException("Cannot refer a rejected assessment")

            score = assessment["final_risk_score"]
            if score is None:
                score = assessment["current_risk_score"]
            derived = classify(score, assessment["symptoms"])

            patient = (
                data.patient.to_columns() if data.patient else patient_columns_from_row(assessment)
            )
            now = utcnow()
            values = {
                **patient,
                "assessment_id": data.assessment_id,
                "source_facility_id": data.source_facility_id,
                "target_facility_id": data.target_facility_id,
                "referring_user_id": actor.id,
                "priority": (data.priority or derived["priority"]).value,
                "urgency": (data.urgency or derived["urgency"]).value,
                "referral_type": data.referral_type or derived["referral_type"],
                "chief_complaint": data.chief_complaint,
                "clinical_notes": data.clinical_notes,
                "required_services": data.required_services or derived["required_services"],
                "status": R.PENDING.value,
                "created_at": now,
                "updated_at": now,
            }
            row = await referral_repo.insert_referral(self.db, values)
            await self._append_history(
                row["id"],
                actor,
                ReferralAction.CREATED,
                None,
                R.PENDING.value,
                notes=data.clinical_notes,
                metadata={"risk_score": score},
                request=request,
            )
            await self.events.record(
                EntityType.REFERRAL,
                row["id"],
                "referral_created",
                actor=actor,
                to_status=R.PENDING.value,
                payload={
                    "assessment_id": data.assessment_id,
                    "priority": row["priority"],
                    "urgency": row["urgency"],
                    "target_facility_id": data.target_facility_id,
                },
                request=request,
            )

        logger.info(
            "referral_created",
            referral_id=str(row["id"]),
            assessment_id=str(data.assessment_id),
            priority=row["priority"],
            urgency=row["urgency"],
        )
        return ReferralResponse.model_validate(row)

    async def _transition(
        self,
        referral_id: UUID,
        actor: Actor,
        to_status: ReferralStatus,
        action: str,
        notes: str | None = None,
        values: dict[str, Any] | None = None,
        request: RequestMetadata | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> ReferralResponse:
        """
        Change status, stamp its timestamp and append the history row in one unit of work.

        Raises:
            NotFoundException: If the referral does not exist
            IllegalTransitionException: If the (from, to) pair is not in the table
        """
        async with self.events.transaction():
            referral = await self._load(referral_id, for_update=True)
            from_status = referral["status"]
            REFERRAL_TRANSITIONS.ensure(from_status, to_status.value, action=action)

            now = utcnow()
            row = await referral_repo.update_referral(
                self.db,
                referral_id,
                {
                    "status": to_status.value,
                    STATUS_TIMESTAMPS[to_status]: now,
                    "status_notes": notes,
                    "updated_at": now,
                    **(values or {}),
                },
            )
            await self._append_history(
                referral_id,
                actor,
                ReferralAction(to_status.value),
                from_status,
                to_status.value,
                notes=notes,
                metadata=metadata,
                request=request,
            )
            await self.events.record(
                EntityType.REFERRAL,
                referral_id,
                f"referral_{to_status.value}",
                actor=actor,
                from_status=from_status,
                to_status=to_status.value,
                payload=metadata,
                request=request,
            )

        logger.info(
            "referral_transitioned",
            referral_id=str(referral_id),
            from_status=from_status,
            to_status=to_status.value,
        )
        return ReferralResponse.model_validate(row)

    async def accept(
        self,
        referral_id: UUID,
        actor: Actor,
        data: ReferralAccept,
        request: RequestMetadata | None = None,
    ) -> ReferralResponse:
        """Accept a pending referral at the target facility."""
        values = {}
        if data.assigned_doctor_id:
            values["assigned_doctor_id"] = data.assigned_doctor_id
        return await self._transition(
            referral_id, actor, R.ACCEPTED, "accept", data.notes, values, request
        )

    async def reject(
        self,
        referral_id: UUID,
        actor: Actor,
        data: ReferralReject,
        request: RequestMetadata | None = None,
    ) -> ReferralResponse:
        """
        Decline a pending referral.

        Suggested alternative facilities are kept in the history row's metadata.

        Raises:
            ValidationException: If the reason is empty
        """
        if not data.reason.strip():
            raise ValidationException("A reason is required to reject a referral")
        return await self._transition(
            referral_id,
            actor,
            R.REJECTED,
            "reject",
            data.reason.strip(),
            request=request,
            metadata={
                "suggested_facility_ids": [
                    str(facility_id) for facility_id in data.suggested_facility_ids or []
                ]
            },
        )

    async def cancel(
        self,
        referral_id: UUID,
        actor: Actor,
        data: ReferralReason,
        request: RequestMetadata | None = None,
    ) -> ReferralResponse:
        """
        Withdraw a referral before the patient arrives.

        Raises:
            ValidationException: If the reason is empty
        """
        if not data.reason.strip():
            raise ValidationException("A reason is required to cancel a referral")
        return await self._transition(
            referral_id, actor, R.CANCELLED, "cancel", data.reason.strip(), request=request
        )

    async def mark_in_transit(
        self,
        referral_id: UUID,
        actor: Actor,
        data: ReferralTransit,
        request: RequestMetadata | None = None,
    ) -> ReferralResponse:
        values = {}
        if data.transport_method:
            values["transport_method"] = data.transport_method.value
        return await self._transition(
            referral_id, actor, R.IN_TRANSIT, "mark in transit", data.notes, values, request
        )

    async def mark_arrived(
        self,
        referral_id: UUID,
        actor: Actor,
        data: ReferralNote,
        request: RequestMetadata | None = None,
    ) -> ReferralResponse:
        return await self._transition(
            referral_id, actor, R.ARRIVED, "mark arrived", data.notes, request=request
        )

    async def start_care(
        self,
        referral_id: UUID,
        actor: Actor,
        data: ReferralNote,
        request: RequestMetadata | None = None,
    ) -> ReferralResponse:
        return await self._transition(
            referral_id, actor, R.IN_PROGRESS, "start care", data.notes, request=request
        )

    async def complete(
        self,
        referral_id: UUID,
        actor: Actor,
        data: ReferralComplete,
        request: RequestMetadata | None = None,
    ) -> ReferralResponse:
        """Record the outcome and close the referral."""
        values = {
            "outcome": data.outcome.value,
            "treatment_summary": data.treatment_summary,
            "diagnosis": data.diagnosis,
            "recommendations": data.recommendations,
            "requires_follow_up": data.requires_follow_up,
            "follow_up_date": data.follow_up_date,
        }
        return await self._transition(
            referral_id, actor, R.COMPLETED, "complete", data.notes, values, request
        )

    async def escalate(
        self,
        referral_id: UUID,
        actor: Actor,
        data: ReferralEscalate,
        request: RequestMetadata | None = None,
    ) -> ReferralResponse:
        """
        Raise a referral's priority. Status is unchanged.

        Raises:
            IllegalTransitionException: If the referral is in a terminal status
            ValidationException: If the new priority is not strictly higher
        """
        if not data.reason.strip():
            raise ValidationException("A reason is required to escalate a referral")

        async with self.events.transaction():
            referral = await self._load(referral_id, for_update=True)
            status = referral["status"]
            if REFERRAL_TRANSITIONS.is_terminal(status):
                raise IllegalTransitionException(
                    "referral",
                    status,
                    status,
                    action="escalate",
                    message=f"cannot escalate: referral is already {status}",
                )

            old_priority = ReferralPriority(referral["priority"])
            if data.priority.rank <= old_priority.rank:
                raise ValidationException(
                    f"Escalation must raise priority above {old_priority.value}",
                    details={"current_priority": old_priority.value},
                )

            row = await referral_repo.update_referral(
                self.db,
                referral_id,
                {"priority": data.priority.value, "updated_at": utcnow()},
            )
            await self._append_history(
                referral_id,
                actor,
                ReferralAction.PRIORITY_CHANGED,
                None,
                None,
                notes=data.reason.strip(),
                metadata={"old_priority": old_priority.value, "new_priority": data.priority.value},
                request=request,
            )
            await self.events.record(
                EntityType.REFERRAL,
                referral_id,
                "referral_escalated",
                actor=actor,
                from_status=status,
                to_status=status,
                payload={"old_priority": old_priority.value, "new_priority": data.priority.value},
                request=request,
            )

        logger.info(
            "referral_escalated",
            referral_id=str(referral_id),
            old_priority=old_priority.value,
            new_priority=data.priority.value,
        )
        return ReferralResponse.model_validate(row)

    async def schedule_appointment(
        self,
        referral_id: UUID,
        actor: Actor,
        data: ReferralSchedule,
        request: RequestMetadata | None = None,
    ) -> ReferralResponse:
        """
        Book the referral's appointment at the target facility.

        The booking and the ``scheduled`` history row commit together.

        Raises:
            IllegalTransitionException: If the referral is not accepted, in transit or arrived
            SlotUnavailableException: If the slot is outside availability
            DoubleBookingException: If the slot overlaps another booking
        """
        start_at = as_utc(data.start_at)

        async with self.locks.hold(booking_lock_key(data.doctor_id, to_local(start_at).date())):
            async with self.events.transaction():
                referral = await self._load(referral_id, for_update=True)
                status = referral["status"]
                if status not in SCHEDULABLE:
                    raise IllegalTransitionException(
                        "referral",
                        status,
                        status,
                        action="schedule appointment",
                        message=(
                            f"cannot schedule appointment: referral is {status},"
                            " it must be accepted first"
                        ),
                    )

                appointment = await self.scheduler.book_in_transaction(
                    data.doctor_id,
                    referral["target_facility_id"],
                    start_at,
                    data.duration_minutes,
                    patient_columns_from_row(referral),
                    actor,
                    source=BookingSource.REFERRAL,
                    reason_for_visit=referral["chief_complaint"] or referral["referral_type"],
                    referral_id=referral_id,
                    request=request,
                )
                row = await referral_repo.update_referral(
                    self.db,
                    referral_id,
                    {
                        "appointment_id": appointment["id"],
                        "assigned_doctor_id": referral["assigned_doctor_id"] or data.doctor_id,
                        "updated_at": utcnow(),
                    },
                )
                await self._append_history(
                    referral_id,
                    actor,
                    ReferralAction.SCHEDULED,
                    None,
                    None,
                    notes=data.notes,
                    metadata={
                        "appointment_id": str(appointment["id"]),
                        "start_at": appointment["start_at"].isoformat(),
                    },
                    request=request,
                )
                await self.events.record(
                    EntityType.REFERRAL,
                    referral_id,
                    "referral_appointment_scheduled",
                    actor=actor,
                    from_status=status,
                    to_status=status,
                    payload={
                        "appointment_id": appointment["id"],
                        "start_at": appointment["start_at"].isoformat(),
                    },
                    request=request,
                )

        logger.info(
            "referral_appointment_scheduled",
            referral_id=str(referral_id),
            appointment_id=str(appointment["id"]),
        )
        return ReferralResponse.model_validate(row)

    async def get_referral(self, referral_id: UUID) -> ReferralResponse:
        """Get referral by ID."""
        return ReferralResponse.model_validate(await self._load(referral_id))

    async def list_referrals(self, filters: ReferralFilters) -> ReferralListResponse:
        """List referrals, most urgent priority first."""
        total, rows = await referral_repo.list_referrals(self.db, filters)
        return ReferralListResponse(
            total=total,
            page=filters.page,
            page_size=filters.page_size,
            items=[ReferralResponse.model_validate(row) for row in rows],
        )

    async def history(self, referral_id: UUID) -> list[ReferralHistoryResponse]:
        """
        Get the audit trail of a referral.

        Returns:
            History rows, newest first
        """
        await self._load(referral_id)
        rows = await referral_repo.list_history(self.db, referral_id)
        return [ReferralHistoryResponse.model_validate(row) for row in rows]
