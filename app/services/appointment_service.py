"""Appointment scheduler: conflict-free booking and waiting-list promotion."""

import secrets
from datetime import date, datetime, timedelta
from typing import Any
from uuid import UUID

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.clock import as_utc, to_local, utcnow
from app.core.exceptions import (
    AppException,
    DoubleBookingException,
    IllegalTransitionException,
    NotFoundException,
    SlotUnavailableException,
    ValidationException,
)
from app.core.locks import (
    LockManager,
    booking_lock_key,
    get_lock_manager,
    waiting_list_lock_key,
)
from app.core.state_machine import TransitionTable
from app.repositories import appointments as appointment_repo
from app.repositories import referrals as referral_repo
from app.repositories import waiting_list as waiting_list_repo
from app.schemas.appointments import (
    AppointmentComplete,
    AppointmentConfirm,
    AppointmentCreate,
    AppointmentFilters,
    AppointmentListResponse,
    AppointmentReschedule,
    AppointmentResponse,
    AppointmentStatus,
    AppointmentType,
    BookingConfirmation,
    BookingSource,
    CancellationResult,
    ConfirmationMethod,
    RescheduleResult,
)
from app.schemas.availability import DaySlotsResponse, SlotResponse
from app.schemas.common import Actor, RequestMetadata, patient_columns_from_row
from app.schemas.events import EntityType
from app.schemas.waiting_list import (
    PromotionRequest,
    PromotionResult,
    WaitingListResponse,
    WaitingListStatus,
)
from app.services.availability_service import AvailabilityService
from app.services.event_service import WorkflowEventRecorder
from app.services.waiting_list_service import select_candidate

logger = structlog.get_logger(__name__)

A = AppointmentStatus

APPOINTMENT_TRANSITIONS = TransitionTable(
    "appointment",
    {
        A.SCHEDULED.value: {A.CONFIRMED.value, A.RESCHEDULED.value, A.CANCELLED.value, A.NO_SHOW.value},
        A.CONFIRMED.value: {
            A.CHECKED_IN.value,
            A.RESCHEDULED.value,
            A.CANCELLED.value,
            A.NO_SHOW.value,
        },
        A.CHECKED_IN.value: {A.IN_PROGRESS.value, A.CANCELLED.value, A.NO_SHOW.value},
        A.IN_PROGRESS.value: {A.COMPLETED.value},
    },
)


def _minutes(duration_minutes: int | None) -> int:
    return duration_minutes or settings.default_appointment_minutes


class AppointmentScheduler:
    """Service for booking and managing appointments."""

    def __init__(
        self,
        db: AsyncSession,
        events: WorkflowEventRecorder | None = None,
        locks: LockManager | None = None,
        availability: AvailabilityService | None = None,
    ):
        """Initialize scheduler with database session and collaborators."""
        self.db = db
        self.events = events or WorkflowEventRecorder(db)
        self.locks = locks or get_lock_manager()
        self.availability = availability or AvailabilityService(db)

    async def _load(self, appointment_id: UUID, for_update: bool = False) -> dict[str, Any]:
        appointment = await appointment_repo.get_appointment(
            self.db, appointment_id, for_update=for_update
        )
        if not appointment:
            raise NotFoundException("Appointment not found")
        return appointment

    # ------------------------------------------------------------------
    # Booking
    # ------------------------------------------------------------------

    async def check_slot(
        self,
        doctor_id: UUID,
        facility_id: UUID,
        start_at: datetime,
        end_at: datetime,
        exclude_ids: tuple[UUID, ...] = (),
    ) -> None:
        """
        Verify that ``[start_at, end_at)`` can be booked for the doctor.

        Raises:
            SlotUnavailableException: Outside every window, blocked, or inside a buffer
            DoubleBookingException: Overlaps an existing booking of the doctor
        """
        local_start = to_local(start_at)
        local_end = to_local(end_at)
        day = await self.availability.effective_day(doctor_id, facility_id, local_start.date())

        block = day.block_for(local_start, local_end)
        if block:
            raise SlotUnavailableException(
                "the doctor is unavailable at this time",
                details={"unavailability_reason": block.reason},
            )

        window = day.window_for(local_start, local_end)
        if window is None:
            raise SlotUnavailableException(
                "outside the doctor's available hours",
                details={"date": local_start.date().isoformat()},
            )

        conflicts = await appointment_repo.find_overlapping(
            self.db, doctor_id, start_at, end_at, exclude_ids
        )
        if conflicts:
            raise DoubleBookingException(conflicts[0]["id"])

        if window.buffer_minutes:
            buffer = timedelta(minutes=window.buffer_minutes)
            adjacent = await appointment_repo.find_overlapping(
                self.db, doctor_id, start_at - buffer, end_at + buffer, exclude_ids
            )
            if adjacent:
                raise SlotUnavailableException(
                    f"{window.buffer_minutes} minute buffer conflicts with an adjacent booking",
                    details={"adjacent_appointment_id": str(adjacent[0]["id"])},
                )

    async def book_in_transaction(
        self,
        doctor_id: UUID,
        facility_id: UUID,
        start_at: datetime,
        duration_minutes: int | None,
        patient: dict[str, Any],
        actor: Actor | None,
        source: BookingSource = BookingSource.WEB,
        appointment_type: AppointmentType = AppointmentType.CONSULTATION,
        reason_for_visit: str | None = None,
        referral_id: UUID | None = None,
        waiting_list_entry_id: UUID | None = None,
        rescheduled_from_id: UUID | None = None,
        exclude_ids: tuple[UUID, ...] = (),
        request: RequestMetadata | None = None,
    ) -> dict[str, Any]:
        """
        Check and insert one booking inside the caller's unit of work.

        The caller must hold the booking lock for the doctor and local date.

        Returns:
            The inserted appointment row
        """
        if not patient.get("patient_first_name") or not patient.get("patient_last_name"):
            raise ValidationException("Patient first and last name are required to book")

        start_at = as_utc(start_at)
        duration = _minutes(duration_minutes)
        end_at = start_at + timedelta(minutes=duration)

        await self.check_slot(doctor_id, facility_id, start_at, end_at, exclude_ids)

        now = utcnow()
        values = {
            **patient,
            "doctor_id": doctor_id,
            "facility_id": facility_id,
            "referral_id": referral_id,
            "start_at": start_at,
            "duration_minutes": duration,
            "end_at": end_at,
            "appointment_type": appointment_type.value,
            "reason_for_visit": reason_for_visit,
            "status": A.SCHEDULED.value,
            "is_confirmed": False,
            "confirmation_token": secrets.token_urlsafe(32),
            "token_expires_at": min(
                start_at, now + timedelta(hours=settings.confirmation_token_ttl_hours)
            ),
            "booked_by": actor.id if actor else None,
            "booking_source": source.value,
            "from_waiting_list": waiting_list_entry_id is not None,
            "waiting_list_entry_id": waiting_list_entry_id,
            "rescheduled_from_id": rescheduled_from_id,
            "created_at": now,
            "updated_at": now,
        }
        row = await appointment_repo.insert_appointment(self.db, values)

        await self.events.record(
            EntityType.APPOINTMENT,
            row["id"],
            "appointment_booked",
            actor=actor,
            to_status=A.SCHEDULED.value,
            payload={
                "doctor_id": doctor_id,
                "facility_id": facility_id,
                "start_at": start_at.isoformat(),
                "end_at": end_at.isoformat(),
                "source": source.value,
            },
            request=request,
        )
        return row

    async def book(
        self,
        data: AppointmentCreate,
        actor: Actor | None = None,
        request: RequestMetadata | None = None,
    ) -> BookingConfirmation:
        """
        Book an appointment.

        The overlap check and the insert run under the booking lock of the
        doctor and local date, so concurrent requests for the same slot
        cannot both succeed.

        Args:
            data: Doctor, facility, start, duration, patient and source
            actor: Booking identity
            request: Originating request, stored on the outbox row

        Returns:
            Appointment id and confirmation token

        Raises:
            SlotUnavailableException: If the slot is outside availability or inside a buffer
            DoubleBookingException: If the slot overlaps an existing booking
            LockTimeoutException: If the booking lock could not be acquired in time
        """
        start_at = as_utc(data.start_at)

        async with self.locks.hold(booking_lock_key(data.doctor_id, to_local(start_at).date())):
            async with self.events.transaction():
                row = await self.book_in_transaction(
                    data.doctor_id,
                    data.facility_id,
                    start_at,
                    data.duration_minutes,
                    data.patient.to_columns(),
                    actor,
                    source=data.source,
                    appointment_type=data.appointment_type,
                    reason_for_visit=data.reason_for_visit,
                    referral_id=data.referral_id,
                    request=request,
                )

        logger.info(
            "appointment_booked",
            appointment_id=str(row["id"]),
            doctor_id=str(data.doctor_id),
            start_at=row["start_at"].isoformat(),
            source=data.source.value,
        )
        return BookingConfirmation(
            appointment_id=row["id"],
            confirmation_token=row["confirmation_token"],
            status=AppointmentStatus(row["status"]),
            start_at=row["start_at"],
            end_at=row["end_at"],
            token_expires_at=row["token_expires_at"],
        )

    async def available_slots(
        self,
        doctor_id: UUID,
        facility_id: UUID,
        on_date: date,
    ) -> DaySlotsResponse:
        """
        Enumerate candidate slots of one local date.

        Slots step through each window by slot duration plus buffer; each is
        marked available or given the reason it is not.
        """
        day = await self.availability.effective_day(doctor_id, facility_id, on_date)
        slots: list[SlotResponse] = []

        if day.windows:
            span_start = as_utc(day.windows[0].start) - timedelta(hours=12)
            span_end = as_utc(day.windows[-1].end) + timedelta(hours=12)
            bookings = await appointment_repo.find_overlapping(
                self.db, doctor_id, span_start, span_end
            )
        else:
            bookings = []

        now = utcnow()
        for window in day.windows:
            slot = timedelta(minutes=window.slot_minutes)
            buffer = timedelta(minutes=window.buffer_minutes)
            cursor = window.start
            while cursor + slot <= window.end:
                end = cursor + slot
                reason = None
                if as_utc(cursor) < now:
                    reason = "in the past"
                elif day.block_for(cursor, end):
                    reason = "blocked"
                elif any(b["start_at"] < end and cursor < b["end_at"] for b in bookings):
                    reason = "booked"
                elif buffer and any(
                    b["start_at"] < end + buffer and cursor - buffer < b["end_at"] for b in bookings
                ):
                    reason = "buffer"
                slots.append(
                    SlotResponse(start_at=cursor, end_at=end, available=reason is None, reason=reason)
                )
                cursor = end + buffer

        return DaySlotsResponse(
            doctor_id=doctor_id,
            facility_id=facility_id,
            date=on_date,
            slots=slots,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def _transition(
        self,
        appointment_id: UUID,
        actor: Actor | None,
        to_status: AppointmentStatus,
        action: str,
        event_type: str,
        values: dict[str, Any] | None = None,
        appointment: dict[str, Any] | None = None,
        request: RequestMetadata | None = None,
    ) -> dict[str, Any]:
        """Apply one status change with its event. Runs inside the caller's unit of work."""
        if appointment is None:
            appointment = await self._load(appointment_id, for_update=True)
        APPOINTMENT_TRANSITIONS.ensure(appointment["status"], to_status.value, action=action)
        row = await appointment_repo.update_appointment(
            self.db,
            appointment_id,
            {"status": to_status.value, "updated_at": utcnow(), **(values or {})},
        )
        await self.events.record(
            EntityType.APPOINTMENT,
            appointment_id,
            event_type,
            actor=actor,
            from_status=appointment["status"],
            to_status=to_status.value,
            request=request,
        )
        logger.info(
            event_type,
            appointment_id=str(appointment_id),
            from_status=appointment["status"],
            to_status=to_status.value,
        )
        return row

    async def confirm(
        self,
        appointment_id: UUID,
        actor: Actor | None,
        data: AppointmentConfirm | None = None,
        request: RequestMetadata | None = None,
    ) -> AppointmentResponse:
        """Confirm attendance (``scheduled -> confirmed``)."""
        method = (data or AppointmentConfirm()).method
        async with self.events.transaction():
            row = await self._transition(
                appointment_id,
                actor,
                A.CONFIRMED,
                "confirm",
                "appointment_confirmed",
                {
                    "is_confirmed": True,
                    "confirmed_at": utcnow(),
                    "confirmation_method": method.value,
                },
                request=request,
            )
        return AppointmentResponse.model_validate(row)

    async def confirm_by_token(
        self,
        token: str,
        request: RequestMetadata | None = None,
    ) -> AppointmentResponse:
        """
        Confirm through the link sent to the patient.

        Raises:
            NotFoundException: If no appointment carries the token
            ValidationException: If the token has expired
        """
        appointment = await appointment_repo.get_by_token(self.db, token)
        if not appointment:
            raise NotFoundException("Invalid confirmation token")
        expires_at = appointment["token_expires_at"]
        if expires_at is not None and utcnow() > expires_at:
            raise ValidationException("Confirmation token has expired")
        return await self.confirm(
            appointment["id"],
            None,
            AppointmentConfirm(method=ConfirmationMethod.TOKEN),
            request,
        )

    async def check_in(
        self,
        appointment_id: UUID,
        actor: Actor,
        request: RequestMetadata | None = None,
    ) -> AppointmentResponse:
        """Register the patient's arrival (``confirmed -> checked_in``)."""
        async with self.events.transaction():
            row = await self._transition(
                appointment_id,
                actor,
                A.CHECKED_IN,
                "check in",
                "appointment_checked_in",
                {"checked_in_at": utcnow(), "checked_in_by": actor.id},
                request=request,
            )
        return AppointmentResponse.model_validate(row)

    async def start(
        self,
        appointment_id: UUID,
        actor: Actor,
        request: RequestMetadata | None = None,
    ) -> AppointmentResponse:
        """Begin the visit (``checked_in -> in_progress``)."""
        async with self.events.transaction():
            row = await self._transition(
                appointment_id,
                actor,
                A.IN_PROGRESS,
                "start",
                "appointment_started",
                {"started_at": utcnow()},
                request=request,
            )
        return AppointmentResponse.model_validate(row)

    async def complete(
        self,
        appointment_id: UUID,
        actor: Actor,
        data: AppointmentComplete,
        request: RequestMetadata | None = None,
    ) -> AppointmentResponse:
        """Finish the visit (``in_progress -> completed``)."""
        async with self.events.transaction():
            row = await self._transition(
                appointment_id,
                actor,
                A.COMPLETED,
                "complete",
                "appointment_completed",
                {
                    "completed_at": utcnow(),
                    "visit_summary": data.visit_summary,
                    "next_steps": data.next_steps,
                },
                request=request,
            )
        return AppointmentResponse.model_validate(row)

    async def mark_no_show(
        self,
        appointment_id: UUID,
        actor: Actor | None,
        request: RequestMetadata | None = None,
    ) -> AppointmentResponse:
        """
        Record that the patient did not attend.

        Raises:
            IllegalTransitionException: If the patient checked in or the start time has not passed
        """
        async with self.events.transaction():
            appointment = await self._load(appointment_id, for_update=True)
            self._ensure_no_show_reachable(appointment)
            row = await self._transition(
                appointment_id,
                actor,
                A.NO_SHOW,
                "mark no-show",
                "appointment_no_show",
                appointment=appointment,
                request=request,
            )
        return AppointmentResponse.model_validate(row)

    @staticmethod
    def _ensure_no_show_reachable(appointment: dict[str, Any]) -> None:
        if appointment["checked_in_at"] is not None:
            raise IllegalTransitionException(
                "appointment",
                appointment["status"],
                A.NO_SHOW.value,
                action="mark no-show",
                message="cannot mark no-show: patient has already checked in",
            )
        if utcnow() < appointment["start_at"]:
            raise IllegalTransitionException(
                "appointment",
                appointment["status"],
                A.NO_SHOW.value,
                action="mark no-show",
                message="cannot mark no-show: appointment has not started yet",
            )

    async def sweep_no_shows(
        self,
        actor: Actor | None = None,
        grace_minutes: int | None = None,
    ) -> int:
        """
        Mark every unattended appointment older than the no-show grace period.

        Args:
            actor: Identity the transitions are attributed to, None for the system
            grace_minutes: Override of the configured grace period

        Returns:
            Number of appointments marked
        """
        if grace_minutes is None:
            grace_minutes = settings.no_show_grace_minutes
        cutoff = utcnow() - timedelta(minutes=grace_minutes)
        async with self.events.transaction():
            due = await appointment_repo.list_due_for_no_show(self.db, cutoff)
            for appointment in due:
                await self._transition(
                    appointment["id"],
                    actor,
                    A.NO_SHOW,
                    "mark no-show",
                    "appointment_no_show",
                    appointment=appointment,
                )

        logger.info("no_show_sweep_completed", marked=len(due), cutoff=cutoff.isoformat())
        return len(due)

    async def cancel(
        self,
        appointment_id: UUID,
        actor: Actor,
        reason: str,
        request: RequestMetadata | None = None,
    ) -> CancellationResult:
        """
        Cancel an appointment and offer its slot to the waiting list.

        Args:
            appointment_id: Appointment ID
            actor: Cancelling identity
            reason: Mandatory cancellation reason
            request: Originating request, stored on the outbox rows

        Returns:
            Cancelled appointment and the promotion it triggered, if any

        Raises:
            ValidationException: If the reason is empty
            IllegalTransitionException: If the appointment is past the point of cancellation
        """
        if not reason or not reason.strip():
            raise ValidationException("A reason is required to cancel an appointment")

        async with self.events.transaction():
            row = await self._transition(
                appointment_id,
                actor,
                A.CANCELLED,
                "cancel",
                "appointment_cancelled",
                {
                    "cancelled_at": utcnow(),
                    "cancelled_by": actor.id,
                    "cancellation_reason": reason.strip(),
                },
                request=request,
            )

        result = CancellationResult(appointment=AppointmentResponse.model_validate(row))
        promotion = await self._offer_freed_slot(row, actor, request)
        if promotion and promotion.promoted:
            result.promoted_entry_id = promotion.entry.id if promotion.entry else None
            result.promoted_appointment_id = promotion.appointment_id
        return result

    async def reschedule(
        self,
        appointment_id: UUID,
        actor: Actor,
        data: AppointmentReschedule,
        request: RequestMetadata | None = None,
    ) -> RescheduleResult:
        """
        Move an appointment to a new start time.

        Books the successor and retires the original in one unit of work; if
        the new slot fails validation the original is left untouched.

        Args:
            appointment_id: Appointment ID
            actor: Rescheduling identity
            data: New start time and reason
            request: Originating request, stored on the outbox rows

        Returns:
            The original (now rescheduled) and its successor

        Raises:
            IllegalTransitionException: If the appointment can no longer be rescheduled
            SlotUnavailableException: If the new slot is outside availability
            DoubleBookingException: If the new slot overlaps another booking
        """
        new_start = as_utc(data.new_start_at)
        original = await self._load(appointment_id)
        if original["doctor_id"] is None or original["facility_id"] is None:
            raise ValidationException("Appointment has no doctor or facility to reschedule with")

        lock_key = booking_lock_key(original["doctor_id"], to_local(new_start).date())
        async with self.locks.hold(lock_key):
            async with self.events.transaction():
                original = await self._load(appointment_id, for_update=True)
                APPOINTMENT_TRANSITIONS.ensure(
                    original["status"], A.RESCHEDULED.value, action="reschedule"
                )
                successor = await self.book_in_transaction(
                    original["doctor_id"],
                    original["facility_id"],
                    new_start,
                    original["duration_minutes"],
                    patient_columns_from_row(original),
                    actor,
                    source=BookingSource(original["booking_source"]),
                    appointment_type=AppointmentType(original["appointment_type"]),
                    reason_for_visit=original["reason_for_visit"],
                    referral_id=original["referral_id"],
                    rescheduled_from_id=original["id"],
                    exclude_ids=(original["id"],),
                    request=request,
                )
                retired = await self._transition(
                    appointment_id,
                    actor,
                    A.RESCHEDULED,
                    "reschedule",
                    "appointment_rescheduled",
                    {
                        "rescheduled_to_id": successor["id"],
                        "rescheduled_at": utcnow(),
                        "reschedule_reason": data.reason,
                    },
                    appointment=original,
                    request=request,
                )
                if original["referral_id"]:
                    await referral_repo.update_referral(
                        self.db,
                        original["referral_id"],
                        {"appointment_id": successor["id"], "updated_at": utcnow()},
                    )

        result = RescheduleResult(
            original=AppointmentResponse.model_validate(retired),
            successor=AppointmentResponse.model_validate(successor),
        )
        promotion = await self._offer_freed_slot(retired, actor, request)
        if promotion and promotion.promoted:
            result.promoted_entry_id = promotion.entry.id if promotion.entry else None
            result.promoted_appointment_id = promotion.appointment_id
        return result

    # ------------------------------------------------------------------
    # Waiting list promotion
    # ------------------------------------------------------------------

    async def _offer_freed_slot(
        self,
        freed: dict[str, Any],
        actor: Actor | None,
        request: RequestMetadata | None = None,
    ) -> PromotionResult | None:
        if not settings.auto_promote_waiting_list:
            return None
        if freed["doctor_id"] is None or freed["facility_id"] is None:
            return None
        if freed["start_at"] <= utcnow():
            return None

        try:
            return await self.promote_next(
                PromotionRequest(
                    facility_id=freed["facility_id"],
                    doctor_id=freed["doctor_id"],
                    start_at=freed["start_at"],
                    duration_minutes=freed["duration_minutes"],
                ),
                actor,
                request,
            )
        except AppException as e:
            # The slot is already freed and committed; promotion is retried on the next freed slot
            logger.warning(
                "waiting_list_promotion_error",
                appointment_id=str(freed["id"]),
                error=e.message,
            )
            return None

    async def promote_next(
        self,
        slot: PromotionRequest,
        actor: Actor | None = None,
        request: RequestMetadata | None = None,
    ) -> PromotionResult:
        """
        Offer a freed slot to the best eligible waiting-list entry.

        Picks the active entry with the highest priority, earliest enrolled
        first, whose preferences match the slot, and makes one booking
        attempt. On success the entry becomes ``scheduled`` and the queue is
        compacted; on failure the entry stays active.

        Args:
            slot: Facility, doctor, start and duration of the freed slot
            actor: Identity the promotion is attributed to
            request: Originating request, stored on the outbox rows

        Returns:
            Whether an entry was promoted, and into which appointment
        """
        start_at = as_utc(slot.start_at)
        local_start = to_local(start_at)

        async with self.locks.hold(waiting_list_lock_key(slot.facility_id)):
            entries = await waiting_list_repo.list_active(self.db, slot.facility_id)
            candidate = select_candidate(entries, slot.doctor_id, local_start)
            if candidate is None:
                logger.info(
                    "waiting_list_no_candidate",
                    facility_id=str(slot.facility_id),
                    start_at=start_at.isoformat(),
                )
                return PromotionResult(promoted=False, reason="no eligible waiting list entry")

            duration = candidate["duration_minutes"] or slot.duration_minutes
            try:
                async with self.locks.hold(booking_lock_key(slot.doctor_id, local_start.date())):
                    async with self.events.transaction():
                        appointment = await self.book_in_transaction(
                            slot.doctor_id,
                            slot.facility_id,
                            start_at,
                            duration,
                            patient_columns_from_row(candidate),
                            actor,
                            source=BookingSource.WAITING_LIST,
                            reason_for_visit=candidate["reason_for_visit"],
                            referral_id=candidate["referral_id"],
                            waiting_list_entry_id=candidate["id"],
                            request=request,
                        )
                        now = utcnow()
                        entry = await waiting_list_repo.update_entry(
                            self.db,
                            candidate["id"],
                            {
                                "status": WaitingListStatus.SCHEDULED.value,
                                "position": None,
                                "appointment_id": appointment["id"],
                                "scheduled_at": now,
                                "updated_at": now,
                            },
                        )
                        await waiting_list_repo.compact_positions(self.db, slot.facility_id)
                        await self.events.record(
                            EntityType.WAITING_LIST_ENTRY,
                            candidate["id"],
                            "waiting_list_promoted",
                            actor=actor,
                            from_status=WaitingListStatus.ACTIVE.value,
                            to_status=WaitingListStatus.SCHEDULED.value,
                            payload={"appointment_id": appointment["id"]},
                            request=request,
                        )
            except (DoubleBookingException, SlotUnavailableException) as e:
                logger.info(
                    "waiting_list_promotion_failed",
                    entry_id=str(candidate["id"]),
                    reason=e.message,
                )
                return PromotionResult(
                    promoted=False,
                    entry=WaitingListResponse.model_validate(candidate),
                    reason=e.message,
                )

        logger.info(
            "waiting_list_promoted",
            entry_id=str(candidate["id"]),
            appointment_id=str(appointment["id"]),
        )
        return PromotionResult(
            promoted=True,
            entry=WaitingListResponse.model_validate(entry),
            appointment_id=appointment["id"],
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_appointment(self, appointment_id: UUID) -> AppointmentResponse:
        """
        Get appointment by ID.

        Raises:
            NotFoundException: If appointment not found
        """
        return AppointmentResponse.model_validate(await self._load(appointment_id))

    async def list_appointments(self, filters: AppointmentFilters) -> AppointmentListResponse:
        """List appointments with filtering and pagination, earliest first."""
        if filters.from_date:
            filters.from_date = as_utc(filters.from_date)
        if filters.to_date:
            filters.to_date = as_utc(filters.to_date)
        total, rows = await appointment_repo.list_appointments(self.db, filters)
        return AppointmentListResponse(
            total=total,
            page=filters.page,
            page_size=filters.page_size,
            items=[AppointmentResponse.model_validate(row) for row in rows],
        )
