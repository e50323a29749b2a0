"""Waiting list: enrollment, queue maintenance and promotion eligibility."""

from datetime import datetime, time
from typing import Any
from uuid import UUID

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import utcnow
from app.core.exceptions import IllegalTransitionException, NotFoundException
from app.core.locks import LockManager, get_lock_manager, waiting_list_lock_key
from app.repositories import waiting_list as waiting_list_repo
from app.schemas.common import Actor, RequestMetadata
from app.schemas.events import EntityType
from app.schemas.waiting_list import (
    TimeSlotPreference,
    WaitingListContact,
    WaitingListCreate,
    WaitingListPriority,
    WaitingListQueueResponse,
    WaitingListResponse,
    WaitingListStatus,
)
from app.services.event_service import WorkflowEventRecorder

logger = structlog.get_logger(__name__)

AFTERNOON_STARTS = time(12, 0)
EVENING_STARTS = time(17, 0)


def time_slot_of(at: time) -> TimeSlotPreference:
    """Part of the day a wall-clock time falls in."""
    if at < AFTERNOON_STARTS:
        return TimeSlotPreference.MORNING
    if at < EVENING_STARTS:
        return TimeSlotPreference.AFTERNOON
    return TimeSlotPreference.EVENING


def is_eligible(entry: dict[str, Any], doctor_id: UUID, local_start: datetime) -> bool:
    """
    Check an entry's preferences against a freed slot.

    Args:
        entry: Waiting list row
        doctor_id: Doctor the slot belongs to
        local_start: Slot start on the scheduling zone's wall clock
    """
    if entry["preferred_doctor_id"] and entry["preferred_doctor_id"] != doctor_id:
        return False

    on_date = local_start.date()
    if entry["preferred_date_from"] and on_date < entry["preferred_date_from"]:
        return False
    if entry["preferred_date_to"] and on_date > entry["preferred_date_to"]:
        return False

    days = entry["preferred_days_of_week"]
    if days and on_date.isoweekday() not in days:
        return False

    slots = entry["preferred_time_slots"]
    if slots and time_slot_of(local_start.time()).value not in slots:
        return False

    return True


def priority_rank(entry: dict[str, Any]) -> int:
    return WaitingListPriority(entry["priority"]).rank


def select_candidate(
    entries: list[dict[str, Any]],
    doctor_id: UUID,
    local_start: datetime,
) -> dict[str, Any] | None:
    """Highest-priority eligible entry, earliest enrolled first among equals."""
    ordered = sorted(entries, key=lambda entry: (-priority_rank(entry), entry["created_at"]))
    for entry in ordered:
        if is_eligible(entry, doctor_id, local_start):
            return entry
    return None


class WaitingListService:
    """Service for the per-facility appointment waiting list."""

    def __init__(
        self,
        db: AsyncSession,
        events: WorkflowEventRecorder | None = None,
        locks: LockManager | None = None,
    ):
        """Initialize service with database session."""
        self.db = db
        self.events = events or WorkflowEventRecorder(db)
        self.locks = locks or get_lock_manager()

    async def _load(self, entry_id: UUID, for_update: bool = False) -> dict[str, Any]:
        entry = await waiting_list_repo.get_entry(self.db, entry_id, for_update=for_update)
        if not entry:
            raise NotFoundException("Waiting list entry not found")
        return entry

    async def enroll(
        self,
        data: WaitingListCreate,
        actor: Actor | None = None,
        request: RequestMetadata | None = None,
    ) -> WaitingListResponse:
        """
        Append a patient to the end of a facility's active queue.

        Args:
            data: Patient, facility and preferences
            actor: Enrolling staff member
            request: Originating request, stored on the outbox row

        Returns:
            Created entry with its queue position
        """
        async with self.locks.hold(waiting_list_lock_key(data.facility_id)):
            async with self.events.transaction():
                position = await waiting_list_repo.max_position(self.db, data.facility_id) + 1
                now = utcnow()
                values = {
                    **data.patient.to_columns(),
                    "facility_id": data.facility_id,
                    "preferred_doctor_id": data.preferred_doctor_id,
                    "referral_id": data.referral_id,
                    "reason_for_visit": data.reason_for_visit,
                    "preferred_date_from": data.preferred_date_from,
                    "preferred_date_to": data.preferred_date_to,
                    "preferred_time_slots": (
                        [slot.value for slot in data.preferred_time_slots]
                        if data.preferred_time_slots
                        else None
                    ),
                    "preferred_days_of_week": data.preferred_days_of_week,
                    "duration_minutes": data.duration_minutes,
                    "priority": data.priority.value,
                    "priority_reason": data.priority_reason,
                    "status": WaitingListStatus.ACTIVE.value,
                    "position": position,
                    "created_at": now,
                    "updated_at": now,
                }
                row = await waiting_list_repo.insert_entry(self.db, values)
                await self.events.record(
                    EntityType.WAITING_LIST_ENTRY,
                    row["id"],
                    "waiting_list_enrolled",
                    actor=actor,
                    to_status=WaitingListStatus.ACTIVE.value,
                    payload={"facility_id": data.facility_id, "position": position},
                    request=request,
                )

        logger.info(
            "waiting_list_enrolled",
            entry_id=str(row["id"]),
            facility_id=str(data.facility_id),
            priority=data.priority.value,
            position=position,
        )
        return WaitingListResponse.model_validate(row)

    async def get_entry(self, entry_id: UUID) -> WaitingListResponse:
        """Get waiting list entry by ID."""
        return WaitingListResponse.model_validate(await self._load(entry_id))

    async def queue(self, facility_id: UUID) -> WaitingListQueueResponse:
        """The facility's active queue, by position."""
        rows = await waiting_list_repo.list_active(self.db, facility_id)
        return WaitingListQueueResponse(
            facility_id=facility_id,
            total=len(rows),
            items=[WaitingListResponse.model_validate(row) for row in rows],
        )

    async def record_contact(
        self,
        entry_id: UUID,
        data: WaitingListContact,
        actor: Actor | None = None,
        request: RequestMetadata | None = None,
    ) -> WaitingListResponse:
        """
        Count one attempt to reach the patient.

        Raises:
            NotFoundException: If the entry does not exist
            IllegalTransitionException: If the entry has left the queue
        """
        async with self.events.transaction():
            entry = await self._load(entry_id, for_update=True)
            if entry["status"] != WaitingListStatus.ACTIVE.value:
                raise IllegalTransitionException(
                    "waiting list entry",
                    entry["status"],
                    entry["status"],
                    action="record contact",
                    message=f"cannot record contact: waiting list entry is already {entry['status']}",
                )
            now = utcnow()
            row = await waiting_list_repo.update_entry(
                self.db,
                entry_id,
                {
                    "contact_attempts": entry["contact_attempts"] + 1,
                    "last_contacted_at": now,
                    "contact_notes": data.notes or entry["contact_notes"],
                    "updated_at": now,
                },
            )
            await self.events.record(
                EntityType.WAITING_LIST_ENTRY,
                entry_id,
                "waiting_list_contacted",
                actor=actor,
                from_status=entry["status"],
                to_status=entry["status"],
                payload={"contact_attempts": row["contact_attempts"]},
                request=request,
            )

        logger.info(
            "waiting_list_contacted",
            entry_id=str(entry_id),
            contact_attempts=row["contact_attempts"],
        )
        return WaitingListResponse.model_validate(row)

    async def cancel(
        self,
        entry_id: UUID,
        actor: Actor | None = None,
        request: RequestMetadata | None = None,
    ) -> WaitingListResponse:
        """
        Take an entry off the queue and close the gap it leaves.

        Raises:
            NotFoundException: If the entry does not exist
            IllegalTransitionException: If the entry is no longer active
        """
        entry = await self._load(entry_id)

        async with self.locks.hold(waiting_list_lock_key(entry["facility_id"])):
            async with self.events.transaction():
                entry = await self._load(entry_id, for_update=True)
                if entry["status"] != WaitingListStatus.ACTIVE.value:
                    raise IllegalTransitionException(
                        "waiting list entry",
                        entry["status"],
                        WaitingListStatus.CANCELLED.value,
                        action="cancel",
                    )
                now = utcnow()
                row = await waiting_list_repo.update_entry(
                    self.db,
                    entry_id,
                    {
                        "status": WaitingListStatus.CANCELLED.value,
                        "position": None,
                        "cancelled_at": now,
                        "updated_at": now,
                    },
                )
                await waiting_list_repo.compact_positions(self.db, entry["facility_id"])
                await self.events.record(
                    EntityType.WAITING_LIST_ENTRY,
                    entry_id,
                    "waiting_list_cancelled",
                    actor=actor,
                    from_status=entry["status"],
                    to_status=WaitingListStatus.CANCELLED.value,
                    request=request,
                )

        logger.info("waiting_list_cancelled", entry_id=str(entry_id))
        return WaitingListResponse.model_validate(row)
