"""Tests for the waiting list and slot promotion."""

from datetime import time

import pytest
import pytest_asyncio
from httpx import AsyncClient
from sqlalchemy.exc import IntegrityError

from app.core.exceptions import IllegalTransitionException
from app.repositories import waiting_list as waiting_list_repo
from app.schemas.appointments import AppointmentStatus, BookingSource
from app.schemas.common import PatientSnapshot, RequestMetadata
from app.schemas.waiting_list import (
    PromotionRequest,
    TimeSlotPreference,
    WaitingListContact,
    WaitingListCreate,
    WaitingListPriority,
    WaitingListStatus,
)
from app.services.appointment_service import AppointmentScheduler
from app.services.availability_service import AvailabilityService
from app.services.waiting_list_service import WaitingListService, time_slot_of
from tests.factories import at, booking_request


def _entry(facility_id, first_name: str, **preferences) -> WaitingListCreate:
    return WaitingListCreate(
        patient=PatientSnapshot(first_name=first_name, last_name="Waiting"),
        facility_id=facility_id,
        **preferences,
    )


@pytest.fixture
def waiting_list(db_session, events, locks) -> WaitingListService:
    return WaitingListService(db_session, events, locks)


@pytest.fixture
def scheduler(db_session, events, locks) -> AppointmentScheduler:
    return AppointmentScheduler(db_session, events=events, locks=locks)


@pytest_asyncio.fixture
async def open_hours(db_session, regular_hours):
    return await AvailabilityService(db_session).create_availability(regular_hours)


@pytest.mark.parametrize(
    ("at_time", "slot"),
    [
        (time(8, 0), TimeSlotPreference.MORNING),
        (time(11, 59), TimeSlotPreference.MORNING),
        (time(12, 0), TimeSlotPreference.AFTERNOON),
        (time(17, 0), TimeSlotPreference.EVENING),
    ],
)
def test_time_slot_of(at_time, slot):
    assert time_slot_of(at_time) == slot


def test_days_of_week_must_be_iso_weekdays(facility_id):
    with pytest.raises(ValueError):
        _entry(facility_id, "Ada", preferred_days_of_week=[0])


@pytest.mark.asyncio
async def test_enroll_appends_to_queue(waiting_list, facility_id):
    first = await waiting_list.enroll(_entry(facility_id, "Ada"))
    second = await waiting_list.enroll(_entry(facility_id, "Bola"))

    assert (first.position, second.position) == (1, 2)
    queue = await waiting_list.queue(facility_id)
    assert queue.total == 2
    assert [item.id for item in queue.items] == [first.id, second.id]


@pytest.mark.asyncio
async def test_cancel_compacts_positions(waiting_list, facility_id):
    """Leaving the queue closes the gap: positions stay 1..n."""
    entries = [await waiting_list.enroll(_entry(facility_id, name)) for name in "ABCD"]

    cancelled = await waiting_list.cancel(entries[1].id)

    assert cancelled.status == WaitingListStatus.CANCELLED
    assert cancelled.position is None
    queue = await waiting_list.queue(facility_id)
    assert [item.position for item in queue.items] == [1, 2, 3]
    assert [item.id for item in queue.items] == [entries[0].id, entries[2].id, entries[3].id]

    with pytest.raises(IllegalTransitionException):
        await waiting_list.cancel(entries[1].id)


@pytest.mark.asyncio
async def test_record_contact_counts_attempts(waiting_list, publisher, facility_id):
    entry = await waiting_list.enroll(_entry(facility_id, "Ada"))

    await waiting_list.record_contact(entry.id, WaitingListContact(notes="voicemail"))
    updated = await waiting_list.record_contact(
        entry.id, WaitingListContact(), request=RequestMetadata(request_id="call-2")
    )

    assert updated.contact_attempts == 2
    assert updated.last_contacted_at is not None
    contacted = publisher.events[-1]
    assert contacted.event_type == "waiting_list_contacted"
    assert contacted.payload == {"contact_attempts": 2}
    assert contacted.request_id == "call-2"


def test_waiting_list_statuses() -> None:
    assert {status.value for status in WaitingListStatus} == {"active", "scheduled", "cancelled"}


@pytest.mark.asyncio
async def test_expired_status_is_not_stored(db_session, waiting_list, facility_id):
    entry = await waiting_list.enroll(_entry(facility_id, "Ada"))

    with pytest.raises(IntegrityError):
        await waiting_list_repo.update_entry(db_session, entry.id, {"status": "expired"})
    await db_session.rollback()


@pytest.mark.asyncio
async def test_cancellation_promotes_best_matching_entry(
    waiting_list,
    scheduler,
    clinician,
    open_hours,
    doctor_id,
    facility_id,
    clinic_day,
    patient,
):
    """A freed 10:00 slot goes to the highest-priority entry whose preferences match."""
    booking = await scheduler.book(
        booking_request(doctor_id, facility_id, at(clinic_day, 10), patient), clinician
    )
    low = await waiting_list.enroll(_entry(facility_id, "Low", priority=WaitingListPriority.LOW))
    await waiting_list.enroll(
        _entry(
            facility_id,
            "Evening",
            priority=WaitingListPriority.URGENT,
            preferred_time_slots=[TimeSlotPreference.EVENING],
        )
    )
    high = await waiting_list.enroll(
        _entry(
            facility_id,
            "Morning",
            priority=WaitingListPriority.HIGH,
            preferred_time_slots=[TimeSlotPreference.MORNING],
            preferred_doctor_id=doctor_id,
        )
    )

    result = await scheduler.cancel(booking.appointment_id, clinician, "patient travelling")

    assert result.promoted_entry_id == high.id
    promoted = await scheduler.get_appointment(result.promoted_appointment_id)
    assert promoted.start_at == at(clinic_day, 10)
    assert promoted.patient_first_name == "Morning"
    assert promoted.booking_source == BookingSource.WAITING_LIST
    assert promoted.from_waiting_list is True
    assert promoted.status == AppointmentStatus.SCHEDULED

    entry = await waiting_list.get_entry(high.id)
    assert entry.status == WaitingListStatus.SCHEDULED
    assert entry.appointment_id == promoted.id

    queue = await waiting_list.queue(facility_id)
    assert [item.position for item in queue.items] == [1, 2]
    assert queue.items[0].id == low.id


@pytest.mark.asyncio
async def test_equal_priority_promotes_earliest_enrolled(
    waiting_list, scheduler, clinician, open_hours, doctor_id, facility_id, clinic_day
):
    first = await waiting_list.enroll(_entry(facility_id, "First"))
    await waiting_list.enroll(_entry(facility_id, "Second"))

    result = await scheduler.promote_next(
        PromotionRequest(
            facility_id=facility_id,
            doctor_id=doctor_id,
            start_at=at(clinic_day, 15),
            duration_minutes=30,
        ),
        clinician,
    )

    assert result.promoted is True
    assert result.entry.id == first.id


@pytest.mark.asyncio
async def test_promotion_without_candidate(
    waiting_list, scheduler, clinician, open_hours, doctor_id, facility_id, clinic_day
):
    await waiting_list.enroll(
        _entry(facility_id, "Weekend", preferred_days_of_week=[6, 7])
    )

    result = await scheduler.promote_next(
        PromotionRequest(facility_id=facility_id, doctor_id=doctor_id, start_at=at(clinic_day, 9)),
        clinician,
    )

    assert result.promoted is False
    assert result.entry is None
    assert (await waiting_list.queue(facility_id)).total == 1


@pytest.mark.asyncio
async def test_failed_promotion_keeps_entry_active(
    waiting_list, scheduler, clinician, open_hours, doctor_id, facility_id, clinic_day, patient
):
    """A slot that is already taken leaves the candidate on the queue."""
    await scheduler.book(booking_request(doctor_id, facility_id, at(clinic_day, 9), patient), None)
    entry = await waiting_list.enroll(_entry(facility_id, "Ada"))

    result = await scheduler.promote_next(
        PromotionRequest(facility_id=facility_id, doctor_id=doctor_id, start_at=at(clinic_day, 9)),
        clinician,
    )

    assert result.promoted is False
    assert result.entry.id == entry.id
    reloaded = await waiting_list.get_entry(entry.id)
    assert reloaded.status == WaitingListStatus.ACTIVE
    assert reloaded.position == 1


@pytest.mark.asyncio
async def test_waiting_list_endpoints(
    client: AsyncClient, auth_headers: dict, publisher, facility_id
):
    response = await client.post(
        "/api/v1/waiting-list/",
        json={
            "patient": {"first_name": "Ada", "last_name": "Eze"},
            "facility_id": str(facility_id),
            "priority": "Urgent",
        },
        headers=auth_headers,
    )
    assert response.status_code == 201
    entry_id = response.json()["id"]

    response = await client.get(
        "/api/v1/waiting-list/", params={"facility_id": str(facility_id)}, headers=auth_headers
    )
    assert response.status_code == 200
    assert response.json()["total"] == 1

    response = await client.post(
        f"/api/v1/waiting-list/{entry_id}/contact",
        json={"notes": "left message"},
        headers={**auth_headers, "X-Request-ID": "desk-call-1"},
    )
    assert response.status_code == 200
    assert response.json()["contact_attempts"] == 1
    assert publisher.events[-1].request_id == "desk-call-1"

    response = await client.post(
        f"/api/v1/waiting-list/{entry_id}/cancel", headers=auth_headers
    )
    assert response.status_code == 200
    assert response.json()["status"] == "cancelled"
