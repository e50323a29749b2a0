"""Tests for the appointment scheduler."""

import asyncio
from datetime import timedelta

import pytest
import pytest_asyncio
from httpx import AsyncClient

from app.core.exceptions import (
    DoubleBookingException,
    IllegalTransitionException,
    NotFoundException,
    SlotUnavailableException,
    ValidationException,
)
from app.schemas.appointments import (
    AppointmentComplete,
    AppointmentFilters,
    AppointmentReschedule,
    AppointmentStatus,
)
from app.schemas.availability import AvailabilityCreate, ScheduleType
from app.services.appointment_service import AppointmentScheduler
from app.services.availability_service import AvailabilityService
from app.services.event_service import WorkflowEventRecorder
from tests.factories import at, booking_request


@pytest.fixture
def scheduler(db_session, events, locks) -> AppointmentScheduler:
    return AppointmentScheduler(db_session, events=events, locks=locks)


@pytest_asyncio.fixture
async def open_hours(db_session, regular_hours):
    return await AvailabilityService(db_session).create_availability(regular_hours)


@pytest.mark.asyncio
async def test_overlapping_booking_is_refused(
    scheduler, open_hours, doctor_id, facility_id, clinic_day, patient
):
    """09:00-09:30 is booked; 09:15 overlaps, 09:30 is free."""
    first = await scheduler.book(
        booking_request(doctor_id, facility_id, at(clinic_day, 9), patient), None
    )

    with pytest.raises(DoubleBookingException) as exc_info:
        await scheduler.book(
            booking_request(doctor_id, facility_id, at(clinic_day, 9, 15), patient), None
        )
    assert exc_info.value.conflicting_appointment_id == first.appointment_id

    second = await scheduler.book(
        booking_request(doctor_id, facility_id, at(clinic_day, 9, 30), patient), None
    )
    assert second.start_at == at(clinic_day, 9, 30)
    assert second.status == AppointmentStatus.SCHEDULED
    assert second.confirmation_token


@pytest.mark.asyncio
async def test_concurrent_bookings_for_same_slot(
    session_factory, publisher, locks, open_hours, doctor_id, facility_id, clinic_day, patient
):
    """Two sessions race for one slot; exactly one booking wins."""

    async def attempt():
        async with session_factory() as session:
            scheduler = AppointmentScheduler(
                session, events=WorkflowEventRecorder(session, publisher), locks=locks
            )
            return await scheduler.book(
                booking_request(doctor_id, facility_id, at(clinic_day, 11), patient), None
            )

    results = await asyncio.gather(attempt(), attempt(), return_exceptions=True)

    booked = [result for result in results if not isinstance(result, Exception)]
    refused = [result for result in results if isinstance(result, DoubleBookingException)]
    assert len(booked) == 1
    assert len(refused) == 1
    assert publisher.types().count("appointment_booked") == 1


@pytest.mark.asyncio
async def test_booking_outside_hours_is_unavailable(
    scheduler, open_hours, doctor_id, facility_id, clinic_day, patient
):
    with pytest.raises(SlotUnavailableException):
        await scheduler.book(
            booking_request(doctor_id, facility_id, at(clinic_day, 16, 45), patient), None
        )
    with pytest.raises(SlotUnavailableException):
        await scheduler.book(
            booking_request(doctor_id, facility_id, at(clinic_day + timedelta(days=1), 10), patient),
            None,
        )


@pytest.mark.asyncio
async def test_blocked_interval_wins_over_overlap(
    db_session, scheduler, open_hours, doctor_id, facility_id, clinic_day, patient
):
    """A block is reported before any overlap with an existing booking."""
    await scheduler.book(booking_request(doctor_id, facility_id, at(clinic_day, 13), patient), None)
    await AvailabilityService(db_session).create_availability(
        AvailabilityCreate(
            doctor_id=doctor_id,
            facility_id=facility_id,
            schedule_type=ScheduleType.BLOCKED,
            specific_date=clinic_day,
            unavailability_reason="conference",
        )
    )

    with pytest.raises(SlotUnavailableException) as exc_info:
        await scheduler.book(
            booking_request(doctor_id, facility_id, at(clinic_day, 13), patient), None
        )
    assert exc_info.value.details["unavailability_reason"] == "conference"


@pytest.mark.asyncio
async def test_buffer_between_bookings(
    db_session, scheduler, doctor_id, facility_id, clinic_day, patient
):
    await AvailabilityService(db_session).create_availability(
        AvailabilityCreate(
            doctor_id=doctor_id,
            facility_id=facility_id,
            schedule_type=ScheduleType.SPECIFIC,
            specific_date=clinic_day,
            start_time=at(clinic_day, 8).time(),
            end_time=at(clinic_day, 12).time(),
            buffer_time_minutes=15,
        )
    )
    await scheduler.book(booking_request(doctor_id, facility_id, at(clinic_day, 9), patient), None)

    with pytest.raises(SlotUnavailableException) as exc_info:
        await scheduler.book(
            booking_request(doctor_id, facility_id, at(clinic_day, 9, 30), patient), None
        )
    assert "buffer" in exc_info.value.reason

    later = await scheduler.book(
        booking_request(doctor_id, facility_id, at(clinic_day, 9, 45), patient), None
    )
    assert later.start_at == at(clinic_day, 9, 45)


@pytest.mark.asyncio
async def test_lifecycle_to_completion(
    scheduler, clinician, open_hours, doctor_id, facility_id, clinic_day, patient
):
    booking = await scheduler.book(
        booking_request(doctor_id, facility_id, at(clinic_day, 10), patient), clinician
    )

    with pytest.raises(IllegalTransitionException):
        await scheduler.check_in(booking.appointment_id, clinician)

    confirmed = await scheduler.confirm_by_token(booking.confirmation_token)
    assert confirmed.is_confirmed is True
    assert confirmed.confirmation_method == "token"

    await scheduler.check_in(booking.appointment_id, clinician)
    await scheduler.start(booking.appointment_id, clinician)
    completed = await scheduler.complete(
        booking.appointment_id, clinician, AppointmentComplete(visit_summary="stable")
    )

    assert completed.status == AppointmentStatus.COMPLETED
    assert completed.visit_summary == "stable"
    assert completed.checked_in_at is not None


@pytest.mark.asyncio
async def test_unknown_confirmation_token(scheduler):
    with pytest.raises(NotFoundException):
        await scheduler.confirm_by_token("not-a-token")


@pytest.mark.asyncio
async def test_cancel_twice_is_illegal(
    scheduler, clinician, open_hours, doctor_id, facility_id, clinic_day, patient
):
    booking = await scheduler.book(
        booking_request(doctor_id, facility_id, at(clinic_day, 10), patient), clinician
    )

    with pytest.raises(ValidationException):
        await scheduler.cancel(booking.appointment_id, clinician, "")

    result = await scheduler.cancel(booking.appointment_id, clinician, "patient unwell")
    assert result.appointment.status == AppointmentStatus.CANCELLED
    assert result.appointment.cancellation_reason == "patient unwell"
    assert result.promoted_entry_id is None

    with pytest.raises(IllegalTransitionException) as exc_info:
        await scheduler.cancel(booking.appointment_id, clinician, "again")
    assert "already cancelled" in exc_info.value.message


@pytest.mark.asyncio
async def test_cancelled_slot_can_be_rebooked(
    scheduler, clinician, open_hours, doctor_id, facility_id, clinic_day, patient
):
    booking = await scheduler.book(
        booking_request(doctor_id, facility_id, at(clinic_day, 14), patient), clinician
    )
    await scheduler.cancel(booking.appointment_id, clinician, "clash")

    again = await scheduler.book(
        booking_request(doctor_id, facility_id, at(clinic_day, 14), patient), clinician
    )
    assert again.appointment_id != booking.appointment_id


@pytest.mark.asyncio
async def test_reschedule_links_original_and_successor(
    scheduler, clinician, open_hours, doctor_id, facility_id, clinic_day, patient
):
    booking = await scheduler.book(
        booking_request(doctor_id, facility_id, at(clinic_day, 10), patient), clinician
    )

    result = await scheduler.reschedule(
        booking.appointment_id,
        clinician,
        AppointmentReschedule(new_start_at=at(clinic_day, 10, 15), reason="traffic"),
    )

    assert result.original.status == AppointmentStatus.RESCHEDULED
    assert result.original.rescheduled_to_id == result.successor.id
    assert result.successor.rescheduled_from_id == booking.appointment_id
    assert result.successor.start_at == at(clinic_day, 10, 15)
    assert result.successor.status == AppointmentStatus.SCHEDULED


@pytest.mark.asyncio
async def test_failed_reschedule_leaves_original(
    scheduler, clinician, open_hours, doctor_id, facility_id, clinic_day, patient
):
    booking = await scheduler.book(
        booking_request(doctor_id, facility_id, at(clinic_day, 10), patient), clinician
    )

    with pytest.raises(SlotUnavailableException):
        await scheduler.reschedule(
            booking.appointment_id,
            clinician,
            AppointmentReschedule(new_start_at=at(clinic_day, 20)),
        )

    original = await scheduler.get_appointment(booking.appointment_id)
    assert original.status == AppointmentStatus.SCHEDULED
    assert original.rescheduled_to_id is None


@pytest.mark.asyncio
async def test_no_show_only_after_start(
    db_session, scheduler, clinician, doctor_id, facility_id, clinic_day, patient
):
    past_day = clinic_day - timedelta(days=28)
    for on_date in (past_day, clinic_day):
        await AvailabilityService(db_session).create_availability(
            AvailabilityCreate(
                doctor_id=doctor_id,
                facility_id=facility_id,
                schedule_type=ScheduleType.SPECIFIC,
                specific_date=on_date,
                start_time=at(on_date, 9).time(),
                end_time=at(on_date, 17).time(),
            )
        )
    upcoming = await scheduler.book(
        booking_request(doctor_id, facility_id, at(clinic_day, 9), patient), clinician
    )
    missed = await scheduler.book(
        booking_request(doctor_id, facility_id, at(past_day, 9), patient), clinician
    )

    with pytest.raises(IllegalTransitionException):
        await scheduler.mark_no_show(upcoming.appointment_id, clinician)

    marked = await scheduler.mark_no_show(missed.appointment_id, clinician)
    assert marked.status == AppointmentStatus.NO_SHOW


@pytest.mark.asyncio
async def test_sweep_marks_overdue_appointments(
    db_session, scheduler, doctor_id, facility_id, clinic_day, patient
):
    past_day = clinic_day - timedelta(days=14)
    await AvailabilityService(db_session).create_availability(
        AvailabilityCreate(
            doctor_id=doctor_id,
            facility_id=facility_id,
            schedule_type=ScheduleType.SPECIFIC,
            specific_date=past_day,
            start_time=at(past_day, 9).time(),
            end_time=at(past_day, 12).time(),
        )
    )
    await scheduler.book(booking_request(doctor_id, facility_id, at(past_day, 9), patient), None)
    await scheduler.book(booking_request(doctor_id, facility_id, at(past_day, 10), patient), None)

    assert await scheduler.sweep_no_shows(grace_minutes=30) == 2
    assert await scheduler.sweep_no_shows(grace_minutes=30) == 0

    listing = await scheduler.list_appointments(AppointmentFilters(status=AppointmentStatus.NO_SHOW))
    assert listing.total == 2


@pytest.mark.asyncio
async def test_available_slots_report_reasons(
    scheduler, open_hours, doctor_id, facility_id, clinic_day, patient
):
    await scheduler.book(booking_request(doctor_id, facility_id, at(clinic_day, 9), patient), None)

    day = await scheduler.available_slots(doctor_id, facility_id, clinic_day)

    assert len(day.slots) == 16
    assert day.slots[0].available is False
    assert day.slots[0].reason == "booked"
    assert all(slot.available for slot in day.slots[1:])


@pytest.mark.asyncio
async def test_book_appointment_endpoint(
    client: AsyncClient, auth_headers: dict, doctor_id, facility_id, clinic_day, regular_hours
):
    response = await client.post(
        "/api/v1/availability/",
        json=regular_hours.model_dump(mode="json"),
        headers=auth_headers,
    )
    assert response.status_code == 201

    payload = {
        "doctor_id": str(doctor_id),
        "facility_id": str(facility_id),
        "start_at": at(clinic_day, 9).isoformat(),
        "patient": {"first_name": "Amara", "last_name": "Okafor"},
    }
    response = await client.post("/api/v1/appointments/", json=payload, headers=auth_headers)
    assert response.status_code == 201
    token = response.json()["confirmation_token"]

    response = await client.post("/api/v1/appointments/", json=payload, headers=auth_headers)
    assert response.status_code == 409
    assert response.json()["code"] == "double_booking"

    response = await client.post(f"/api/v1/appointments/confirm/{token}")
    assert response.status_code == 200
    assert response.json()["status"] == "confirmed"


@pytest.mark.asyncio
async def test_slot_listing_endpoint(
    client: AsyncClient, auth_headers: dict, doctor_id, facility_id, clinic_day, regular_hours
):
    await client.post(
        "/api/v1/availability/",
        json=regular_hours.model_dump(mode="json"),
        headers=auth_headers,
    )

    response = await client.get(
        "/api/v1/availability/slots",
        params={
            "doctor_id": str(doctor_id),
            "facility_id": str(facility_id),
            "date": clinic_day.isoformat(),
        },
        headers=auth_headers,
    )

    assert response.status_code == 200
    assert len(response.json()["slots"]) == 16
