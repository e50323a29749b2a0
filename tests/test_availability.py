"""Tests for availability resolution."""

from datetime import date, time, timedelta
from uuid import uuid4

import pytest
from pydantic import ValidationError

from app.schemas.availability import AvailabilityCreate, AvailabilityResponse, ScheduleType
from app.services.availability_service import AvailabilityService, resolve_day
from tests.factories import at

MONDAY = date(2026, 3, 2)
DOCTOR = uuid4()
FACILITY = uuid4()


def _row(schedule_type: ScheduleType, **values) -> AvailabilityResponse:
    defaults = {
        "id": uuid4(),
        "doctor_id": DOCTOR,
        "facility_id": FACILITY,
        "schedule_type": schedule_type,
        "slot_duration_minutes": 30,
        "buffer_time_minutes": 0,
        "is_available": True,
    }
    return AvailabilityResponse(**{**defaults, **values})


def test_regular_row_applies_on_its_weekday():
    rows = [_row(ScheduleType.REGULAR, day_of_week=1, start_time=time(9), end_time=time(12))]

    monday = resolve_day(rows, MONDAY)
    tuesday = resolve_day(rows, MONDAY + timedelta(days=1))

    assert [(w.start, w.end) for w in monday.windows] == [(at(MONDAY, 9), at(MONDAY, 12))]
    assert tuesday.windows == []


def test_specific_date_replaces_weekly_hours():
    rows = [
        _row(ScheduleType.REGULAR, day_of_week=1, start_time=time(9), end_time=time(17)),
        _row(
            ScheduleType.SPECIFIC,
            specific_date=MONDAY,
            start_time=time(13),
            end_time=time(15),
        ),
    ]

    day = resolve_day(rows, MONDAY)

    assert len(day.windows) == 1
    assert day.window_for(at(MONDAY, 9), at(MONDAY, 9, 30)) is None
    assert day.window_for(at(MONDAY, 13), at(MONDAY, 13, 30)) is not None


def test_unavailable_specific_row_closes_the_day():
    rows = [
        _row(ScheduleType.REGULAR, day_of_week=1, start_time=time(9), end_time=time(17)),
        _row(
            ScheduleType.SPECIFIC,
            specific_date=MONDAY,
            start_time=time(9),
            end_time=time(17),
            is_available=False,
        ),
    ]

    assert resolve_day(rows, MONDAY).windows == []


def test_partial_block_only_covers_its_interval():
    rows = [
        _row(ScheduleType.REGULAR, day_of_week=1, start_time=time(9), end_time=time(17)),
        _row(
            ScheduleType.BLOCKED,
            specific_date=MONDAY,
            start_time=time(12),
            end_time=time(13),
            is_available=False,
            unavailability_reason="lunch rounds",
        ),
    ]

    day = resolve_day(rows, MONDAY)

    block = day.block_for(at(MONDAY, 12, 30), at(MONDAY, 13))
    assert block is not None
    assert block.reason == "lunch rounds"
    assert day.block_for(at(MONDAY, 13), at(MONDAY, 13, 30)) is None
    # Half-open: ending exactly at the block start does not touch it
    assert day.block_for(at(MONDAY, 11, 30), at(MONDAY, 12)) is None


def test_window_must_contain_whole_interval():
    rows = [_row(ScheduleType.REGULAR, day_of_week=1, start_time=time(9), end_time=time(10))]
    day = resolve_day(rows, MONDAY)

    assert day.window_for(at(MONDAY, 9, 30), at(MONDAY, 10)) is not None
    assert day.window_for(at(MONDAY, 9, 45), at(MONDAY, 10, 15)) is None


@pytest.mark.parametrize(
    "values",
    [
        {"schedule_type": ScheduleType.REGULAR, "start_time": time(9), "end_time": time(17)},
        {"schedule_type": ScheduleType.SPECIFIC, "start_time": time(9), "end_time": time(17)},
        {"schedule_type": ScheduleType.REGULAR, "day_of_week": 1},
        {
            "schedule_type": ScheduleType.REGULAR,
            "day_of_week": 1,
            "start_time": time(17),
            "end_time": time(9),
        },
    ],
)
def test_availability_shape_is_validated(values):
    with pytest.raises(ValidationError):
        AvailabilityCreate(doctor_id=DOCTOR, facility_id=FACILITY, **values)


def test_whole_day_block_needs_no_times():
    row = AvailabilityCreate(
        doctor_id=DOCTOR,
        facility_id=FACILITY,
        schedule_type=ScheduleType.BLOCKED,
        specific_date=MONDAY,
    )
    assert row.start_time is None


@pytest.mark.asyncio
async def test_effective_range_limits_rows(db_session, doctor_id, facility_id, clinic_day):
    service = AvailabilityService(db_session)
    await service.create_availability(
        AvailabilityCreate(
            doctor_id=doctor_id,
            facility_id=facility_id,
            schedule_type=ScheduleType.REGULAR,
            day_of_week=1,
            start_time=time(9),
            end_time=time(12),
            effective_from=clinic_day + timedelta(days=7),
        )
    )

    before = await service.effective_day(doctor_id, facility_id, clinic_day)
    after = await service.effective_day(doctor_id, facility_id, clinic_day + timedelta(days=7))

    assert before.windows == []
    assert len(after.windows) == 1


@pytest.mark.asyncio
async def test_list_availability_endpoint(client, auth_headers, regular_hours, doctor_id):
    await client.post(
        "/api/v1/availability/",
        json=regular_hours.model_dump(mode="json"),
        headers=auth_headers,
    )

    response = await client.get(
        "/api/v1/availability/", params={"doctor_id": str(doctor_id)}, headers=auth_headers
    )

    assert response.status_code == 200
    assert [row["schedule_type"] for row in response.json()] == ["regular"]
