"""Builders for request payloads used across the test modules."""

from datetime import UTC, date, datetime, time
from uuid import UUID, uuid4

from app.schemas.appointments import AppointmentCreate
from app.schemas.assessments import AssessmentCreate
from app.schemas.common import PatientSnapshot


def at(on_date: date, hour: int, minute: int = 0) -> datetime:
    """UTC instant on a date; the test scheduling zone is UTC."""
    return datetime.combine(on_date, time(hour, minute), tzinfo=UTC)


def booking_request(
    doctor_id: UUID,
    facility_id: UUID,
    start_at: datetime,
    patient: PatientSnapshot,
    duration_minutes: int | None = 30,
) -> AppointmentCreate:
    return AppointmentCreate(
        doctor_id=doctor_id,
        facility_id=facility_id,
        start_at=start_at,
        duration_minutes=duration_minutes,
        patient=patient,
    )


def assessment_payload(
    external_id: str | None = None,
    score: int = 65,
    symptoms: list[str] | None = None,
) -> AssessmentCreate:
    return AssessmentCreate(
        external_id=external_id or f"screening-{uuid4()}",
        ml_risk_score=score,
        patient=PatientSnapshot(first_name="Kwame", last_name="Mensah"),
        symptoms=symptoms if symptoms is not None else ["fatigue"],
    )
