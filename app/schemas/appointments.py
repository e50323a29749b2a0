"""Appointment schemas for request/response validation."""

from datetime import date, datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field

from app.schemas.common import PatientSnapshot


class AppointmentStatus(str, Enum):
    """Appointment status enumeration."""

    SCHEDULED = "scheduled"
    CONFIRMED = "confirmed"
    CHECKED_IN = "checked_in"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"
    RESCHEDULED = "rescheduled"


class BookingSource(str, Enum):
    """Where a booking request came from."""

    WEB = "web"
    MOBILE = "mobile"
    PHONE = "phone"
    WALK_IN = "walk_in"
    REFERRAL = "referral"
    WAITING_LIST = "waiting_list"


class AppointmentType(str, Enum):
    """Appointment type enumeration."""

    CONSULTATION = "consultation"
    FOLLOW_UP = "follow_up"
    PROCEDURE = "procedure"
    EMERGENCY = "emergency"
    TELEMEDICINE = "telemedicine"
    SCREENING = "screening"
    OTHER = "other"


class ConfirmationMethod(str, Enum):
    """How the patient confirmed."""

    WEB = "web"
    EMAIL = "email"
    SMS = "sms"
    PHONE = "phone"
    IN_PERSON = "in_person"
    TOKEN = "token"


class AppointmentCreate(BaseModel):
    """Schema for booking an appointment."""

    doctor_id: UUID
    facility_id: UUID
    start_at: datetime
    duration_minutes: int | None = Field(None, ge=5, le=480)
    patient: PatientSnapshot
    reason_for_visit: str | None = Field(None, max_length=1000)
    appointment_type: AppointmentType = AppointmentType.CONSULTATION
    source: BookingSource = BookingSource.WEB
    referral_id: UUID | None = None


class BookingConfirmation(BaseModel):
    """Result of a successful booking."""

    appointment_id: UUID
    confirmation_token: str
    status: AppointmentStatus
    start_at: datetime
    end_at: datetime
    token_expires_at: datetime | None = None


class AppointmentCancel(BaseModel):
    """Schema for cancelling an appointment."""

    reason: str = Field(..., max_length=1000)


class AppointmentReschedule(BaseModel):
    """Schema for moving an appointment to a new start time."""

    new_start_at: datetime
    reason: str | None = Field(None, max_length=1000)


class AppointmentConfirm(BaseModel):
    """Schema for confirming an appointment."""

    method: ConfirmationMethod = ConfirmationMethod.WEB


class AppointmentComplete(BaseModel):
    """Schema for completing an appointment."""

    visit_summary: str | None = Field(None, max_length=5000)
    next_steps: str | None = Field(None, max_length=2000)


class AppointmentNote(BaseModel):
    """Schema for transitions that only carry optional notes."""

    notes: str | None = Field(None, max_length=1000)


class AppointmentResponse(BaseModel):
    """Schema for appointment response."""

    id: UUID
    referral_id: UUID | None = None
    facility_id: UUID | None = None
    doctor_id: UUID | None = None
    patient_first_name: str
    patient_last_name: str
    patient_date_of_birth: date | None = None
    patient_phone: str | None = None
    patient_email: str | None = None
    start_at: datetime
    duration_minutes: int
    end_at: datetime
    appointment_type: AppointmentType
    reason_for_visit: str | None = None
    status: AppointmentStatus
    status_notes: str | None = None
    is_confirmed: bool
    confirmed_at: datetime | None = None
    confirmation_method: str | None = None
    checked_in_at: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    visit_summary: str | None = None
    next_steps: str | None = None
    cancelled_at: datetime | None = None
    cancelled_by: UUID | None = None
    cancellation_reason: str | None = None
    rescheduled_from_id: UUID | None = None
    rescheduled_to_id: UUID | None = None
    booked_by: UUID | None = None
    booking_source: BookingSource
    from_waiting_list: bool
    waiting_list_entry_id: UUID | None = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class CancellationResult(BaseModel):
    """Cancelled appointment and the waiting-list promotion it triggered, if any."""

    appointment: AppointmentResponse
    promoted_entry_id: UUID | None = None
    promoted_appointment_id: UUID | None = None


class RescheduleResult(BaseModel):
    """Original appointment, its successor, and any promotion into the freed slot."""

    original: AppointmentResponse
    successor: AppointmentResponse
    promoted_entry_id: UUID | None = None
    promoted_appointment_id: UUID | None = None


class AppointmentListResponse(BaseModel):
    """Schema for paginated appointment list response."""

    total: int
    page: int
    page_size: int
    items: list[AppointmentResponse]


class AppointmentFilters(BaseModel):
    """Schema for appointment filtering."""

    status: AppointmentStatus | None = None
    doctor_id: UUID | None = None
    facility_id: UUID | None = None
    referral_id: UUID | None = None
    from_date: datetime | None = None
    to_date: datetime | None = None
    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=20, ge=1, le=100)
