"""Waiting list schemas."""

from datetime import date, datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from app.schemas.common import PatientSnapshot


class WaitingListPriority(str, Enum):
    """Waiting list priority, lowest first."""

    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    URGENT = "Urgent"

    @property
    def rank(self) -> int:
        """Ordinal used to compare priorities."""
        return list(WaitingListPriority).index(self)


class WaitingListStatus(str, Enum):
    """Waiting list entry status."""

    ACTIVE = "active"
    SCHEDULED = "scheduled"
    CANCELLED = "cancelled"


class TimeSlotPreference(str, Enum):
    """Part of the day a patient prefers."""

    MORNING = "morning"
    AFTERNOON = "afternoon"
    EVENING = "evening"


class WaitingListCreate(BaseModel):
    """Schema for enrolling a patient on the waiting list."""

    patient: PatientSnapshot
    facility_id: UUID
    preferred_doctor_id: UUID | None = None
    referral_id: UUID | None = None
    reason_for_visit: str | None = Field(None, max_length=1000)
    preferred_date_from: date | None = None
    preferred_date_to: date | None = None
    preferred_time_slots: list[TimeSlotPreference] | None = None
    preferred_days_of_week: list[int] | None = None
    duration_minutes: int | None = Field(None, ge=5, le=480)
    priority: WaitingListPriority = WaitingListPriority.MEDIUM
    priority_reason: str | None = Field(None, max_length=1000)

    @model_validator(mode="after")
    def validate_preferences(self) -> "WaitingListCreate":
        """Check the date window and weekday values."""
        if (
            self.preferred_date_from
            and self.preferred_date_to
            and self.preferred_date_to < self.preferred_date_from
        ):
            raise ValueError("preferred_date_to must not precede preferred_date_from")
        if self.preferred_days_of_week and any(
            day < 1 or day > 7 for day in self.preferred_days_of_week
        ):
            raise ValueError("preferred_days_of_week must be ISO weekdays (1-7)")
        return self


class WaitingListContact(BaseModel):
    """Schema for recording a contact attempt."""

    notes: str | None = Field(None, max_length=1000)


class WaitingListResponse(BaseModel):
    """Schema for waiting list entry response."""

    id: UUID
    patient_first_name: str
    patient_last_name: str
    patient_phone: str | None = None
    facility_id: UUID
    preferred_doctor_id: UUID | None = None
    referral_id: UUID | None = None
    reason_for_visit: str | None = None
    preferred_date_from: date | None = None
    preferred_date_to: date | None = None
    preferred_time_slots: list[TimeSlotPreference] | None = None
    preferred_days_of_week: list[int] | None = None
    duration_minutes: int | None = None
    priority: WaitingListPriority
    status: WaitingListStatus
    position: int | None = None
    contact_attempts: int
    last_contacted_at: datetime | None = None
    appointment_id: UUID | None = None
    scheduled_at: datetime | None = None
    created_at: datetime

    model_config = {"from_attributes": True}


class WaitingListQueueResponse(BaseModel):
    """The active queue of one facility, by position."""

    facility_id: UUID
    total: int
    items: list[WaitingListResponse]


class PromotionRequest(BaseModel):
    """A freed slot offered to the waiting list."""

    facility_id: UUID
    doctor_id: UUID
    start_at: datetime
    duration_minutes: int | None = Field(None, ge=5, le=480)


class PromotionResult(BaseModel):
    """Outcome of a promotion attempt."""

    promoted: bool
    entry: WaitingListResponse | None = None
    appointment_id: UUID | None = None
    reason: str | None = None
