"""Doctor availability schemas."""

from datetime import date, datetime, time
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field, model_validator


class ScheduleType(str, Enum):
    """Availability row kinds."""

    REGULAR = "regular"
    SPECIFIC = "specific"
    BLOCKED = "blocked"


class AvailabilityCreate(BaseModel):
    """Schema for registering doctor availability from the directory."""

    doctor_id: UUID
    facility_id: UUID
    schedule_type: ScheduleType
    day_of_week: int | None = Field(None, ge=1, le=7, description="ISO weekday, 1 = Monday")
    specific_date: date | None = None
    start_time: time | None = None
    end_time: time | None = None
    slot_duration_minutes: int = Field(default=30, ge=5, le=480)
    buffer_time_minutes: int = Field(default=0, ge=0, le=240)
    is_available: bool = True
    unavailability_reason: str | None = Field(None, max_length=500)
    effective_from: date | None = None
    effective_until: date | None = None

    @model_validator(mode="after")
    def validate_shape(self) -> "AvailabilityCreate":
        """Check the fields each schedule type needs."""
        if self.schedule_type == ScheduleType.REGULAR and self.day_of_week is None:
            raise ValueError("Regular schedules require day_of_week")
        if self.schedule_type != ScheduleType.REGULAR and self.specific_date is None:
            raise ValueError(f"{self.schedule_type.value} schedules require specific_date")
        if self.schedule_type != ScheduleType.BLOCKED and (
            self.start_time is None or self.end_time is None
        ):
            raise ValueError("Bookable schedules require start_time and end_time")
        if (self.start_time is None) != (self.end_time is None):
            raise ValueError("start_time and end_time must be given together")
        if self.start_time and self.end_time and self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        if (
            self.effective_from
            and self.effective_until
            and self.effective_until < self.effective_from
        ):
            raise ValueError("effective_until must not precede effective_from")
        return self


class AvailabilityResponse(BaseModel):
    """Schema for availability response."""

    id: UUID
    doctor_id: UUID
    facility_id: UUID
    schedule_type: ScheduleType
    day_of_week: int | None = None
    specific_date: date | None = None
    start_time: time | None = None
    end_time: time | None = None
    slot_duration_minutes: int
    buffer_time_minutes: int
    is_available: bool
    unavailability_reason: str | None = None
    effective_from: date | None = None
    effective_until: date | None = None

    model_config = {"from_attributes": True}


class SlotResponse(BaseModel):
    """One candidate slot on a doctor's day."""

    start_at: datetime
    end_at: datetime
    available: bool
    reason: str | None = None


class DaySlotsResponse(BaseModel):
    """Every candidate slot for a doctor at a facility on one date."""

    doctor_id: UUID
    facility_id: UUID
    date: date
    slots: list[SlotResponse]
