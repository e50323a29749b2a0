"""Referral schemas for request/response validation."""

from datetime import date, datetime
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field

from app.schemas.common import PatientSnapshot


class ReferralStatus(str, Enum):
    """Referral status enumeration."""

    PENDING = "pending"
    ACCEPTED = "accepted"
    IN_TRANSIT = "in_transit"
    ARRIVED = "arrived"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


class ReferralPriority(str, Enum):
    """Referral priority enumeration, lowest first."""

    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    CRITICAL = "Critical"

    @property
    def rank(self) -> int:
        """Ordinal used to compare priorities."""
        return list(ReferralPriority).index(self)


class ReferralUrgency(str, Enum):
    """Referral urgency enumeration."""

    ROUTINE = "Routine"
    URGENT = "Urgent"
    EMERGENCY = "Emergency"


class TransportMethod(str, Enum):
    """How the patient travels to the target facility."""

    AMBULANCE = "Ambulance"
    PRIVATE = "Private"
    PUBLIC = "Public"
    WALK_IN = "Walk-in"
    OTHER = "Other"


class ReferralOutcome(str, Enum):
    """Clinical outcome recorded on completion."""

    IMPROVED = "Improved"
    STABLE = "Stable"
    DETERIORATED = "Deteriorated"
    DECEASED = "Deceased"
    UNKNOWN = "Unknown"


class ReferralAction(str, Enum):
    """History action tags."""

    CREATED = "created"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    CANCELLED = "cancelled"
    IN_TRANSIT = "in_transit"
    ARRIVED = "arrived"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    PRIORITY_CHANGED = "priority_changed"
    SCHEDULED = "scheduled"


class ReferralCreate(BaseModel):
    """Schema for creating a referral from an assessment."""

    assessment_id: UUID
    target_facility_id: UUID
    source_facility_id: UUID | None = None
    patient: PatientSnapshot | None = None
    priority: ReferralPriority | None = None
    urgency: ReferralUrgency | None = None
    referral_type: str | None = Field(None, max_length=100)
    chief_complaint: str | None = Field(None, max_length=2000)
    clinical_notes: str | None = Field(None, max_length=5000)
    required_services: list[str] | None = None


class ReferralAccept(BaseModel):
    """Schema for accepting a referral."""

    assigned_doctor_id: UUID | None = None
    notes: str | None = Field(None, max_length=2000)


class ReferralReason(BaseModel):
    """Schema for transitions that require a reason (reject, cancel)."""

    reason: str = Field(..., max_length=2000)


class ReferralReject(ReferralReason):
    """Schema for declining a referral, optionally pointing at other facilities."""

    suggested_facility_ids: list[UUID] | None = None


class ReferralTransit(BaseModel):
    """Schema for marking a referral in transit."""

    transport_method: TransportMethod | None = None
    notes: str | None = Field(None, max_length=2000)


class ReferralNote(BaseModel):
    """Schema for transitions that only carry optional notes."""

    notes: str | None = Field(None, max_length=2000)


class ReferralComplete(BaseModel):
    """Schema for completing a referral."""

    outcome: ReferralOutcome = ReferralOutcome.UNKNOWN
    treatment_summary: str | None = Field(None, max_length=5000)
    diagnosis: str | None = Field(None, max_length=2000)
    recommendations: str | None = Field(None, max_length=5000)
    requires_follow_up: bool = False
    follow_up_date: date | None = None
    notes: str | None = Field(None, max_length=2000)


class ReferralEscalate(BaseModel):
    """Schema for escalating referral priority."""

    priority: ReferralPriority
    reason: str = Field(..., max_length=2000)


class ReferralSchedule(BaseModel):
    """Schema for booking the referral's appointment at the target facility."""

    doctor_id: UUID
    start_at: datetime
    duration_minutes: int | None = Field(None, ge=5, le=480)
    notes: str | None = Field(None, max_length=2000)


class ReferralResponse(BaseModel):
    """Schema for referral response."""

    id: UUID
    assessment_id: UUID
    patient_first_name: str | None = None
    patient_last_name: str | None = None
    patient_date_of_birth: date | None = None
    patient_sex: str | None = None
    patient_phone: str | None = None
    source_facility_id: UUID | None = None
    target_facility_id: UUID
    referring_user_id: UUID | None = None
    assigned_doctor_id: UUID | None = None
    priority: ReferralPriority
    urgency: ReferralUrgency
    referral_type: str | None = None
    chief_complaint: str | None = None
    required_services: list[str] | None = None
    status: ReferralStatus
    status_notes: str | None = None
    accepted_at: datetime | None = None
    rejected_at: datetime | None = None
    in_transit_at: datetime | None = None
    arrived_at: datetime | None = None
    in_progress_at: datetime | None = None
    completed_at: datetime | None = None
    cancelled_at: datetime | None = None
    transport_method: TransportMethod | None = None
    appointment_id: UUID | None = None
    outcome: ReferralOutcome | None = None
    treatment_summary: str | None = None
    requires_follow_up: bool = False
    follow_up_date: date | None = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class ReferralHistoryResponse(BaseModel):
    """One immutable history row."""

    id: int
    referral_id: UUID
    actor_id: UUID
    actor_role: str | None = None
    action: ReferralAction
    previous_status: ReferralStatus | None = None
    new_status: ReferralStatus | None = None
    notes: str | None = None
    metadata: dict[str, Any] | None = None
    created_at: datetime

    model_config = {"from_attributes": True}


class ReferralListResponse(BaseModel):
    """Schema for paginated referral list response."""

    total: int
    page: int
    page_size: int
    items: list[ReferralResponse]


class ReferralFilters(BaseModel):
    """Schema for referral filtering."""

    status: ReferralStatus | None = None
    priority: ReferralPriority | None = None
    urgency: ReferralUrgency | None = None
    target_facility_id: UUID | None = None
    source_facility_id: UUID | None = None
    assigned_doctor_id: UUID | None = None
    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=20, ge=1, le=100)
