"""Assessment schemas for request/response validation."""

from datetime import date, datetime
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field

from app.schemas.common import PatientSnapshot


class RiskLevel(str, Enum):
    """Risk level enumeration."""

    LOW = "Low"
    MODERATE = "Moderate"
    HIGH = "High"


class AssessmentStatus(str, Enum):
    """Assessment status enumeration."""

    PENDING = "pending"
    IN_REVIEW = "in_review"
    VALIDATED = "validated"
    REQUIRES_REFERRAL = "requires_referral"
    REJECTED = "rejected"
    COMPLETED = "completed"


class ValidationDisposition(str, Enum):
    """Outcome a clinician may choose when validating."""

    VALIDATED = "validated"
    REQUIRES_REFERRAL = "requires_referral"


class AgreementLevel(str, Enum):
    """How closely the clinician's score matches the automated score."""

    COMPLETE_AGREEMENT = "complete_agreement"
    PARTIAL_AGREEMENT = "partial_agreement"
    SIGNIFICANT_DIFFERENCE = "significant_difference"
    COMPLETE_DISAGREEMENT = "complete_disagreement"


class NotifyChannel(str, Enum):
    """Channel the dispatcher should use to reach the patient."""

    PUSH = "push"
    SMS = "sms"
    EMAIL = "email"
    NONE = "none"


class VitalSigns(BaseModel):
    """Vital signs captured at intake."""

    systolic_bp: int | None = Field(None, ge=50, le=300)
    diastolic_bp: int | None = Field(None, ge=30, le=200)
    heart_rate: int | None = Field(None, ge=20, le=250)
    oxygen_saturation: float | None = Field(None, ge=0, le=100)
    total_cholesterol: float | None = Field(None, ge=0)
    hdl_cholesterol: float | None = Field(None, ge=0)
    blood_glucose: float | None = Field(None, ge=0)
    bmi: float | None = Field(None, ge=5, le=100)


class AssessmentCreate(BaseModel):
    """Schema for assessment intake."""

    external_id: str = Field(..., min_length=1, max_length=100)
    patient: PatientSnapshot | None = None
    ml_risk_score: int = Field(..., ge=0, le=100)
    ml_risk_level: RiskLevel | None = None
    vital_signs: VitalSigns | None = None
    symptoms: list[str] = Field(default_factory=list)


class AssessmentBulkCreate(BaseModel):
    """Batch of assessments synced from an offline device.

    Items are validated one by one so that a bad item does not fail the batch.
    """

    assessments: list[dict[str, Any]] = Field(..., min_length=1, max_length=100)


class AssessmentValidate(BaseModel):
    """Schema for a clinician's validation decision."""

    validated_risk_score: int = Field(..., ge=0, le=100)
    notes: str | None = Field(None, max_length=2000)
    agrees_with_ml: bool
    disposition: ValidationDisposition = ValidationDisposition.VALIDATED


class AssessmentReject(BaseModel):
    """Schema for rejecting an assessment."""

    reason: str = Field(..., max_length=1000)
    notify_channel: NotifyChannel = NotifyChannel.PUSH


class RiskAdjustmentCreate(BaseModel):
    """Schema for a clinician's risk score override."""

    new_risk_score: int = Field(..., ge=0, le=100)
    justification: str = Field(..., max_length=2000)


class AssessmentResponse(BaseModel):
    """Schema for assessment response."""

    id: UUID
    external_id: str
    patient_first_name: str | None = None
    patient_last_name: str | None = None
    patient_date_of_birth: date | None = None
    patient_sex: str | None = None
    patient_phone: str | None = None
    patient_email: str | None = None
    vital_signs: VitalSigns | None = None
    symptoms: list[str] | None = None
    ml_risk_score: int
    ml_risk_level: RiskLevel
    current_risk_score: int
    current_risk_level: RiskLevel
    final_risk_score: int | None = None
    final_risk_level: RiskLevel | None = None
    status: AssessmentStatus
    validated_by: UUID | None = None
    validated_at: datetime | None = None
    validation_notes: str | None = None
    validation_agrees_with_ml: bool | None = None
    agreement_level: AgreementLevel | None = None
    completed_at: datetime | None = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class AssessmentListResponse(BaseModel):
    """Schema for paginated assessment list response."""

    total: int
    page: int
    page_size: int
    items: list[AssessmentResponse]


class AssessmentFilters(BaseModel):
    """Schema for assessment filtering."""

    status: AssessmentStatus | None = None
    risk_level: RiskLevel | None = None
    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=20, ge=1, le=100)


class RiskAdjustmentResponse(BaseModel):
    """One ledger entry."""

    id: int
    assessment_id: UUID
    adjusted_by: UUID
    actor_role: str | None = None
    old_score: int | None = None
    old_level: RiskLevel | None = None
    new_score: int
    new_level: RiskLevel
    difference: int | None = None
    justification: str
    alert_triggered: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class RiskAdjustmentResult(BaseModel):
    """Result of an adjustRisk call."""

    adjustment_id: int
    alert_triggered: bool
    difference: int | None
    new_score: int
    new_level: RiskLevel
    assessment_status: AssessmentStatus


class BulkIntakeItemResult(BaseModel):
    """Outcome of one item of a bulk intake."""

    index: int
    success: bool
    duplicate: bool = False
    assessment_id: UUID | None = None
    external_id: str | None = None
    errors: list[str] | None = None


class BulkIntakeResponse(BaseModel):
    """Per-item summary of a bulk intake."""

    total: int
    created: int
    duplicates: int
    failed: int
    results: list[BulkIntakeItemResult]
