"""Schemas shared by every workflow."""

from datetime import date
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field, field_validator


class Actor(BaseModel):
    """Identity performing a workflow operation, as asserted by the authentication layer."""

    id: UUID
    role: str | None = None


class RequestMetadata(BaseModel):
    """Request context persisted alongside audit rows."""

    ip_address: str | None = None
    user_agent: str | None = None
    request_id: str | None = None


class PatientSex(str, Enum):
    """Patient sex enumeration."""

    MALE = "Male"
    FEMALE = "Female"
    OTHER = "Other"


class PatientSnapshot(BaseModel):
    """Patient identity captured at the time a record is created."""

    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    date_of_birth: date | None = None
    sex: PatientSex | None = None
    phone: str | None = Field(None, min_length=7, max_length=20)
    email: EmailStr | None = None

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v: str | None) -> str | None:
        """Validate phone number format."""
        if v is None:
            return v
        cleaned = (
            v.replace("-", "").replace(" ", "").replace("(", "").replace(")", "").replace("+", "")
        )
        if not cleaned.isdigit():
            raise ValueError("Phone number must contain only digits and separators")
        if len(cleaned) < 7:
            raise ValueError("Phone number must have at least 7 digits")
        return v

    def to_columns(self) -> dict[str, Any]:
        """Flatten into the ``patient_*`` columns shared by the workflow tables."""
        return {
            "patient_first_name": self.first_name,
            "patient_last_name": self.last_name,
            "patient_date_of_birth": self.date_of_birth,
            "patient_sex": self.sex.value if self.sex else None,
            "patient_phone": self.phone,
            "patient_email": self.email,
        }


PATIENT_COLUMNS = (
    "patient_first_name",
    "patient_last_name",
    "patient_date_of_birth",
    "patient_sex",
    "patient_phone",
    "patient_email",
)


def patient_columns_from_row(row: dict[str, Any]) -> dict[str, Any]:
    """Copy the patient snapshot columns from one workflow row to another."""
    return {column: row.get(column) for column in PATIENT_COLUMNS}
