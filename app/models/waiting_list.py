"""Appointment waiting list table using SQLAlchemy Core."""

from uuid import uuid4

from sqlalchemy import (
    JSON,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Table,
    Text,
    Uuid,
    func,
)

from app.models.metadata import metadata

waiting_list_entries = Table(
    "waiting_list_entries",
    metadata,
    Column("id", Uuid, primary_key=True, default=uuid4),
    # Patient snapshot
    Column("patient_first_name", String(100), nullable=False),
    Column("patient_last_name", String(100), nullable=False),
    Column("patient_date_of_birth", Date, nullable=True),
    Column("patient_sex", String(10), nullable=True),
    Column("patient_phone", String(20), nullable=True),
    Column("patient_email", String(255), nullable=True),
    # Facility and doctor preferences
    Column("facility_id", Uuid, nullable=False),
    Column("preferred_doctor_id", Uuid, nullable=True),
    Column("referral_id", Uuid, nullable=True),
    Column("reason_for_visit", Text, nullable=True),
    Column("preferred_date_from", Date, nullable=True),
    Column("preferred_date_to", Date, nullable=True),
    # ["morning", "afternoon", "evening"]
    Column("preferred_time_slots", JSON, nullable=True),
    # ISO weekdays, e.g. [1, 2, 3, 4, 5]
    Column("preferred_days_of_week", JSON, nullable=True),
    Column("duration_minutes", Integer, nullable=True),
    # Priority and queue
    Column("priority", String(20), nullable=False, server_default="Medium"),
    Column("priority_reason", Text, nullable=True),
    Column("status", String(20), nullable=False, server_default="active"),
    # Dense and 1-based within the facility's active queue; null once the entry leaves it
    Column("position", Integer, nullable=True),
    # Contact attempts
    Column("contact_attempts", Integer, nullable=False, server_default="0"),
    Column("last_contacted_at", DateTime(timezone=True), nullable=True),
    Column("contact_notes", Text, nullable=True),
    # Conversion
    Column(
        "appointment_id",
        Uuid,
        ForeignKey("appointments.id", ondelete="SET NULL"),
        nullable=True,
    ),
    Column("scheduled_at", DateTime(timezone=True), nullable=True),
    Column("cancelled_at", DateTime(timezone=True), nullable=True),
    # Audit fields
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    Column("updated_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    Column("deleted_at", DateTime(timezone=True), nullable=True),
    CheckConstraint("status IN ('active', 'scheduled', 'cancelled')", name="status"),
    CheckConstraint("priority IN ('Low', 'Medium', 'High', 'Urgent')", name="priority"),
    Index("idx_waiting_list_facility_status_position", "facility_id", "status", "position"),
    Index("idx_waiting_list_created_at", "created_at"),
)
