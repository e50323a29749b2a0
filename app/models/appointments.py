"""Appointments table model using SQLAlchemy Core."""

from uuid import uuid4

from sqlalchemy import (
    Boolean,
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

# Appointments table
appointments = Table(
    "appointments",
    metadata,
    Column("id", Uuid, primary_key=True, default=uuid4),
    # Ownership / references
    Column(
        "referral_id",
        Uuid,
        ForeignKey("referrals.id", ondelete="SET NULL"),
        nullable=True,
    ),
    Column("facility_id", Uuid, nullable=True),
    Column("doctor_id", Uuid, nullable=True),
    # Snapshot fields (denormalized for history)
    Column("patient_first_name", String(100), nullable=False),
    Column("patient_last_name", String(100), nullable=False),
    Column("patient_date_of_birth", Date, nullable=True),
    Column("patient_sex", String(10), nullable=True),
    Column("patient_phone", String(20), nullable=True),
    Column("patient_email", String(255), nullable=True),
    # Appointment details
    Column("start_at", DateTime(timezone=True), nullable=False),
    Column("duration_minutes", Integer, nullable=False),
    # Always start_at + duration_minutes; stored so overlap checks stay in SQL
    Column("end_at", DateTime(timezone=True), nullable=False),
    Column("appointment_type", String(30), nullable=False, server_default="consultation"),
    Column("reason_for_visit", Text, nullable=True),
    # Status management
    Column("status", String(20), nullable=False, server_default="scheduled"),
    Column("status_notes", Text, nullable=True),
    # Confirmation
    Column("is_confirmed", Boolean, nullable=False, server_default="0"),
    Column("confirmed_at", DateTime(timezone=True), nullable=True),
    Column("confirmation_method", String(20), nullable=True),
    Column("confirmation_token", String(64), nullable=True, unique=True),
    Column("token_expires_at", DateTime(timezone=True), nullable=True),
    # Check-in / visit
    Column("checked_in_at", DateTime(timezone=True), nullable=True),
    Column("checked_in_by", Uuid, nullable=True),
    Column("started_at", DateTime(timezone=True), nullable=True),
    Column("completed_at", DateTime(timezone=True), nullable=True),
    Column("visit_summary", Text, nullable=True),
    Column("next_steps", Text, nullable=True),
    # Cancellation
    Column("cancelled_at", DateTime(timezone=True), nullable=True),
    Column("cancelled_by", Uuid, nullable=True),
    Column("cancellation_reason", Text, nullable=True),
    # Rescheduling
    Column("rescheduled_from_id", Uuid, nullable=True),
    Column("rescheduled_to_id", Uuid, nullable=True),
    Column("rescheduled_at", DateTime(timezone=True), nullable=True),
    Column("reschedule_reason", Text, nullable=True),
    # Booking metadata
    Column("booked_by", Uuid, nullable=True),
    Column("booking_source", String(20), nullable=False, server_default="web"),
    Column("from_waiting_list", Boolean, nullable=False, server_default="0"),
    Column("waiting_list_entry_id", Uuid, nullable=True),
    # Audit fields
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    Column("updated_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    # Soft delete (healthcare compliance)
    Column("deleted_at", DateTime(timezone=True), nullable=True),
    # Constraints
    CheckConstraint(
        "status IN ('scheduled', 'confirmed', 'checked_in', 'in_progress', 'completed', "
        "'cancelled', 'no_show', 'rescheduled')",
        name="status",
    ),
    CheckConstraint("duration_minutes > 0", name="duration_positive"),
    CheckConstraint("end_at > start_at", name="end_after_start"),
    Index("idx_appointments_doctor_start", "doctor_id", "start_at"),
    Index("idx_appointments_facility_start", "facility_id", "start_at"),
    Index("idx_appointments_status", "status"),
    Index("idx_appointments_referral_id", "referral_id"),
)
