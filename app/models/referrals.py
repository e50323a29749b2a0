"""Referral and referral history tables using SQLAlchemy Core."""

from uuid import uuid4

from sqlalchemy import (
    JSON,
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

referrals = Table(
    "referrals",
    metadata,
    Column("id", Uuid, primary_key=True, default=uuid4),
    Column(
        "assessment_id",
        Uuid,
        ForeignKey("assessments.id", ondelete="RESTRICT"),
        nullable=False,
    ),
    # Patient snapshot
    Column("patient_first_name", String(100), nullable=True),
    Column("patient_last_name", String(100), nullable=True),
    Column("patient_date_of_birth", Date, nullable=True),
    Column("patient_sex", String(10), nullable=True),
    Column("patient_phone", String(20), nullable=True),
    Column("patient_email", String(255), nullable=True),
    # Facilities (source is optional for direct self-referral)
    Column("source_facility_id", Uuid, nullable=True),
    Column("target_facility_id", Uuid, nullable=False),
    # Staff
    Column("referring_user_id", Uuid, nullable=True),
    Column("assigned_doctor_id", Uuid, nullable=True),
    # Clinical classification
    Column("priority", String(20), nullable=False, server_default="Medium"),
    Column("urgency", String(20), nullable=False, server_default="Routine"),
    Column("referral_type", String(100), nullable=True),
    Column("chief_complaint", Text, nullable=True),
    Column("clinical_notes", Text, nullable=True),
    Column("required_services", JSON, nullable=True),
    # Status
    Column("status", String(20), nullable=False, server_default="pending"),
    Column("status_notes", Text, nullable=True),
    Column("accepted_at", DateTime(timezone=True), nullable=True),
    Column("rejected_at", DateTime(timezone=True), nullable=True),
    Column("in_transit_at", DateTime(timezone=True), nullable=True),
    Column("arrived_at", DateTime(timezone=True), nullable=True),
    Column("in_progress_at", DateTime(timezone=True), nullable=True),
    Column("completed_at", DateTime(timezone=True), nullable=True),
    Column("cancelled_at", DateTime(timezone=True), nullable=True),
    # Transport
    Column("transport_method", String(20), nullable=True),
    # Appointment link
    Column("appointment_id", Uuid, nullable=True),
    # Outcome
    Column("outcome", String(20), nullable=True),
    Column("treatment_summary", Text, nullable=True),
    Column("diagnosis", Text, nullable=True),
    Column("recommendations", Text, nullable=True),
    Column("requires_follow_up", Boolean, nullable=False, server_default="0"),
    Column("follow_up_date", Date, nullable=True),
    # Audit fields
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    Column("updated_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    Column("deleted_at", DateTime(timezone=True), nullable=True),
    CheckConstraint(
        "status IN ('pending', 'accepted', 'in_transit', 'arrived', 'in_progress', "
        "'completed', 'rejected', 'cancelled')",
        name="status",
    ),
    CheckConstraint("priority IN ('Low', 'Medium', 'High', 'Critical')", name="priority"),
    CheckConstraint("urgency IN ('Routine', 'Urgent', 'Emergency')", name="urgency"),
    CheckConstraint(
        "outcome IS NULL OR outcome IN ('Improved', 'Stable', 'Deteriorated', 'Deceased', 'Unknown')",
        name="outcome",
    ),
    Index("idx_referrals_assessment_id", "assessment_id"),
    Index("idx_referrals_target_status", "target_facility_id", "status"),
    Index("idx_referrals_source_status", "source_facility_id", "status"),
    Index("idx_referrals_priority", "priority"),
    Index("idx_referrals_created_at", "created_at"),
)

# Immutable audit trail, one row per transition
referral_history = Table(
    "referral_history",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column(
        "referral_id",
        Uuid,
        ForeignKey("referrals.id", ondelete="RESTRICT"),
        nullable=False,
    ),
    Column("actor_id", Uuid, nullable=False),
    Column("actor_role", String(50), nullable=True),
    Column("action", String(30), nullable=False),
    Column("previous_status", String(20), nullable=True),
    Column("new_status", String(20), nullable=True),
    Column("notes", Text, nullable=True),
    Column("metadata", JSON, nullable=True),
    Column("ip_address", String(45), nullable=True),
    Column("user_agent", Text, nullable=True),
    Column("request_id", String(64), nullable=True),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    Index("idx_referral_history_referral_created", "referral_id", "created_at", "id"),
)
