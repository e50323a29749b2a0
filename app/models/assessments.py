"""Assessment and risk-adjustment ledger tables using SQLAlchemy Core."""

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

assessments = Table(
    "assessments",
    metadata,
    Column("id", Uuid, primary_key=True, default=uuid4),
    # Idempotency key supplied by the intake client; never changes
    Column("external_id", String(100), nullable=False, unique=True),
    # Patient snapshot (denormalized for history)
    Column("patient_first_name", String(100), nullable=True),
    Column("patient_last_name", String(100), nullable=True),
    Column("patient_date_of_birth", Date, nullable=True),
    Column("patient_sex", String(10), nullable=True),
    Column("patient_phone", String(20), nullable=True),
    Column("patient_email", String(255), nullable=True),
    Column("submitted_by", Uuid, nullable=True),
    # Clinical inputs
    Column("vital_signs", JSON, nullable=True),
    Column("symptoms", JSON, nullable=True),
    # Automated score
    Column("ml_risk_score", Integer, nullable=False),
    Column("ml_risk_level", String(20), nullable=False),
    # Current score pointer, moved by every ledger entry
    Column("current_risk_score", Integer, nullable=False),
    Column("current_risk_level", String(20), nullable=False),
    # Clinical decision
    Column("final_risk_score", Integer, nullable=True),
    Column("final_risk_level", String(20), nullable=True),
    Column("status", String(30), nullable=False, server_default="pending"),
    Column("validated_by", Uuid, nullable=True),
    Column("validated_at", DateTime(timezone=True), nullable=True),
    Column("validation_notes", Text, nullable=True),
    Column("validation_agrees_with_ml", Boolean, nullable=True),
    Column("agreement_level", String(30), nullable=True),
    Column("review_started_by", Uuid, nullable=True),
    Column("review_started_at", DateTime(timezone=True), nullable=True),
    Column("completed_at", DateTime(timezone=True), nullable=True),
    # Audit fields
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    Column("updated_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    # Tombstone (healthcare compliance, never physically deleted)
    Column("deleted_at", DateTime(timezone=True), nullable=True),
    CheckConstraint(
        "status IN ('pending', 'in_review', 'validated', 'requires_referral', "
        "'rejected', 'completed')",
        name="status",
    ),
    CheckConstraint("ml_risk_score BETWEEN 0 AND 100", name="ml_risk_score_range"),
    CheckConstraint(
        "final_risk_score IS NULL OR final_risk_score BETWEEN 0 AND 100",
        name="final_risk_score_range",
    ),
    Index("idx_assessments_status", "status"),
    Index("idx_assessments_final_risk_level", "final_risk_level"),
    Index("idx_assessments_created_at", "created_at"),
)

# Append-only ledger of every risk score change
risk_adjustments = Table(
    "risk_adjustments",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column(
        "assessment_id",
        Uuid,
        ForeignKey("assessments.id", ondelete="RESTRICT"),
        nullable=False,
    ),
    Column("adjusted_by", Uuid, nullable=False),
    Column("actor_role", String(50), nullable=True),
    Column("old_score", Integer, nullable=True),
    Column("old_level", String(20), nullable=True),
    Column("new_score", Integer, nullable=False),
    Column("new_level", String(20), nullable=False),
    Column("difference", Integer, nullable=True),
    Column("justification", Text, nullable=False),
    Column("alert_triggered", Boolean, nullable=False),
    Column("metadata", JSON, nullable=True),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    CheckConstraint("length(justification) > 0", name="justification_present"),
    CheckConstraint(
        "old_score IS NULL OR difference = new_score - old_score",
        name="difference_consistent",
    ),
    Index("idx_risk_adjustments_assessment_created", "assessment_id", "created_at", "id"),
)
