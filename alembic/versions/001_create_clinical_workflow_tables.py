"""Create clinical workflow tables.

Revision ID: 001
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""

from typing import Sequence, Union

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            postgresql.TIMESTAMP(timezone=True),
            server_default=sa.text("NOW()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            postgresql.TIMESTAMP(timezone=True),
            server_default=sa.text("NOW()"),
            nullable=False,
        ),
        sa.Column("deleted_at", postgresql.TIMESTAMP(timezone=True), nullable=True),
    ]


def _patient_snapshot(required: bool) -> list[sa.Column]:
    return [
        sa.Column("patient_first_name", sa.VARCHAR(length=100), nullable=not required),
        sa.Column("patient_last_name", sa.VARCHAR(length=100), nullable=not required),
        sa.Column("patient_date_of_birth", sa.Date(), nullable=True),
        sa.Column("patient_sex", sa.VARCHAR(length=10), nullable=True),
        sa.Column("patient_phone", sa.VARCHAR(length=20), nullable=True),
        sa.Column("patient_email", sa.VARCHAR(length=255), nullable=True),
    ]


def upgrade() -> None:
    """Upgrade database schema."""
    # Assessments
    op.create_table(
        "assessments",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("external_id", sa.VARCHAR(length=100), nullable=False),
        *_patient_snapshot(required=False),
        sa.Column("submitted_by", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("vital_signs", sa.JSON(), nullable=True),
        sa.Column("symptoms", sa.JSON(), nullable=True),
        sa.Column("ml_risk_score", sa.Integer(), nullable=False),
        sa.Column("ml_risk_level", sa.VARCHAR(length=20), nullable=False),
        sa.Column("current_risk_score", sa.Integer(), nullable=False),
        sa.Column("current_risk_level", sa.VARCHAR(length=20), nullable=False),
        sa.Column("final_risk_score", sa.Integer(), nullable=True),
        sa.Column("final_risk_level", sa.VARCHAR(length=20), nullable=True),
        sa.Column("status", sa.VARCHAR(length=30), server_default="pending", nullable=False),
        sa.Column("validated_by", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("validated_at", postgresql.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("validation_notes", sa.Text(), nullable=True),
        sa.Column("validation_agrees_with_ml", sa.Boolean(), nullable=True),
        sa.Column("agreement_level", sa.VARCHAR(length=30), nullable=True),
        sa.Column("review_started_by", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("review_started_at", postgresql.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("completed_at", postgresql.TIMESTAMP(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "status IN ('pending', 'in_review', 'validated', 'requires_referral', "
            "'rejected', 'completed')",
            name="ck_assessments_status",
        ),
        sa.CheckConstraint(
            "ml_risk_score BETWEEN 0 AND 100", name="ck_assessments_ml_risk_score_range"
        ),
        sa.CheckConstraint(
            "final_risk_score IS NULL OR final_risk_score BETWEEN 0 AND 100",
            name="ck_assessments_final_risk_score_range",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_assessments"),
        sa.UniqueConstraint("external_id", name="uq_assessments_external_id"),
    )
    op.create_index("idx_assessments_status", "assessments", ["status"])
    op.create_index("idx_assessments_final_risk_level", "assessments", ["final_risk_level"])
    op.create_index("idx_assessments_created_at", "assessments", ["created_at"])

    # Risk ledger (append-only)
    op.create_table(
        "risk_adjustments",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("assessment_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("adjusted_by", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("actor_role", sa.VARCHAR(length=50), nullable=True),
        sa.Column("old_score", sa.Integer(), nullable=True),
        sa.Column("old_level", sa.VARCHAR(length=20), nullable=True),
        sa.Column("new_score", sa.Integer(), nullable=False),
        sa.Column("new_level", sa.VARCHAR(length=20), nullable=False),
        sa.Column("difference", sa.Integer(), nullable=True),
        sa.Column("justification", sa.Text(), nullable=False),
        sa.Column("alert_triggered", sa.Boolean(), nullable=False),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.Column(
            "created_at",
            postgresql.TIMESTAMP(timezone=True),
            server_default=sa.text("NOW()"),
            nullable=False,
        ),
        sa.CheckConstraint(
            "length(justification) > 0", name="ck_risk_adjustments_justification_present"
        ),
        sa.CheckConstraint(
            "old_score IS NULL OR difference = new_score - old_score",
            name="ck_risk_adjustments_difference_consistent",
        ),
        sa.ForeignKeyConstraint(
            ["assessment_id"],
            ["assessments.id"],
            name="fk_risk_adjustments_assessment_id_assessments",
            ondelete="RESTRICT",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_risk_adjustments"),
    )
    op.create_index(
        "idx_risk_adjustments_assessment_created",
        "risk_adjustments",
        ["assessment_id", "created_at", "id"],
    )

    # Referrals
    op.create_table(
        "referrals",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("assessment_id", postgresql.UUID(as_uuid=True), nullable=False),
        *_patient_snapshot(required=False),
        sa.Column("source_facility_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("target_facility_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("referring_user_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("assigned_doctor_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("priority", sa.VARCHAR(length=20), server_default="Medium", nullable=False),
        sa.Column("urgency", sa.VARCHAR(length=20), server_default="Routine", nullable=False),
        sa.Column("referral_type", sa.VARCHAR(length=100), nullable=True),
        sa.Column("chief_complaint", sa.Text(), nullable=True),
        sa.Column("clinical_notes", sa.Text(), nullable=True),
        sa.Column("required_services", sa.JSON(), nullable=True),
        sa.Column("status", sa.VARCHAR(length=20), server_default="pending", nullable=False),
        sa.Column("status_notes", sa.Text(), nullable=True),
        sa.Column("accepted_at", postgresql.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("rejected_at", postgresql.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("in_transit_at", postgresql.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("arrived_at", postgresql.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("in_progress_at", postgresql.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("completed_at", postgresql.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("cancelled_at", postgresql.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("transport_method", sa.VARCHAR(length=20), nullable=True),
        sa.Column("appointment_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("outcome", sa.VARCHAR(length=20), nullable=True),
        sa.Column("treatment_summary", sa.Text(), nullable=True),
        sa.Column("diagnosis", sa.Text(), nullable=True),
        sa.Column("recommendations", sa.Text(), nullable=True),
        sa.Column("requires_follow_up", sa.Boolean(), server_default="0", nullable=False),
        sa.Column("follow_up_date", sa.Date(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "status IN ('pending', 'accepted', 'in_transit', 'arrived', 'in_progress', "
            "'completed', 'rejected', 'cancelled')",
            name="ck_referrals_status",
        ),
        sa.CheckConstraint(
            "priority IN ('Low', 'Medium', 'High', 'Critical')", name="ck_referrals_priority"
        ),
        sa.CheckConstraint(
            "urgency IN ('Routine', 'Urgent', 'Emergency')", name="ck_referrals_urgency"
        ),
        sa.CheckConstraint(
            "outcome IS NULL OR outcome IN ('Improved', 'Stable', 'Deteriorated', 'Deceased', "
            "'Unknown')",
            name="ck_referrals_outcome",
        ),
        sa.ForeignKeyConstraint(
            ["assessment_id"],
            ["assessments.id"],
            name="fk_referrals_assessment_id_assessments",
            ondelete="RESTRICT",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_referrals"),
    )
    op.create_index("idx_referrals_assessment_id", "referrals", ["assessment_id"])
    op.create_index("idx_referrals_target_status", "referrals", ["target_facility_id", "status"])
    op.create_index("idx_referrals_source_status", "referrals", ["source_facility_id", "status"])
    op.create_index("idx_referrals_priority", "referrals", ["priority"])
    op.create_index("idx_referrals_created_at", "referrals", ["created_at"])

    # Referral audit trail
    op.create_table(
        "referral_history",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("referral_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("actor_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("actor_role", sa.VARCHAR(length=50), nullable=True),
        sa.Column("action", sa.VARCHAR(length=30), nullable=False),
        sa.Column("previous_status", sa.VARCHAR(length=20), nullable=True),
        sa.Column("new_status", sa.VARCHAR(length=20), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.Column("ip_address", sa.VARCHAR(length=45), nullable=True),
        sa.Column("user_agent", sa.Text(), nullable=True),
        sa.Column("request_id", sa.VARCHAR(length=64), nullable=True),
        sa.Column(
            "created_at",
            postgresql.TIMESTAMP(timezone=True),
            server_default=sa.text("NOW()"),
            nullable=False,
        ),
        sa.ForeignKeyConstraint(
            ["referral_id"],
            ["referrals.id"],
            name="fk_referral_history_referral_id_referrals",
            ondelete="RESTRICT",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_referral_history"),
    )
    op.create_index(
        "idx_referral_history_referral_created",
        "referral_history",
        ["referral_id", "created_at", "id"],
    )

    # Appointments
    op.create_table(
        "appointments",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("referral_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("facility_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("doctor_id", postgresql.UUID(as_uuid=True), nullable=True),
        *_patient_snapshot(required=True),
        sa.Column("start_at", postgresql.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("duration_minutes", sa.Integer(), nullable=False),
        sa.Column("end_at", postgresql.TIMESTAMP(timezone=True), nullable=False),
        sa.Column(
            "appointment_type",
            sa.VARCHAR(length=30),
            server_default="consultation",
            nullable=False,
        ),
        sa.Column("reason_for_visit", sa.Text(), nullable=True),
        sa.Column("status", sa.VARCHAR(length=20), server_default="scheduled", nullable=False),
        sa.Column("status_notes", sa.Text(), nullable=True),
        sa.Column("is_confirmed", sa.Boolean(), server_default="0", nullable=False),
        sa.Column("confirmed_at", postgresql.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("confirmation_method", sa.VARCHAR(length=20), nullable=True),
        sa.Column("confirmation_token", sa.VARCHAR(length=64), nullable=True),
        sa.Column("token_expires_at", postgresql.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("checked_in_at", postgresql.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("checked_in_by", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("started_at", postgresql.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("completed_at", postgresql.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("visit_summary", sa.Text(), nullable=True),
        sa.Column("next_steps", sa.Text(), nullable=True),
        sa.Column("cancelled_at", postgresql.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("cancelled_by", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("cancellation_reason", sa.Text(), nullable=True),
        sa.Column("rescheduled_from_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("rescheduled_to_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("rescheduled_at", postgresql.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("reschedule_reason", sa.Text(), nullable=True),
        sa.Column("booked_by", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("booking_source", sa.VARCHAR(length=20), server_default="web", nullable=False),
        sa.Column("from_waiting_list", sa.Boolean(), server_default="0", nullable=False),
        sa.Column("waiting_list_entry_id", postgresql.UUID(as_uuid=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "status IN ('scheduled', 'confirmed', 'checked_in', 'in_progress', 'completed', "
            "'cancelled', 'no_show', 'rescheduled')",
            name="ck_appointments_status",
        ),
        sa.CheckConstraint("duration_minutes > 0", name="ck_appointments_duration_positive"),
        sa.CheckConstraint("end_at > start_at", name="ck_appointments_end_after_start"),
        sa.ForeignKeyConstraint(
            ["referral_id"],
            ["referrals.id"],
            name="fk_appointments_referral_id_referrals",
            ondelete="SET NULL",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_appointments"),
        sa.UniqueConstraint("confirmation_token", name="uq_appointments_confirmation_token"),
    )
    op.create_index("idx_appointments_doctor_start", "appointments", ["doctor_id", "start_at"])
    op.create_index("idx_appointments_facility_start", "appointments", ["facility_id", "start_at"])
    op.create_index("idx_appointments_status", "appointments", ["status"])
    op.create_index("idx_appointments_referral_id", "appointments", ["referral_id"])

    # Doctor availability reference data
    op.create_table(
        "doctor_availability",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("doctor_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("facility_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("schedule_type", sa.VARCHAR(length=20), nullable=False),
        sa.Column("day_of_week", sa.Integer(), nullable=True),
        sa.Column("specific_date", sa.Date(), nullable=True),
        sa.Column("start_time", sa.Time(), nullable=True),
        sa.Column("end_time", sa.Time(), nullable=True),
        sa.Column("slot_duration_minutes", sa.Integer(), server_default="30", nullable=False),
        sa.Column("buffer_time_minutes", sa.Integer(), server_default="0", nullable=False),
        sa.Column("is_available", sa.Boolean(), server_default="1", nullable=False),
        sa.Column("unavailability_reason", sa.Text(), nullable=True),
        sa.Column("effective_from", sa.Date(), nullable=True),
        sa.Column("effective_until", sa.Date(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "schedule_type IN ('regular', 'specific', 'blocked')",
            name="ck_doctor_availability_schedule_type",
        ),
        sa.CheckConstraint(
            "day_of_week IS NULL OR day_of_week BETWEEN 1 AND 7",
            name="ck_doctor_availability_day_of_week_range",
        ),
        sa.CheckConstraint(
            "buffer_time_minutes >= 0", name="ck_doctor_availability_buffer_non_negative"
        ),
        sa.PrimaryKeyConstraint("id", name="pk_doctor_availability"),
    )
    op.create_index(
        "idx_doctor_availability_doctor_facility",
        "doctor_availability",
        ["doctor_id", "facility_id"],
    )
    op.create_index(
        "idx_doctor_availability_specific_date", "doctor_availability", ["specific_date"]
    )

    # Waiting list
    op.create_table(
        "waiting_list_entries",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        *_patient_snapshot(required=True),
        sa.Column("facility_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("preferred_doctor_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("referral_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("reason_for_visit", sa.Text(), nullable=True),
        sa.Column("preferred_date_from", sa.Date(), nullable=True),
        sa.Column("preferred_date_to", sa.Date(), nullable=True),
        sa.Column("preferred_time_slots", sa.JSON(), nullable=True),
        sa.Column("preferred_days_of_week", sa.JSON(), nullable=True),
        sa.Column("duration_minutes", sa.Integer(), nullable=True),
        sa.Column("priority", sa.VARCHAR(length=20), server_default="Medium", nullable=False),
        sa.Column("priority_reason", sa.Text(), nullable=True),
        sa.Column("status", sa.VARCHAR(length=20), server_default="active", nullable=False),
        sa.Column("position", sa.Integer(), nullable=True),
        sa.Column("contact_attempts", sa.Integer(), server_default="0", nullable=False),
        sa.Column("last_contacted_at", postgresql.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("contact_notes", sa.Text(), nullable=True),
        sa.Column("appointment_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("scheduled_at", postgresql.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("cancelled_at", postgresql.TIMESTAMP(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "status IN ('active', 'scheduled', 'cancelled', 'expired')",
            name="ck_waiting_list_entries_status",
        ),
        sa.CheckConstraint(
            "priority IN ('Low', 'Medium', 'High', 'Urgent')",
            name="ck_waiting_list_entries_priority",
        ),
        sa.ForeignKeyConstraint(
            ["appointment_id"],
            ["appointments.id"],
            name="fk_waiting_list_entries_appointment_id_appointments",
            ondelete="SET NULL",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_waiting_list_entries"),
    )
    op.create_index(
        "idx_waiting_list_facility_status_position",
        "waiting_list_entries",
        ["facility_id", "status", "position"],
    )
    op.create_index("idx_waiting_list_created_at", "waiting_list_entries", ["created_at"])

    # Workflow event outbox
    op.create_table(
        "workflow_events",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("entity_type", sa.VARCHAR(length=30), nullable=False),
        sa.Column("entity_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("event_type", sa.VARCHAR(length=50), nullable=False),
        sa.Column("from_status", sa.VARCHAR(length=30), nullable=True),
        sa.Column("to_status", sa.VARCHAR(length=30), nullable=True),
        sa.Column("actor_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("actor_role", sa.VARCHAR(length=50), nullable=True),
        sa.Column("alert_triggered", sa.Boolean(), nullable=True),
        sa.Column("payload", sa.JSON(), nullable=True),
        sa.Column(
            "occurred_at",
            postgresql.TIMESTAMP(timezone=True),
            server_default=sa.text("NOW()"),
            nullable=False,
        ),
        sa.Column("published_at", postgresql.TIMESTAMP(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_workflow_events"),
    )
    op.create_index(
        "idx_workflow_events_entity",
        "workflow_events",
        ["entity_type", "entity_id", "occurred_at"],
    )
    op.create_index(
        "idx_workflow_events_unpublished",
        "workflow_events",
        ["occurred_at"],
        postgresql_where=sa.text("published_at IS NULL"),
    )


def downgrade() -> None:
    """Downgrade database schema."""
    op.drop_index("idx_workflow_events_unpublished", table_name="workflow_events")
    op.drop_index("idx_workflow_events_entity", table_name="workflow_events")
    op.drop_table("workflow_events")

    op.drop_index("idx_waiting_list_created_at", table_name="waiting_list_entries")
    op.drop_index("idx_waiting_list_facility_status_position", table_name="waiting_list_entries")
    op.drop_table("waiting_list_entries")

    op.drop_index("idx_doctor_availability_specific_date", table_name="doctor_availability")
    op.drop_index("idx_doctor_availability_doctor_facility", table_name="doctor_availability")
    op.drop_table("doctor_availability")

    op.drop_index("idx_appointments_referral_id", table_name="appointments")
    op.drop_index("idx_appointments_status", table_name="appointments")
    op.drop_index("idx_appointments_facility_start", table_name="appointments")
    op.drop_index("idx_appointments_doctor_start", table_name="appointments")
    op.drop_table("appointments")

    op.drop_index("idx_referral_history_referral_created", table_name="referral_history")
    op.drop_table("referral_history")

    op.drop_index("idx_referrals_created_at", table_name="referrals")
    op.drop_index("idx_referrals_priority", table_name="referrals")
    op.drop_index("idx_referrals_source_status", table_name="referrals")
    op.drop_index("idx_referrals_target_status", table_name="referrals")
    op.drop_index("idx_referrals_assessment_id", table_name="referrals")
    op.drop_table("referrals")

    op.drop_index("idx_risk_adjustments_assessment_created", table_name="risk_adjustments")
    op.drop_table("risk_adjustments")

    op.drop_index("idx_assessments_created_at", table_name="assessments")
    op.drop_index("idx_assessments_final_risk_level", table_name="assessments")
    op.drop_index("idx_assessments_status", table_name="assessments")
    op.drop_table("assessments")
