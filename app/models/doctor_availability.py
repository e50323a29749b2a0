"""Doctor availability reference table using SQLAlchemy Core."""

from uuid import uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Index,
    Integer,
    String,
    Table,
    Text,
    Time,
    Uuid,
    func,
)

from app.models.metadata import metadata

doctor_availability = Table(
    "doctor_availability",
    metadata,
    Column("id", Uuid, primary_key=True, default=uuid4),
    Column("doctor_id", Uuid, nullable=False),
    Column("facility_id", Uuid, nullable=False),
    # regular: weekly (day_of_week), specific: one date, blocked: one date, never bookable
    Column("schedule_type", String(20), nullable=False),
    # ISO weekday, 1 = Monday ... 7 = Sunday
    Column("day_of_week", Integer, nullable=True),
    Column("specific_date", Date, nullable=True),
    # Wall-clock window in the scheduling zone; a blocked row without times blocks the whole day
    Column("start_time", Time, nullable=True),
    Column("end_time", Time, nullable=True),
    Column("slot_duration_minutes", Integer, nullable=False, server_default="30"),
    Column("buffer_time_minutes", Integer, nullable=False, server_default="0"),
    Column("is_available", Boolean, nullable=False, server_default="1"),
    Column("unavailability_reason", Text, nullable=True),
    Column("effective_from", Date, nullable=True),
    Column("effective_until", Date, nullable=True),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    Column("updated_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    Column("deleted_at", DateTime(timezone=True), nullable=True),
    CheckConstraint("schedule_type IN ('regular', 'specific', 'blocked')", name="schedule_type"),
    CheckConstraint(
        "day_of_week IS NULL OR day_of_week BETWEEN 1 AND 7",
        name="day_of_week_range",
    ),
    CheckConstraint("buffer_time_minutes >= 0", name="buffer_non_negative"),
    Index("idx_doctor_availability_doctor_facility", "doctor_id", "facility_id"),
    Index("idx_doctor_availability_specific_date", "specific_date"),
)
