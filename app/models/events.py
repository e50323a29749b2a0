"""Workflow event outbox table using SQLAlchemy Core."""

from uuid import uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Index,
    String,
    Table,
    Text,
    Uuid,
    func,
    text,
)

from app.models.metadata import metadata

# Written in the same transaction as the transition it describes
workflow_events = Table(
    "workflow_events",
    metadata,
    Column("id", Uuid, primary_key=True, default=uuid4),
    Column("entity_type", String(30), nullable=False),
    Column("entity_id", Uuid, nullable=False),
    Column("event_type", String(50), nullable=False),
    Column("from_status", String(30), nullable=True),
    Column("to_status", String(30), nullable=True),
    Column("actor_id", Uuid, nullable=True),
    Column("actor_role", String(50), nullable=True),
    Column("alert_triggered", Boolean, nullable=True),
    Column("payload", JSON, nullable=True),
    # Originating request
    Column("ip_address", String(45), nullable=True),
    Column("user_agent", Text, nullable=True),
    Column("request_id", String(64), nullable=True),
    Column("occurred_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    Column("published_at", DateTime(timezone=True), nullable=True),
    Index("idx_workflow_events_entity", "entity_type", "entity_id", "occurred_at"),
    Index(
        "idx_workflow_events_unpublished",
        "occurred_at",
        postgresql_where=text("published_at IS NULL"),
        sqlite_where=text("published_at IS NULL"),
    ),
)
