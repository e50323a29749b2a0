"""Workflow event outbox queries."""

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import func, insert, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.events import workflow_events
from app.repositories.common import to_record


async def insert_event(db: AsyncSession, values: dict[str, Any]) -> dict[str, Any]:
    stmt = insert(workflow_events).values(**values).returning(workflow_events)
    result = await db.execute(stmt)
    return to_record(result.fetchone())


async def mark_published(db: AsyncSession, event_ids: list[UUID], published_at: datetime) -> None:
    await db.execute(
        update(workflow_events)
        .where(workflow_events.c.id.in_(event_ids))
        .values(published_at=published_at)
    )


async def list_unpublished(db: AsyncSession, limit: int = 100) -> list[dict[str, Any]]:
    """Oldest events not yet handed to the publisher."""
    stmt = (
        select(workflow_events)
        .where(workflow_events.c.published_at.is_(None))
        .order_by(workflow_events.c.occurred_at.asc())
        .limit(limit)
    )
    result = await db.execute(stmt)
    return [to_record(row) for row in result.fetchall()]


async def list_for_entity(db: AsyncSession, entity_type: str, entity_id: UUID) -> list[dict[str, Any]]:
    stmt = (
        select(workflow_events)
        .where(
            workflow_events.c.entity_type == entity_type,
            workflow_events.c.entity_id == entity_id,
        )
        .order_by(workflow_events.c.occurred_at.asc())
    )
    result = await db.execute(stmt)
    return [to_record(row) for row in result.fetchall()]


async def count_unpublished(db: AsyncSession) -> int:
    stmt = (
        select(func.count())
        .select_from(workflow_events)
        .where(workflow_events.c.published_at.is_(None))
    )
    result = await db.execute(stmt)
    return result.scalar_one()
