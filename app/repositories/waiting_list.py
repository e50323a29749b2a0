"""Waiting list queries."""

from typing import Any
from uuid import UUID

from sqlalchemy import Select, func, insert, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.waiting_list import waiting_list_entries
from app.repositories.common import not_deleted, to_record
from app.schemas.waiting_list import WaitingListStatus


def active_queue(facility_id: UUID) -> Select:
    """Scope: the active queue of one facility, by position."""
    return (
        select(waiting_list_entries)
        .where(
            waiting_list_entries.c.facility_id == facility_id,
            waiting_list_entries.c.status == WaitingListStatus.ACTIVE.value,
            not_deleted(waiting_list_entries),
        )
        .order_by(
            waiting_list_entries.c.position.asc(),
            waiting_list_entries.c.created_at.asc(),
        )
    )


async def get_entry(
    db: AsyncSession,
    entry_id: UUID,
    for_update: bool = False,
) -> dict[str, Any] | None:
    stmt = select(waiting_list_entries).where(
        waiting_list_entries.c.id == entry_id,
        not_deleted(waiting_list_entries),
    )
    if for_update:
        stmt = stmt.with_for_update()
    result = await db.execute(stmt)
    row = result.fetchone()
    return to_record(row) if row else None


async def list_active(db: AsyncSession, facility_id: UUID) -> list[dict[str, Any]]:
    result = await db.execute(active_queue(facility_id))
    return [to_record(row) for row in result.fetchall()]


async def max_position(db: AsyncSession, facility_id: UUID) -> int:
    stmt = select(func.max(waiting_list_entries.c.position)).where(
        waiting_list_entries.c.facility_id == facility_id,
        waiting_list_entries.c.status == WaitingListStatus.ACTIVE.value,
        not_deleted(waiting_list_entries),
    )
    result = await db.execute(stmt)
    return result.scalar() or 0


async def insert_entry(db: AsyncSession, values: dict[str, Any]) -> dict[str, Any]:
    stmt = insert(waiting_list_entries).values(**values).returning(waiting_list_entries)
    result = await db.execute(stmt)
    return to_record(result.fetchone())


async def update_entry(
    db: AsyncSession,
    entry_id: UUID,
    values: dict[str, Any],
) -> dict[str, Any]:
    stmt = (
        update(waiting_list_entries)
        .where(waiting_list_entries.c.id == entry_id)
        .values(**values)
        .returning(waiting_list_entries)
    )
    result = await db.execute(stmt)
    return to_record(result.fetchone())


async def compact_positions(db: AsyncSession, facility_id: UUID) -> int:
    """
    Renumber the facility's active queue as 1..N in current order.

    Returns:
        Number of entries whose position changed
    """
    changed = 0
    for index, entry in enumerate(await list_active(db, facility_id), start=1):
        if entry["position"] != index:
            await db.execute(
                update(waiting_list_entries)
                .where(waiting_list_entries.c.id == entry["id"])
                .values(position=index)
            )
            changed += 1
    return changed
