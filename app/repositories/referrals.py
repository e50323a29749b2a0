"""Referral and referral history queries."""

from typing import Any
from uuid import UUID

from sqlalchemy import ColumnElement, Select, case, insert, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.referrals import referral_history, referrals
from app.repositories.common import not_deleted, paginate, to_record
from app.schemas.referrals import ReferralFilters, ReferralPriority

# Critical first when listing
PRIORITY_ORDER = case(
    {priority.value: -priority.rank for priority in ReferralPriority},
    value=referrals.c.priority,
    else_=0,
)


def open_referrals() -> Select:
    """Scope: referrals that have not been tombstoned."""
    return select(referrals).where(not_deleted(referrals))


def history_for(referral_id: UUID) -> Select:
    """Scope: history of one referral, newest first."""
    return (
        select(referral_history)
        .where(referral_history.c.referral_id == referral_id)
        .order_by(referral_history.c.created_at.desc(), referral_history.c.id.desc())
    )


async def get_referral(
    db: AsyncSession,
    referral_id: UUID,
    for_update: bool = False,
) -> dict[str, Any] | None:
    stmt = open_referrals().where(referrals.c.id == referral_id)
    if for_update:
        stmt = stmt.with_for_update()
    result = await db.execute(stmt)
    row = result.fetchone()
    return to_record(row) if row else None


async def insert_referral(db: AsyncSession, values: dict[str, Any]) -> dict[str, Any]:
    stmt = insert(referrals).values(**values).returning(referrals)
    result = await db.execute(stmt)
    return to_record(result.fetchone())


async def update_referral(
    db: AsyncSession,
    referral_id: UUID,
    values: dict[str, Any],
) -> dict[str, Any]:
    stmt = (
        update(referrals)
        .where(referrals.c.id == referral_id)
        .values(**values)
        .returning(referrals)
    )
    result = await db.execute(stmt)
    return to_record(result.fetchone())


async def list_referrals(
    db: AsyncSession,
    filters: ReferralFilters,
) -> tuple[int, list[dict[str, Any]]]:
    conditions: list[ColumnElement[bool]] = [not_deleted(referrals)]

    if filters.status:
        conditions.append(referrals.c.status == filters.status.value)

    if filters.priority:
        conditions.append(referrals.c.priority == filters.priority.value)

    if filters.urgency:
        conditions.append(referrals.c.urgency == filters.urgency.value)

    if filters.target_facility_id:
        conditions.append(referrals.c.target_facility_id == filters.target_facility_id)

    if filters.source_facility_id:
        conditions.append(referrals.c.source_facility_id == filters.source_facility_id)

    if filters.assigned_doctor_id:
        conditions.append(referrals.c.assigned_doctor_id == filters.assigned_doctor_id)

    return await paginate(
        db,
        referrals,
        conditions,
        [PRIORITY_ORDER, referrals.c.created_at.asc()],
        filters.page,
        filters.page_size,
    )


async def insert_history(db: AsyncSession, values: dict[str, Any]) -> dict[str, Any]:
    stmt = insert(referral_history).values(**values).returning(referral_history)
    result = await db.execute(stmt)
    return to_record(result.fetchone())


async def list_history(db: AsyncSession, referral_id: UUID) -> list[dict[str, Any]]:
    result = await db.execute(history_for(referral_id))
    return [to_record(row) for row in result.fetchall()]
