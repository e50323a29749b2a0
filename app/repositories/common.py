"""Query helpers shared by the repositories."""

from datetime import UTC, datetime
from typing import Any

from sqlalchemy import ColumnElement, Table, and_, func, select
from sqlalchemy.ext.asyncio import AsyncSession


def to_record(row: Any) -> dict[str, Any]:
    """
    Convert a result row to a plain dict.

    Drivers without timezone support hand back naive datetimes; every stored
    instant is UTC, so those are made aware here.
    """
    record = dict(row._mapping)
    for key, value in record.items():
        if isinstance(value, datetime) and value.tzinfo is None:
            record[key] = value.replace(tzinfo=UTC)
    return record


def not_deleted(table: Table) -> ColumnElement[bool]:
    """Filter out tombstoned rows."""
    return table.c.deleted_at.is_(None)


async def paginate(
    db: AsyncSession,
    table: Table,
    conditions: list[ColumnElement[bool]],
    order_by: list[Any],
    page: int,
    page_size: int,
) -> tuple[int, list[dict[str, Any]]]:
    """
    Count and fetch one page of rows.

    Returns:
        Total matching rows and the records on the requested page
    """
    count_stmt = select(func.count()).select_from(table).where(and_(*conditions))
    total_result = await db.execute(count_stmt)
    total = total_result.scalar() or 0

    offset = (page - 1) * page_size
    stmt = (
        select(table)
        .where(and_(*conditions))
        .order_by(*order_by)
        .limit(page_size)
        .offset(offset)
    )
    result = await db.execute(stmt)
    return total, [to_record(row) for row in result.fetchall()]
