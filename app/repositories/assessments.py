"""Assessment and risk-adjustment queries."""

from typing import Any
from uuid import UUID

from sqlalchemy import ColumnElement, Select, insert, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.assessments import assessments, risk_adjustments
from app.repositories.common import not_deleted, paginate, to_record
from app.schemas.assessments import AssessmentFilters


def open_assessments() -> Select:
    """Scope: assessments that have not been closed."""
    return select(assessments).where(not_deleted(assessments))


def ledger_for(assessment_id: UUID) -> Select:
    """Scope: ledger entries of one assessment, oldest first."""
    return (
        select(risk_adjustments)
        .where(risk_adjustments.c.assessment_id == assessment_id)
        .order_by(risk_adjustments.c.created_at.asc(), risk_adjustments.c.id.asc())
    )


async def get_assessment(
    db: AsyncSession,
    assessment_id: UUID,
    for_update: bool = False,
) -> dict[str, Any] | None:
    stmt = open_assessments().where(assessments.c.id == assessment_id)
    if for_update:
        stmt = stmt.with_for_update()
    result = await db.execute(stmt)
    row = result.fetchone()
    return to_record(row) if row else None


async def get_by_external_id(db: AsyncSession, external_id: str) -> dict[str, Any] | None:
    """Look up an assessment by its intake idempotency key, closed or not."""
    stmt = select(assessments).where(assessments.c.external_id == external_id)
    result = await db.execute(stmt)
    row = result.fetchone()
    return to_record(row) if row else None


async def insert_assessment(db: AsyncSession, values: dict[str, Any]) -> dict[str, Any]:
    stmt = insert(assessments).values(**values).returning(assessments)
    result = await db.execute(stmt)
    return to_record(result.fetchone())


async def update_assessment(
    db: AsyncSession,
    assessment_id: UUID,
    values: dict[str, Any],
) -> dict[str, Any]:
    stmt = (
        update(assessments)
        .where(assessments.c.id == assessment_id)
        .values(**values)
        .returning(assessments)
    )
    result = await db.execute(stmt)
    return to_record(result.fetchone())


async def list_assessments(
    db: AsyncSession,
    filters: AssessmentFilters,
) -> tuple[int, list[dict[str, Any]]]:
    conditions: list[ColumnElement[bool]] = [not_deleted(assessments)]

    if filters.status:
        conditions.append(assessments.c.status == filters.status.value)

    if filters.risk_level:
        conditions.append(assessments.c.current_risk_level == filters.risk_level.value)

    return await paginate(
        db,
        assessments,
        conditions,
        [assessments.c.created_at.desc()],
        filters.page,
        filters.page_size,
    )


async def insert_adjustment(db: AsyncSession, values: dict[str, Any]) -> dict[str, Any]:
    stmt = insert(risk_adjustments).values(**values).returning(risk_adjustments)
    result = await db.execute(stmt)
    return to_record(result.fetchone())


async def list_adjustments(db: AsyncSession, assessment_id: UUID) -> list[dict[str, Any]]:
    result = await db.execute(ledger_for(assessment_id))
    return [to_record(row) for row in result.fetchall()]

