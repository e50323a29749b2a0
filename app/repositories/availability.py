"""Doctor availability queries."""

from datetime import date
from typing import Any
from uuid import UUID

from sqlalchemy import Select, insert, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.doctor_availability import doctor_availability
from app.repositories.common import not_deleted, to_record


def for_doctor(doctor_id: UUID, facility_id: UUID | None = None) -> Select:
    """Scope: live availability rows of one doctor, optionally at one facility."""
    stmt = select(doctor_availability).where(
        doctor_availability.c.doctor_id == doctor_id,
        not_deleted(doctor_availability),
    )
    if facility_id is not None:
        stmt = stmt.where(doctor_availability.c.facility_id == facility_id)
    return stmt


def effective_on(stmt: Select, on_date: date) -> Select:
    """Narrow a scope to rows whose effective range contains ``on_date``."""
    return stmt.where(
        or_(
            doctor_availability.c.effective_from.is_(None),
            doctor_availability.c.effective_from <= on_date,
        ),
        or_(
            doctor_availability.c.effective_until.is_(None),
            doctor_availability.c.effective_until >= on_date,
        ),
    )


async def rows_for_date(
    db: AsyncSession,
    doctor_id: UUID,
    facility_id: UUID,
    on_date: date,
) -> list[dict[str, Any]]:
    """Every row that could affect bookings for the doctor at the facility on one date."""
    stmt = effective_on(for_doctor(doctor_id, facility_id), on_date).where(
        or_(
            doctor_availability.c.specific_date == on_date,
            doctor_availability.c.day_of_week == on_date.isoweekday(),
        )
    )
    result = await db.execute(stmt)
    return [to_record(row) for row in result.fetchall()]


async def list_for_doctor(
    db: AsyncSession,
    doctor_id: UUID,
    facility_id: UUID | None = None,
) -> list[dict[str, Any]]:
    stmt = for_doctor(doctor_id, facility_id).order_by(
        doctor_availability.c.schedule_type,
        doctor_availability.c.day_of_week,
        doctor_availability.c.specific_date,
        doctor_availability.c.start_time,
    )
    result = await db.execute(stmt)
    return [to_record(row) for row in result.fetchall()]


async def insert_availability(db: AsyncSession, values: dict[str, Any]) -> dict[str, Any]:
    stmt = insert(doctor_availability).values(**values).returning(doctor_availability)
    result = await db.execute(stmt)
    return to_record(result.fetchone())
