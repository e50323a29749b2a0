"""Appointment queries, including the overlap test."""

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import ColumnElement, Select, and_, insert, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.appointments import appointments
from app.repositories.common import not_deleted, paginate, to_record
from app.schemas.appointments import AppointmentFilters, AppointmentStatus

# Statuses that no longer hold their slot
RELEASED_STATUSES = (AppointmentStatus.CANCELLED.value, AppointmentStatus.RESCHEDULED.value)


def holding_slot() -> ColumnElement[bool]:
    """Scope condition: appointments still occupying their interval."""
    return and_(
        not_deleted(appointments),
        appointments.c.status.not_in(RELEASED_STATUSES),
    )


def overlapping(
    doctor_id: UUID,
    start_at: datetime,
    end_at: datetime,
    exclude_ids: tuple[UUID, ...] = (),
) -> Select:
    """
    Scope: slot-holding bookings of one doctor intersecting ``[start_at, end_at)``.

    Half-open test: ``start < existing_end AND existing_start < end``.
    """
    stmt = select(appointments).where(
        holding_slot(),
        appointments.c.doctor_id == doctor_id,
        appointments.c.start_at < end_at,
        start_at < appointments.c.end_at,
    )
    if exclude_ids:
        stmt = stmt.where(appointments.c.id.not_in(exclude_ids))
    return stmt.order_by(appointments.c.start_at.asc())


async def find_overlapping(
    db: AsyncSession,
    doctor_id: UUID,
    start_at: datetime,
    end_at: datetime,
    exclude_ids: tuple[UUID, ...] = (),
) -> list[dict[str, Any]]:
    result = await db.execute(overlapping(doctor_id, start_at, end_at, exclude_ids))
    return [to_record(row) for row in result.fetchall()]


async def get_appointment(
    db: AsyncSession,
    appointment_id: UUID,
    for_update: bool = False,
) -> dict[str, Any] | None:
    stmt = select(appointments).where(
        appointments.c.id == appointment_id,
        not_deleted(appointments),
    )
    if for_update:
        stmt = stmt.with_for_update()
    result = await db.execute(stmt)
    row = result.fetchone()
    return to_record(row) if row else None


async def get_by_token(db: AsyncSession, token: str) -> dict[str, Any] | None:
    stmt = select(appointments).where(
        appointments.c.confirmation_token == token,
        not_deleted(appointments),
    )
    result = await db.execute(stmt)
    row = result.fetchone()
    return to_record(row) if row else None


async def insert_appointment(db: AsyncSession, values: dict[str, Any]) -> dict[str, Any]:
    stmt = insert(appointments).values(**values).returning(appointments)
    result = await db.execute(stmt)
    return to_record(result.fetchone())


async def update_appointment(
    db: AsyncSession,
    appointment_id: UUID,
    values: dict[str, Any],
) -> dict[str, Any]:
    stmt = (
        update(appointments)
        .where(appointments.c.id == appointment_id)
        .values(**values)
        .returning(appointments)
    )
    result = await db.execute(stmt)
    return to_record(result.fetchone())


async def list_appointments(
    db: AsyncSession,
    filters: AppointmentFilters,
) -> tuple[int, list[dict[str, Any]]]:
    conditions: list[ColumnElement[bool]] = [not_deleted(appointments)]

    if filters.status:
        conditions.append(appointments.c.status == filters.status.value)

    if filters.doctor_id:
        conditions.append(appointments.c.doctor_id == filters.doctor_id)

    if filters.facility_id:
        conditions.append(appointments.c.facility_id == filters.facility_id)

    if filters.referral_id:
        conditions.append(appointments.c.referral_id == filters.referral_id)

    if filters.from_date:
        conditions.append(appointments.c.start_at >= filters.from_date)

    if filters.to_date:
        conditions.append(appointments.c.start_at <= filters.to_date)

    return await paginate(
        db,
        appointments,
        conditions,
        [appointments.c.start_at.asc()],
        filters.page,
        filters.page_size,
    )


async def list_due_for_no_show(db: AsyncSession, started_before: datetime) -> list[dict[str, Any]]:
    """Scheduled or confirmed appointments that started before the cutoff without check-in."""
    stmt = (
        select(appointments)
        .where(
            not_deleted(appointments),
            appointments.c.status.in_(
                (AppointmentStatus.SCHEDULED.value, AppointmentStatus.CONFIRMED.value)
            ),
            appointments.c.checked_in_at.is_(None),
            appointments.c.start_at <= started_before,
        )
        .order_by(appointments.c.start_at.asc())
    )
    result = await db.execute(stmt)
    return [to_record(row) for row in result.fetchall()]
