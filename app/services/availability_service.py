"""Doctor availability: reference data and effective-window resolution."""

from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from uuid import UUID

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.clock import scheduling_zone
from app.core.redis_client import CacheManager
from app.database import unit_of_work
from app.repositories import availability as availability_repo
from app.schemas.availability import AvailabilityCreate, AvailabilityResponse, ScheduleType

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class Window:
    """One bookable window on a concrete date."""

    start: datetime
    end: datetime
    slot_minutes: int
    buffer_minutes: int

    def contains(self, start: datetime, end: datetime) -> bool:
        return self.start <= start and end <= self.end


@dataclass(frozen=True)
class Block:
    """A blocked interval on a concrete date."""

    start: datetime
    end: datetime
    reason: str | None = None

    def intersects(self, start: datetime, end: datetime) -> bool:
        return start < self.end and self.start < end


@dataclass
class EffectiveDay:
    """Availability of one doctor at one facility on one local date."""

    on_date: date
    windows: list[Window] = field(default_factory=list)
    blocks: list[Block] = field(default_factory=list)

    def window_for(self, start: datetime, end: datetime) -> Window | None:
        """The window that holds the whole interval, if any."""
        for window in self.windows:
            if window.contains(start, end):
                return window
        return None

    def block_for(self, start: datetime, end: datetime) -> Block | None:
        for block in self.blocks:
            if block.intersects(start, end):
                return block
        return None


def _at(on_date: date, at: time) -> datetime:
    return datetime.combine(on_date, at, tzinfo=scheduling_zone())


def resolve_day(rows: list[AvailabilityResponse], on_date: date) -> EffectiveDay:
    """
    Combine availability rows into the effective schedule of one date.

    Specific-date rows replace the weekly rows for that date. Blocked rows
    always win; a blocked row without times blocks the whole day.
    """
    day = EffectiveDay(on_date=on_date)

    for row in rows:
        if row.schedule_type == ScheduleType.BLOCKED and row.specific_date == on_date:
            if row.start_time is None or row.end_time is None:
                day.blocks.append(
                    Block(
                        _at(on_date, time.min),
                        _at(on_date + timedelta(days=1), time.min),
                        row.unavailability_reason,
                    )
                )
            else:
                day.blocks.append(
                    Block(
                        _at(on_date, row.start_time),
                        _at(on_date, row.end_time),
                        row.unavailability_reason,
                    )
                )

    specific = [
        row
        for row in rows
        if row.schedule_type == ScheduleType.SPECIFIC and row.specific_date == on_date
    ]
    if specific:
        sources = [row for row in specific if row.is_available]
    else:
        sources = [
            row
            for row in rows
            if row.schedule_type == ScheduleType.REGULAR
            and row.day_of_week == on_date.isoweekday()
            and row.is_available
        ]

    for row in sources:
        if row.start_time is None or row.end_time is None:
            continue
        day.windows.append(
            Window(
                _at(on_date, row.start_time),
                _at(on_date, row.end_time),
                row.slot_duration_minutes,
                row.buffer_time_minutes,
            )
        )

    day.windows.sort(key=lambda window: window.start)
    return day


class AvailabilityService:
    """Service for doctor availability reference data."""

    def __init__(self, db: AsyncSession, cache_manager: CacheManager | None = None):
        """Initialize service with database session and optional cache manager."""
        self.db = db
        self.cache = cache_manager

    @staticmethod
    def _cache_key(doctor_id: UUID, facility_id: UUID, on_date: date) -> str:
        """Generate cache key for one doctor's rows on one date."""
        return f"availability:{doctor_id}:{facility_id}:{on_date.isoformat()}"

    async def create_availability(self, data: AvailabilityCreate) -> AvailabilityResponse:
        """
        Register an availability row synced from the facility directory.

        Args:
            data: Availability data

        Returns:
            Created availability row
        """
        values = data.model_dump()
        values["schedule_type"] = data.schedule_type.value

        async with unit_of_work(self.db):
            row = await availability_repo.insert_availability(self.db, values)

        # Invalidate cache
        if self.cache:
            self.cache.delete_pattern(f"availability:{data.doctor_id}:*")

        logger.info(
            "availability_created",
            doctor_id=str(data.doctor_id),
            facility_id=str(data.facility_id),
            schedule_type=data.schedule_type.value,
        )
        return AvailabilityResponse.model_validate(row)

    async def list_availability(
        self,
        doctor_id: UUID,
        facility_id: UUID | None = None,
    ) -> list[AvailabilityResponse]:
        """List a doctor's availability rows, optionally for one facility."""
        rows = await availability_repo.list_for_doctor(self.db, doctor_id, facility_id)
        return [AvailabilityResponse.model_validate(row) for row in rows]

    async def rows_for_date(
        self,
        doctor_id: UUID,
        facility_id: UUID,
        on_date: date,
    ) -> list[AvailabilityResponse]:
        """Rows affecting one date, from cache when available."""
        # Try cache first
        if self.cache:
            cached = self.cache.get_json(self._cache_key(doctor_id, facility_id, on_date))
            if cached is not None:
                return [AvailabilityResponse.model_validate(row) for row in cached]

        rows = [
            AvailabilityResponse.model_validate(row)
            for row in await availability_repo.rows_for_date(
                self.db, doctor_id, facility_id, on_date
            )
        ]

        # Cache result
        if self.cache:
            self.cache.set_json(
                self._cache_key(doctor_id, facility_id, on_date),
                [row.model_dump(mode="json") for row in rows],
                ttl=settings.availability_cache_ttl,
            )

        return rows

    async def effective_day(self, doctor_id: UUID, facility_id: UUID, on_date: date) -> EffectiveDay:
        """Resolve the effective windows and blocks of one local date."""
        rows = await self.rows_for_date(doctor_id, facility_id, on_date)
        return resolve_day(rows, on_date)
