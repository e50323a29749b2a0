"""Time helpers shared by the workflows."""

from datetime import UTC, datetime
from zoneinfo import ZoneInfo

from app.config import settings


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(UTC)


def as_utc(dt: datetime) -> datetime:
    """Ensure a datetime is timezone-aware UTC; naive values are taken to be UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def scheduling_zone() -> ZoneInfo:
    """Zone in which availability wall-clock windows are expressed."""
    return ZoneInfo(settings.scheduling_timezone)


def to_local(dt: datetime) -> datetime:
    """Convert an instant to the scheduling zone's wall clock."""
    return as_utc(dt).astimezone(scheduling_zone())
