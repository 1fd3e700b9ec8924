"""Time helpers shared by the scheduling services."""

from __future__ import annotations

from datetime import UTC, date, datetime, time, timedelta
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


def utcnow() -> datetime:
    """Return the current instant as an aware UTC datetime."""
    return datetime.now(UTC)


def coerce_utc(dt: datetime) -> datetime:
    """Normalize a datetime to aware UTC.

    SQLite hands back naive values for ``DateTime(timezone=True)`` columns; they
    are always written in UTC, so a naive value is interpreted as UTC.
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def resolve_timezone(name: str | None) -> ZoneInfo:
    """Return the ZoneInfo for an IANA name, raising ValueError when unknown."""
    if not name:
        return ZoneInfo("UTC")
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValueError(f"Unknown timezone: {name}") from exc


def local_date(instant: datetime, tz: ZoneInfo) -> date:
    """Calendar date an instant falls on in the given zone."""
    return coerce_utc(instant).astimezone(tz).date()


def day_bounds(target_date: date, tz: ZoneInfo) -> tuple[datetime, datetime]:
    """UTC half-open interval ``[start, end)`` covering a local calendar day."""
    local_start = datetime.combine(target_date, time.min, tzinfo=tz)
    local_end = datetime.combine(target_date + timedelta(days=1), time.min, tzinfo=tz)
    return local_start.astimezone(UTC), local_end.astimezone(UTC)


def iter_dates(date_from: date, date_to: date):
    """Yield every calendar date in ``[date_from, date_to]``."""
    current = date_from
    while current <= date_to:
        yield current
        current += timedelta(days=1)
