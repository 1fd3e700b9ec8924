"""Per-day dose status cache.

Rows in ``day_statuses`` are derived from ``dose_events`` and can be dropped or
rebuilt at any time. Writers refresh affected days in the background; readers
recompute anything missing or stale before answering.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, datetime

from fastapi import BackgroundTasks
from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from dosetrack.core.clock import coerce_utc, day_bounds, iter_dates, local_date, resolve_timezone
from dosetrack.core.config import get_settings
from dosetrack.db.dialects import conflict_insert
from dosetrack.db.session import SessionFactory, get_sessionmaker, session_scope
from dosetrack.models import DayStatus, DayStatusType, DoseEvent, DoseEventStatus

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class DayCounts:
    total: int
    planned: int
    taken: int


def derive_day_status(
    total: int, planned: int, taken: int, *, is_past_date: bool
) -> DayStatusType:
    """Map a day's counts to its status; rules are checked in order."""
    if total == 0:
        return DayStatusType.NONE
    if taken == total:
        return DayStatusType.ALL_TAKEN
    if taken == 0 and is_past_date:
        return DayStatusType.MISSED
    if planned == total and not is_past_date:
        return DayStatusType.SCHEDULED
    return DayStatusType.PARTIAL


def collect_local_dates(instants: Iterable[datetime], timezone: str) -> set[date]:
    """Distinct calendar dates the instants fall on in ``timezone``."""
    tz = resolve_timezone(timezone)
    return {local_date(instant, tz) for instant in instants}


async def count_day_events(
    session: AsyncSession,
    *,
    owner_id: uuid.UUID,
    day: date,
    timezone: str,
) -> DayCounts:
    """Single aggregate over the owner's events on a local calendar day."""
    start_utc, end_utc = day_bounds(day, resolve_timezone(timezone))
    result = await session.execute(
        select(DoseEvent.status, func.count(DoseEvent.id))
        .where(
            DoseEvent.owner_id == owner_id,
            DoseEvent.date_time >= start_utc,
            DoseEvent.date_time < end_utc,
        )
        .group_by(DoseEvent.status)
    )
    by_status = {status: count for status, count in result.all()}
    planned = int(by_status.get(DoseEventStatus.PLANNED, 0))
    taken = int(by_status.get(DoseEventStatus.DONE, 0))
    return DayCounts(total=planned + taken, planned=planned, taken=taken)


async def recompute_day_status(
    session: AsyncSession,
    *,
    owner_id: uuid.UUID,
    day: date,
    timezone: str,
    now: datetime,
) -> DayStatusType:
    """Re-derive one day from current dose events, upsert the row and commit."""
    tz = resolve_timezone(timezone)
    counts = await count_day_events(session, owner_id=owner_id, day=day, timezone=timezone)
    is_past = day < local_date(now, tz)
    status = derive_day_status(
        counts.total, counts.planned, counts.taken, is_past_date=is_past
    )
    values = {
        "status": status,
        "total_count": counts.total,
        "planned_count": counts.planned,
        "taken_count": counts.taken,
        "timezone": timezone,
        "is_past_date": is_past,
        "computed_at": coerce_utc(now),
    }
    stmt = conflict_insert(session, DayStatus).values(
        id=uuid.uuid4(), owner_id=owner_id, day=day, **values
    )
    stmt = stmt.on_conflict_do_update(index_elements=["owner_id", "day"], set_=values)
    await session.execute(stmt)
    await session.commit()
    return status


async def recompute_day_statuses(
    *,
    owner_id: uuid.UUID,
    days: Iterable[date],
    timezone: str,
    now: datetime,
    session_factory: SessionFactory | None = None,
    concurrency: int | None = None,
) -> dict[date, DayStatusType]:
    """Recompute many days concurrently, one session and transaction per day.

    A failing day is logged and left out of the result; its siblings still
    complete. The missing row is rebuilt by the next range read.
    """
    unique_days = sorted(set(days))
    if not unique_days:
        return {}
    factory = session_factory or get_sessionmaker()
    limit = concurrency or get_settings().day_status_recompute_concurrency
    semaphore = asyncio.Semaphore(limit)

    async def _one(day: date) -> DayStatusType:
        async with semaphore:
            async with session_scope(factory) as session:
                return await recompute_day_status(
                    session, owner_id=owner_id, day=day, timezone=timezone, now=now
                )

    outcomes = await asyncio.gather(
        *(_one(day) for day in unique_days), return_exceptions=True
    )
    computed: dict[date, DayStatusType] = {}
    for day, outcome in zip(unique_days, outcomes):
        if isinstance(outcome, BaseException):
            logger.error(
                "Day status recompute failed for owner %s on %s",
                owner_id,
                day.isoformat(),
                exc_info=outcome,
            )
            continue
        computed[day] = outcome
    return computed


async def invalidate_day_statuses(
    session: AsyncSession,
    *,
    owner_id: uuid.UUID,
    days: Iterable[date],
) -> int:
    """Delete cached rows so the next read recomputes them."""
    targets = sorted(set(days))
    if not targets:
        return 0
    result = await session.execute(
        delete(DayStatus).where(DayStatus.owner_id == owner_id, DayStatus.day.in_(targets))
    )
    await session.commit()
    return max(result.rowcount or 0, 0)


async def refresh_day_statuses(
    session: AsyncSession,
    *,
    owner_id: uuid.UUID,
    days: Iterable[date],
    timezone: str,
    now: datetime,
    session_factory: SessionFactory | None = None,
) -> dict[date, DayStatusType]:
    """Invalidate, then immediately recompute, a set of days."""
    targets = sorted(set(days))
    await invalidate_day_statuses(session, owner_id=owner_id, days=targets)
    return await recompute_day_statuses(
        owner_id=owner_id,
        days=targets,
        timezone=timezone,
        now=now,
        session_factory=session_factory,
    )


async def _refresh_in_background(
    owner_id: uuid.UUID,
    days: list[date],
    timezone: str,
    now: datetime,
) -> None:
    try:
        await recompute_day_statuses(
            owner_id=owner_id, days=days, timezone=timezone, now=now
        )
    except Exception:  # pragma: no cover - background refresh is best effort
        logger.exception("Background day status refresh failed for owner %s", owner_id)


def schedule_day_status_refresh(
    background_tasks: BackgroundTasks,
    *,
    owner_id: uuid.UUID,
    days: Iterable[date],
    timezone: str,
    now: datetime,
) -> None:
    """Queue a recompute of affected days after the response is sent."""
    targets = sorted(set(days))
    if not targets:
        logger.debug("No affected days for owner %s; skipping refresh", owner_id)
        return
    background_tasks.add_task(_refresh_in_background, owner_id, targets, timezone, now)


async def read_day_status_range(
    session: AsyncSession,
    *,
    owner_id: uuid.UUID,
    date_from: date,
    date_to: date,
    timezone: str,
    now: datetime,
) -> dict[str, DayStatusType]:
    """Complete ``YYYY-MM-DD -> status`` map for every day in range.

    Rows that are missing, were computed for another timezone, or have crossed
    from future to past since they were computed are recomputed before
    returning.
    """
    if date_from > date_to:
        raise ValueError("date_from must be on or before date_to")
    tz = resolve_timezone(timezone)
    today = local_date(now, tz)

    result = await session.execute(
        select(DayStatus).where(
            DayStatus.owner_id == owner_id,
            DayStatus.day >= date_from,
            DayStatus.day <= date_to,
        )
    )
    cached = {row.day: row for row in result.scalars().all()}

    statuses: dict[str, DayStatusType] = {}
    for day in iter_dates(date_from, date_to):
        row = cached.get(day)
        fresh = (
            row is not None
            and row.timezone == timezone
            and row.is_past_date == (day < today)
        )
        if fresh:
            statuses[day.isoformat()] = row.status
            continue
        statuses[day.isoformat()] = await recompute_day_status(
            session, owner_id=owner_id, day=day, timezone=timezone, now=now
        )
    return statuses
