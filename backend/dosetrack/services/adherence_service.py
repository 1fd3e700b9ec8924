"""Adherence percentages computed from the day status cache."""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import UTC, date, datetime, timedelta

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from dosetrack.core.clock import coerce_utc
from dosetrack.models import DayStatus

ADHERENCE_WINDOWS: tuple[int, ...] = (7, 30)


@dataclass(slots=True, frozen=True)
class AdherenceSummary:
    window_days: int
    adherence: int | None


def adherence_percentage(taken: int, total: int) -> int | None:
    """``None`` when there is nothing to measure, else a rounded 0-100 value."""
    if total <= 0:
        return None
    percent = round(taken / total * 100)
    return min(100, max(0, percent))


def window_bounds(window_days: int, now: datetime) -> tuple[date, date]:
    """Trailing window ending today (UTC), inclusive of both ends."""
    today = coerce_utc(now).astimezone(UTC).date()
    return today - timedelta(days=window_days - 1), today


async def calculate_adherence(
    session: AsyncSession,
    *,
    owner_id: uuid.UUID,
    window_days: int,
    now: datetime,
) -> int | None:
    """Adherence over the trailing window using cached day aggregates only."""
    if window_days not in ADHERENCE_WINDOWS:
        raise ValueError(f"Unsupported adherence window: {window_days}")
    start, end = window_bounds(window_days, now)
    result = await session.execute(
        select(
            func.coalesce(func.sum(DayStatus.total_count), 0),
            func.coalesce(func.sum(DayStatus.taken_count), 0),
        ).where(
            DayStatus.owner_id == owner_id,
            DayStatus.day >= start,
            DayStatus.day <= end,
        )
    )
    total, taken = result.one()
    return adherence_percentage(int(taken), int(total))


async def get_adherence_summaries(
    session: AsyncSession,
    *,
    owner_id: uuid.UUID,
    now: datetime,
) -> list[AdherenceSummary]:
    summaries: list[AdherenceSummary] = []
    for window in ADHERENCE_WINDOWS:
        summaries.append(
            AdherenceSummary(
                window_days=window,
                adherence=await calculate_adherence(
                    session, owner_id=owner_id, window_days=window, now=now
                ),
            )
        )
    return summaries
