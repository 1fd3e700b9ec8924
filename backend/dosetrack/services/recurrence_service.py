"""Expansion of dosing templates into concrete dose instants.

Everything here is pure and synchronous. Inputs are expected to have passed
:func:`validate_recurrence`; the expander itself does not re-check them.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Iterator, Sequence
from dataclasses import dataclass
from datetime import UTC, date, datetime, time, timedelta
from zoneinfo import ZoneInfo

from dosetrack.core.clock import coerce_utc, resolve_timezone
from dosetrack.services.errors import ScheduleValidationError

DEFAULT_HORIZON_DAYS = 365

_TIME_PATTERN = re.compile(r"^([01][0-9]|2[0-3]):([0-5][0-9])$")


def parse_time_of_day(value: str) -> time:
    """Parse a strict ``HH:MM`` string."""
    match = _TIME_PATTERN.match(value)
    if match is None:
        raise ScheduleValidationError(f"Invalid time of day {value!r}; expected HH:MM")
    return time(int(match.group(1)), int(match.group(2)))


def resolve_end_date(
    date_start: date,
    date_end: date | None,
    *,
    horizon_days: int = DEFAULT_HORIZON_DAYS,
) -> date:
    """Last calendar day to generate; open-ended templates stop at the horizon."""
    if date_end is not None:
        return date_end
    return date_start + timedelta(days=horizon_days)


def compute_date_end(date_start: date, duration_days: int) -> date | None:
    """``date_start + duration_days``, or ``None`` (open-ended) for a zero duration."""
    if duration_days > 0:
        return date_start + timedelta(days=duration_days)
    return None


def validate_recurrence(
    *,
    frequency_days: Iterable[int],
    time_of_day: Sequence[str],
    date_start: date,
    date_end: date | None = None,
    timezone: str | None = None,
) -> None:
    """Reject recurrence input the expander cannot handle."""
    weekdays = list(frequency_days)
    if not weekdays:
        raise ScheduleValidationError("At least one weekday must be selected")
    for weekday in weekdays:
        if isinstance(weekday, bool) or not isinstance(weekday, int) or not 1 <= weekday <= 7:
            raise ScheduleValidationError(f"Invalid weekday {weekday!r}; expected 1-7")
    if not time_of_day:
        raise ScheduleValidationError("At least one time of day must be specified")
    for value in time_of_day:
        if not isinstance(value, str):
            raise ScheduleValidationError(f"Invalid time of day {value!r}; expected HH:MM")
        parse_time_of_day(value)
    if len(set(time_of_day)) != len(time_of_day):
        raise ScheduleValidationError("Times of day must be unique")
    if date_end is not None and date_end < date_start:
        raise ScheduleValidationError("date_end must be on or after date_start")
    if timezone is not None:
        try:
            resolve_timezone(timezone)
        except ValueError as exc:
            raise ScheduleValidationError(str(exc)) from exc


@dataclass(slots=True, frozen=True)
class Recurrence:
    """A validated recurrence rule.

    Iterating a ``Recurrence`` yields aware UTC instants in ascending order.
    The object is immutable, so every iteration restarts from ``date_start``.
    """

    date_start: date
    date_end: date
    weekdays: frozenset[int]
    times: tuple[time, ...]
    tz: ZoneInfo

    @classmethod
    def build(
        cls,
        *,
        date_start: date,
        date_end: date | None,
        frequency_days: Iterable[int],
        time_of_day: Iterable[str],
        timezone: str | ZoneInfo | None = None,
        horizon_days: int = DEFAULT_HORIZON_DAYS,
    ) -> "Recurrence":
        tz = timezone if isinstance(timezone, ZoneInfo) else resolve_timezone(timezone)
        return cls(
            date_start=date_start,
            date_end=resolve_end_date(date_start, date_end, horizon_days=horizon_days),
            weekdays=frozenset(frequency_days),
            times=tuple(sorted(parse_time_of_day(value) for value in time_of_day)),
            tz=tz,
        )

    def __iter__(self) -> Iterator[datetime]:
        return self.instants()

    def matching_days(self) -> Iterator[date]:
        """Calendar days in range whose ISO weekday is selected."""
        current = self.date_start
        while current <= self.date_end:
            # isoweekday() already folds Sunday to 7
            if current.isoweekday() in self.weekdays:
                yield current
            current += timedelta(days=1)

    def instants(self, *, after: datetime | None = None) -> Iterator[datetime]:
        """Yield dose instants; with ``after`` only those strictly later than it."""
        cutoff = coerce_utc(after) if after is not None else None
        for day in self.matching_days():
            for instant in self.day_instants(day):
                if cutoff is not None and instant <= cutoff:
                    continue
                yield instant

    def day_instants(self, day: date) -> list[datetime]:
        """Sorted, distinct UTC instants for one calendar day.

        A wall-clock time skipped by a DST jump resolves to the pre-transition
        offset, so it can sort after a later time or collapse onto one.
        """
        instants = {
            datetime.combine(day, wall_clock, tzinfo=self.tz).astimezone(UTC)
            for wall_clock in self.times
        }
        return sorted(instants)


def expand_dose_instants(
    *,
    date_start: date,
    date_end: date | None,
    frequency_days: Iterable[int],
    time_of_day: Iterable[str],
    timezone: str | ZoneInfo | None = None,
    horizon_days: int = DEFAULT_HORIZON_DAYS,
) -> list[datetime]:
    """Full expansion: every instant of the template, past ones included."""
    recurrence = Recurrence.build(
        date_start=date_start,
        date_end=date_end,
        frequency_days=frequency_days,
        time_of_day=time_of_day,
        timezone=timezone,
        horizon_days=horizon_days,
    )
    return list(recurrence)


def expand_future_dose_instants(
    *,
    date_start: date,
    date_end: date | None,
    frequency_days: Iterable[int],
    time_of_day: Iterable[str],
    now: datetime,
    timezone: str | ZoneInfo | None = None,
    horizon_days: int = DEFAULT_HORIZON_DAYS,
) -> list[datetime]:
    """Future-only expansion used when regenerating after an edit."""
    recurrence = Recurrence.build(
        date_start=date_start,
        date_end=date_end,
        frequency_days=frequency_days,
        time_of_day=time_of_day,
        timezone=timezone,
        horizon_days=horizon_days,
    )
    return list(recurrence.instants(after=now))
