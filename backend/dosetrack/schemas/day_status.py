"""Day status and adherence schemas."""

from __future__ import annotations

from pydantic import BaseModel

from dosetrack.models.day_status import DayStatusType


class DayStatusRange(BaseModel):
    """Every day in the requested range mapped to its status."""

    statuses: dict[str, DayStatusType]


class AdherenceSummaryRead(BaseModel):
    window_days: int
    adherence: int | None = None


class AdherenceSummaryList(BaseModel):
    items: list[AdherenceSummaryRead]
