"""Derived per-day dose status cache."""
from __future__ import annotations

import enum
import uuid
from datetime import date, datetime

from sqlalchemy import Boolean, Date, DateTime, Enum, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from dosetrack.db.base import Base


class DayStatusType(str, enum.Enum):
    """Aggregate state of a calendar day's dose events."""

    NONE = "NONE"
    SCHEDULED = "SCHEDULED"
    PARTIAL = "PARTIAL"
    ALL_TAKEN = "ALL_TAKEN"
    MISSED = "MISSED"


class DayStatus(Base):
    """Cached aggregate of one owner's dose events on one local calendar day.

    Never a source of truth: rows can be deleted at any time and are rebuilt
    from ``dose_events``. ``timezone`` and ``is_past_date`` record the
    conditions the row was computed under so readers can spot stale rows.
    """

    __tablename__ = "day_statuses"
    __table_args__ = (UniqueConstraint("owner_id", "day", name="uq_day_status_owner_day"),)

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    owner_id: Mapped[uuid.UUID] = mapped_column(nullable=False)
    day: Mapped[date] = mapped_column(Date(), nullable=False)
    status: Mapped[DayStatusType] = mapped_column(Enum(DayStatusType), nullable=False)
    total_count: Mapped[int] = mapped_column(Integer(), nullable=False, default=0)
    planned_count: Mapped[int] = mapped_column(Integer(), nullable=False, default=0)
    taken_count: Mapped[int] = mapped_column(Integer(), nullable=False, default=0)
    timezone: Mapped[str] = mapped_column(String(64), nullable=False, default="UTC")
    is_past_date: Mapped[bool] = mapped_column(Boolean(), nullable=False, default=False)
    computed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
