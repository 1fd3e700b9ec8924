"""Dosing template (recurrence rule) model."""
from __future__ import annotations

import enum
import uuid
from datetime import date
from decimal import Decimal

from sqlalchemy import JSON, Date, Enum, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from dosetrack.db.base import Base
from dosetrack.models.mixins import SoftDeleteMixin, TimestampMixin


class MealTiming(str, enum.Enum):
    """When a dose should be taken relative to a meal."""

    BEFORE = "before"
    WITH = "with"
    AFTER = "after"
    ANYTIME = "anytime"


class DosingTemplate(TimestampMixin, SoftDeleteMixin, Base):
    """Recurrence rule from which dose events are expanded."""

    __tablename__ = "dosing_templates"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    owner_id: Mapped[uuid.UUID] = mapped_column(nullable=False, index=True)
    medication_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("medications.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    quantity: Mapped[Decimal] = mapped_column(
        Numeric(10, 3), nullable=False, default=Decimal("1")
    )
    units: Mapped[str] = mapped_column(String(50), nullable=False, default="pill")
    # ISO weekday numbers, Monday=1 .. Sunday=7
    frequency_days: Mapped[list[int]] = mapped_column(JSON, nullable=False)
    # Wall-clock "HH:MM" entries interpreted in ``timezone``
    time_of_day: Mapped[list[str]] = mapped_column(JSON, nullable=False)
    duration_days: Mapped[int] = mapped_column(Integer(), nullable=False, default=0)
    date_start: Mapped[date] = mapped_column(Date(), nullable=False)
    date_end: Mapped[date | None] = mapped_column(Date(), nullable=True)
    timezone: Mapped[str] = mapped_column(String(64), nullable=False, default="UTC")
    meal_timing: Mapped[MealTiming] = mapped_column(
        Enum(MealTiming), nullable=False, default=MealTiming.ANYTIME
    )
