"""Dose event model."""
from __future__ import annotations

import enum
import uuid
from datetime import datetime

from sqlalchemy import DateTime, Enum, ForeignKey, Index, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from dosetrack.db.base import Base
from dosetrack.models.mixins import TimestampMixin


class DoseEventStatus(str, enum.Enum):
    """Lifecycle of a single dose: planned until the owner marks it taken."""

    PLANNED = "PLANNED"
    DONE = "DONE"


class DoseEvent(TimestampMixin, Base):
    """One concrete, timestamped dose expanded from a template."""

    __tablename__ = "dose_events"
    __table_args__ = (
        UniqueConstraint("template_id", "date_time", name="uq_dose_event_template_instant"),
        Index("ix_dose_events_owner_date_time", "owner_id", "date_time"),
        Index("ix_dose_events_medication_status", "medication_id", "status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    template_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("dosing_templates.id", ondelete="RESTRICT"), nullable=False
    )
    medication_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("medications.id", ondelete="RESTRICT"), nullable=False
    )
    owner_id: Mapped[uuid.UUID] = mapped_column(nullable=False)
    date_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    status: Mapped[DoseEventStatus] = mapped_column(
        Enum(DoseEventStatus), nullable=False, default=DoseEventStatus.PLANNED
    )
