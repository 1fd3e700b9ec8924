"""Medication model with its version chain."""
from __future__ import annotations

import uuid
from decimal import Decimal

from sqlalchemy import ForeignKey, Index, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from dosetrack.db.base import Base
from dosetrack.models.mixins import SoftDeleteMixin, TimestampMixin


class Medication(TimestampMixin, SoftDeleteMixin, Base):
    """A medication as seen by its owner.

    Versioned edits never mutate a row: the old row is tombstoned and a new one
    is created pointing back at it through ``previous_medication_id``.
    """

    __tablename__ = "medications"
    __table_args__ = (Index("ix_medications_owner_deleted", "owner_id", "deleted_at"),)

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    owner_id: Mapped[uuid.UUID] = mapped_column(nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    dose: Mapped[Decimal | None] = mapped_column(Numeric(10, 3), nullable=True)
    form: Mapped[str | None] = mapped_column(String(64), nullable=True)
    previous_medication_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("medications.id", ondelete="RESTRICT"), nullable=True, index=True
    )
