"""Dose event schemas."""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict

from dosetrack.models.dose_event import DoseEventStatus


class DoseEventStatusUpdate(BaseModel):
    """Mark request for a single dose event."""

    status: DoseEventStatus


class DoseEventRead(BaseModel):
    id: uuid.UUID
    template_id: uuid.UUID
    medication_id: uuid.UUID
    date_time: datetime
    status: DoseEventStatus

    model_config = ConfigDict(from_attributes=True)


class ScheduleEntryRead(BaseModel):
    """Dose event with display metadata, as shown on calendars."""

    id: uuid.UUID
    template_id: uuid.UUID
    medication_id: uuid.UUID
    owner_id: uuid.UUID
    status: DoseEventStatus
    utc_date_time: datetime
    local_date_time: str
    quantity: Decimal
    units: str
    meal_timing: str
    medication_name: str
    medication_dose: Decimal | None = None
    is_from_deleted_medication: bool = False
    is_from_deleted_template: bool = False


class ScheduleEntryList(BaseModel):
    items: list[ScheduleEntryRead]
