"""Dosing template schemas."""

from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field, StringConstraints, field_validator, model_validator

from dosetrack.core.clock import resolve_timezone
from dosetrack.models.dosing_template import MealTiming

Weekday = Annotated[int, Field(ge=1, le=7)]
TimeOfDay = Annotated[str, StringConstraints(pattern=r"^([01][0-9]|2[0-3]):[0-5][0-9]$")]


def _check_timezone(value: str | None) -> str | None:
    if value is not None:
        resolve_timezone(value)
    return value


def _check_unique_times(value: list[str] | None) -> list[str] | None:
    if value is not None and len(set(value)) != len(value):
        raise ValueError("time_of_day entries must be unique")
    return value


class DosingTemplateCreate(BaseModel):
    """Payload for creating a dosing template."""

    medication_id: uuid.UUID
    quantity: Decimal = Field(default=Decimal("1"), gt=0, le=1000)
    units: str = Field(default="pill", min_length=1, max_length=50)
    frequency_days: list[Weekday] = Field(min_length=1)
    duration_days: int = Field(ge=0, le=365)
    date_start: date
    time_of_day: list[TimeOfDay] = Field(min_length=1)
    meal_timing: MealTiming = MealTiming.ANYTIME
    timezone: str = "UTC"

    @field_validator("timezone")
    @classmethod
    def _valid_timezone(cls, value: str) -> str:
        return _check_timezone(value)

    @field_validator("time_of_day")
    @classmethod
    def _unique_times(cls, value: list[str]) -> list[str]:
        return _check_unique_times(value)


class DosingTemplateUpdate(BaseModel):
    """Mutable template fields; at least one must be provided."""

    quantity: Decimal | None = Field(default=None, gt=0, le=1000)
    units: str | None = Field(default=None, min_length=1, max_length=50)
    frequency_days: list[Weekday] | None = Field(default=None, min_length=1)
    duration_days: int | None = Field(default=None, ge=0, le=365)
    date_start: date | None = None
    time_of_day: list[TimeOfDay] | None = Field(default=None, min_length=1)
    meal_timing: MealTiming | None = None
    regenerate_entries: bool = True

    @field_validator("time_of_day")
    @classmethod
    def _unique_times(cls, value: list[str] | None) -> list[str] | None:
        return _check_unique_times(value)

    @model_validator(mode="after")
    def _require_change(self) -> "DosingTemplateUpdate":
        if not self.model_fields_set - {"regenerate_entries"}:
            raise ValueError("At least one field must be provided for update")
        return self


class DosingTemplateRead(BaseModel):
    """Serialized dosing template."""

    id: uuid.UUID
    owner_id: uuid.UUID
    medication_id: uuid.UUID
    quantity: Decimal
    units: str
    frequency_days: list[int]
    duration_days: int
    date_start: date
    date_end: date | None = None
    time_of_day: list[str]
    meal_timing: MealTiming
    timezone: str
    deleted_at: datetime | None = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class DosingTemplateWriteResult(BaseModel):
    """Template plus the event bookkeeping of the write that produced it."""

    template: DosingTemplateRead
    generated_events: int = 0
    deleted_events: int = 0


class DosingTemplateDeleteResult(BaseModel):
    template_id: uuid.UUID
    deleted_events: int
