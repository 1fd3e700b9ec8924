"""Medication schemas."""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class MedicationBase(BaseModel):
    """Display attributes shared by every medication version."""

    name: str = Field(min_length=1, max_length=255)
    dose: Decimal | None = Field(default=None, ge=0)
    form: str | None = Field(default=None, max_length=64)


class MedicationCreate(MedicationBase):
    """Payload for creating a medication."""


class MedicationUpdate(BaseModel):
    """Edit request; versioning is forced when an active template exists."""

    name: str | None = Field(default=None, min_length=1, max_length=255)
    dose: Decimal | None = Field(default=None, ge=0)
    form: str | None = Field(default=None, max_length=64)
    create_version: bool = Field(
        default=False,
        validation_alias=AliasChoices("create_version", "createVersion"),
    )


class MedicationRead(MedicationBase):
    """Serialized medication version."""

    id: uuid.UUID
    owner_id: uuid.UUID
    previous_medication_id: uuid.UUID | None = None
    deleted_at: datetime | None = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class MedicationUpdateResult(BaseModel):
    """Outcome of an edit, in place or as a new version."""

    medication: MedicationRead
    is_new_version: bool
    previous_medication_id: uuid.UUID | None = None
    new_template_id: uuid.UUID | None = None
    deleted_events: int = 0
    generated_events: int = 0


class MedicationDeleteResult(BaseModel):
    """Outcome of deleting a medication with cleanup."""

    medication_id: uuid.UUID
    deleted_events: int
    deleted_templates: int
