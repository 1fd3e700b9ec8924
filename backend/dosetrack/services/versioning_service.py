"""Versioned medication edits and deletion with schedule cleanup.

Both flows run as a single transaction: either every step lands or the
session is rolled back and nothing is persisted.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime

from sqlalchemy.ext.asyncio import AsyncSession

from dosetrack.core.clock import coerce_utc, local_date, resolve_timezone
from dosetrack.models import DosingTemplate, Medication
from dosetrack.schemas.medication import MedicationUpdate
from dosetrack.services import dose_event_service
from dosetrack.services.day_status_service import collect_local_dates
from dosetrack.services.dosing_template_service import (
    generate_template_events,
    get_active_templates,
)
from dosetrack.services.medication_service import get_active_medication
from dosetrack.services.recurrence_service import compute_date_end

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class MedicationVersionResult:
    medication: Medication
    previous_medication_id: uuid.UUID | None = None
    template: DosingTemplate | None = None
    is_new_version: bool = True
    deleted_count: int = 0
    generated_count: int = 0
    affected_dates: set[date] = field(default_factory=set)


@dataclass(slots=True)
class MedicationCleanupResult:
    medication: Medication
    deleted_count: int = 0
    deleted_templates: int = 0
    affected_dates: set[date] = field(default_factory=set)


def _clone_template(
    template: DosingTemplate, *, medication_id: uuid.UUID, now: datetime
) -> DosingTemplate:
    # The clone restarts on today's date in its own zone; duration is re-applied from there.
    date_start = local_date(now, resolve_timezone(template.timezone))
    return DosingTemplate(
        owner_id=template.owner_id,
        medication_id=medication_id,
        quantity=template.quantity,
        units=template.units,
        frequency_days=list(template.frequency_days),
        time_of_day=list(template.time_of_day),
        duration_days=template.duration_days,
        date_start=date_start,
        date_end=compute_date_end(date_start, template.duration_days),
        timezone=template.timezone,
        meal_timing=template.meal_timing,
    )


async def _retire_medication(
    session: AsyncSession,
    medication: Medication,
    templates: list[DosingTemplate],
    *,
    now: datetime,
    timezone: str,
) -> tuple[int, set[date]]:
    outcome = await dose_event_service.delete_future_planned_events(
        session,
        owner_id=medication.owner_id,
        cutoff=now,
        medication_id=medication.id,
    )
    tombstoned_at = coerce_utc(now)
    for template in templates:
        template.deleted_at = tombstoned_at
    medication.deleted_at = tombstoned_at
    await session.flush()
    return outcome.count, collect_local_dates(outcome.instants, timezone)


async def create_medication_version(
    session: AsyncSession,
    *,
    previous_medication_id: uuid.UUID,
    owner_id: uuid.UUID,
    payload: MedicationUpdate,
    now: datetime,
    timezone: str = "UTC",
) -> MedicationVersionResult:
    """Replace a medication with a new linked version.

    Future PLANNED events of the previous version are removed, it and its
    templates are tombstoned, and an active template is cloned onto the new
    version and expanded from ``now`` onwards. Attributes missing from the
    payload are carried over from the previous version.
    """
    previous = await get_active_medication(
        session, owner_id=owner_id, medication_id=previous_medication_id
    )
    templates = await get_active_templates(
        session, owner_id=owner_id, medication_id=previous.id
    )
    changes = payload.model_dump(exclude_unset=True, exclude={"create_version"})

    try:
        deleted, affected = await _retire_medication(
            session, previous, templates, now=now, timezone=timezone
        )

        medication = Medication(
            owner_id=owner_id,
            name=changes.get("name") or previous.name,
            dose=changes["dose"] if "dose" in changes else previous.dose,
            form=changes["form"] if "form" in changes else previous.form,
            previous_medication_id=previous.id,
        )
        session.add(medication)
        await session.flush()

        new_template: DosingTemplate | None = None
        generated = 0
        if templates:
            new_template = _clone_template(templates[0], medication_id=medication.id, now=now)
            session.add(new_template)
            await session.flush()
            generated, instants = await generate_template_events(
                session, new_template, after=now
            )
            affected |= collect_local_dates(instants, timezone)

        await session.commit()
    except Exception:
        await session.rollback()
        raise

    await session.refresh(medication)
    if new_template is not None:
        await session.refresh(new_template)
    logger.info(
        "Versioned medication %s -> %s: %s future events removed, %s generated",
        previous.id,
        medication.id,
        deleted,
        generated,
    )
    return MedicationVersionResult(
        medication=medication,
        previous_medication_id=previous.id,
        template=new_template,
        deleted_count=deleted,
        generated_count=generated,
        affected_dates=affected,
    )


async def delete_medication_with_cleanup(
    session: AsyncSession,
    *,
    medication_id: uuid.UUID,
    owner_id: uuid.UUID,
    now: datetime,
    timezone: str = "UTC",
) -> MedicationCleanupResult:
    """Tombstone a medication and its templates after dropping future PLANNED events."""
    medication = await get_active_medication(
        session, owner_id=owner_id, medication_id=medication_id
    )
    templates = await get_active_templates(
        session, owner_id=owner_id, medication_id=medication.id
    )
    try:
        deleted, affected = await _retire_medication(
            session, medication, templates, now=now, timezone=timezone
        )
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    logger.info(
        "Deleted medication %s: %s future events removed, %s templates retired",
        medication.id,
        deleted,
        len(templates),
    )
    return MedicationCleanupResult(
        medication=medication,
        deleted_count=deleted,
        deleted_templates=len(templates),
        affected_dates=affected,
    )


async def edit_medication(
    session: AsyncSession,
    *,
    medication_id: uuid.UUID,
    owner_id: uuid.UUID,
    payload: MedicationUpdate,
    now: datetime,
    timezone: str = "UTC",
) -> MedicationVersionResult:
    """Apply a medication edit, versioning it when a schedule depends on it.

    A new version is forced while an active template exists, otherwise only
    when ``create_version`` is requested. Plain edits update display fields in
    place.
    """
    medication = await get_active_medication(
        session, owner_id=owner_id, medication_id=medication_id
    )
    templates = await get_active_templates(
        session, owner_id=owner_id, medication_id=medication.id
    )
    if templates or payload.create_version:
        return await create_medication_version(
            session,
            previous_medication_id=medication.id,
            owner_id=owner_id,
            payload=payload,
            now=now,
            timezone=timezone,
        )

    changes = payload.model_dump(exclude_unset=True, exclude={"create_version"})
    if changes.get("name"):
        medication.name = changes["name"]
    if "dose" in changes:
        medication.dose = changes["dose"]
    if "form" in changes:
        medication.form = changes["form"]
    await session.commit()
    await session.refresh(medication)
    return MedicationVersionResult(
        medication=medication,
        previous_medication_id=medication.previous_medication_id,
        is_new_version=False,
    )
