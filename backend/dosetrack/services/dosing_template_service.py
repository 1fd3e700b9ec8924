"""Dosing template lifecycle: create, edit with regeneration, delete with cleanup."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime

from sqlalchemy import Select, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from dosetrack.core.clock import coerce_utc
from dosetrack.core.config import get_settings
from dosetrack.models import DosingTemplate, Medication
from dosetrack.schemas.dosing_template import DosingTemplateCreate, DosingTemplateUpdate
from dosetrack.services import dose_event_service
from dosetrack.services.day_status_service import collect_local_dates
from dosetrack.services.errors import NotFoundError
from dosetrack.services.medication_service import get_active_medication
from dosetrack.services.recurrence_service import (
    Recurrence,
    compute_date_end,
    validate_recurrence,
)

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class TemplateWriteResult:
    template: DosingTemplate
    generated_count: int = 0
    deleted_count: int = 0
    affected_dates: set[date] = field(default_factory=set)


@dataclass(slots=True)
class TemplateDeleteResult:
    template: DosingTemplate
    deleted_count: int = 0
    affected_dates: set[date] = field(default_factory=set)


def template_recurrence(template: DosingTemplate) -> Recurrence:
    """Recurrence rule described by a stored template."""
    return Recurrence.build(
        date_start=template.date_start,
        date_end=template.date_end,
        frequency_days=template.frequency_days,
        time_of_day=template.time_of_day,
        timezone=template.timezone,
        horizon_days=get_settings().schedule_horizon_days,
    )


async def generate_template_events(
    session: AsyncSession,
    template: DosingTemplate,
    *,
    after: datetime | None = None,
) -> tuple[int, list[datetime]]:
    """Expand a template and bulk insert its events.

    With ``after`` only instants strictly later than it are generated. Returns
    the number of rows written and the expanded instants.
    """
    instants = list(template_recurrence(template).instants(after=after))
    rows = dose_event_service.build_event_rows(template, instants)
    inserted = await dose_event_service.bulk_insert_dose_events(session, rows)
    return inserted, instants


async def expansion_floor(
    session: AsyncSession, *, medication_id: uuid.UUID
) -> datetime | None:
    """When an earlier schedule of this medication, or of its previous version, was retired.

    Instants up to that moment already belong to the retired schedule, so a
    replacement only expands after it. ``None`` means nothing was replaced.
    """
    previous_version = (
        select(Medication.previous_medication_id)
        .where(Medication.id == medication_id)
        .scalar_subquery()
    )
    result = await session.execute(
        select(func.max(DosingTemplate.deleted_at)).where(
            or_(
                DosingTemplate.medication_id == medication_id,
                DosingTemplate.medication_id == previous_version,
            ),
            DosingTemplate.deleted_at.is_not(None),
        )
    )
    retired_at = result.scalar_one_or_none()
    return coerce_utc(retired_at) if retired_at is not None else None


async def get_active_templates(
    session: AsyncSession,
    *,
    owner_id: uuid.UUID,
    medication_id: uuid.UUID,
) -> list[DosingTemplate]:
    """Non-tombstoned templates bound to a medication, newest first."""
    stmt: Select[tuple[DosingTemplate]] = (
        select(DosingTemplate)
        .where(
            DosingTemplate.owner_id == owner_id,
            DosingTemplate.medication_id == medication_id,
            DosingTemplate.deleted_at.is_(None),
        )
        .order_by(DosingTemplate.created_at.desc())
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def get_active_template(
    session: AsyncSession,
    *,
    owner_id: uuid.UUID,
    template_id: uuid.UUID,
) -> DosingTemplate:
    """An owned, active template whose medication is also active."""
    stmt = (
        select(DosingTemplate)
        .join(Medication, DosingTemplate.medication_id == Medication.id)
        .where(
            DosingTemplate.id == template_id,
            DosingTemplate.owner_id == owner_id,
            DosingTemplate.deleted_at.is_(None),
            Medication.deleted_at.is_(None),
        )
    )
    result = await session.execute(stmt)
    template = result.scalar_one_or_none()
    if template is None:
        raise NotFoundError("Dosing template not found")
    return template


async def list_dosing_templates(
    session: AsyncSession,
    *,
    owner_id: uuid.UUID,
) -> list[DosingTemplate]:
    stmt: Select[tuple[DosingTemplate]] = (
        select(DosingTemplate)
        .join(Medication, DosingTemplate.medication_id == Medication.id)
        .where(
            DosingTemplate.owner_id == owner_id,
            DosingTemplate.deleted_at.is_(None),
            Medication.deleted_at.is_(None),
        )
        .order_by(DosingTemplate.created_at.desc())
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def retire_templates(
    session: AsyncSession,
    templates: list[DosingTemplate],
    *,
    now: datetime,
    timezone: str,
) -> tuple[int, set[date]]:
    """Delete each template's future PLANNED events and tombstone it."""
    deleted = 0
    affected: set[date] = set()
    for template in templates:
        outcome = await dose_event_service.delete_future_planned_events(
            session,
            owner_id=template.owner_id,
            cutoff=now,
            template_id=template.id,
        )
        deleted += outcome.count
        affected |= collect_local_dates(outcome.instants, timezone)
        template.deleted_at = coerce_utc(now)
    await session.flush()
    return deleted, affected


async def create_dosing_template(
    session: AsyncSession,
    payload: DosingTemplateCreate,
    *,
    owner_id: uuid.UUID,
    now: datetime,
    timezone: str = "UTC",
) -> TemplateWriteResult:
    """Store a template and materialize all of its events.

    Past start dates are allowed so owners can record earlier intake; the full
    expansion is written, not just future instants. A medication keeps a single
    active template, so any previous one is retired first. Its past events stay
    in place, so a replacement only expands after the retirement.
    """
    validate_recurrence(
        frequency_days=payload.frequency_days,
        time_of_day=payload.time_of_day,
        date_start=payload.date_start,
        timezone=payload.timezone,
    )
    await get_active_medication(
        session, owner_id=owner_id, medication_id=payload.medication_id
    )
    try:
        previous = await get_active_templates(
            session, owner_id=owner_id, medication_id=payload.medication_id
        )
        deleted, affected = await retire_templates(
            session, previous, now=now, timezone=timezone
        )

        template = DosingTemplate(
            owner_id=owner_id,
            medication_id=payload.medication_id,
            quantity=payload.quantity,
            units=payload.units,
            frequency_days=sorted(set(payload.frequency_days)),
            time_of_day=list(payload.time_of_day),
            duration_days=payload.duration_days,
            date_start=payload.date_start,
            date_end=compute_date_end(payload.date_start, payload.duration_days),
            timezone=payload.timezone,
            meal_timing=payload.meal_timing,
        )
        session.add(template)
        await session.flush()

        floor = await expansion_floor(session, medication_id=template.medication_id)
        generated, instants = await generate_template_events(session, template, after=floor)
        affected |= collect_local_dates(instants, timezone)
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    await session.refresh(template)
    logger.info(
        "Created template %s for medication %s: %s events generated",
        template.id,
        template.medication_id,
        generated,
    )
    return TemplateWriteResult(
        template=template,
        generated_count=generated,
        deleted_count=deleted,
        affected_dates=affected,
    )


async def update_dosing_template(
    session: AsyncSession,
    *,
    template_id: uuid.UUID,
    owner_id: uuid.UUID,
    payload: DosingTemplateUpdate,
    now: datetime,
    timezone: str = "UTC",
) -> TemplateWriteResult:
    """Edit a template in place and optionally regenerate its future events.

    Regeneration drops future PLANNED events and re-expands in future-only
    mode; DONE events stay and the uniqueness constraint skips their instants.
    """
    template = await get_active_template(session, owner_id=owner_id, template_id=template_id)
    updates = payload.model_dump(exclude_unset=True, exclude={"regenerate_entries"})

    frequency_days = updates.get("frequency_days", template.frequency_days)
    time_of_day = updates.get("time_of_day", template.time_of_day)
    date_start = updates.get("date_start", template.date_start)
    validate_recurrence(
        frequency_days=frequency_days,
        time_of_day=time_of_day,
        date_start=date_start,
        timezone=template.timezone,
    )

    try:
        if "quantity" in updates:
            template.quantity = updates["quantity"]
        if "units" in updates:
            template.units = updates["units"]
        if "meal_timing" in updates:
            template.meal_timing = updates["meal_timing"]
        if "frequency_days" in updates:
            template.frequency_days = sorted(set(frequency_days))
        if "time_of_day" in updates:
            template.time_of_day = list(time_of_day)
        if "date_start" in updates or "duration_days" in updates:
            template.date_start = date_start
            template.duration_days = updates.get("duration_days", template.duration_days)
            template.date_end = compute_date_end(template.date_start, template.duration_days)
        await session.flush()

        deleted = 0
        generated = 0
        affected: set[date] = set()
        if payload.regenerate_entries:
            outcome = await dose_event_service.delete_future_planned_events(
                session, owner_id=owner_id, cutoff=now, template_id=template.id
            )
            deleted = outcome.count
            affected |= collect_local_dates(outcome.instants, timezone)
            generated, instants = await generate_template_events(
                session, template, after=now
            )
            affected |= collect_local_dates(instants, timezone)
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    await session.refresh(template)
    logger.info(
        "Updated template %s: %s events removed, %s generated",
        template.id,
        deleted,
        generated,
    )
    return TemplateWriteResult(
        template=template,
        generated_count=generated,
        deleted_count=deleted,
        affected_dates=affected,
    )


async def regenerate_dosing_template(
    session: AsyncSession,
    *,
    template_id: uuid.UUID,
    owner_id: uuid.UUID,
    timezone: str = "UTC",
) -> TemplateWriteResult:
    """Re-run the expansion of an active template.

    Existing instants are skipped by the uniqueness constraint, so repeating the
    call writes nothing new. Like creation, a replacement schedule is not
    expanded into days its predecessor covered.
    """
    template = await get_active_template(session, owner_id=owner_id, template_id=template_id)
    try:
        floor = await expansion_floor(session, medication_id=template.medication_id)
        generated, instants = await generate_template_events(session, template, after=floor)
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    logger.info("Regenerated template %s: %s events written", template.id, generated)
    affected = collect_local_dates(instants, timezone) if generated else set()
    return TemplateWriteResult(
        template=template, generated_count=generated, affected_dates=affected
    )


async def delete_dosing_template(
    session: AsyncSession,
    *,
    template_id: uuid.UUID,
    owner_id: uuid.UUID,
    now: datetime,
    timezone: str = "UTC",
) -> TemplateDeleteResult:
    """Tombstone a template after removing its future PLANNED events."""
    stmt = select(DosingTemplate).where(
        DosingTemplate.id == template_id,
        DosingTemplate.owner_id == owner_id,
        DosingTemplate.deleted_at.is_(None),
    )
    template = (await session.execute(stmt)).scalar_one_or_none()
    if template is None:
        raise NotFoundError("Dosing template not found")
    try:
        deleted, affected = await retire_templates(
            session, [template], now=now, timezone=timezone
        )
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    logger.info("Deleted template %s: %s future events removed", template.id, deleted)
    return TemplateDeleteResult(template=template, deleted_count=deleted, affected_dates=affected)
