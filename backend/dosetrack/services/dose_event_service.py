"""Dose event storage: idempotent bulk writes, future cleanup and range reads.

Bulk insert and cleanup never commit; the caller owns the transaction boundary.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import ColumnElement, Select, and_, delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from dosetrack.core.clock import coerce_utc
from dosetrack.db.dialects import conflict_insert
from dosetrack.models import (
    DoseEvent,
    DoseEventStatus,
    DosingTemplate,
    Medication,
)
from dosetrack.services.errors import InvalidStatusTransitionError, NotFoundError

logger = logging.getLogger(__name__)

# Rows per INSERT statement; keeps bound parameters under SQLite's limit.
_INSERT_CHUNK_SIZE = 100
_DELETE_CHUNK_SIZE = 500


@dataclass(slots=True, frozen=True)
class DeletedEvents:
    """Outcome of a future-PLANNED cleanup."""

    count: int
    instants: tuple[datetime, ...] = field(default_factory=tuple)


@dataclass(slots=True, frozen=True)
class DoseEventRow:
    """Dose event joined with its template and medication for display."""

    id: uuid.UUID
    template_id: uuid.UUID
    medication_id: uuid.UUID
    owner_id: uuid.UUID
    status: DoseEventStatus
    date_time: datetime
    medication_name: str
    medication_dose: Decimal | None
    quantity: Decimal
    units: str
    meal_timing: str
    is_from_deleted_medication: bool
    is_from_deleted_template: bool


def build_event_rows(
    template: DosingTemplate, instants: Iterable[datetime]
) -> list[dict[str, object]]:
    """Turn expander output into insertable rows bound to a template."""
    created = datetime.now(UTC)
    return [
        {
            "id": uuid.uuid4(),
            "template_id": template.id,
            "medication_id": template.medication_id,
            "owner_id": template.owner_id,
            "date_time": coerce_utc(instant),
            "status": DoseEventStatus.PLANNED,
            "created_at": created,
            "updated_at": created,
        }
        for instant in instants
    ]


async def bulk_insert_dose_events(
    session: AsyncSession, rows: Sequence[dict[str, object]]
) -> int:
    """Insert rows, silently skipping ``(template_id, date_time)`` duplicates.

    Returns the number of rows actually written, so re-inserting the same
    expansion returns ``0``.
    """
    inserted = 0
    for offset in range(0, len(rows), _INSERT_CHUNK_SIZE):
        chunk = list(rows[offset : offset + _INSERT_CHUNK_SIZE])
        stmt = (
            conflict_insert(session, DoseEvent)
            .values(chunk)
            .on_conflict_do_nothing(index_elements=["template_id", "date_time"])
        )
        result = await session.execute(stmt)
        written = max(result.rowcount or 0, 0)
        if written < len(chunk):
            logger.debug("Skipped %s duplicate dose events", len(chunk) - written)
        inserted += written
    return inserted


def _future_planned_filter(
    *,
    owner_id: uuid.UUID,
    cutoff: datetime,
    template_id: uuid.UUID | None,
    medication_id: uuid.UUID | None,
) -> ColumnElement[bool]:
    if (template_id is None) == (medication_id is None):
        raise ValueError("Provide exactly one of template_id or medication_id")
    scope = (
        DoseEvent.template_id == template_id
        if template_id is not None
        else DoseEvent.medication_id == medication_id
    )
    return and_(
        scope,
        DoseEvent.owner_id == owner_id,
        DoseEvent.status == DoseEventStatus.PLANNED,
        DoseEvent.date_time >= coerce_utc(cutoff),
    )


async def delete_future_planned_events(
    session: AsyncSession,
    *,
    owner_id: uuid.UUID,
    cutoff: datetime,
    template_id: uuid.UUID | None = None,
    medication_id: uuid.UUID | None = None,
) -> DeletedEvents:
    """Delete PLANNED events at or after ``cutoff`` for one template or medication.

    DONE events and anything before the cutoff are never touched. The deleted
    instants are returned so callers can work out which days changed.
    """
    criteria = _future_planned_filter(
        owner_id=owner_id,
        cutoff=cutoff,
        template_id=template_id,
        medication_id=medication_id,
    )
    result = await session.execute(
        select(DoseEvent.id, DoseEvent.date_time).where(criteria)
    )
    doomed = result.all()
    if not doomed:
        return DeletedEvents(count=0)

    ids = [event_id for event_id, _ in doomed]
    deleted = 0
    for offset in range(0, len(ids), _DELETE_CHUNK_SIZE):
        chunk = ids[offset : offset + _DELETE_CHUNK_SIZE]
        outcome = await session.execute(
            delete(DoseEvent)
            .where(DoseEvent.id.in_(chunk), DoseEvent.status == DoseEventStatus.PLANNED)
            .execution_options(synchronize_session=False)
        )
        deleted += max(outcome.rowcount or 0, 0)
    return DeletedEvents(
        count=deleted,
        instants=tuple(coerce_utc(instant) for _, instant in doomed),
    )


async def list_dose_events(
    session: AsyncSession,
    *,
    owner_id: uuid.UUID,
    range_start: datetime,
    range_end: datetime,
) -> list[DoseEventRow]:
    """Events in ``[range_start, range_end]`` with template/medication metadata.

    Tombstoned templates and medications are deliberately included: their past
    and completed events are the owner's history.
    """
    if range_start > range_end:
        raise ValueError("range_start must be on or before range_end")
    stmt: Select = (
        select(
            DoseEvent.id,
            DoseEvent.template_id,
            DoseEvent.medication_id,
            DoseEvent.owner_id,
            DoseEvent.status,
            DoseEvent.date_time,
            Medication.name,
            Medication.dose,
            Medication.deleted_at,
            DosingTemplate.quantity,
            DosingTemplate.units,
            DosingTemplate.meal_timing,
            DosingTemplate.deleted_at,
        )
        .join(Medication, DoseEvent.medication_id == Medication.id)
        .join(DosingTemplate, DoseEvent.template_id == DosingTemplate.id)
        .where(
            DoseEvent.owner_id == owner_id,
            DoseEvent.date_time >= coerce_utc(range_start),
            DoseEvent.date_time <= coerce_utc(range_end),
        )
        .order_by(DoseEvent.date_time.asc(), DoseEvent.id.asc())
    )
    result = await session.execute(stmt)
    rows: list[DoseEventRow] = []
    for (
        event_id,
        template_id,
        medication_id,
        event_owner_id,
        status,
        date_time,
        medication_name,
        medication_dose,
        medication_deleted_at,
        quantity,
        units,
        meal_timing,
        template_deleted_at,
    ) in result.all():
        rows.append(
            DoseEventRow(
                id=event_id,
                template_id=template_id,
                medication_id=medication_id,
                owner_id=event_owner_id,
                status=status,
                date_time=coerce_utc(date_time),
                medication_name=medication_name,
                medication_dose=medication_dose,
                quantity=quantity,
                units=units,
                meal_timing=meal_timing.value,
                is_from_deleted_medication=medication_deleted_at is not None,
                is_from_deleted_template=template_deleted_at is not None,
            )
        )
    return rows


async def count_events(
    session: AsyncSession,
    *,
    template_id: uuid.UUID | None = None,
    medication_id: uuid.UUID | None = None,
) -> int:
    """Number of stored events for a template or medication."""
    stmt = select(func.count(DoseEvent.id))
    if template_id is not None:
        stmt = stmt.where(DoseEvent.template_id == template_id)
    if medication_id is not None:
        stmt = stmt.where(DoseEvent.medication_id == medication_id)
    result = await session.execute(stmt)
    return int(result.scalar_one())


async def get_dose_event(
    session: AsyncSession,
    *,
    owner_id: uuid.UUID,
    event_id: uuid.UUID,
) -> DoseEvent:
    event = await session.get(DoseEvent, event_id)
    if event is None or event.owner_id != owner_id:
        raise NotFoundError("Dose event not found")
    return event


async def mark_dose_event(
    session: AsyncSession,
    *,
    owner_id: uuid.UUID,
    event_id: uuid.UUID,
    status: DoseEventStatus,
) -> tuple[DoseEvent, bool]:
    """Apply a status change and commit.

    ``PLANNED -> DONE`` is the only transition; repeating the current status is
    a no-op. Returns the event and whether it changed.
    """
    event = await get_dose_event(session, owner_id=owner_id, event_id=event_id)
    if event.status == status:
        return event, False
    if event.status == DoseEventStatus.DONE and status == DoseEventStatus.PLANNED:
        raise InvalidStatusTransitionError("A taken dose cannot be reverted to planned")

    event.status = status
    await session.commit()
    await session.refresh(event)
    return event, True
