"""Medication lookups and plain writes."""
from __future__ import annotations

import uuid

from sqlalchemy import Select, select
from sqlalchemy.ext.asyncio import AsyncSession

from dosetrack.models import Medication
from dosetrack.schemas.medication import MedicationCreate
from dosetrack.services.errors import NotFoundError

# Guards against a corrupted chain that loops back on itself.
_MAX_HISTORY_DEPTH = 1000


async def get_active_medication(
    session: AsyncSession,
    *,
    owner_id: uuid.UUID,
    medication_id: uuid.UUID,
) -> Medication:
    """Return an owned, non-tombstoned medication or raise NotFoundError."""
    medication = await session.get(Medication, medication_id)
    if medication is None or medication.owner_id != owner_id or medication.is_deleted:
        raise NotFoundError("Medication not found")
    return medication


async def list_medications(
    session: AsyncSession,
    *,
    owner_id: uuid.UUID,
) -> list[Medication]:
    stmt: Select[tuple[Medication]] = (
        select(Medication)
        .where(Medication.owner_id == owner_id, Medication.deleted_at.is_(None))
        .order_by(Medication.name, Medication.created_at)
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def create_medication(
    session: AsyncSession,
    payload: MedicationCreate,
    *,
    owner_id: uuid.UUID,
) -> Medication:
    medication = Medication(
        owner_id=owner_id,
        name=payload.name,
        dose=payload.dose,
        form=payload.form,
    )
    session.add(medication)
    await session.commit()
    await session.refresh(medication)
    return medication


async def list_medication_history(
    session: AsyncSession,
    *,
    owner_id: uuid.UUID,
    medication_id: uuid.UUID,
) -> list[Medication]:
    """Walk the version chain from ``medication_id`` back to the first version.

    Each hop is its own lookup by primary key; tombstoned versions are part of
    the history and are returned. The list is ordered newest first.
    """
    chain: list[Medication] = []
    seen: set[uuid.UUID] = set()
    current_id: uuid.UUID | None = medication_id
    while current_id is not None and current_id not in seen:
        if len(chain) >= _MAX_HISTORY_DEPTH:
            break
        result = await session.execute(
            select(Medication).where(
                Medication.id == current_id, Medication.owner_id == owner_id
            )
        )
        medication = result.scalar_one_or_none()
        if medication is None:
            break
        chain.append(medication)
        seen.add(current_id)
        current_id = medication.previous_medication_id
    if not chain:
        raise NotFoundError("Medication not found")
    return chain
