"""Tests for versioned medication edits and template lifecycle."""

from __future__ import annotations

import uuid
from datetime import UTC, date, datetime
from decimal import Decimal

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from dosetrack.models import DoseEvent, DoseEventStatus, DosingTemplate, Medication
from dosetrack.schemas.dosing_template import DosingTemplateCreate, DosingTemplateUpdate
from dosetrack.schemas.medication import MedicationCreate, MedicationUpdate
from dosetrack.services import (
    dose_event_service,
    dosing_template_service,
    medication_service,
    versioning_service,
)
from dosetrack.services.errors import NotFoundError

pytestmark = pytest.mark.asyncio

NOW = datetime(2025, 3, 6, 12, 0, tzinfo=UTC)


async def _create_scheduled_medication(
    session: AsyncSession, owner_id: uuid.UUID
) -> tuple[Medication, DosingTemplate]:
    medication = await medication_service.create_medication(
        session,
        MedicationCreate(name="Lisinopril", dose=Decimal("10"), form="tablet"),
        owner_id=owner_id,
    )
    result = await dosing_template_service.create_dosing_template(
        session,
        DosingTemplateCreate(
            medication_id=medication.id,
            frequency_days=[1, 3, 5],
            duration_days=10,
            date_start=date(2025, 3, 1),
            time_of_day=["08:00", "20:00"],
        ),
        owner_id=owner_id,
        now=NOW,
    )
    return medication, result.template


async def _planned_after(
    session: AsyncSession, medication_id: uuid.UUID, cutoff: datetime
) -> list[DoseEvent]:
    result = await session.execute(
        select(DoseEvent).where(
            DoseEvent.medication_id == medication_id,
            DoseEvent.status == DoseEventStatus.PLANNED,
            DoseEvent.date_time >= cutoff,
        )
    )
    return list(result.scalars().all())


async def test_create_template_expands_full_history(
    session: AsyncSession, owner_id: uuid.UUID
) -> None:
    medication, template = await _create_scheduled_medication(session, owner_id)

    assert template.date_end == date(2025, 3, 11)
    assert await dose_event_service.count_events(session, template_id=template.id) == 8
    assert await dose_event_service.count_events(session, medication_id=medication.id) == 8


async def test_second_template_retires_the_first(
    session: AsyncSession, owner_id: uuid.UUID
) -> None:
    medication, first = await _create_scheduled_medication(session, owner_id)

    result = await dosing_template_service.create_dosing_template(
        session,
        DosingTemplateCreate(
            medication_id=medication.id,
            frequency_days=[2],
            duration_days=7,
            date_start=date(2025, 3, 6),
            time_of_day=["09:00"],
        ),
        owner_id=owner_id,
        now=NOW,
    )

    # 03-07 x2 and 03-10 x2 were still in the future
    assert result.deleted_count == 4
    assert result.generated_count == 1
    active = await dosing_template_service.get_active_templates(
        session, owner_id=owner_id, medication_id=medication.id
    )
    assert [template.id for template in active] == [result.template.id]
    await session.refresh(first)
    assert first.deleted_at is not None


async def test_create_version_moves_future_schedule_to_new_medication(
    session: AsyncSession, owner_id: uuid.UUID
) -> None:
    previous, _ = await _create_scheduled_medication(session, owner_id)
    assert len(await _planned_after(session, previous.id, NOW)) == 4

    result = await versioning_service.create_medication_version(
        session,
        previous_medication_id=previous.id,
        owner_id=owner_id,
        payload=MedicationUpdate(dose=Decimal("20")),
        now=NOW,
    )

    assert await _planned_after(session, previous.id, NOW) == []
    # Past events stay with the old version untouched.
    assert await dose_event_service.count_events(session, medication_id=previous.id) == 4

    medication = result.medication
    assert medication.previous_medication_id == previous.id
    assert medication.name == "Lisinopril"
    assert medication.dose == Decimal("20")
    assert medication.form == "tablet"

    template = result.template
    assert template is not None
    assert template.medication_id == medication.id
    assert template.date_start == date(2025, 3, 6)
    assert template.date_end == date(2025, 3, 16)
    assert template.frequency_days == [1, 3, 5]

    new_events = await _planned_after(session, medication.id, datetime(2000, 1, 1, tzinfo=UTC))
    assert len(new_events) == result.generated_count == 8
    assert all(event.date_time.replace(tzinfo=UTC) > NOW for event in new_events)
    assert result.deleted_count == 4
    assert date(2025, 3, 7) in result.affected_dates
    assert date(2025, 3, 14) in result.affected_dates

    await session.refresh(previous)
    assert previous.deleted_at is not None


async def test_create_version_of_tombstoned_medication_is_not_found(
    session: AsyncSession, owner_id: uuid.UUID
) -> None:
    previous, _ = await _create_scheduled_medication(session, owner_id)
    await versioning_service.create_medication_version(
        session,
        previous_medication_id=previous.id,
        owner_id=owner_id,
        payload=MedicationUpdate(name="Lisinopril XR"),
        now=NOW,
    )

    with pytest.raises(NotFoundError):
        await versioning_service.create_medication_version(
            session,
            previous_medication_id=previous.id,
            owner_id=owner_id,
            payload=MedicationUpdate(name="Again"),
            now=NOW,
        )
    with pytest.raises(NotFoundError):
        await versioning_service.create_medication_version(
            session,
            previous_medication_id=uuid.uuid4(),
            owner_id=owner_id,
            payload=MedicationUpdate(name="Missing"),
            now=NOW,
        )


async def test_edit_without_template_updates_in_place(
    session: AsyncSession, owner_id: uuid.UUID
) -> None:
    medication = await medication_service.create_medication(
        session, MedicationCreate(name="Vitamin D"), owner_id=owner_id
    )

    result = await versioning_service.edit_medication(
        session,
        medication_id=medication.id,
        owner_id=owner_id,
        payload=MedicationUpdate(name="Vitamin D3"),
        now=NOW,
    )

    assert result.is_new_version is False
    assert result.medication.id == medication.id
    assert result.medication.name == "Vitamin D3"

    forced = await versioning_service.edit_medication(
        session,
        medication_id=medication.id,
        owner_id=owner_id,
        payload=MedicationUpdate(create_version=True),
        now=NOW,
    )
    assert forced.is_new_version is True
    assert forced.template is None
    assert forced.medication.name == "Vitamin D3"


async def test_history_walks_version_chain_newest_first(
    session: AsyncSession, owner_id: uuid.UUID
) -> None:
    first, _ = await _create_scheduled_medication(session, owner_id)
    second = await versioning_service.edit_medication(
        session,
        medication_id=first.id,
        owner_id=owner_id,
        payload=MedicationUpdate(dose=Decimal("20")),
        now=NOW,
    )
    third = await versioning_service.edit_medication(
        session,
        medication_id=second.medication.id,
        owner_id=owner_id,
        payload=MedicationUpdate(dose=Decimal("40")),
        now=NOW,
    )

    chain = await medication_service.list_medication_history(
        session, owner_id=owner_id, medication_id=third.medication.id
    )

    assert [item.id for item in chain] == [third.medication.id, second.medication.id, first.id]
    with pytest.raises(NotFoundError):
        await medication_service.list_medication_history(
            session, owner_id=uuid.uuid4(), medication_id=third.medication.id
        )


async def test_delete_with_cleanup_keeps_history(
    session: AsyncSession, owner_id: uuid.UUID
) -> None:
    medication, template = await _create_scheduled_medication(session, owner_id)

    result = await versioning_service.delete_medication_with_cleanup(
        session, medication_id=medication.id, owner_id=owner_id, now=NOW
    )

    assert result.deleted_count == 4
    assert result.deleted_templates == 1
    assert result.affected_dates == {date(2025, 3, 7), date(2025, 3, 10)}
    assert await dose_event_service.count_events(session, medication_id=medication.id) == 4
    await session.refresh(template)
    assert template.deleted_at is not None
    assert await medication_service.list_medications(session, owner_id=owner_id) == []


async def test_update_template_regenerates_future_only(
    session: AsyncSession, owner_id: uuid.UUID
) -> None:
    _, template = await _create_scheduled_medication(session, owner_id)

    result = await dosing_template_service.update_dosing_template(
        session,
        template_id=template.id,
        owner_id=owner_id,
        payload=DosingTemplateUpdate(time_of_day=["09:00"]),
        now=NOW,
    )

    assert result.deleted_count == 4
    # 03-07 and 03-10 at 09:00
    assert result.generated_count == 2
    assert result.template.time_of_day == ["09:00"]
    assert await dose_event_service.count_events(session, template_id=template.id) == 6


async def test_delete_template_removes_future_planned(
    session: AsyncSession, owner_id: uuid.UUID
) -> None:
    medication, template = await _create_scheduled_medication(session, owner_id)

    result = await dosing_template_service.delete_dosing_template(
        session, template_id=template.id, owner_id=owner_id, now=NOW
    )

    assert result.deleted_count == 4
    assert await dosing_template_service.list_dosing_templates(session, owner_id=owner_id) == []
    with pytest.raises(NotFoundError):
        await dosing_template_service.get_active_template(
            session, owner_id=owner_id, template_id=template.id
        )
    # The medication itself stays active
    await medication_service.get_active_medication(
        session, owner_id=owner_id, medication_id=medication.id
    )


async def test_failed_version_rolls_back_every_step(
    session: AsyncSession, owner_id: uuid.UUID, monkeypatch: pytest.MonkeyPatch
) -> None:
    previous, template = await _create_scheduled_medication(session, owner_id)
    previous_id = previous.id
    template_id = template.id

    async def _fail(*args, **kwargs):
        raise RuntimeError("expansion failed")

    monkeypatch.setattr(versioning_service, "generate_template_events", _fail)

    with pytest.raises(RuntimeError):
        await versioning_service.create_medication_version(
            session,
            previous_medication_id=previous_id,
            owner_id=owner_id,
            payload=MedicationUpdate(dose=Decimal("20")),
            now=NOW,
        )

    medication_deleted_at = (
        await session.execute(select(Medication.deleted_at).where(Medication.id == previous_id))
    ).scalar_one()
    template_deleted_at = (
        await session.execute(
            select(DosingTemplate.deleted_at).where(DosingTemplate.id == template_id)
        )
    ).scalar_one()
    assert medication_deleted_at is None
    assert template_deleted_at is None
    assert len(await _planned_after(session, previous_id, NOW)) == 4

    versions = (
        await session.execute(
            select(Medication.id).where(Medication.previous_medication_id == previous_id)
        )
    ).scalars().all()
    assert versions == []


async def test_replacement_template_does_not_refill_past_days(
    session: AsyncSession, owner_id: uuid.UUID
) -> None:
    medication, _ = await _create_scheduled_medication(session, owner_id)
    replacement = DosingTemplateCreate(
        medication_id=medication.id,
        frequency_days=[1, 3, 5],
        duration_days=10,
        date_start=date(2025, 3, 1),
        time_of_day=["08:00", "20:00"],
    )

    result = await dosing_template_service.create_dosing_template(
        session, replacement, owner_id=owner_id, now=NOW
    )

    # Only 03-07 and 03-10 are regenerated; 03-03 and 03-05 keep the retired template's events.
    assert result.deleted_count == 4
    assert result.generated_count == 4
    assert await dose_event_service.count_events(session, medication_id=medication.id) == 8
    assert await dosing_template_service.expansion_floor(
        session, medication_id=medication.id
    ) == NOW

    rerun = await dosing_template_service.regenerate_dosing_template(
        session, template_id=result.template.id, owner_id=owner_id
    )
    assert rerun.generated_count == 0

    # A template created after an explicit delete is a replacement too.
    await dosing_template_service.delete_dosing_template(
        session, template_id=result.template.id, owner_id=owner_id, now=NOW
    )
    recreated = await dosing_template_service.create_dosing_template(
        session, replacement, owner_id=owner_id, now=NOW
    )
    assert recreated.generated_count == 4
    assert await dose_event_service.count_events(session, medication_id=medication.id) == 8
