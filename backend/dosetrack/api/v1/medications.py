"""Medication API endpoints."""
from __future__ import annotations

import uuid
from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from dosetrack.api import deps
from dosetrack.schemas.medication import (
    MedicationCreate,
    MedicationDeleteResult,
    MedicationRead,
    MedicationUpdate,
    MedicationUpdateResult,
)
from dosetrack.services import medication_service, versioning_service
from dosetrack.services.day_status_service import schedule_day_status_refresh
from dosetrack.services.errors import NotFoundError

router = APIRouter()


@router.post(
    "",
    response_model=MedicationRead,
    status_code=status.HTTP_201_CREATED,
    summary="Create medication",
)
async def create_medication(
    payload: MedicationCreate,
    session: Annotated[AsyncSession, Depends(deps.get_db_session)],
    owner_id: Annotated[uuid.UUID, Depends(deps.get_current_owner_id)],
) -> MedicationRead:
    medication = await medication_service.create_medication(session, payload, owner_id=owner_id)
    return MedicationRead.model_validate(medication)


@router.get("", response_model=list[MedicationRead], summary="List active medications")
async def list_medications(
    session: Annotated[AsyncSession, Depends(deps.get_db_session)],
    owner_id: Annotated[uuid.UUID, Depends(deps.get_current_owner_id)],
) -> list[MedicationRead]:
    medications = await medication_service.list_medications(session, owner_id=owner_id)
    return [MedicationRead.model_validate(obj) for obj in medications]


@router.get("/{medication_id}", response_model=MedicationRead, summary="Get medication")
async def get_medication(
    medication_id: uuid.UUID,
    session: Annotated[AsyncSession, Depends(deps.get_db_session)],
    owner_id: Annotated[uuid.UUID, Depends(deps.get_current_owner_id)],
) -> MedicationRead:
    try:
        medication = await medication_service.get_active_medication(
            session, owner_id=owner_id, medication_id=medication_id
        )
    except NotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return MedicationRead.model_validate(medication)


@router.get(
    "/{medication_id}/history",
    response_model=list[MedicationRead],
    summary="List every version of a medication, newest first",
)
async def get_medication_history(
    medication_id: uuid.UUID,
    session: Annotated[AsyncSession, Depends(deps.get_db_session)],
    owner_id: Annotated[uuid.UUID, Depends(deps.get_current_owner_id)],
) -> list[MedicationRead]:
    try:
        chain = await medication_service.list_medication_history(
            session, owner_id=owner_id, medication_id=medication_id
        )
    except NotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return [MedicationRead.model_validate(obj) for obj in chain]


@router.patch(
    "/{medication_id}",
    response_model=MedicationUpdateResult,
    summary="Edit medication, versioning it when scheduled",
)
async def update_medication(
    medication_id: uuid.UUID,
    payload: MedicationUpdate,
    background_tasks: BackgroundTasks,
    session: Annotated[AsyncSession, Depends(deps.get_db_session)],
    owner_id: Annotated[uuid.UUID, Depends(deps.get_current_owner_id)],
    now: Annotated[datetime, Depends(deps.get_now)],
    timezone: Annotated[str, Depends(deps.get_request_timezone)],
) -> MedicationUpdateResult:
    try:
        result = await versioning_service.edit_medication(
            session,
            medication_id=medication_id,
            owner_id=owner_id,
            payload=payload,
            now=now,
            timezone=timezone,
        )
    except NotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    schedule_day_status_refresh(
        background_tasks,
        owner_id=owner_id,
        days=result.affected_dates,
        timezone=timezone,
        now=now,
    )
    return MedicationUpdateResult(
        medication=MedicationRead.model_validate(result.medication),
        is_new_version=result.is_new_version,
        previous_medication_id=result.previous_medication_id,
        new_template_id=result.template.id if result.template is not None else None,
        deleted_events=result.deleted_count,
        generated_events=result.generated_count,
    )


@router.delete(
    "/{medication_id}",
    response_model=MedicationDeleteResult,
    summary="Delete medication and its future schedule",
)
async def delete_medication(
    medication_id: uuid.UUID,
    background_tasks: BackgroundTasks,
    session: Annotated[AsyncSession, Depends(deps.get_db_session)],
    owner_id: Annotated[uuid.UUID, Depends(deps.get_current_owner_id)],
    now: Annotated[datetime, Depends(deps.get_now)],
    timezone: Annotated[str, Depends(deps.get_request_timezone)],
) -> MedicationDeleteResult:
    try:
        result = await versioning_service.delete_medication_with_cleanup(
            session,
            medication_id=medication_id,
            owner_id=owner_id,
            now=now,
            timezone=timezone,
        )
    except NotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    schedule_day_status_refresh(
        background_tasks,
        owner_id=owner_id,
        days=result.affected_dates,
        timezone=timezone,
        now=now,
    )
    return MedicationDeleteResult(
        medication_id=result.medication.id,
        deleted_events=result.deleted_count,
        deleted_templates=result.deleted_templates,
    )
