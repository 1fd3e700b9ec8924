"""Schedule endpoints: templates, dose events, day statuses and adherence."""

from __future__ import annotations

import uuid
from datetime import date, datetime, timedelta
from typing import Annotated

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from dosetrack.api import deps
from dosetrack.core.clock import day_bounds, local_date, resolve_timezone
from dosetrack.schemas.day_status import (
    AdherenceSummaryList,
    AdherenceSummaryRead,
    DayStatusRange,
)
from dosetrack.schemas.dose_event import (
    DoseEventRead,
    DoseEventStatusUpdate,
    ScheduleEntryList,
    ScheduleEntryRead,
)
from dosetrack.schemas.dosing_template import (
    DosingTemplateCreate,
    DosingTemplateDeleteResult,
    DosingTemplateRead,
    DosingTemplateUpdate,
    DosingTemplateWriteResult,
)
from dosetrack.services import (
    adherence_service,
    day_status_service,
    dose_event_service,
    dosing_template_service,
)
from dosetrack.services.errors import InvalidStatusTransitionError, NotFoundError

router = APIRouter()

# Calendar views never ask for more than a year plus a day.
MAX_RANGE_DAYS = 366


def _validate_range(date_from: date, date_to: date) -> None:
    if date_from > date_to:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="'from' must be on or before 'to'",
        )
    if (date_to - date_from).days + 1 > MAX_RANGE_DAYS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Range may span at most {MAX_RANGE_DAYS} days",
        )


def _write_result(result: dosing_template_service.TemplateWriteResult) -> DosingTemplateWriteResult:
    return DosingTemplateWriteResult(
        template=DosingTemplateRead.model_validate(result.template),
        generated_events=result.generated_count,
        deleted_events=result.deleted_count,
    )


@router.post(
    "/templates",
    response_model=DosingTemplateWriteResult,
    status_code=status.HTTP_201_CREATED,
    summary="Create dosing template and generate its events",
)
async def create_template(
    payload: DosingTemplateCreate,
    background_tasks: BackgroundTasks,
    session: Annotated[AsyncSession, Depends(deps.get_db_session)],
    owner_id: Annotated[uuid.UUID, Depends(deps.get_current_owner_id)],
    now: Annotated[datetime, Depends(deps.get_now)],
    timezone: Annotated[str, Depends(deps.get_request_timezone)],
) -> DosingTemplateWriteResult:
    try:
        result = await dosing_template_service.create_dosing_template(
            session, payload, owner_id=owner_id, now=now, timezone=timezone
        )
    except NotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    day_status_service.schedule_day_status_refresh(
        background_tasks,
        owner_id=owner_id,
        days=result.affected_dates,
        timezone=timezone,
        now=now,
    )
    return _write_result(result)


@router.get(
    "/templates",
    response_model=list[DosingTemplateRead],
    summary="List active dosing templates",
)
async def list_templates(
    session: Annotated[AsyncSession, Depends(deps.get_db_session)],
    owner_id: Annotated[uuid.UUID, Depends(deps.get_current_owner_id)],
) -> list[DosingTemplateRead]:
    templates = await dosing_template_service.list_dosing_templates(session, owner_id=owner_id)
    return [DosingTemplateRead.model_validate(obj) for obj in templates]


@router.patch(
    "/templates/{template_id}",
    response_model=DosingTemplateWriteResult,
    summary="Edit dosing template",
)
async def update_template(
    template_id: uuid.UUID,
    payload: DosingTemplateUpdate,
    background_tasks: BackgroundTasks,
    session: Annotated[AsyncSession, Depends(deps.get_db_session)],
    owner_id: Annotated[uuid.UUID, Depends(deps.get_current_owner_id)],
    now: Annotated[datetime, Depends(deps.get_now)],
    timezone: Annotated[str, Depends(deps.get_request_timezone)],
) -> DosingTemplateWriteResult:
    try:
        result = await dosing_template_service.update_dosing_template(
            session,
            template_id=template_id,
            owner_id=owner_id,
            payload=payload,
            now=now,
            timezone=timezone,
        )
    except NotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    day_status_service.schedule_day_status_refresh(
        background_tasks,
        owner_id=owner_id,
        days=result.affected_dates,
        timezone=timezone,
        now=now,
    )
    return _write_result(result)


@router.post(
    "/templates/{template_id}/generate",
    response_model=DosingTemplateWriteResult,
    summary="Write any missing events of a dosing template",
)
async def generate_template(
    template_id: uuid.UUID,
    background_tasks: BackgroundTasks,
    session: Annotated[AsyncSession, Depends(deps.get_db_session)],
    owner_id: Annotated[uuid.UUID, Depends(deps.get_current_owner_id)],
    now: Annotated[datetime, Depends(deps.get_now)],
    timezone: Annotated[str, Depends(deps.get_request_timezone)],
) -> DosingTemplateWriteResult:
    try:
        result = await dosing_template_service.regenerate_dosing_template(
            session, template_id=template_id, owner_id=owner_id, timezone=timezone
        )
    except NotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    day_status_service.schedule_day_status_refresh(
        background_tasks,
        owner_id=owner_id,
        days=result.affected_dates,
        timezone=timezone,
        now=now,
    )
    return _write_result(result)


@router.delete(
    "/templates/{template_id}",
    response_model=DosingTemplateDeleteResult,
    summary="Delete dosing template and its future events",
)
async def delete_template(
    template_id: uuid.UUID,
    background_tasks: BackgroundTasks,
    session: Annotated[AsyncSession, Depends(deps.get_db_session)],
    owner_id: Annotated[uuid.UUID, Depends(deps.get_current_owner_id)],
    now: Annotated[datetime, Depends(deps.get_now)],
    timezone: Annotated[str, Depends(deps.get_request_timezone)],
) -> DosingTemplateDeleteResult:
    try:
        result = await dosing_template_service.delete_dosing_template(
            session,
            template_id=template_id,
            owner_id=owner_id,
            now=now,
            timezone=timezone,
        )
    except NotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    day_status_service.schedule_day_status_refresh(
        background_tasks,
        owner_id=owner_id,
        days=result.affected_dates,
        timezone=timezone,
        now=now,
    )
    return DosingTemplateDeleteResult(
        template_id=result.template.id, deleted_events=result.deleted_count
    )


@router.get(
    "/events",
    response_model=ScheduleEntryList,
    summary="List dose events between two calendar dates",
)
async def list_events(
    session: Annotated[AsyncSession, Depends(deps.get_db_session)],
    owner_id: Annotated[uuid.UUID, Depends(deps.get_current_owner_id)],
    timezone: Annotated[str, Depends(deps.get_request_timezone)],
    date_from: date = Query(alias="from"),
    date_to: date = Query(alias="to"),
) -> ScheduleEntryList:
    _validate_range(date_from, date_to)
    tz = resolve_timezone(timezone)
    range_start, _ = day_bounds(date_from, tz)
    _, range_stop = day_bounds(date_to, tz)
    rows = await dose_event_service.list_dose_events(
        session,
        owner_id=owner_id,
        range_start=range_start,
        range_end=range_stop - timedelta(microseconds=1),
    )
    return ScheduleEntryList(
        items=[
            ScheduleEntryRead(
                id=row.id,
                template_id=row.template_id,
                medication_id=row.medication_id,
                owner_id=row.owner_id,
                status=row.status,
                utc_date_time=row.date_time,
                local_date_time=row.date_time.astimezone(tz).isoformat(),
                quantity=row.quantity,
                units=row.units,
                meal_timing=row.meal_timing,
                medication_name=row.medication_name,
                medication_dose=row.medication_dose,
                is_from_deleted_medication=row.is_from_deleted_medication,
                is_from_deleted_template=row.is_from_deleted_template,
            )
            for row in rows
        ]
    )


@router.patch(
    "/events/{event_id}",
    response_model=DoseEventRead,
    summary="Mark a dose event",
)
async def mark_event(
    event_id: uuid.UUID,
    payload: DoseEventStatusUpdate,
    background_tasks: BackgroundTasks,
    session: Annotated[AsyncSession, Depends(deps.get_db_session)],
    owner_id: Annotated[uuid.UUID, Depends(deps.get_current_owner_id)],
    now: Annotated[datetime, Depends(deps.get_now)],
    timezone: Annotated[str, Depends(deps.get_request_timezone)],
) -> DoseEventRead:
    try:
        event, changed = await dose_event_service.mark_dose_event(
            session, owner_id=owner_id, event_id=event_id, status=payload.status
        )
    except NotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except InvalidStatusTransitionError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    if changed:
        day_status_service.schedule_day_status_refresh(
            background_tasks,
            owner_id=owner_id,
            days={local_date(event.date_time, resolve_timezone(timezone))},
            timezone=timezone,
            now=now,
        )
    return DoseEventRead.model_validate(event)


@router.get(
    "/status",
    response_model=DayStatusRange,
    summary="Day statuses for every date in range",
)
async def read_status(
    session: Annotated[AsyncSession, Depends(deps.get_db_session)],
    owner_id: Annotated[uuid.UUID, Depends(deps.get_current_owner_id)],
    now: Annotated[datetime, Depends(deps.get_now)],
    timezone: Annotated[str, Depends(deps.get_request_timezone)],
    date_from: date = Query(alias="from"),
    date_to: date = Query(alias="to"),
) -> DayStatusRange:
    _validate_range(date_from, date_to)
    statuses = await day_status_service.read_day_status_range(
        session,
        owner_id=owner_id,
        date_from=date_from,
        date_to=date_to,
        timezone=timezone,
        now=now,
    )
    return DayStatusRange(statuses=statuses)


@router.get(
    "/adherence",
    response_model=AdherenceSummaryList,
    summary="Adherence over the trailing 7 and 30 days",
)
async def read_adherence(
    session: Annotated[AsyncSession, Depends(deps.get_db_session)],
    owner_id: Annotated[uuid.UUID, Depends(deps.get_current_owner_id)],
    now: Annotated[datetime, Depends(deps.get_now)],
) -> AdherenceSummaryList:
    summaries = await adherence_service.get_adherence_summaries(
        session, owner_id=owner_id, now=now
    )
    return AdherenceSummaryList(
        items=[
            AdherenceSummaryRead(window_days=item.window_days, adherence=item.adherence)
            for item in summaries
        ]
    )
