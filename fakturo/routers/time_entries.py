"""
Fakturo - Time Entries Router

API endpoints for time tracking: manual entries, timers and the
pre-invoicing summary.
"""

from datetime import date
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from fakturo.dependencies import get_current_user_id, get_time_entry_service
from fakturo.models.time_entry import TimeEntryStatus
from fakturo.schemas.time_entry import (
    TimeEntryCreateRequest,
    TimeEntryListResponse,
    TimeEntryResponse,
    TimeEntrySummaryRequest,
    TimeEntrySummaryResponse,
    TimeEntryUpdateRequest,
    TimerStartRequest,
)
from fakturo.services.time_entry_service import TimeEntryService


router = APIRouter(prefix="/time-entries", tags=["Time Tracking"])


@router.get(
    "",
    response_model=TimeEntryListResponse,
    summary="List time entries",
)
async def list_time_entries(
    project_id: Optional[UUID] = Query(None),
    status_filter: Optional[TimeEntryStatus] = Query(None, alias="status"),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    user_id: UUID = Depends(get_current_user_id),
    service: TimeEntryService = Depends(get_time_entry_service),
):
    entries = await service.list_entries(
        user_id,
        project_id=project_id,
        status=status_filter,
        start_date=start_date,
        end_date=end_date,
    )
    return TimeEntryListResponse(
        entries=[TimeEntryResponse.model_validate(e) for e in entries],
        total=len(entries),
        total_minutes=sum(e.duration_minutes or 0 for e in entries),
    )


@router.get(
    "/unbilled",
    response_model=TimeEntryListResponse,
    summary="List entries ready to invoice",
)
async def list_unbilled_entries(
    project_id: Optional[UUID] = Query(None),
    user_id: UUID = Depends(get_current_user_id),
    service: TimeEntryService = Depends(get_time_entry_service),
):
    """Billable, stopped, unbilled entries that have an hourly rate."""
    entries = await service.get_unbilled_entries(user_id, project_id=project_id)
    return TimeEntryListResponse(
        entries=[TimeEntryResponse.model_validate(e) for e in entries],
        total=len(entries),
        total_minutes=sum(e.duration_minutes or 0 for e in entries),
    )


@router.post(
    "",
    response_model=TimeEntryResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create time entry",
)
async def create_time_entry(
    request: TimeEntryCreateRequest,
    user_id: UUID = Depends(get_current_user_id),
    service: TimeEntryService = Depends(get_time_entry_service),
):
    entry = await service.create_entry(
        user_id=user_id,
        project_id=request.project_id,
        entry_date=request.entry_date,
        duration_minutes=request.duration_minutes,
        description=request.description,
        hourly_rate=request.hourly_rate,
        is_billable=request.is_billable,
        start_time=request.start_time,
        end_time=request.end_time,
    )
    return entry


# ===========================================
# TIMER
# ===========================================

@router.get(
    "/running",
    response_model=Optional[TimeEntryResponse],
    summary="Get the running timer",
)
async def get_running_timer(
    user_id: UUID = Depends(get_current_user_id),
    service: TimeEntryService = Depends(get_time_entry_service),
):
    """Returns null when no timer is running."""
    return await service.get_running_timer(user_id)


@router.post(
    "/timer/start",
    response_model=TimeEntryResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Start timer",
)
async def start_timer(
    request: TimerStartRequest,
    user_id: UUID = Depends(get_current_user_id),
    service: TimeEntryService = Depends(get_time_entry_service),
):
    """Start a timer, stopping any timer already running."""
    return await service.start_timer(
        user_id=user_id,
        project_id=request.project_id,
        description=request.description,
        hourly_rate=request.hourly_rate,
        is_billable=request.is_billable,
    )


@router.post(
    "/{entry_id}/stop",
    response_model=TimeEntryResponse,
    summary="Stop timer",
)
async def stop_timer(
    entry_id: UUID,
    user_id: UUID = Depends(get_current_user_id),
    service: TimeEntryService = Depends(get_time_entry_service),
):
    return await service.stop_timer(entry_id, user_id)


# ===========================================
# INVOICING PREVIEW
# ===========================================

@router.post(
    "/summary",
    response_model=TimeEntrySummaryResponse,
    summary="Summarize entries before invoicing",
)
async def summarize_time_entries(
    request: TimeEntrySummaryRequest,
    user_id: UUID = Depends(get_current_user_id),
    service: TimeEntryService = Depends(get_time_entry_service),
):
    """
    Total minutes, hours and amount for a batch of entries. Project and
    hourly rate are taken from the first entry.
    """
    summary = await service.summarize(user_id, request.entry_ids)
    return TimeEntrySummaryResponse.model_validate(summary)


# ===========================================
# SINGLE ENTRY
# ===========================================

@router.get(
    "/{entry_id}",
    response_model=TimeEntryResponse,
    summary="Get time entry",
)
async def get_time_entry(
    entry_id: UUID,
    user_id: UUID = Depends(get_current_user_id),
    service: TimeEntryService = Depends(get_time_entry_service),
):
    return await service.get_entry(entry_id, user_id)


@router.patch(
    "/{entry_id}",
    response_model=TimeEntryResponse,
    summary="Update time entry",
)
async def update_time_entry(
    entry_id: UUID,
    request: TimeEntryUpdateRequest,
    user_id: UUID = Depends(get_current_user_id),
    service: TimeEntryService = Depends(get_time_entry_service),
):
    """Only unbilled entries can be changed."""
    return await service.update_entry(entry_id, user_id, request.model_dump(exclude_unset=True))


@router.delete(
    "/{entry_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete time entry",
)
async def delete_time_entry(
    entry_id: UUID,
    user_id: UUID = Depends(get_current_user_id),
    service: TimeEntryService = Depends(get_time_entry_service),
):
    """Only unbilled entries can be deleted."""
    await service.delete_entry(entry_id, user_id)
