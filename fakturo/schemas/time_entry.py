"""
Fakturo - Time Entry Schemas

Pydantic schemas for time tracking and invoicing previews.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from fakturo.models.time_entry import TimeEntryStatus


class TimeEntryCreateRequest(BaseModel):
    """Manual time entry."""
    project_id: UUID
    description: Optional[str] = Field(None, max_length=2000)
    entry_date: date
    duration_minutes: int = Field(..., ge=0)
    hourly_rate: Optional[Decimal] = Field(None, ge=0, description="Omit for non-billable entries")
    is_billable: bool = True
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None

    @field_validator("end_time")
    @classmethod
    def end_after_start(cls, v, info):
        start = info.data.get("start_time")
        if v is not None and start is not None and v < start:
            raise ValueError("End time must be after start time")
        return v


class TimeEntryUpdateRequest(BaseModel):
    """Update of an unbilled entry. Omitted fields are left unchanged."""
    project_id: Optional[UUID] = None
    description: Optional[str] = Field(None, max_length=2000)
    entry_date: Optional[date] = None
    duration_minutes: Optional[int] = Field(None, ge=0)
    hourly_rate: Optional[Decimal] = Field(None, ge=0)
    is_billable: Optional[bool] = None


class TimerStartRequest(BaseModel):
    """Start a timer; any running timer is stopped first."""
    project_id: UUID
    description: Optional[str] = Field(None, max_length=2000)
    hourly_rate: Optional[Decimal] = Field(None, ge=0)
    is_billable: bool = True


class TimeEntryResponse(BaseModel):
    """Schema for time entry response."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    user_id: UUID
    project_id: UUID
    invoice_id: Optional[UUID] = None
    description: Optional[str] = None
    entry_date: date
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    is_running: bool = False
    duration_minutes: int
    hourly_rate: Optional[Decimal] = None
    is_billable: bool
    status: TimeEntryStatus
    created_at: datetime
    updated_at: datetime


class TimeEntryListResponse(BaseModel):
    entries: List[TimeEntryResponse]
    total: int
    total_minutes: int


class TimeEntrySummaryRequest(BaseModel):
    entry_ids: List[UUID] = Field(default_factory=list)


class TimeEntrySummaryResponse(BaseModel):
    """Preview of a batch of entries before invoicing."""
    model_config = ConfigDict(from_attributes=True)

    project_id: UUID
    total_minutes: int
    total_hours: Decimal
    hourly_rate: Decimal
    total_amount: Decimal
    entry_ids: List[UUID]
    date_from: Optional[date] = None
    date_to: Optional[date] = None
