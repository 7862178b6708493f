"""
Fakturo - Time Entry Model

Time tracked against a project, entered manually or with a start/stop
timer. Moves unbilled -> invoiced exactly once, when folded into an
invoice, and keeps a back-reference to that invoice from then on.
"""

import uuid
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import Boolean, Date, DateTime, ForeignKey, Integer, Numeric, Text, Uuid, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column

from fakturo.models.base import BaseModel


class TimeEntryStatus(str, Enum):
    """Billing status of a time entry."""
    UNBILLED = "unbilled"
    INVOICED = "invoiced"
    PAID = "paid"


class TimeEntry(BaseModel):
    """Time entry model."""

    __tablename__ = "time_entries"

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        nullable=False,
        index=True,
    )
    project_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        nullable=False,
        index=True,
    )
    invoice_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("invoices.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    entry_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)

    # Timer
    start_time: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    end_time: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    is_running: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    duration_minutes: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    hourly_rate: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(precision=10, scale=2),
        nullable=True,
        comment="Absent rate means the entry cannot be billed",
    )
    is_billable: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    status: Mapped[TimeEntryStatus] = mapped_column(
        SQLEnum(TimeEntryStatus),
        default=TimeEntryStatus.UNBILLED,
        nullable=False,
        index=True,
    )

    @property
    def is_unbilled(self) -> bool:
        return self.status == TimeEntryStatus.UNBILLED

    def __repr__(self) -> str:
        return f"<TimeEntry(id={self.id}, minutes={self.duration_minutes}, status={self.status})>"
