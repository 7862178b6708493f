"""
Fakturo - Time Entry Service

Business logic for time tracking: manual entries, start/stop timers,
unbilled queries and the unbilled -> invoiced transition.
"""

import logging
import uuid
from datetime import date, datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import select, update, and_
from sqlalchemy.ext.asyncio import AsyncSession

from fakturo.models.base import utc_now
from fakturo.models.time_entry import TimeEntry, TimeEntryStatus
from fakturo.services.calculations.time_entries import TimeEntryAggregator, TimeEntrySummary
from fakturo.utils.clock import Clock, SystemClock
from fakturo.utils.error_handling import (
    BusinessRuleException,
    EmptyBatchError,
    ErrorCode,
    TimeEntryNotFoundException,
)

logger = logging.getLogger(__name__)


# Fields a caller may change on an unbilled entry
UPDATABLE_FIELDS = ("project_id", "description", "entry_date", "duration_minutes", "hourly_rate", "is_billable")


def _aware(value: datetime) -> datetime:
    """SQLite hands back naive datetimes; they are stored as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def elapsed_minutes(start: datetime, end: datetime) -> int:
    """Whole minutes between two instants, rounded half up, at least 1."""
    seconds = Decimal(str((_aware(end) - _aware(start)).total_seconds()))
    minutes = int((seconds / Decimal("60")).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    return max(1, minutes)


class TimeEntryService:
    """Service for time entry operations."""

    def __init__(self, db: AsyncSession, clock: Optional[Clock] = None):
        self.db = db
        self.clock = clock or SystemClock()

    # ===========================================
    # QUERIES
    # ===========================================

    async def get_entry(self, entry_id: uuid.UUID, user_id: uuid.UUID) -> TimeEntry:
        """Get a time entry or raise TimeEntryNotFoundException."""
        result = await self.db.execute(
            select(TimeEntry)
            .where(TimeEntry.id == entry_id)
            .where(TimeEntry.user_id == user_id)
        )
        entry = result.scalar_one_or_none()
        if entry is None:
            raise TimeEntryNotFoundException(entry_id)
        return entry

    async def get_entries_by_ids(
        self,
        user_id: uuid.UUID,
        entry_ids: Sequence[uuid.UUID],
    ) -> List[TimeEntry]:
        """
        Load entries in the order requested, each at most once.

        Raises:
            TimeEntryNotFoundException: an id does not exist for this user
        """
        # Each entry is billed at most once
        entry_ids = list(dict.fromkeys(entry_ids))
        if not entry_ids:
            return []
        result = await self.db.execute(
            select(TimeEntry)
            .where(TimeEntry.user_id == user_id)
            .where(TimeEntry.id.in_(entry_ids))
        )
        by_id = {entry.id: entry for entry in result.scalars().all()}
        entries = []
        for entry_id in entry_ids:
            if entry_id not in by_id:
                raise TimeEntryNotFoundException(entry_id)
            entries.append(by_id[entry_id])
        return entries

    async def list_entries(
        self,
        user_id: uuid.UUID,
        project_id: Optional[uuid.UUID] = None,
        status: Optional[TimeEntryStatus] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> List[TimeEntry]:
        """List entries, newest first."""
        query = select(TimeEntry).where(TimeEntry.user_id == user_id)

        if project_id:
            query = query.where(TimeEntry.project_id == project_id)
        if status:
            query = query.where(TimeEntry.status == status)
        if start_date:
            query = query.where(TimeEntry.entry_date >= start_date)
        if end_date:
            query = query.where(TimeEntry.entry_date <= end_date)

        query = query.order_by(TimeEntry.entry_date.desc(), TimeEntry.created_at.desc())
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def get_unbilled_entries(
        self,
        user_id: uuid.UUID,
        project_id: Optional[uuid.UUID] = None,
    ) -> List[TimeEntry]:
        """Billable, stopped, unbilled entries with a rate, oldest first."""
        query = (
            select(TimeEntry)
            .where(TimeEntry.user_id == user_id)
            .where(TimeEntry.status == TimeEntryStatus.UNBILLED)
            .where(TimeEntry.is_billable.is_(True))
            .where(TimeEntry.is_running.is_(False))
            .where(TimeEntry.hourly_rate.is_not(None))
        )
        if project_id:
            query = query.where(TimeEntry.project_id == project_id)

        result = await self.db.execute(query.order_by(TimeEntry.entry_date, TimeEntry.created_at))
        return list(result.scalars().all())

    # ===========================================
    # CRUD OPERATIONS
    # ===========================================

    async def create_entry(
        self,
        user_id: uuid.UUID,
        project_id: uuid.UUID,
        entry_date: date,
        duration_minutes: int,
        description: Optional[str] = None,
        hourly_rate: Optional[Decimal] = None,
        is_billable: bool = True,
        start_time: Optional[datetime] = None,
        end_time: Optional[datetime] = None,
    ) -> TimeEntry:
        """Create a manual time entry."""
        entry = TimeEntry(
            user_id=user_id,
            project_id=project_id,
            entry_date=entry_date,
            duration_minutes=duration_minutes,
            description=description,
            hourly_rate=hourly_rate,
            is_billable=is_billable,
            start_time=start_time,
            end_time=end_time,
            is_running=False,
            status=TimeEntryStatus.UNBILLED,
        )
        self.db.add(entry)
        await self.db.commit()
        await self.db.refresh(entry)

        logger.info(f"Time entry {entry.id} created ({duration_minutes} min)")
        return entry

    def _ensure_unbilled(self, entry: TimeEntry, action: str) -> None:
        if entry.status != TimeEntryStatus.UNBILLED:
            raise BusinessRuleException(
                message=f"Cannot {action} a time entry that is already {entry.status.value}",
                rule="ONLY_UNBILLED_ENTRIES_MUTABLE",
                code=ErrorCode.CANNOT_MODIFY if action == "update" else ErrorCode.CANNOT_DELETE,
                details={"entry_id": str(entry.id), "invoice_id": str(entry.invoice_id) if entry.invoice_id else None},
            )

    async def update_entry(
        self,
        entry_id: uuid.UUID,
        user_id: uuid.UUID,
        changes: Dict[str, Any],
    ) -> TimeEntry:
        """Update an unbilled entry."""
        entry = await self.get_entry(entry_id, user_id)
        self._ensure_unbilled(entry, "update")

        for field_name in UPDATABLE_FIELDS:
            if field_name in changes:
                setattr(entry, field_name, changes[field_name])

        await self.db.commit()
        await self.db.refresh(entry)
        return entry

    async def delete_entry(self, entry_id: uuid.UUID, user_id: uuid.UUID) -> None:
        """Delete an unbilled entry. Invoiced entries are kept for the record."""
        entry = await self.get_entry(entry_id, user_id)
        self._ensure_unbilled(entry, "delete")

        await self.db.delete(entry)
        await self.db.commit()
        logger.info(f"Time entry {entry_id} deleted")

    # ===========================================
    # TIMER
    # ===========================================

    async def get_running_timer(self, user_id: uuid.UUID) -> Optional[TimeEntry]:
        result = await self.db.execute(
            select(TimeEntry)
            .where(TimeEntry.user_id == user_id)
            .where(TimeEntry.is_running.is_(True))
            .order_by(TimeEntry.start_time.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    def _stop(self, entry: TimeEntry) -> None:
        now = self.clock.now()
        entry.end_time = now
        entry.is_running = False
        if entry.start_time is not None:
            entry.duration_minutes = elapsed_minutes(entry.start_time, now)

    async def start_timer(
        self,
        user_id: uuid.UUID,
        project_id: uuid.UUID,
        description: Optional[str] = None,
        hourly_rate: Optional[Decimal] = None,
        is_billable: bool = True,
    ) -> TimeEntry:
        """Start a timer. Any timer already running for the user is stopped first."""
        result = await self.db.execute(
            select(TimeEntry)
            .where(TimeEntry.user_id == user_id)
            .where(TimeEntry.is_running.is_(True))
        )
        for running in result.scalars().all():
            self._stop(running)
            logger.info(f"Stopped running timer {running.id} before starting a new one")

        now = self.clock.now()
        entry = TimeEntry(
            user_id=user_id,
            project_id=project_id,
            description=description,
            hourly_rate=hourly_rate,
            is_billable=is_billable,
            entry_date=self.clock.today(),
            start_time=now,
            is_running=True,
            duration_minutes=0,
            status=TimeEntryStatus.UNBILLED,
        )
        self.db.add(entry)
        await self.db.commit()
        await self.db.refresh(entry)
        return entry

    async def stop_timer(self, entry_id: uuid.UUID, user_id: uuid.UUID) -> TimeEntry:
        """Stop a running timer; duration is at least one minute."""
        entry = await self.get_entry(entry_id, user_id)
        if not entry.is_running:
            raise BusinessRuleException(
                message="Timer is not running",
                rule="TIMER_RUNNING",
                details={"entry_id": str(entry_id)},
            )

        self._stop(entry)
        await self.db.commit()
        await self.db.refresh(entry)
        logger.info(f"Timer {entry.id} stopped after {entry.duration_minutes} min")
        return entry

    # ===========================================
    # INVOICING
    # ===========================================

    async def summarize(self, user_id: uuid.UUID, entry_ids: Sequence[uuid.UUID]) -> TimeEntrySummary:
        """Preview a batch of entries before invoicing."""
        if not entry_ids:
            raise EmptyBatchError()
        entries = await self.get_entries_by_ids(user_id, entry_ids)
        return TimeEntryAggregator.summarize(entries)

    async def mark_entries_invoiced(
        self,
        user_id: uuid.UUID,
        entry_ids: Sequence[uuid.UUID],
        invoice_id: uuid.UUID,
    ) -> List[uuid.UUID]:
        """
        Flip entries unbilled -> invoiced and link them to the invoice.

        Conditional on the current status, so re-running it for the same
        invoice is a no-op. Flushes but does not commit.

        Returns:
            Ids of the entries changed by this call

        Raises:
            BusinessRuleException: an entry is already linked to another invoice
        """
        entry_ids = list(entry_ids)
        if not entry_ids:
            return []

        result = await self.db.execute(
            select(TimeEntry.id, TimeEntry.invoice_id)
            .where(TimeEntry.user_id == user_id)
            .where(TimeEntry.id.in_(entry_ids))
            .where(TimeEntry.status != TimeEntryStatus.UNBILLED)
        )
        conflicts = [str(row.id) for row in result.all() if row.invoice_id != invoice_id]
        if conflicts:
            raise BusinessRuleException(
                message="Some time entries are already invoiced",
                rule="TIME_ENTRIES_INVOICED_ONCE",
                code=ErrorCode.ALREADY_INVOICED,
                details={"entry_ids": conflicts},
                status_code=409,
            )

        result = await self.db.execute(
            select(TimeEntry.id)
            .where(TimeEntry.user_id == user_id)
            .where(TimeEntry.id.in_(entry_ids))
            .where(TimeEntry.status == TimeEntryStatus.UNBILLED)
        )
        pending = [row.id for row in result.all()]
        if not pending:
            return []

        await self.db.execute(
            update(TimeEntry)
            .where(and_(
                TimeEntry.user_id == user_id,
                TimeEntry.id.in_(pending),
                TimeEntry.status == TimeEntryStatus.UNBILLED,
            ))
            .values(
                status=TimeEntryStatus.INVOICED,
                invoice_id=invoice_id,
                updated_at=utc_now(),
            )
            .execution_options(synchronize_session="fetch")
        )
        await self.db.flush()

        logger.info(f"Marked {len(pending)} time entries as invoiced on {invoice_id}")
        return pending
