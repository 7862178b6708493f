"""
Fakturo - Time Entry Aggregator

Folds billable time-tracking records into invoice line items and builds
the preview summary shown before an invoice is created.

Entries are duck-typed: anything exposing id, project_id,
duration_minutes, hourly_rate, description, entry_date, status and
is_billable works (ORM rows, schemas, test doubles).
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any, List, Optional, Sequence, Tuple

from fakturo.services.calculations.money_math import LineItem, round_money, to_decimal
from fakturo.utils.error_handling import EmptyBatchError, InvalidInputError


SWISS_DATE_FORMAT = "%d.%m.%Y"
SIXTY = Decimal("60")

UNBILLED = "unbilled"


@dataclass(frozen=True)
class TimeEntrySummary:
    """Preview of a batch of time entries."""
    project_id: Any
    total_minutes: int
    total_hours: Decimal
    hourly_rate: Decimal
    total_amount: Decimal
    entry_ids: Tuple[Any, ...]
    date_from: Optional[date]
    date_to: Optional[date]


def _status_value(status: Any) -> str:
    return getattr(status, "value", status)


class TimeEntryAggregator:
    """Pure folds over time entries."""

    @staticmethod
    def is_billable(entry: Any) -> bool:
        """Has a rate, is flagged billable and has not been invoiced yet."""
        return (
            entry.hourly_rate is not None
            and getattr(entry, "is_billable", True)
            and _status_value(getattr(entry, "status", UNBILLED)) == UNBILLED
        )

    @staticmethod
    def describe(entry: Any) -> str:
        """'<note> (<dd.mm.yyyy>)', or just the date when there is no note."""
        note = (entry.description or "").strip()
        entry_date = entry.entry_date.strftime(SWISS_DATE_FORMAT) if entry.entry_date else ""
        if note and entry_date:
            return f"{note} ({entry_date})"
        return note or entry_date

    @staticmethod
    def to_line_item(entry: Any, default_vat_rate: Decimal) -> LineItem:
        """
        Convert one entry into a line item billed by the hour.

        Raises:
            InvalidInputError: the entry has no hourly rate
        """
        if entry.hourly_rate is None:
            raise InvalidInputError(
                message=f"Time entry '{entry.id}' has no hourly rate and cannot be billed",
                field="hourly_rate",
                details={"entry_id": str(entry.id)},
            )
        hours = round_money(Decimal(entry.duration_minutes or 0) / SIXTY)
        return LineItem(
            quantity=hours,
            um=Decimal("1"),
            unit_price=to_decimal(entry.hourly_rate),
            vat_rate=to_decimal(default_vat_rate),
            description=TimeEntryAggregator.describe(entry),
        )

    @staticmethod
    def to_line_items(entries: Sequence[Any], default_vat_rate: Decimal) -> List[LineItem]:
        """Line items for the billable entries, in input order."""
        return [
            TimeEntryAggregator.to_line_item(entry, default_vat_rate)
            for entry in entries
            if TimeEntryAggregator.is_billable(entry)
        ]

    @staticmethod
    def summarize(entries: Sequence[Any]) -> TimeEntrySummary:
        """
        Summarize a batch for preview.

        The first entry's rate is taken as representative (0 if absent).

        Raises:
            EmptyBatchError: no entries given
        """
        if not entries:
            raise EmptyBatchError()

        first = entries[0]
        hourly_rate = to_decimal(first.hourly_rate) if first.hourly_rate is not None else Decimal("0")
        total_minutes = sum(int(e.duration_minutes or 0) for e in entries)
        exact_hours = Decimal(total_minutes) / SIXTY
        dates = sorted(e.entry_date for e in entries if e.entry_date is not None)

        return TimeEntrySummary(
            project_id=first.project_id,
            total_minutes=total_minutes,
            total_hours=round_money(exact_hours),
            hourly_rate=hourly_rate,
            total_amount=round_money(exact_hours * hourly_rate),
            entry_ids=tuple(e.id for e in entries),
            date_from=dates[0] if dates else None,
            date_to=dates[-1] if dates else None,
        )
