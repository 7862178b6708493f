"""
Fakturo - Time Entry Aggregation Tests
"""

import pytest
from datetime import date
from decimal import Decimal
from types import SimpleNamespace
from uuid import uuid4

from fakturo.models.time_entry import TimeEntryStatus
from fakturo.services.calculations.money_math import MoneyMath
from fakturo.services.calculations.time_entries import TimeEntryAggregator
from fakturo.utils.error_handling import EmptyBatchError, ErrorCode, InvalidInputError


PROJECT = uuid4()


def entry(minutes=90, rate="120", description="Workshop", entry_date=date(2026, 3, 2), **kwargs):
    values = dict(
        id=uuid4(),
        project_id=PROJECT,
        duration_minutes=minutes,
        hourly_rate=Decimal(rate) if rate is not None else None,
        description=description,
        entry_date=entry_date,
        status=TimeEntryStatus.UNBILLED,
        is_billable=True,
    )
    values.update(kwargs)
    return SimpleNamespace(**values)


class TestToLineItem:

    def test_ninety_minutes_at_120(self):
        item = TimeEntryAggregator.to_line_item(entry(), Decimal("8.1"))

        assert item.quantity == Decimal("1.50")
        assert item.unit_price == Decimal("120")
        assert item.vat_rate == Decimal("8.1")
        assert MoneyMath.line_item_total(item) == Decimal("180.00")

    def test_description_carries_swiss_date(self):
        item = TimeEntryAggregator.to_line_item(entry(), Decimal("0"))
        assert item.description == "Workshop (02.03.2026)"

    def test_blank_note_uses_date_only(self):
        item = TimeEntryAggregator.to_line_item(entry(description=None), Decimal("0"))
        assert item.description == "02.03.2026"

    def test_odd_minutes_round_hours(self):
        item = TimeEntryAggregator.to_line_item(entry(minutes=20), Decimal("0"))
        assert item.quantity == Decimal("0.33")

    def test_missing_rate_rejected(self):
        with pytest.raises(InvalidInputError) as exc_info:
            TimeEntryAggregator.to_line_item(entry(rate=None), Decimal("8.1"))
        assert exc_info.value.field == "hourly_rate"

    def test_to_line_items_skips_unbillable(self):
        entries = [
            entry(description="a"),
            entry(description="b", rate=None),
            entry(description="c", is_billable=False),
            entry(description="d", status=TimeEntryStatus.INVOICED),
            entry(description="e"),
        ]
        items = TimeEntryAggregator.to_line_items(entries, Decimal("8.1"))
        assert [i.description[0] for i in items] == ["a", "e"]


class TestSummarize:

    def test_summary_totals(self):
        entries = [
            entry(minutes=90, entry_date=date(2026, 3, 5)),
            entry(minutes=45, entry_date=date(2026, 3, 1)),
        ]

        summary = TimeEntryAggregator.summarize(entries)

        assert summary.project_id == PROJECT
        assert summary.total_minutes == 135
        assert summary.total_hours == Decimal("2.25")
        assert summary.hourly_rate == Decimal("120")
        assert summary.total_amount == Decimal("270.00")
        assert summary.entry_ids == tuple(e.id for e in entries)
        assert summary.date_from == date(2026, 3, 1)
        assert summary.date_to == date(2026, 3, 5)

    def test_amount_uses_exact_hours(self):
        # 20 minutes is 0.333.. hours; 0.33 x 100 would give 33.00
        summary = TimeEntryAggregator.summarize([entry(minutes=20, rate="100")])
        assert summary.total_hours == Decimal("0.33")
        assert summary.total_amount == Decimal("33.33")

    def test_first_entry_without_rate(self):
        summary = TimeEntryAggregator.summarize([entry(rate=None), entry(rate="200")])
        assert summary.hourly_rate == Decimal("0")
        assert summary.total_amount == Decimal("0.00")

    def test_empty_batch(self):
        with pytest.raises(EmptyBatchError) as exc_info:
            TimeEntryAggregator.summarize([])
        assert exc_info.value.code == ErrorCode.EMPTY_BATCH
