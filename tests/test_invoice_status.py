"""
Fakturo - Invoice Status Tests

Effective status derivation against a fixed clock.
"""

import pytest
from datetime import date, datetime, timedelta
from types import SimpleNamespace

from fakturo.models.invoice import InvoiceStatus
from fakturo.services.calculations.status import InvoiceStatusResolver
from fakturo.utils.clock import FixedClock


TODAY = date(2026, 3, 16)


@pytest.fixture
def resolver():
    return InvoiceStatusResolver(FixedClock(TODAY))


def invoice(status, due_date=None):
    return SimpleNamespace(status=status, due_date=due_date)


class TestResolve:

    def test_issued_past_due_is_overdue(self, resolver):
        inv = invoice(InvoiceStatus.ISSUED, TODAY - timedelta(days=1))
        assert resolver.resolve(inv) == InvoiceStatus.OVERDUE
        assert resolver.is_overdue(inv)

    def test_draft_past_due_is_overdue(self, resolver):
        inv = invoice(InvoiceStatus.DRAFT, TODAY - timedelta(days=1))
        assert resolver.resolve(inv) == InvoiceStatus.OVERDUE
        assert resolver.display_label(resolver.resolve(inv)) == "overdue"

    def test_due_today_is_not_overdue(self, resolver):
        assert resolver.resolve(invoice(InvoiceStatus.ISSUED, TODAY)) == InvoiceStatus.ISSUED

    def test_due_datetime_compared_by_date(self, resolver):
        due = datetime(2026, 3, 16, 0, 1)
        assert resolver.resolve(invoice(InvoiceStatus.ISSUED, due)) == InvoiceStatus.ISSUED

    def test_paid_wins_over_due_date(self, resolver):
        inv = invoice(InvoiceStatus.PAID, TODAY - timedelta(days=30))
        assert resolver.resolve(inv) == InvoiceStatus.PAID

    def test_cancelled_is_terminal(self, resolver):
        inv = invoice(InvoiceStatus.CANCELLED, TODAY - timedelta(days=30))
        assert resolver.resolve(inv) == InvoiceStatus.CANCELLED

    def test_no_due_date(self, resolver):
        assert resolver.resolve(invoice(InvoiceStatus.DRAFT)) == InvoiceStatus.DRAFT
        assert resolver.days_until_due(invoice(InvoiceStatus.DRAFT)) is None

    def test_stored_overdue_no_longer_late(self, resolver):
        inv = invoice(InvoiceStatus.OVERDUE, TODAY + timedelta(days=5))
        assert resolver.resolve(inv) == InvoiceStatus.ISSUED

    def test_accepts_plain_strings(self, resolver):
        assert resolver.resolve(invoice("issued", TODAY - timedelta(days=2))) == InvoiceStatus.OVERDUE

    def test_clock_moves(self):
        clock = FixedClock(TODAY)
        resolver = InvoiceStatusResolver(clock)
        inv = invoice(InvoiceStatus.ISSUED, TODAY)
        assert not resolver.is_overdue(inv)

        clock.advance(clock.now() + timedelta(days=1))
        assert resolver.is_overdue(inv)


class TestDisplay:

    def test_days_until_due(self, resolver):
        assert resolver.days_until_due(invoice(InvoiceStatus.ISSUED, TODAY + timedelta(days=10))) == 10
        assert resolver.days_until_due(invoice(InvoiceStatus.ISSUED, TODAY - timedelta(days=3))) == -3

    @pytest.mark.parametrize("status,label", [
        (InvoiceStatus.ISSUED, "pending"),
        (InvoiceStatus.OVERDUE, "overdue"),
        (InvoiceStatus.PAID, "paid"),
        (InvoiceStatus.DRAFT, "draft"),
        (InvoiceStatus.CANCELLED, "cancelled"),
    ])
    def test_labels(self, status, label):
        assert InvoiceStatusResolver.display_label(status) == label
