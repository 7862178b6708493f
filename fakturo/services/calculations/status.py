"""
Fakturo - Invoice Status Resolver

Derives the status shown to users from the stored status and the due
date. Overdue is computed on every read and never written back.

    paid                      -> paid
    cancelled                 -> cancelled
    due_date < today          -> overdue
    otherwise                 -> stored status (draft / issued)

Dates are compared as calendar dates, so an invoice due today is not
overdue.
"""

from datetime import date, datetime
from typing import Any, Optional, Union

from fakturo.models.invoice import InvoiceStatus
from fakturo.utils.clock import Clock


DISPLAY_LABELS = {
    InvoiceStatus.DRAFT: "draft",
    InvoiceStatus.ISSUED: "pending",
    InvoiceStatus.OVERDUE: "overdue",
    InvoiceStatus.PAID: "paid",
    InvoiceStatus.CANCELLED: "cancelled",
}


def as_date(value: Optional[Union[date, datetime]]) -> Optional[date]:
    """Truncate a datetime to its calendar date."""
    if isinstance(value, datetime):
        return value.date()
    return value


class InvoiceStatusResolver:
    """Pure status derivation against an injected clock."""

    def __init__(self, clock: Clock):
        self.clock = clock

    def resolve(self, invoice: Any) -> InvoiceStatus:
        stored = InvoiceStatus(invoice.status)

        if stored == InvoiceStatus.PAID:
            return InvoiceStatus.PAID
        if stored == InvoiceStatus.CANCELLED:
            return InvoiceStatus.CANCELLED

        due = as_date(invoice.due_date)
        if due is not None and due < self.clock.today():
            return InvoiceStatus.OVERDUE

        # Legacy rows that persisted "overdue" before it was derived
        if stored == InvoiceStatus.OVERDUE:
            return InvoiceStatus.ISSUED
        return stored

    def is_overdue(self, invoice: Any) -> bool:
        return self.resolve(invoice) == InvoiceStatus.OVERDUE

    def days_until_due(self, invoice: Any) -> Optional[int]:
        """Days left until the due date; negative when late, None without one."""
        due = as_date(invoice.due_date)
        if due is None:
            return None
        return (due - self.clock.today()).days

    @staticmethod
    def display_label(status: InvoiceStatus) -> str:
        """Label for list views ("issued" reads as "pending")."""
        return DISPLAY_LABELS[InvoiceStatus(status)]
