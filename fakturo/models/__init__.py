"""
Fakturo - SQLAlchemy Models Package

This package contains all database models for the application.
"""

from fakturo.models.base import BaseModel, TimestampMixin
from fakturo.models.invoice import Invoice, InvoiceStatus
from fakturo.models.time_entry import TimeEntry, TimeEntryStatus
from fakturo.models.exchange_rate import ExchangeRate

__all__ = [
    "BaseModel",
    "TimestampMixin",
    "Invoice",
    "InvoiceStatus",
    "TimeEntry",
    "TimeEntryStatus",
    "ExchangeRate",
]
