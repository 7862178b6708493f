"""
Fakturo - Services Package

Business logic services.
"""

from fakturo.services.cache_service import CacheService
from fakturo.services.fx_service import ExchangeRateService
from fakturo.services.invoice_totals_service import InvoiceTotalsService
from fakturo.services.time_entry_service import TimeEntryService
from fakturo.services.invoice_service import InvoiceService

__all__ = [
    "CacheService",
    "ExchangeRateService",
    "InvoiceTotalsService",
    "TimeEntryService",
    "InvoiceService",
]
