"""
Fakturo - Calculations Package

Pure invoice arithmetic, free of I/O.

Modules:
- money_math: line item totals, VAT and invoice aggregation
- currency: conversion into the account currency
- time_entries: time entries folded into billable line items
- status: effective invoice status (overdue derived from the due date)
- line_item_adapter: field-priority mapping of loosely-keyed item records
"""

from decimal import Decimal
from typing import Sequence

from fakturo.services.calculations.money_math import (
    InvoiceTotals,
    LineItem,
    MoneyMath,
    VatBreakdownLine,
    round_money,
    to_decimal,
)
from fakturo.services.calculations.currency import CurrencyReconciler
from fakturo.services.calculations.time_entries import TimeEntryAggregator, TimeEntrySummary
from fakturo.services.calculations.status import InvoiceStatusResolver
from fakturo.services.calculations.line_item_adapter import (
    line_item_from_mapping,
    line_items_from_mappings,
    line_items_to_json,
)


# ===========================================
# CONVENIENCE FUNCTIONS
# ===========================================

def calculate_totals(items: Sequence[LineItem], discount_percent: Decimal = Decimal("0")) -> InvoiceTotals:
    """
    Aggregate line items into invoice totals.

    Args:
        items: Line items
        discount_percent: Discount applied to the subtotal (0-100)

    Returns:
        InvoiceTotals (subtotal already net of discount; VAT on pre-discount amounts)
    """
    return MoneyMath.aggregate(items, discount_percent)


def convert_amount(amount: Decimal, from_currency: str, to_currency: str, rate: Decimal = None) -> Decimal:
    """Convert an amount, returning it unchanged for identical currencies."""
    return CurrencyReconciler.convert(amount, from_currency, to_currency, rate)


__all__ = [
    "InvoiceTotals",
    "LineItem",
    "MoneyMath",
    "VatBreakdownLine",
    "round_money",
    "to_decimal",
    "CurrencyReconciler",
    "TimeEntryAggregator",
    "TimeEntrySummary",
    "InvoiceStatusResolver",
    "line_item_from_mapping",
    "line_items_from_mappings",
    "line_items_to_json",
    "calculate_totals",
    "convert_amount",
]
