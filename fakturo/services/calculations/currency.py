"""
Fakturo - Currency Reconciler

Converts amounts between an invoice's currency and the account currency
using a supplied rate. Obtaining the rate is the caller's job.
"""

from decimal import Decimal
from typing import Any, Optional

from fakturo.services.calculations.money_math import round_money, to_decimal
from fakturo.utils.error_handling import InvalidInputError


class CurrencyReconciler:
    """Currency conversion helpers."""

    @staticmethod
    def normalize_code(code: str) -> str:
        return (code or "").strip().upper()

    @staticmethod
    def needs_conversion(from_currency: str, to_currency: str) -> bool:
        """True when the two ISO codes differ (case-insensitive)."""
        return (
            CurrencyReconciler.normalize_code(from_currency)
            != CurrencyReconciler.normalize_code(to_currency)
        )

    @staticmethod
    def convert(
        amount: Decimal,
        from_currency: str,
        to_currency: str,
        rate: Optional[Decimal] = None,
    ) -> Decimal:
        """
        Convert an amount into another currency.

        Identical currencies return the amount unchanged and the rate is
        ignored. Otherwise amount x rate is rounded to 2 decimals.

        Raises:
            InvalidInputError: conversion needed but rate missing or negative
        """
        amount = to_decimal(amount)
        if not CurrencyReconciler.needs_conversion(from_currency, to_currency):
            return amount

        if rate is None:
            raise InvalidInputError(
                message=f"An exchange rate is required to convert {from_currency} to {to_currency}",
                field="exchange_rate",
            )
        rate = to_decimal(rate)
        if rate < 0:
            raise InvalidInputError(
                message=f"Exchange rate must not be negative (got {rate})",
                field="exchange_rate",
            )
        return round_money(amount * rate)

    @staticmethod
    def amount_in_account_currency(invoice: Any, account_currency: str) -> Decimal:
        """
        Best available total of a stored invoice in the account currency.

        Used by dashboards and revenue summaries. Falls back in order:
        1. Same currency: the invoice total
        2. The stored converted amount
        3. total x stored exchange rate
        4. The native total (legacy rows without conversion data)
        """
        total = to_decimal(invoice.total)
        if not CurrencyReconciler.needs_conversion(invoice.currency, account_currency):
            return total

        stored = getattr(invoice, "amount_in_account_currency", None)
        if stored is not None:
            return to_decimal(stored)

        rate = getattr(invoice, "exchange_rate", None)
        if rate is not None:
            return round_money(total * to_decimal(rate))

        return total
