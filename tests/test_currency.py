"""
Fakturo - Currency Reconciliation Tests
"""

import pytest
from decimal import Decimal
from types import SimpleNamespace

from fakturo.services.calculations import convert_amount
from fakturo.services.calculations.currency import CurrencyReconciler
from fakturo.utils.error_handling import InvalidInputError


class TestConvert:
    """Amount conversion with a supplied rate."""

    def test_usd_to_chf(self):
        assert CurrencyReconciler.convert(Decimal("339.30"), "USD", "CHF", Decimal("0.92")) == Decimal("312.16")

    def test_same_currency_is_identity(self):
        assert CurrencyReconciler.convert(Decimal("100.005"), "CHF", "chf", Decimal("5")) == Decimal("100.005")
        assert convert_amount(Decimal("10"), "EUR", "EUR") == Decimal("10")

    def test_missing_rate_rejected(self):
        with pytest.raises(InvalidInputError) as exc_info:
            CurrencyReconciler.convert(Decimal("10"), "USD", "CHF", None)
        assert exc_info.value.field == "exchange_rate"

    def test_negative_rate_rejected(self):
        with pytest.raises(InvalidInputError):
            CurrencyReconciler.convert(Decimal("10"), "USD", "CHF", Decimal("-0.5"))

    def test_zero_rate_converts_to_zero(self):
        assert CurrencyReconciler.convert(Decimal("10"), "USD", "CHF", Decimal("0")) == Decimal("0.00")

    def test_needs_conversion_ignores_case_and_spaces(self):
        assert not CurrencyReconciler.needs_conversion(" usd", "USD")
        assert CurrencyReconciler.needs_conversion("USD", "CHF")


class TestAmountInAccountCurrency:
    """Fallback chain used by revenue reporting."""

    def invoice(self, **kwargs):
        values = dict(total=Decimal("100.00"), currency="USD", amount_in_account_currency=None, exchange_rate=None)
        values.update(kwargs)
        return SimpleNamespace(**values)

    def test_same_currency_uses_total(self):
        inv = self.invoice(currency="CHF", amount_in_account_currency=Decimal("1"))
        assert CurrencyReconciler.amount_in_account_currency(inv, "CHF") == Decimal("100.00")

    def test_stored_conversion_preferred(self):
        inv = self.invoice(amount_in_account_currency=Decimal("91.50"), exchange_rate=Decimal("0.92"))
        assert CurrencyReconciler.amount_in_account_currency(inv, "CHF") == Decimal("91.50")

    def test_stored_rate_applied(self):
        inv = self.invoice(exchange_rate=Decimal("0.92"))
        assert CurrencyReconciler.amount_in_account_currency(inv, "CHF") == Decimal("92.00")

    def test_legacy_row_falls_back_to_native_total(self):
        assert CurrencyReconciler.amount_in_account_currency(self.invoice(), "CHF") == Decimal("100.00")
