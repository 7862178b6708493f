"""
Fakturo - Invoice Totals Service Tests

Validation, aggregation and best-effort currency reconciliation.
"""

import pytest
from datetime import date
from decimal import Decimal
from types import SimpleNamespace

from fakturo.services.calculations.money_math import LineItem
from fakturo.services.invoice_totals_service import InvoiceTotalsService
from fakturo.utils.error_handling import InvalidInputError

from tests.fixtures.rate_provider_mock import StubRateProvider


ISSUE_DATE = date(2026, 3, 16)


def items():
    return [
        LineItem(quantity=Decimal("3"), unit_price=Decimal("100"), vat_rate=Decimal("8.1"), description="Development"),
        LineItem(quantity=Decimal("1"), unit_price=Decimal("50"), vat_rate=Decimal("0"), description="Travel"),
    ]


class TestValidation:

    def test_requires_one_valid_item(self):
        rows = [LineItem(quantity=Decimal("0"), unit_price=Decimal("10"), description="Nothing")]
        with pytest.raises(InvalidInputError) as exc_info:
            InvoiceTotalsService.validate_items(rows)
        assert exc_info.value.field == "items"
        problems = exc_info.value.details["items"][0]["problems"]
        assert problems == ["quantity must be greater than zero"]

    def test_empty_list_rejected(self):
        with pytest.raises(InvalidInputError):
            InvoiceTotalsService.validate_items([])

    def test_invalid_rows_allowed_beside_a_valid_one(self):
        rows = items() + [LineItem(quantity=Decimal("0"), unit_price=Decimal("0"))]
        InvoiceTotalsService.validate_items(rows)


class TestCompute:

    @pytest.mark.asyncio
    async def test_same_currency(self):
        service = InvoiceTotalsService(rate_provider=StubRateProvider(), account_currency="CHF")

        result = await service.compute(items(), Decimal("10"), "chf", ISSUE_DATE)

        assert result.currency == "CHF"
        assert result.subtotal == Decimal("315.00")
        assert result.vat_amount == Decimal("24.30")
        assert result.total == Decimal("339.30")
        assert result.vat_rate == Decimal("6.94")
        assert result.exchange_rate is None
        assert result.amount_in_account_currency is None
        assert result.account_currency is None
        assert not result.is_converted

    @pytest.mark.asyncio
    async def test_converts_foreign_currency(self):
        provider = StubRateProvider({("USD", "CHF"): Decimal("0.92")})
        service = InvoiceTotalsService(rate_provider=provider, account_currency="CHF")

        result = await service.compute(items(), Decimal("10"), "USD", ISSUE_DATE)

        assert provider.calls == [("USD", "CHF", ISSUE_DATE)]
        assert result.exchange_rate == Decimal("0.92")
        assert result.amount_in_account_currency == Decimal("312.16")
        assert result.account_currency == "CHF"
        assert result.is_converted

    @pytest.mark.asyncio
    async def test_supplied_rate_skips_provider(self):
        provider = StubRateProvider({("USD", "CHF"): Decimal("0.92")})
        service = InvoiceTotalsService(rate_provider=provider, account_currency="CHF")

        result = await service.compute(items(), Decimal("0"), "USD", ISSUE_DATE, exchange_rate=Decimal("0.9"))

        assert provider.calls == []
        assert result.amount_in_account_currency == Decimal("336.87")

    @pytest.mark.asyncio
    async def test_provider_failure_keeps_native_amounts(self):
        service = InvoiceTotalsService(rate_provider=StubRateProvider(), account_currency="CHF")

        result = await service.compute(items(), Decimal("10"), "JPY", ISSUE_DATE)

        assert result.total == Decimal("339.30")
        assert result.exchange_rate is None
        assert result.amount_in_account_currency is None

    @pytest.mark.asyncio
    async def test_without_provider(self):
        service = InvoiceTotalsService(account_currency="CHF")
        result = await service.compute(items(), Decimal("0"), "EUR", ISSUE_DATE)
        assert not result.is_converted

    @pytest.mark.asyncio
    async def test_negative_supplied_rate(self):
        service = InvoiceTotalsService(account_currency="CHF")
        with pytest.raises(InvalidInputError) as exc_info:
            await service.compute(items(), Decimal("0"), "EUR", ISSUE_DATE, exchange_rate=Decimal("-1"))
        assert exc_info.value.field == "exchange_rate"

    @pytest.mark.asyncio
    async def test_apply_to_writes_every_stored_field(self):
        provider = StubRateProvider({("USD", "CHF"): Decimal("0.92")})
        service = InvoiceTotalsService(rate_provider=provider, account_currency="CHF")
        result = await service.compute(items(), Decimal("10"), "USD", ISSUE_DATE)

        row = SimpleNamespace()
        result.apply_to(row)

        assert row.total == Decimal("339.30")
        assert row.amount_in_account_currency == Decimal("312.16")
        assert row.items[0] == {
            "description": "Development",
            "quantity": "3",
            "um": "1",
            "unit_price": "100",
            "vat_rate": "8.1",
        }
