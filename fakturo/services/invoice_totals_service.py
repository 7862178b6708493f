"""
Fakturo - Invoice Totals Service

Produces the persisted total set of an invoice on every create and edit:

1. Validate the line items (at least one valid item required)
2. Aggregate subtotal / VAT / total
3. Convert the total into the account currency when currencies differ
4. Compute the average effective VAT rate

Conversion is best effort. When no rate can be obtained the invoice is
still saved in its own currency and the converted fields stay empty.
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional, Protocol, Sequence, Tuple

from fakturo.config import get_settings
from fakturo.services.calculations.currency import CurrencyReconciler
from fakturo.services.calculations.line_item_adapter import line_items_to_json
from fakturo.services.calculations.money_math import (
    InvoiceTotals,
    LineItem,
    MoneyMath,
    VatBreakdownLine,
    to_decimal,
)
from fakturo.utils.error_handling import ConversionUnavailable, InvalidInputError

logger = logging.getLogger(__name__)
settings = get_settings()


class RateProvider(Protocol):
    async def get_rate(self, from_currency: str, to_currency: str, as_of: date) -> Decimal:
        ...


@dataclass(frozen=True)
class InvoiceTotalsResult:
    """Everything an invoice row stores about its money."""
    items: Tuple[LineItem, ...]
    currency: str
    discount_percent: Decimal
    raw_subtotal: Decimal
    discount_amount: Decimal
    subtotal: Decimal
    vat_amount: Decimal
    vat_rate: Decimal
    total: Decimal
    exchange_rate: Optional[Decimal] = None
    amount_in_account_currency: Optional[Decimal] = None
    account_currency: Optional[str] = None
    vat_breakdown: Tuple[VatBreakdownLine, ...] = field(default_factory=tuple)

    @property
    def is_converted(self) -> bool:
        return self.amount_in_account_currency is not None

    def apply_to(self, invoice: Any) -> None:
        """Write the computed fields onto an Invoice row."""
        invoice.items = line_items_to_json(self.items)
        invoice.currency = self.currency
        invoice.discount_percent = self.discount_percent
        invoice.subtotal = self.subtotal
        invoice.discount_amount = self.discount_amount
        invoice.vat_amount = self.vat_amount
        invoice.vat_rate = self.vat_rate
        invoice.total = self.total
        invoice.exchange_rate = self.exchange_rate
        invoice.amount_in_account_currency = self.amount_in_account_currency
        invoice.account_currency = self.account_currency


def item_problems(item: LineItem) -> List[str]:
    """Reasons a row does not count as a valid item (empty when valid)."""
    problems = []
    if not item.quantity > 0:
        problems.append("quantity must be greater than zero")
    if not item.unit_price > 0:
        problems.append("unit price must be greater than zero")
    if not (item.description and item.description.strip()):
        problems.append("description is required")
    return problems


class InvoiceTotalsService:
    """Orchestrates MoneyMath and CurrencyReconciler for invoice saves."""

    def __init__(
        self,
        rate_provider: Optional[RateProvider] = None,
        account_currency: Optional[str] = None,
    ):
        self.rate_provider = rate_provider
        self.account_currency = CurrencyReconciler.normalize_code(
            account_currency or settings.account_currency
        )

    @staticmethod
    def validate_items(items: Sequence[LineItem]) -> None:
        """
        Reject negative operands and item lists without a valid item.

        The same predicate applies on create and on edit.

        Raises:
            InvalidInputError: with field "items[i].<name>" or "items"
        """
        for index, item in enumerate(items):
            MoneyMath.check_item(item, index)

        if any(item.is_valid() for item in items):
            return

        reasons: List[Dict[str, Any]] = [
            {"item_index": index, "problems": item_problems(item)}
            for index, item in enumerate(items)
        ]
        raise InvalidInputError(
            message="At least one line item with quantity, price and description is required",
            field="items",
            details={"items": reasons},
        )

    async def compute(
        self,
        items: Sequence[LineItem],
        discount_percent: Decimal,
        currency: str,
        issue_date: date,
        exchange_rate: Optional[Decimal] = None,
    ) -> InvoiceTotalsResult:
        """
        Compute the stored totals of an invoice.

        Args:
            items: Line items in display order
            discount_percent: 0-100, reduces the subtotal only
            currency: Invoice currency (ISO 4217)
            issue_date: Date the exchange rate is quoted for
            exchange_rate: Caller-supplied rate; skips the provider lookup

        Returns:
            InvoiceTotalsResult (converted fields None when not converted)
        """
        items = tuple(items)
        discount_percent = to_decimal(discount_percent)
        currency = CurrencyReconciler.normalize_code(currency)

        self.validate_items(items)
        totals: InvoiceTotals = MoneyMath.aggregate(items, discount_percent)
        vat_rate = MoneyMath.average_vat_rate(items)

        rate: Optional[Decimal] = None
        converted: Optional[Decimal] = None
        account_currency: Optional[str] = None

        if CurrencyReconciler.needs_conversion(currency, self.account_currency):
            rate = await self._resolve_rate(currency, issue_date, exchange_rate)
            if rate is not None:
                converted = CurrencyReconciler.convert(totals.total, currency, self.account_currency, rate)
                account_currency = self.account_currency

        return InvoiceTotalsResult(
            items=items,
            currency=currency,
            discount_percent=discount_percent,
            raw_subtotal=totals.raw_subtotal,
            discount_amount=totals.discount_amount,
            subtotal=totals.subtotal,
            vat_amount=totals.vat_amount,
            vat_rate=vat_rate,
            total=totals.total,
            exchange_rate=rate,
            amount_in_account_currency=converted,
            account_currency=account_currency,
            vat_breakdown=totals.vat_breakdown,
        )

    async def _resolve_rate(
        self,
        currency: str,
        issue_date: date,
        exchange_rate: Optional[Decimal],
    ) -> Optional[Decimal]:
        if exchange_rate is not None:
            rate = to_decimal(exchange_rate)
            if rate < 0:
                raise InvalidInputError(
                    message=f"Exchange rate must not be negative (got {rate})",
                    field="exchange_rate",
                )
            return rate

        if self.rate_provider is None:
            logger.warning(
                f"No exchange-rate provider configured; {currency} invoice saved without "
                f"{self.account_currency} amount"
            )
            return None

        try:
            return await self.rate_provider.get_rate(currency, self.account_currency, issue_date)
        except ConversionUnavailable as e:
            logger.warning(
                f"Conversion {currency}->{self.account_currency} unavailable for {issue_date}; "
                f"saving in native currency: {e.message}"
            )
            return None
