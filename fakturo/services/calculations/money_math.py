"""
Fakturo - Money Math

Pure arithmetic over invoice line items.

Rounding policy:
- Internal sums keep full Decimal precision
- Values are rounded to 2 decimals (ROUND_HALF_UP) only when they leave
  the engine
- total = rounded subtotal + rounded VAT, so the stored invariant
  total == subtotal + vat_amount holds exactly

VAT policy:
- VAT is computed on each item's pre-discount amount
- The discount only reduces the subtotal
"""

from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Iterable, List, Sequence, Tuple

from fakturo.utils.error_handling import InvalidInputError


ZERO = Decimal("0")
HUNDRED = Decimal("100")
CENT = Decimal("0.01")


def to_decimal(value) -> Decimal:
    """Coerce int/float/str to Decimal without binary float artefacts."""
    if isinstance(value, Decimal):
        return value
    if value is None:
        return ZERO
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


def round_money(value: Decimal) -> Decimal:
    """Round to the minor unit (2 decimals) using commercial rounding."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class LineItem:
    """One billable row on an invoice."""
    quantity: Decimal
    unit_price: Decimal
    vat_rate: Decimal = ZERO
    um: Decimal = Decimal("1")
    description: str = ""

    def is_valid(self) -> bool:
        """A row that counts toward the 'at least one item' rule."""
        return (
            self.quantity > 0
            and self.unit_price > 0
            and bool(self.description and self.description.strip())
        )

    def to_dict(self) -> Dict[str, str]:
        return {
            "description": self.description,
            "quantity": str(self.quantity),
            "um": str(self.um),
            "unit_price": str(self.unit_price),
            "vat_rate": str(self.vat_rate),
        }


@dataclass(frozen=True)
class VatBreakdownLine:
    """Net amount and VAT collected at a single rate."""
    vat_rate: Decimal
    net_amount: Decimal
    vat_amount: Decimal


@dataclass(frozen=True)
class InvoiceTotals:
    """Result of aggregating line items. All amounts rounded to 2 decimals."""
    raw_subtotal: Decimal
    discount_amount: Decimal
    subtotal: Decimal
    vat_amount: Decimal
    total: Decimal
    vat_breakdown: Tuple[VatBreakdownLine, ...] = field(default_factory=tuple)


class MoneyMath:
    """
    Line item and invoice arithmetic.

    Operands are expected to be validated upstream. A negative operand is
    treated as a programming error and raises InvalidInputError.
    """

    @staticmethod
    def check_item(item: LineItem, index: int = 0) -> None:
        for name in ("quantity", "um", "unit_price", "vat_rate"):
            value = getattr(item, name)
            if value is None or value < 0:
                raise InvalidInputError.for_item(index, name, value)

    @staticmethod
    def check_discount(discount_percent: Decimal) -> None:
        if discount_percent < 0 or discount_percent > HUNDRED:
            raise InvalidInputError(
                message=f"Discount must be between 0 and 100 percent (got {discount_percent})",
                field="discount_percent",
            )

    @staticmethod
    def _net(item: LineItem) -> Decimal:
        return item.quantity * item.um * item.unit_price

    @staticmethod
    def _vat(item: LineItem) -> Decimal:
        return MoneyMath._net(item) * item.vat_rate / HUNDRED

    @staticmethod
    def line_item_total(item: LineItem) -> Decimal:
        """quantity x um x unit_price, rounded to 2 decimals."""
        MoneyMath.check_item(item)
        return round_money(MoneyMath._net(item))

    @staticmethod
    def line_item_vat(item: LineItem) -> Decimal:
        """VAT on the item's undiscounted amount, rounded to 2 decimals."""
        MoneyMath.check_item(item)
        return round_money(MoneyMath._vat(item))

    @staticmethod
    def aggregate(items: Sequence[LineItem], discount_percent=ZERO) -> InvoiceTotals:
        """
        Fold line items into invoice totals.

        Args:
            items: Line items (order is irrelevant to the result)
            discount_percent: 0-100, applied to the subtotal before VAT

        Returns:
            InvoiceTotals with raw subtotal, discount, subtotal, VAT, total
            and a per-rate VAT breakdown
        """
        discount_percent = to_decimal(discount_percent)
        MoneyMath.check_discount(discount_percent)

        raw_subtotal = ZERO
        vat_total = ZERO
        by_rate: Dict[Decimal, List[Decimal]] = {}

        for index, item in enumerate(items):
            MoneyMath.check_item(item, index)
            net = MoneyMath._net(item)
            vat = MoneyMath._vat(item)
            raw_subtotal += net
            vat_total += vat
            bucket = by_rate.setdefault(round_money(item.vat_rate), [ZERO, ZERO])
            bucket[0] += net
            bucket[1] += vat

        discount_amount = raw_subtotal * discount_percent / HUNDRED
        subtotal = round_money(raw_subtotal - discount_amount)
        vat_amount = round_money(vat_total)

        breakdown = tuple(
            VatBreakdownLine(
                vat_rate=rate,
                net_amount=round_money(net),
                vat_amount=round_money(vat),
            )
            for rate, (net, vat) in sorted(by_rate.items())
        )

        return InvoiceTotals(
            raw_subtotal=round_money(raw_subtotal),
            discount_amount=round_money(discount_amount),
            subtotal=subtotal,
            vat_amount=vat_amount,
            total=subtotal + vat_amount,
            vat_breakdown=breakdown,
        )

    @staticmethod
    def average_vat_rate(items: Iterable[LineItem]) -> Decimal:
        """
        Effective VAT rate across items, weighted by pre-VAT amount.

        Σ item VAT / Σ item net x 100, rounded to 2 decimals. A zero
        subtotal yields 0.
        """
        net_total = ZERO
        vat_total = ZERO
        for index, item in enumerate(items):
            MoneyMath.check_item(item, index)
            net_total += MoneyMath._net(item)
            vat_total += MoneyMath._vat(item)
        if net_total == 0:
            return Decimal("0.00")
        return round_money(vat_total / net_total * HUNDRED)
