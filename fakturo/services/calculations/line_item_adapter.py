"""
Fakturo - Line Item Adapter

Normalizes externally sourced line-item records (imports, legacy rows,
API payloads) into LineItem values using a fixed field-priority list.
The first key present with a non-blank value wins.

    quantity     <- quantity, qty                          (default 0)
    um           <- um, unit                               (default 1)
    unit_price   <- unit_price, pricePerUm, price, price_per_um (default 0)
    vat_rate     <- vat_rate, vat, then the invoice-level fallback rate
    description  <- description, name                      (default "")

A non-numeric unit label such as "pcs" or "h" means one unit.
"""

from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from fakturo.services.calculations.money_math import LineItem, ZERO, to_decimal
from fakturo.utils.error_handling import InvalidInputError


QUANTITY_KEYS: Tuple[str, ...] = ("quantity", "qty")
UM_KEYS: Tuple[str, ...] = ("um", "unit")
UNIT_PRICE_KEYS: Tuple[str, ...] = ("unit_price", "pricePerUm", "price", "price_per_um")
VAT_RATE_KEYS: Tuple[str, ...] = ("vat_rate", "vat")
DESCRIPTION_KEYS: Tuple[str, ...] = ("description", "name")


def pick(raw: Mapping[str, Any], keys: Sequence[str]) -> Optional[Any]:
    """Value of the first key present with a non-blank value."""
    for key in keys:
        value = raw.get(key)
        if value is None:
            continue
        if isinstance(value, str) and not value.strip():
            continue
        return value
    return None


def _parse_decimal(value: Any) -> Decimal:
    if isinstance(value, bool):
        raise InvalidOperation(value)
    if isinstance(value, str):
        value = value.strip().replace("'", "")
    number = to_decimal(value)
    if not number.is_finite():
        raise InvalidOperation(value)
    return number


def _number(raw: Mapping[str, Any], keys: Sequence[str], index: int, default: Decimal) -> Decimal:
    value = pick(raw, keys)
    if value is None:
        return default
    try:
        return _parse_decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        raise InvalidInputError(
            message=f"Line item {index}: {keys[0]} is not a number ({value!r})",
            field=f"items[{index}].{keys[0]}",
            details={"item_index": index, "provided": str(value)},
        )


def _unit_multiplier(raw: Mapping[str, Any]) -> Decimal:
    value = pick(raw, UM_KEYS)
    if value is None:
        return Decimal("1")
    try:
        return _parse_decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        # Unit label ("pcs", "h") rather than a multiplier
        return Decimal("1")


def line_item_from_mapping(
    raw: Mapping[str, Any],
    fallback_vat_rate: Optional[Decimal] = None,
    index: int = 0,
) -> LineItem:
    """
    Build a LineItem from a loosely-keyed record.

    Args:
        raw: Mapping using any of the supported key spellings
        fallback_vat_rate: Invoice-level VAT rate used when the row has none
        index: Position of the row, reported in validation errors

    Raises:
        InvalidInputError: a numeric field holds a non-numeric value
    """
    fallback = to_decimal(fallback_vat_rate) if fallback_vat_rate is not None else ZERO
    description = pick(raw, DESCRIPTION_KEYS)

    return LineItem(
        quantity=_number(raw, QUANTITY_KEYS, index, ZERO),
        um=_unit_multiplier(raw),
        unit_price=_number(raw, UNIT_PRICE_KEYS, index, ZERO),
        vat_rate=_number(raw, VAT_RATE_KEYS, index, fallback),
        description=str(description).strip() if description is not None else "",
    )


def line_items_from_mappings(
    rows: Iterable[Mapping[str, Any]],
    fallback_vat_rate: Optional[Decimal] = None,
) -> List[LineItem]:
    """Adapt every row, keeping input order."""
    return [
        line_item_from_mapping(row, fallback_vat_rate, index)
        for index, row in enumerate(rows or [])
    ]


def line_items_to_json(items: Iterable[LineItem]) -> List[Dict[str, str]]:
    """Serialize line items for the invoice's JSON column."""
    return [item.to_dict() for item in items]
