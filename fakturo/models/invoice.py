"""
Fakturo - Invoice Model

Invoice with its line items stored inline as an ordered JSON list.

Totals (subtotal, discount_amount, vat_amount, vat_rate, total and the
account-currency fields) are derived values. They are only ever written
from an InvoiceTotalsResult and never edited by hand.
"""

import uuid
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

from sqlalchemy import JSON, Date, Numeric, String, Text, Uuid, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column

from fakturo.models.base import BaseModel


class InvoiceStatus(str, Enum):
    """Invoice lifecycle status."""
    DRAFT = "draft"           # Not yet sent
    ISSUED = "issued"         # Sent, awaiting payment (shown as "pending")
    PAID = "paid"             # Payment received
    CANCELLED = "cancelled"   # Terminal
    OVERDUE = "overdue"       # Derived on read; only legacy rows store it



class Invoice(BaseModel):
    """
    Invoice model.

    Every query is scoped by user_id.
    """

    __tablename__ = "invoices"

    # Owner
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        nullable=False,
        index=True,
    )

    # Invoice Number (per-user sequence)
    invoice_number: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        index=True,
    )

    # References
    contact_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid(as_uuid=True), nullable=True)
    project_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid(as_uuid=True), nullable=True)

    # Line items, in display order
    items: Mapped[List[Dict[str, Any]]] = mapped_column(
        JSON,
        nullable=False,
        default=list,
    )
    discount_percent: Mapped[Decimal] = mapped_column(
        Numeric(precision=5, scale=2),
        nullable=False,
        default=Decimal("0.00"),
    )
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="CHF")

    # Amounts
    subtotal: Mapped[Decimal] = mapped_column(
        Numeric(precision=15, scale=2),
        nullable=False,
        default=Decimal("0.00"),
    )
    discount_amount: Mapped[Decimal] = mapped_column(
        Numeric(precision=15, scale=2),
        nullable=False,
        default=Decimal("0.00"),
    )
    vat_amount: Mapped[Decimal] = mapped_column(
        Numeric(precision=15, scale=2),
        nullable=False,
        default=Decimal("0.00"),
    )
    vat_rate: Mapped[Decimal] = mapped_column(
        Numeric(precision=5, scale=2),
        nullable=False,
        default=Decimal("0.00"),
        comment="Average effective VAT rate across items",
    )
    total: Mapped[Decimal] = mapped_column(
        Numeric(precision=15, scale=2),
        nullable=False,
        default=Decimal("0.00"),
    )

    # Account-currency reconciliation (absent when not converted)
    exchange_rate: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(precision=18, scale=6),
        nullable=True,
        comment="1 invoice currency = rate account currency",
    )
    amount_in_account_currency: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(precision=15, scale=2),
        nullable=True,
    )
    account_currency: Mapped[Optional[str]] = mapped_column(String(3), nullable=True)

    # Status
    status: Mapped[InvoiceStatus] = mapped_column(
        SQLEnum(InvoiceStatus),
        default=InvoiceStatus.ISSUED,
        nullable=False,
        index=True,
    )

    # Dates
    issue_date: Mapped[date] = mapped_column(Date, nullable=False)
    due_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    paid_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    # Notes
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    payment_terms: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Time entries folded into this invoice (string ids)
    source_time_entry_ids: Mapped[List[str]] = mapped_column(
        JSON,
        nullable=False,
        default=list,
    )

    @property
    def is_converted(self) -> bool:
        """Check if account-currency figures are present."""
        return self.amount_in_account_currency is not None

    def __repr__(self) -> str:
        return f"<Invoice(id={self.id}, number={self.invoice_number}, status={self.status})>"
