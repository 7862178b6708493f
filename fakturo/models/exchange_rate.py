"""
Fakturo - Exchange Rate Model

Persistent store of exchange-rate quotes, one row per pair and date.
"""

from datetime import date
from decimal import Decimal
from typing import Optional

from sqlalchemy import Date, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from fakturo.models.base import BaseModel


class ExchangeRate(BaseModel):
    """
    Exchange rate quote.

    1 base_currency = rate target_currency on rate_date.
    """
    __tablename__ = "exchange_rates"
    __table_args__ = (
        UniqueConstraint("base_currency", "target_currency", "rate_date"),
    )

    base_currency: Mapped[str] = mapped_column(
        String(3),
        nullable=False,
        comment="Source currency (e.g., USD)"
    )
    target_currency: Mapped[str] = mapped_column(
        String(3),
        nullable=False,
        comment="Target currency (e.g., CHF)"
    )
    rate: Mapped[Decimal] = mapped_column(
        Numeric(18, 6),
        nullable=False,
    )
    rate_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    source: Mapped[Optional[str]] = mapped_column(
        String(50),
        nullable=True,
        comment="frankfurter, manual"
    )
