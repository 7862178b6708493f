"""
Fakturo - Exchange Rate Schemas
"""

from datetime import date
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ExchangeRateResponse(BaseModel):
    """1 from_currency = rate to_currency."""
    model_config = ConfigDict(from_attributes=True)

    from_currency: str
    to_currency: str
    rate: Decimal
    as_of: date
    source: str


class ExchangeRateUpdateRequest(BaseModel):
    """Manually record a rate for a date."""
    from_currency: str = Field(..., min_length=3, max_length=3)
    to_currency: str = Field(..., min_length=3, max_length=3)
    rate: Decimal = Field(..., gt=0)
    rate_date: date

    @field_validator("from_currency", "to_currency")
    @classmethod
    def upper_code(cls, v):
        return v.upper()


class ConvertRequest(BaseModel):
    amount: Decimal
    from_currency: str = Field(..., min_length=3, max_length=3)
    to_currency: str = Field(..., min_length=3, max_length=3)
    as_of: Optional[date] = Field(None, description="Defaults to today")

    @field_validator("from_currency", "to_currency")
    @classmethod
    def upper_code(cls, v):
        return v.upper()


class ConvertResponse(BaseModel):
    amount: Decimal
    converted_amount: Decimal
    from_currency: str
    to_currency: str
    rate: Decimal
    as_of: date
    source: str
