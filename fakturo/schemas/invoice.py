"""
Fakturo - Invoice Schemas

Pydantic schemas for invoice calculation and management.
Money fields are Decimals and serialize as strings.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Dict, List, Optional, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator

from fakturo.models.invoice import InvoiceStatus
from fakturo.services.calculations.money_math import LineItem, MoneyMath


def _upper_currency(value: Optional[str]) -> Optional[str]:
    if value is None:
        return value
    value = value.strip().upper()
    if len(value) != 3 or not value.isalpha():
        raise ValueError("Currency must be a 3-letter ISO 4217 code")
    return value


# ===========================================
# LINE ITEM SCHEMAS
# ===========================================

class LineItemInput(BaseModel):
    """
    Line item as submitted by clients.

    Alternative key spellings (qty, unit, price, pricePerUm, price_per_um,
    vat, name) are accepted and mapped by the line item adapter.
    """
    model_config = ConfigDict(extra="allow")

    description: Optional[str] = Field(None, max_length=500)
    quantity: Optional[Decimal] = None
    um: Optional[Union[Decimal, str]] = Field(None, description="Unit multiplier; unit labels count as 1")
    unit_price: Optional[Decimal] = None
    vat_rate: Optional[Decimal] = Field(None, description="VAT percent; falls back to the invoice rate")


class LineItemResponse(BaseModel):
    """Stored line item with its computed amounts."""
    description: str = ""
    quantity: Decimal
    um: Decimal = Decimal("1")
    unit_price: Decimal
    vat_rate: Decimal

    def as_line_item(self) -> LineItem:
        return LineItem(
            quantity=self.quantity,
            um=self.um,
            unit_price=self.unit_price,
            vat_rate=self.vat_rate,
            description=self.description,
        )

    @computed_field
    @property
    def total(self) -> Decimal:
        """Line total before VAT."""
        return MoneyMath.line_item_total(self.as_line_item())

    @computed_field
    @property
    def vat_amount(self) -> Decimal:
        """VAT on the line total."""
        return MoneyMath.line_item_vat(self.as_line_item())


class VatBreakdownResponse(BaseModel):
    """Net and VAT collected at one rate."""
    model_config = ConfigDict(from_attributes=True)

    vat_rate: Decimal
    net_amount: Decimal
    vat_amount: Decimal


# ===========================================
# CALCULATION SCHEMAS
# ===========================================

class InvoiceCalculateRequest(BaseModel):
    """Totals preview request; nothing is saved."""
    items: List[LineItemInput] = Field(default_factory=list)
    discount_percent: Decimal = Field(Decimal("0"), ge=0, le=100)
    currency: Optional[str] = Field(None, description="Defaults to the account currency")
    issue_date: Optional[date] = None
    exchange_rate: Optional[Decimal] = Field(None, ge=0)
    vat_rate: Optional[Decimal] = Field(None, ge=0, le=100, description="Fallback VAT rate for items")

    @field_validator("currency")
    @classmethod
    def currency_code(cls, v):
        return _upper_currency(v)


class InvoiceTotalsResponse(BaseModel):
    """Computed totals."""
    model_config = ConfigDict(from_attributes=True)

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
    is_converted: bool = False
    vat_breakdown: List[VatBreakdownResponse] = []


# ===========================================
# INVOICE REQUEST SCHEMAS
# ===========================================

class InvoiceCreateRequest(BaseModel):
    """Schema for creating an invoice."""
    contact_id: Optional[UUID] = None
    project_id: Optional[UUID] = None
    items: List[LineItemInput] = Field(default_factory=list)
    discount_percent: Decimal = Field(Decimal("0"), ge=0, le=100)
    currency: Optional[str] = Field(None, description="Defaults to the account currency")
    exchange_rate: Optional[Decimal] = Field(None, ge=0, description="Auto-fetched for the issue date if not provided")
    vat_rate: Optional[Decimal] = Field(None, ge=0, le=100, description="Fallback VAT rate for items")
    issue_date: Optional[date] = Field(None, description="Defaults to today")
    due_date: Optional[date] = None
    status: InvoiceStatus = InvoiceStatus.ISSUED
    notes: Optional[str] = Field(None, max_length=5000)
    payment_terms: Optional[str] = Field(None, max_length=1000)

    @field_validator("currency")
    @classmethod
    def currency_code(cls, v):
        return _upper_currency(v)

    @field_validator("due_date")
    @classmethod
    def due_date_must_be_after_issue_date(cls, v, info):
        issue_date = info.data.get("issue_date")
        if v is not None and issue_date is not None and v < issue_date:
            raise ValueError("Due date must be on or after issue date")
        return v


class InvoiceUpdateRequest(BaseModel):
    """Schema for updating an invoice. Omitted fields are left unchanged."""
    contact_id: Optional[UUID] = None
    project_id: Optional[UUID] = None
    items: Optional[List[LineItemInput]] = None
    discount_percent: Optional[Decimal] = Field(None, ge=0, le=100)
    currency: Optional[str] = None
    exchange_rate: Optional[Decimal] = Field(None, ge=0)
    vat_rate: Optional[Decimal] = Field(None, ge=0, le=100)
    issue_date: Optional[date] = None
    due_date: Optional[date] = None
    notes: Optional[str] = Field(None, max_length=5000)
    payment_terms: Optional[str] = Field(None, max_length=1000)

    @field_validator("currency")
    @classmethod
    def currency_code(cls, v):
        return _upper_currency(v)


class InvoiceStatusUpdateRequest(BaseModel):
    """Explicit status change. 'overdue' is derived and cannot be set."""
    status: InvoiceStatus
    paid_date: Optional[date] = Field(None, description="Defaults to today when marking paid")


class InvoiceFromTimeEntriesRequest(BaseModel):
    """Create an invoice from unbilled time entries."""
    entry_ids: List[UUID] = Field(default_factory=list)
    contact_id: Optional[UUID] = None
    project_id: Optional[UUID] = None
    currency: Optional[str] = None
    vat_rate: Optional[Decimal] = Field(None, ge=0, le=100, description="Defaults to the configured VAT rate")
    discount_percent: Decimal = Field(Decimal("0"), ge=0, le=100)
    issue_date: Optional[date] = None
    due_date: Optional[date] = None
    notes: Optional[str] = Field(None, max_length=5000)
    payment_terms: Optional[str] = Field(None, max_length=1000)

    @field_validator("currency")
    @classmethod
    def currency_code(cls, v):
        return _upper_currency(v)


# ===========================================
# INVOICE RESPONSE SCHEMAS
# ===========================================

class InvoiceResponse(BaseModel):
    """Schema for invoice response."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    user_id: UUID
    invoice_number: str
    contact_id: Optional[UUID] = None
    project_id: Optional[UUID] = None

    items: List[LineItemResponse] = []
    discount_percent: Decimal
    currency: str

    # Amounts
    subtotal: Decimal
    discount_amount: Decimal
    vat_amount: Decimal
    vat_rate: Decimal
    total: Decimal

    # Account currency
    exchange_rate: Optional[Decimal] = None
    amount_in_account_currency: Optional[Decimal] = None
    account_currency: Optional[str] = None

    # Status
    status: InvoiceStatus
    effective_status: Optional[InvoiceStatus] = None
    status_label: Optional[str] = None
    is_overdue: bool = False
    days_until_due: Optional[int] = None

    # Dates
    issue_date: date
    due_date: Optional[date] = None
    paid_date: Optional[date] = None

    notes: Optional[str] = None
    payment_terms: Optional[str] = None
    source_time_entry_ids: List[str] = []

    created_at: datetime
    updated_at: datetime


class InvoiceListResponse(BaseModel):
    """Schema for list of invoices response."""
    invoices: List[InvoiceResponse]
    total: int


class MonthlyRevenue(BaseModel):
    month: int
    total: Decimal


class RevenueSummaryResponse(BaseModel):
    """Yearly revenue in the account currency."""
    year: int
    account_currency: str
    monthly: List[MonthlyRevenue]
    status_counts: Dict[str, int]
    total_invoiced: Decimal
    total_paid: Decimal
    total_outstanding: Decimal


class ReconcileTimeEntriesResponse(BaseModel):
    """Result of re-flagging an invoice's source time entries."""
    invoice_id: UUID
    updated_entry_ids: List[UUID]
    already_invoiced: int
