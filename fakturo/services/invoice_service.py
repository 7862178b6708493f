"""
Fakturo - Invoice Service

Business logic for invoice management.

Totals are only ever written from an InvoiceTotalsResult: every change
to items, discount, currency, issue date or exchange rate recomputes
them. The effective status (overdue) is derived on read.

Invoicing time entries spans two writes. The invoice is committed first
and then its entries are flagged. If the second write fails the invoice
is kept and PartialInvoicingFailure is raised; reconcile_time_entries
retries the flag from the invoice's source_time_entry_ids.
"""

import logging
import uuid
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from sqlalchemy import select, func, extract
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from fakturo.config import get_settings
from fakturo.models.invoice import Invoice, InvoiceStatus
from fakturo.models.time_entry import TimeEntry, TimeEntryStatus
from fakturo.services.calculations.currency import CurrencyReconciler
from fakturo.services.calculations.line_item_adapter import line_items_from_mappings, line_items_to_json
from fakturo.services.calculations.money_math import LineItem, round_money, to_decimal
from fakturo.services.calculations.status import InvoiceStatusResolver
from fakturo.services.calculations.time_entries import TimeEntryAggregator
from fakturo.services.fx_service import ExchangeRateService
from fakturo.services.invoice_totals_service import InvoiceTotalsResult, InvoiceTotalsService
from fakturo.services.time_entry_service import TimeEntryService
from fakturo.utils.clock import Clock, SystemClock
from fakturo.utils.error_handling import (
    BusinessRuleException,
    EmptyBatchError,
    ErrorCode,
    InvalidInputError,
    InvoiceNotFoundException,
    PartialInvoicingFailure,
)

logger = logging.getLogger(__name__)
settings = get_settings()


# Changes that invalidate stored totals
MONEY_FIELDS = ("items", "discount_percent", "currency", "issue_date", "exchange_rate", "vat_rate")
# Plain fields copied as given
PLAIN_FIELDS = ("contact_id", "project_id", "due_date", "notes", "payment_terms")


class InvoiceService:
    """Service for invoice operations."""

    def __init__(
        self,
        db: AsyncSession,
        clock: Optional[Clock] = None,
        totals_service: Optional[InvoiceTotalsService] = None,
        time_entry_service: Optional[TimeEntryService] = None,
    ):
        self.db = db
        self.clock = clock or SystemClock()
        self.totals_service = totals_service or InvoiceTotalsService(
            rate_provider=ExchangeRateService(db, clock=self.clock),
        )
        self.time_entry_service = time_entry_service or TimeEntryService(db, clock=self.clock)
        self.resolver = InvoiceStatusResolver(self.clock)

    @property
    def account_currency(self) -> str:
        return self.totals_service.account_currency

    # ===========================================
    # INVOICE NUMBER GENERATION
    # ===========================================

    async def generate_invoice_number(self, user_id: uuid.UUID) -> str:
        """Per-user sequence: number of existing invoices + 1."""
        result = await self.db.execute(
            select(func.count(Invoice.id)).where(Invoice.user_id == user_id)
        )
        count = result.scalar() or 0
        return str(count + 1)

    # ===========================================
    # QUERIES
    # ===========================================

    async def get_invoice(self, invoice_id: uuid.UUID, user_id: uuid.UUID) -> Invoice:
        """Get invoice by ID or raise InvoiceNotFoundException."""
        result = await self.db.execute(
            select(Invoice)
            .where(Invoice.id == invoice_id)
            .where(Invoice.user_id == user_id)
        )
        invoice = result.scalar_one_or_none()
        if invoice is None:
            raise InvoiceNotFoundException(invoice_id)
        return invoice

    async def list_invoices(
        self,
        user_id: uuid.UUID,
        status: Optional[InvoiceStatus] = None,
        project_id: Optional[uuid.UUID] = None,
        contact_id: Optional[uuid.UUID] = None,
    ) -> List[Invoice]:
        """
        List invoices, newest first.

        The status filter matches the effective status, so filtering on
        "overdue" returns issued invoices past their due date.
        """
        query = select(Invoice).where(Invoice.user_id == user_id)
        if project_id:
            query = query.where(Invoice.project_id == project_id)
        if contact_id:
            query = query.where(Invoice.contact_id == contact_id)

        query = query.order_by(Invoice.issue_date.desc(), Invoice.created_at.desc())
        result = await self.db.execute(query)
        invoices = list(result.scalars().all())

        if status is not None:
            wanted = InvoiceStatus(status)
            invoices = [inv for inv in invoices if self.resolver.resolve(inv) == wanted]
        return invoices

    # ===========================================
    # TOTALS
    # ===========================================

    @staticmethod
    def build_items(
        raw_items: Sequence[Mapping[str, Any]],
        fallback_vat_rate: Optional[Decimal] = None,
    ) -> List[LineItem]:
        return line_items_from_mappings(raw_items, fallback_vat_rate)

    async def calculate(
        self,
        raw_items: Sequence[Mapping[str, Any]],
        discount_percent: Decimal = Decimal("0"),
        currency: Optional[str] = None,
        issue_date: Optional[date] = None,
        exchange_rate: Optional[Decimal] = None,
        vat_rate: Optional[Decimal] = None,
    ) -> InvoiceTotalsResult:
        """Totals preview for unsaved input."""
        return await self.totals_service.compute(
            self.build_items(raw_items, vat_rate),
            discount_percent,
            currency or self.account_currency,
            issue_date or self.clock.today(),
            exchange_rate=exchange_rate,
        )

    # ===========================================
    # CRUD OPERATIONS
    # ===========================================

    @staticmethod
    def _check_writable_status(status: InvoiceStatus) -> InvoiceStatus:
        status = InvoiceStatus(status)
        if status == InvoiceStatus.OVERDUE:
            raise InvalidInputError(
                message="'overdue' is derived from the due date and cannot be set",
                field="status",
            )
        return status

    async def create_invoice(
        self,
        user_id: uuid.UUID,
        items: Sequence[Mapping[str, Any]],
        discount_percent: Decimal = Decimal("0"),
        currency: Optional[str] = None,
        issue_date: Optional[date] = None,
        due_date: Optional[date] = None,
        exchange_rate: Optional[Decimal] = None,
        vat_rate: Optional[Decimal] = None,
        status: InvoiceStatus = InvoiceStatus.ISSUED,
        contact_id: Optional[uuid.UUID] = None,
        project_id: Optional[uuid.UUID] = None,
        notes: Optional[str] = None,
        payment_terms: Optional[str] = None,
        source_time_entry_ids: Optional[Sequence[uuid.UUID]] = None,
    ) -> Invoice:
        """
        Create and commit an invoice.

        Raises:
            InvalidInputError: no valid line item, or a negative operand
        """
        status = self._check_writable_status(status)
        issue_date = issue_date or self.clock.today()
        totals = await self.calculate(items, discount_percent, currency, issue_date, exchange_rate, vat_rate)

        invoice = Invoice(
            user_id=user_id,
            invoice_number=await self.generate_invoice_number(user_id),
            contact_id=contact_id,
            project_id=project_id,
            status=status,
            issue_date=issue_date,
            due_date=due_date,
            paid_date=self.clock.today() if status == InvoiceStatus.PAID else None,
            notes=notes,
            payment_terms=payment_terms,
            source_time_entry_ids=[str(e) for e in (source_time_entry_ids or [])],
        )
        totals.apply_to(invoice)

        self.db.add(invoice)
        await self.db.commit()
        await self.db.refresh(invoice)

        logger.info(
            f"Invoice {invoice.invoice_number} created for user {user_id}: "
            f"{invoice.total} {invoice.currency}"
        )
        return invoice

    async def update_invoice(
        self,
        invoice_id: uuid.UUID,
        user_id: uuid.UUID,
        changes: Dict[str, Any],
    ) -> Invoice:
        """
        Apply changes and recompute totals when money fields change.

        Args:
            changes: Only the fields to change (e.g. model_dump(exclude_unset=True))
        """
        invoice = await self.get_invoice(invoice_id, user_id)

        if any(name in changes for name in MONEY_FIELDS):
            currency = changes.get("currency") or invoice.currency
            issue_date = changes.get("issue_date") or invoice.issue_date

            exchange_rate = changes.get("exchange_rate")
            same_basis = currency == invoice.currency and issue_date == invoice.issue_date
            if exchange_rate is None and same_basis:
                # The stored rate was quoted for this currency and date
                exchange_rate = invoice.exchange_rate

            raw_items = changes.get("items")
            if raw_items is None:
                raw_items = invoice.items
            discount = changes.get("discount_percent")
            if discount is None:
                discount = invoice.discount_percent

            totals = await self.calculate(
                raw_items, discount, currency, issue_date, exchange_rate, changes.get("vat_rate")
            )
            totals.apply_to(invoice)
            invoice.issue_date = issue_date

        for field_name in PLAIN_FIELDS:
            if field_name in changes:
                setattr(invoice, field_name, changes[field_name])

        if invoice.due_date is not None and invoice.due_date < invoice.issue_date:
            raise InvalidInputError(
                message="Due date must be on or after issue date",
                field="due_date",
            )

        await self.db.commit()
        await self.db.refresh(invoice)
        return invoice

    async def update_invoice_status(
        self,
        invoice_id: uuid.UUID,
        user_id: uuid.UUID,
        status: InvoiceStatus,
        paid_date: Optional[date] = None,
    ) -> Invoice:
        """
        Explicit status change.

        Marking paid records a paid date (given or today); any other status
        clears it.
        """
        status = self._check_writable_status(status)
        invoice = await self.get_invoice(invoice_id, user_id)

        invoice.status = status
        if status == InvoiceStatus.PAID:
            invoice.paid_date = paid_date or self.clock.today()
        else:
            invoice.paid_date = None

        await self.db.commit()
        await self.db.refresh(invoice)
        logger.info(f"Invoice {invoice.invoice_number} marked {status.value}")
        return invoice

    async def duplicate_invoice(self, invoice_id: uuid.UUID, user_id: uuid.UUID) -> Invoice:
        """Copy an invoice under a new number, issued today with fresh totals."""
        source = await self.get_invoice(invoice_id, user_id)
        today = self.clock.today()

        due_date = None
        if source.due_date is not None:
            due_date = today + (source.due_date - source.issue_date)

        return await self.create_invoice(
            user_id=user_id,
            items=list(source.items or []),
            discount_percent=source.discount_percent,
            currency=source.currency,
            issue_date=today,
            due_date=due_date,
            status=InvoiceStatus.ISSUED,
            contact_id=source.contact_id,
            project_id=source.project_id,
            notes=source.notes,
            payment_terms=source.payment_terms,
        )

    # ===========================================
    # TIME ENTRY INVOICING
    # ===========================================

    def _check_invoiceable(self, entry: TimeEntry) -> None:
        if entry.status != TimeEntryStatus.UNBILLED:
            raise BusinessRuleException(
                message=f"Time entry '{entry.id}' is already {entry.status.value}",
                rule="TIME_ENTRIES_INVOICED_ONCE",
                code=ErrorCode.ALREADY_INVOICED,
                details={"entry_id": str(entry.id)},
                status_code=409,
            )
        if entry.is_running:
            raise BusinessRuleException(
                message=f"Time entry '{entry.id}' is still running",
                rule="TIMER_STOPPED",
                details={"entry_id": str(entry.id)},
            )
        if not entry.is_billable:
            raise BusinessRuleException(
                message=f"Time entry '{entry.id}' is not billable",
                rule="BILLABLE_ENTRIES_ONLY",
                details={"entry_id": str(entry.id)},
            )

    async def create_invoice_from_time_entries(
        self,
        user_id: uuid.UUID,
        entry_ids: Sequence[uuid.UUID],
        vat_rate: Optional[Decimal] = None,
        currency: Optional[str] = None,
        discount_percent: Decimal = Decimal("0"),
        issue_date: Optional[date] = None,
        due_date: Optional[date] = None,
        contact_id: Optional[uuid.UUID] = None,
        project_id: Optional[uuid.UUID] = None,
        notes: Optional[str] = None,
        payment_terms: Optional[str] = None,
    ) -> Invoice:
        """
        Fold unbilled entries into a new invoice and flag them invoiced.

        Raises:
            EmptyBatchError: no entries selected
            InvalidInputError: an entry has no hourly rate
            BusinessRuleException: an entry is invoiced, running or non-billable
            PartialInvoicingFailure: invoice saved, entries not flagged
        """
        if not entry_ids:
            raise EmptyBatchError()

        entries = await self.time_entry_service.get_entries_by_ids(user_id, entry_ids)
        for entry in entries:
            self._check_invoiceable(entry)

        vat = to_decimal(vat_rate) if vat_rate is not None else settings.default_vat_rate
        line_items = [TimeEntryAggregator.to_line_item(entry, vat) for entry in entries]
        summary = TimeEntryAggregator.summarize(entries)

        invoice = await self.create_invoice(
            user_id=user_id,
            items=line_items_to_json(line_items),
            discount_percent=discount_percent,
            currency=currency,
            issue_date=issue_date,
            due_date=due_date,
            vat_rate=vat,
            contact_id=contact_id,
            project_id=project_id or summary.project_id,
            notes=notes,
            payment_terms=payment_terms,
            source_time_entry_ids=[entry.id for entry in entries],
        )
        invoice_id = invoice.id
        ids = [entry.id for entry in entries]

        try:
            await self.time_entry_service.mark_entries_invoiced(user_id, ids, invoice_id)
            await self.db.commit()
        except (SQLAlchemyError, BusinessRuleException) as e:
            await self.db.rollback()
            logger.error(
                f"Invoice {invoice_id} saved but {len(ids)} time entries were not flagged: {e}"
            )
            raise PartialInvoicingFailure(invoice_id, ids, original_error=e)

        await self.db.refresh(invoice)
        return invoice

    async def reconcile_time_entries(
        self,
        invoice_id: uuid.UUID,
        user_id: uuid.UUID,
    ) -> Tuple[List[uuid.UUID], int]:
        """
        Re-flag the invoice's source entries. Safe to repeat.

        Returns:
            (ids flagged by this call, number already flagged before)
        """
        invoice = await self.get_invoice(invoice_id, user_id)
        ids = list(dict.fromkeys(uuid.UUID(str(e)) for e in (invoice.source_time_entry_ids or [])))

        updated = await self.time_entry_service.mark_entries_invoiced(user_id, ids, invoice.id)
        await self.db.commit()

        if updated:
            logger.info(f"Reconciled {len(updated)} time entries for invoice {invoice.invoice_number}")
        return updated, len(ids) - len(updated)

    # ===========================================
    # REPORTING
    # ===========================================

    async def get_revenue_summary(self, user_id: uuid.UUID, year: int) -> Dict[str, Any]:
        """
        Yearly figures in the account currency.

        Drafts and cancelled invoices are counted but excluded from the
        amounts.
        """
        result = await self.db.execute(
            select(Invoice)
            .where(Invoice.user_id == user_id)
            .where(extract("year", Invoice.issue_date) == year)
        )
        invoices = list(result.scalars().all())

        monthly = {month: Decimal("0") for month in range(1, 13)}
        status_counts = {status.value: 0 for status in InvoiceStatus}
        total_invoiced = Decimal("0")
        total_paid = Decimal("0")
        total_outstanding = Decimal("0")

        for inv in invoices:
            effective = self.resolver.resolve(inv)
            status_counts[effective.value] += 1

            if effective in (InvoiceStatus.DRAFT, InvoiceStatus.CANCELLED):
                continue

            amount = CurrencyReconciler.amount_in_account_currency(inv, self.account_currency)
            monthly[inv.issue_date.month] += amount
            total_invoiced += amount
            if effective == InvoiceStatus.PAID:
                total_paid += amount
            else:
                total_outstanding += amount

        return {
            "year": year,
            "account_currency": self.account_currency,
            "monthly": [{"month": m, "total": round_money(v)} for m, v in monthly.items()],
            "status_counts": status_counts,
            "total_invoiced": round_money(total_invoiced),
            "total_paid": round_money(total_paid),
            "total_outstanding": round_money(total_outstanding),
        }
