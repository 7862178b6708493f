"""
Fakturo - Invoices Router

API endpoints for invoice calculation and management.

Status shown to clients is derived on every read: an issued invoice past
its due date is reported as overdue without being rewritten.
"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from fakturo.dependencies import get_current_user_id, get_invoice_service
from fakturo.models.invoice import Invoice, InvoiceStatus
from fakturo.schemas.invoice import (
    InvoiceCalculateRequest,
    InvoiceCreateRequest,
    InvoiceFromTimeEntriesRequest,
    InvoiceListResponse,
    InvoiceResponse,
    InvoiceStatusUpdateRequest,
    InvoiceTotalsResponse,
    InvoiceUpdateRequest,
    ReconcileTimeEntriesResponse,
    RevenueSummaryResponse,
)
from fakturo.services.invoice_service import InvoiceService


router = APIRouter(prefix="/invoices", tags=["Invoices"])


def _items_payload(items) -> list:
    return [item.model_dump(exclude_none=True) for item in items]


def build_invoice_response(invoice: Invoice, service: InvoiceService) -> InvoiceResponse:
    """Serialize an invoice together with its derived status."""
    response = InvoiceResponse.model_validate(invoice)
    effective = service.resolver.resolve(invoice)
    response.effective_status = effective
    response.status_label = service.resolver.display_label(effective)
    response.is_overdue = effective == InvoiceStatus.OVERDUE
    response.days_until_due = service.resolver.days_until_due(invoice)
    return response


# ===========================================
# CALCULATION
# ===========================================

@router.post(
    "/calculate",
    response_model=InvoiceTotalsResponse,
    summary="Preview invoice totals",
)
async def calculate_invoice(
    request: InvoiceCalculateRequest,
    user_id: UUID = Depends(get_current_user_id),
    service: InvoiceService = Depends(get_invoice_service),
):
    """
    Compute subtotal, VAT, total and the account-currency amount without
    saving anything.
    """
    totals = await service.calculate(
        _items_payload(request.items),
        discount_percent=request.discount_percent,
        currency=request.currency,
        issue_date=request.issue_date,
        exchange_rate=request.exchange_rate,
        vat_rate=request.vat_rate,
    )
    return InvoiceTotalsResponse.model_validate(totals)


# ===========================================
# REPORTING
# ===========================================

@router.get(
    "/summary",
    response_model=RevenueSummaryResponse,
    summary="Yearly revenue summary",
)
async def revenue_summary(
    year: Optional[int] = Query(None, ge=1900, le=9999, description="Defaults to the current year"),
    user_id: UUID = Depends(get_current_user_id),
    service: InvoiceService = Depends(get_invoice_service),
):
    """Monthly totals in the account currency and counts per effective status."""
    summary = await service.get_revenue_summary(user_id, year or service.clock.today().year)
    return RevenueSummaryResponse(**summary)


# ===========================================
# CRUD
# ===========================================

@router.get(
    "",
    response_model=InvoiceListResponse,
    summary="List invoices",
)
async def list_invoices(
    status_filter: Optional[InvoiceStatus] = Query(None, alias="status", description="Filter by effective status"),
    project_id: Optional[UUID] = Query(None),
    contact_id: Optional[UUID] = Query(None),
    user_id: UUID = Depends(get_current_user_id),
    service: InvoiceService = Depends(get_invoice_service),
):
    invoices = await service.list_invoices(
        user_id,
        status=status_filter,
        project_id=project_id,
        contact_id=contact_id,
    )
    return InvoiceListResponse(
        invoices=[build_invoice_response(inv, service) for inv in invoices],
        total=len(invoices),
    )


@router.post(
    "",
    response_model=InvoiceResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create invoice",
)
async def create_invoice(
    request: InvoiceCreateRequest,
    user_id: UUID = Depends(get_current_user_id),
    service: InvoiceService = Depends(get_invoice_service),
):
    """
    Create an invoice. Totals are computed server-side.

    When the invoice currency differs from the account currency the rate
    for the issue date is looked up; if none is available the invoice is
    still saved without the converted amount.
    """
    invoice = await service.create_invoice(
        user_id=user_id,
        items=_items_payload(request.items),
        discount_percent=request.discount_percent,
        currency=request.currency,
        issue_date=request.issue_date,
        due_date=request.due_date,
        exchange_rate=request.exchange_rate,
        vat_rate=request.vat_rate,
        status=request.status,
        contact_id=request.contact_id,
        project_id=request.project_id,
        notes=request.notes,
        payment_terms=request.payment_terms,
    )
    return build_invoice_response(invoice, service)


@router.post(
    "/from-time-entries",
    response_model=InvoiceResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create invoice from time entries",
)
async def create_invoice_from_time_entries(
    request: InvoiceFromTimeEntriesRequest,
    user_id: UUID = Depends(get_current_user_id),
    service: InvoiceService = Depends(get_invoice_service),
):
    """
    Bill unbilled time entries. Each entry becomes one line item
    (hours x hourly rate) and is flagged as invoiced.

    Responds 409 PARTIAL_INVOICING when the invoice was saved but the
    entries could not be flagged; retry via reconcile-time-entries.
    """
    invoice = await service.create_invoice_from_time_entries(
        user_id=user_id,
        entry_ids=request.entry_ids,
        vat_rate=request.vat_rate,
        currency=request.currency,
        discount_percent=request.discount_percent,
        issue_date=request.issue_date,
        due_date=request.due_date,
        contact_id=request.contact_id,
        project_id=request.project_id,
        notes=request.notes,
        payment_terms=request.payment_terms,
    )
    return build_invoice_response(invoice, service)


@router.get(
    "/{invoice_id}",
    response_model=InvoiceResponse,
    summary="Get invoice",
)
async def get_invoice(
    invoice_id: UUID,
    user_id: UUID = Depends(get_current_user_id),
    service: InvoiceService = Depends(get_invoice_service),
):
    invoice = await service.get_invoice(invoice_id, user_id)
    return build_invoice_response(invoice, service)


@router.patch(
    "/{invoice_id}",
    response_model=InvoiceResponse,
    summary="Update invoice",
)
async def update_invoice(
    invoice_id: UUID,
    request: InvoiceUpdateRequest,
    user_id: UUID = Depends(get_current_user_id),
    service: InvoiceService = Depends(get_invoice_service),
):
    """Update an invoice; totals are recomputed when money fields change."""
    changes = request.model_dump(exclude_unset=True)
    if request.items is not None:
        changes["items"] = _items_payload(request.items)
    invoice = await service.update_invoice(invoice_id, user_id, changes)
    return build_invoice_response(invoice, service)


@router.post(
    "/{invoice_id}/status",
    response_model=InvoiceResponse,
    summary="Change invoice status",
)
async def update_invoice_status(
    invoice_id: UUID,
    request: InvoiceStatusUpdateRequest,
    user_id: UUID = Depends(get_current_user_id),
    service: InvoiceService = Depends(get_invoice_service),
):
    """Mark an invoice draft, issued, paid or cancelled."""
    invoice = await service.update_invoice_status(
        invoice_id, user_id, request.status, paid_date=request.paid_date
    )
    return build_invoice_response(invoice, service)


@router.post(
    "/{invoice_id}/duplicate",
    response_model=InvoiceResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Duplicate invoice",
)
async def duplicate_invoice(
    invoice_id: UUID,
    user_id: UUID = Depends(get_current_user_id),
    service: InvoiceService = Depends(get_invoice_service),
):
    invoice = await service.duplicate_invoice(invoice_id, user_id)
    return build_invoice_response(invoice, service)


@router.post(
    "/{invoice_id}/reconcile-time-entries",
    response_model=ReconcileTimeEntriesResponse,
    summary="Retry flagging an invoice's time entries",
)
async def reconcile_time_entries(
    invoice_id: UUID,
    user_id: UUID = Depends(get_current_user_id),
    service: InvoiceService = Depends(get_invoice_service),
):
    updated, already = await service.reconcile_time_entries(invoice_id, user_id)
    return ReconcileTimeEntriesResponse(
        invoice_id=invoice_id,
        updated_entry_ids=updated,
        already_invoiced=already,
    )
