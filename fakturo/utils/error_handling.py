"""
Fakturo - Error Handling

Exception hierarchy for invoice calculation, time-entry invoicing and
currency conversion, plus the FastAPI handlers that render every error as

    {"detail": {"code", "message", "timestamp", "field"?, "details"?}}
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Union
from uuid import UUID
import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger("fakturo.errors")


class ErrorCode(str, Enum):
    """Machine-readable codes returned in error bodies"""

    # Request and calculation input (422)
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_INPUT = "INVALID_INPUT"
    INVALID_AMOUNT = "INVALID_AMOUNT"
    EMPTY_BATCH = "EMPTY_BATCH"

    # Caller identity (401)
    UNAUTHORIZED = "UNAUTHORIZED"

    # Lookups (404)
    NOT_FOUND = "NOT_FOUND"
    INVOICE_NOT_FOUND = "INVOICE_NOT_FOUND"
    TIME_ENTRY_NOT_FOUND = "TIME_ENTRY_NOT_FOUND"

    # Invoicing rules (409/422)
    BUSINESS_RULE_VIOLATION = "BUSINESS_RULE_VIOLATION"
    ALREADY_INVOICED = "ALREADY_INVOICED"
    CANNOT_MODIFY = "CANNOT_MODIFY"
    CANNOT_DELETE = "CANNOT_DELETE"
    PARTIAL_INVOICING = "PARTIAL_INVOICING"

    # Rate provider (502)
    CONVERSION_UNAVAILABLE = "CONVERSION_UNAVAILABLE"

    # Server side (500)
    DATABASE_ERROR = "DATABASE_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"


HTTP_STATUS_CODES = {
    status.HTTP_401_UNAUTHORIZED: ErrorCode.UNAUTHORIZED,
    status.HTTP_404_NOT_FOUND: ErrorCode.NOT_FOUND,
    status.HTTP_422_UNPROCESSABLE_ENTITY: ErrorCode.VALIDATION_ERROR,
}


def _utc_timestamp() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


class AppException(Exception):
    """Base class for errors that carry their own HTTP status and code"""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
        field: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        super().__init__(message)
        self.code = code
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.details = details or {}
        self.field = field
        self.original_error = original_error


# ============================================================================
# Input
# ============================================================================

class ValidationException(AppException):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        code: ErrorCode = ErrorCode.VALIDATION_ERROR,
    ):
        super().__init__(code, message, details=details, field=field)


class InvalidInputError(ValidationException):
    """
    Malformed calculation input.

    Raised for negative operands, an out-of-range discount, a missing
    exchange rate, or an invoice without a single valid line item.
    ``field`` names the offending input, e.g. ``items[2].quantity``.
    """

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        code: ErrorCode = ErrorCode.INVALID_INPUT,
    ):
        super().__init__(message, field=field, details=details, code=code)

    @classmethod
    def for_item(cls, index: int, field_name: str, value: Any) -> "InvalidInputError":
        return cls(
            message=f"Line item {index}: {field_name} must not be negative (got {value})",
            field=f"items[{index}].{field_name}",
            details={"item_index": index, "provided": str(value)},
            code=ErrorCode.INVALID_AMOUNT,
        )


class EmptyBatchError(ValidationException):
    """An aggregation was asked to summarize zero time entries"""

    def __init__(self, message: str = "No time entries selected"):
        super().__init__(message, field="entry_ids", code=ErrorCode.EMPTY_BATCH)


# ============================================================================
# Lookups
# ============================================================================

class NotFoundException(AppException):
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(
        self,
        resource_type: str,
        resource_id: Optional[Union[str, UUID]] = None,
        code: ErrorCode = ErrorCode.NOT_FOUND,
    ):
        message = f"{resource_type} '{resource_id}' not found" if resource_id else f"{resource_type} not found"
        super().__init__(
            code,
            message,
            details={"resource_type": resource_type, "resource_id": str(resource_id) if resource_id else None},
        )


class InvoiceNotFoundException(NotFoundException):
    def __init__(self, invoice_id: Union[str, UUID]):
        super().__init__("Invoice", invoice_id, code=ErrorCode.INVOICE_NOT_FOUND)


class TimeEntryNotFoundException(NotFoundException):
    def __init__(self, entry_id: Union[str, UUID]):
        super().__init__("TimeEntry", entry_id, code=ErrorCode.TIME_ENTRY_NOT_FOUND)


# ============================================================================
# Invoicing rules
# ============================================================================

class BusinessRuleException(AppException):
    """A request that is well-formed but not allowed in the current state"""

    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY

    def __init__(
        self,
        message: str,
        rule: Optional[str] = None,
        code: ErrorCode = ErrorCode.BUSINESS_RULE_VIOLATION,
        details: Optional[Dict[str, Any]] = None,
        status_code: Optional[int] = None,
    ):
        details = dict(details or {})
        if rule:
            details["violated_rule"] = rule
        super().__init__(code, message, status_code=status_code, details=details)


class PartialInvoicingFailure(BusinessRuleException):
    """
    The invoice was saved but its source time entries were not flagged.

    The invoice is kept. Retry the flip with
    ``InvoiceService.reconcile_time_entries(invoice_id)``.
    """

    status_code = status.HTTP_409_CONFLICT

    def __init__(
        self,
        invoice_id: Union[str, UUID],
        entry_ids: List[Union[str, UUID]],
        original_error: Optional[Exception] = None,
    ):
        self.invoice_id = invoice_id
        self.entry_ids = list(entry_ids)
        super().__init__(
            f"Invoice '{invoice_id}' was created but {len(self.entry_ids)} "
            f"time entries could not be marked as invoiced",
            rule="TIME_ENTRIES_INVOICED_ONCE",
            code=ErrorCode.PARTIAL_INVOICING,
            details={
                "invoice_id": str(invoice_id),
                "entry_ids": [str(e) for e in self.entry_ids],
                "retry": f"/api/v1/invoices/{invoice_id}/reconcile-time-entries",
            },
        )
        self.original_error = original_error


# ============================================================================
# Rate provider
# ============================================================================

class ExternalServiceException(AppException):
    status_code = status.HTTP_502_BAD_GATEWAY

    def __init__(
        self,
        service_name: str,
        code: ErrorCode,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        original_error: Optional[Exception] = None,
    ):
        details = dict(details or {})
        details["service"] = service_name
        super().__init__(code, message, details=details, original_error=original_error)


class ConversionUnavailable(ExternalServiceException):
    """No exchange rate could be obtained for a currency pair and date"""

    def __init__(
        self,
        from_currency: str,
        to_currency: str,
        as_of: Any,
        original_error: Optional[Exception] = None,
    ):
        super().__init__(
            "exchange-rate-provider",
            ErrorCode.CONVERSION_UNAVAILABLE,
            f"No exchange rate available for {from_currency}/{to_currency} on {as_of}",
            details={
                "from_currency": from_currency,
                "to_currency": to_currency,
                "as_of": str(as_of),
            },
            original_error=original_error,
        )


# ============================================================================
# Exception Handlers
# ============================================================================

def error_response(
    code: ErrorCode,
    message: str,
    status_code: int,
    details: Optional[Dict[str, Any]] = None,
    field: Optional[str] = None,
) -> JSONResponse:
    body: Dict[str, Any] = {"code": code.value, "message": message, "timestamp": _utc_timestamp()}
    if field:
        body["field"] = field
    if details:
        body["details"] = details
    return JSONResponse(status_code=status_code, content={"detail": body})


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    level = logging.ERROR if exc.status_code >= 500 else logging.WARNING
    logger.log(
        level,
        f"{request.method} {request.url.path} -> {exc.status_code} {exc.code.value}: {exc.message}",
        exc_info=exc.original_error,
    )
    return error_response(exc.code, exc.message, exc.status_code, exc.details, exc.field)


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    code = HTTP_STATUS_CODES.get(exc.status_code, ErrorCode.INTERNAL_ERROR)
    logger.warning(f"{request.method} {request.url.path} -> {exc.status_code}: {exc.detail}")
    return error_response(code, str(exc.detail), exc.status_code)


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        {
            "field": ".".join(str(part) for part in error["loc"]),
            "message": error["msg"],
            "type": error["type"],
        }
        for error in exc.errors()
    ]
    logger.warning(f"{request.method} {request.url.path} -> 422: {len(errors)} invalid fields")
    return error_response(
        ErrorCode.VALIDATION_ERROR,
        "Request validation failed",
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        details={"errors": errors},
    )


async def sqlalchemy_exception_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.error(f"{request.method} {request.url.path} -> database error: {exc}", exc_info=True)

    if isinstance(exc, IntegrityError):
        # Concurrent writers racing on an invoice number or rate date
        return error_response(
            ErrorCode.DATABASE_ERROR,
            "The record conflicts with existing data",
            status.HTTP_409_CONFLICT,
        )
    if isinstance(exc, OperationalError):
        return error_response(
            ErrorCode.DATABASE_ERROR,
            "The database is unavailable",
            status.HTTP_503_SERVICE_UNAVAILABLE,
        )
    return error_response(
        ErrorCode.DATABASE_ERROR,
        "A database error occurred",
        status.HTTP_500_INTERNAL_SERVER_ERROR,
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.critical(f"{request.method} {request.url.path} -> unhandled {type(exc).__name__}", exc_info=True)
    return error_response(
        ErrorCode.INTERNAL_ERROR,
        "An unexpected error occurred",
        status.HTTP_500_INTERNAL_SERVER_ERROR,
    )


def setup_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers with the FastAPI application"""
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(SQLAlchemyError, sqlalchemy_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
