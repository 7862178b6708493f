"""
Fakturo - FastAPI Dependencies

Shared dependencies for the current user, database sessions, the clock
and service construction.

Authentication happens upstream; the authenticated user id arrives in
the X-User-ID header.
"""

import uuid
from typing import Optional

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from fakturo.database import get_async_session
from fakturo.services.cache_service import CacheService, get_cache_service
from fakturo.services.fx_service import ExchangeRateService
from fakturo.services.invoice_service import InvoiceService
from fakturo.services.invoice_totals_service import InvoiceTotalsService
from fakturo.services.time_entry_service import TimeEntryService
from fakturo.utils.clock import Clock, get_clock


async def get_current_user_id(
    x_user_id: Optional[str] = Header(None, alias="X-User-ID"),
) -> uuid.UUID:
    """
    Get the current user's id from the X-User-ID header.

    Raises:
        HTTPException: If the header is missing or not a UUID
    """
    if not x_user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )
    try:
        return uuid.UUID(x_user_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid user id",
        )


def get_cache() -> CacheService:
    return get_cache_service()


async def get_exchange_rate_service(
    db: AsyncSession = Depends(get_async_session),
    cache: CacheService = Depends(get_cache),
    clock: Clock = Depends(get_clock),
) -> ExchangeRateService:
    return ExchangeRateService(db, cache=cache, clock=clock)


async def get_time_entry_service(
    db: AsyncSession = Depends(get_async_session),
    clock: Clock = Depends(get_clock),
) -> TimeEntryService:
    return TimeEntryService(db, clock=clock)


async def get_invoice_service(
    db: AsyncSession = Depends(get_async_session),
    clock: Clock = Depends(get_clock),
    rate_service: ExchangeRateService = Depends(get_exchange_rate_service),
    time_entry_service: TimeEntryService = Depends(get_time_entry_service),
) -> InvoiceService:
    return InvoiceService(
        db,
        clock=clock,
        totals_service=InvoiceTotalsService(rate_provider=rate_service),
        time_entry_service=time_entry_service,
    )
