"""
Fakturo - Foreign Exchange (FX) Router

API endpoints for exchange rates:
- Rate lookup for a date (cache, stored rates, provider)
- Manual rate entry
- Amount conversion
"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from fakturo.database import get_async_session
from fakturo.dependencies import get_current_user_id, get_exchange_rate_service
from fakturo.schemas.fx import (
    ConvertRequest,
    ConvertResponse,
    ExchangeRateResponse,
    ExchangeRateUpdateRequest,
)
from fakturo.services.fx_service import ExchangeRateService
from fakturo.utils.clock import Clock, get_clock


router = APIRouter(
    prefix="/fx",
    tags=["Foreign Exchange (FX)"],
    dependencies=[Depends(get_current_user_id)],
)


@router.get(
    "/rates/{from_currency}/{to_currency}",
    response_model=ExchangeRateResponse,
    summary="Get exchange rate",
)
async def get_exchange_rate(
    from_currency: str = Path(..., min_length=3, max_length=3),
    to_currency: str = Path(..., min_length=3, max_length=3),
    as_of: Optional[date] = Query(None, description="Rate date, defaults to today"),
    db: AsyncSession = Depends(get_async_session),
    clock: Clock = Depends(get_clock),
    service: ExchangeRateService = Depends(get_exchange_rate_service),
):
    """
    Rate converting 1 from_currency into to_currency.

    Responds 502 CONVERSION_UNAVAILABLE when neither the provider nor any
    stored rate can answer.
    """
    quote = await service.get_quote(from_currency, to_currency, as_of or clock.today())
    # Rates fetched from the provider are stored for reuse
    await db.commit()
    return ExchangeRateResponse.model_validate(quote)


@router.post(
    "/rates",
    response_model=ExchangeRateResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Record exchange rate",
)
async def record_exchange_rate(
    request: ExchangeRateUpdateRequest,
    db: AsyncSession = Depends(get_async_session),
    service: ExchangeRateService = Depends(get_exchange_rate_service),
):
    """Add or replace the rate for a currency pair and date."""
    record = await service.update_exchange_rate(
        request.from_currency,
        request.to_currency,
        request.rate,
        request.rate_date,
    )
    await db.commit()
    return ExchangeRateResponse(
        from_currency=record.base_currency,
        to_currency=record.target_currency,
        rate=record.rate,
        as_of=record.rate_date,
        source=record.source,
    )


@router.post(
    "/convert",
    response_model=ConvertResponse,
    summary="Convert amount",
)
async def convert_amount(
    request: ConvertRequest,
    db: AsyncSession = Depends(get_async_session),
    clock: Clock = Depends(get_clock),
    service: ExchangeRateService = Depends(get_exchange_rate_service),
):
    converted, quote = await service.convert_amount(
        request.amount,
        request.from_currency,
        request.to_currency,
        request.as_of or clock.today(),
    )
    await db.commit()
    return ConvertResponse(
        amount=request.amount,
        converted_amount=converted,
        from_currency=quote.from_currency,
        to_currency=quote.to_currency,
        rate=quote.rate,
        as_of=quote.as_of,
        source=quote.source,
    )
