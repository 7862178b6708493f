"""
Fakturo - Exchange Rate Service

Provides exchange-rate quotes for converting invoice totals into the
account currency.

Lookup order for get_rate(from, to, as_of):
1. Same currency -> 1
2. Redis cache
3. exchange_rates row for that exact date
4. HTTP fetch from a Frankfurter-compatible API, persisted and cached
5. On fetch failure: latest stored rate on or before the date (direct,
   then inverted reverse pair)
6. Otherwise ConversionUnavailable

Cache and persistence failures are logged and never fail a lookup.
Nothing here commits; the caller owns the transaction.
"""

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Optional, Tuple

import httpx
from sqlalchemy import select, and_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from fakturo.config import get_settings
from fakturo.models.exchange_rate import ExchangeRate
from fakturo.services.cache_service import CacheService, get_cache_service
from fakturo.services.calculations.currency import CurrencyReconciler
from fakturo.services.calculations.money_math import to_decimal
from fakturo.utils.clock import Clock, SystemClock
from fakturo.utils.error_handling import ConversionUnavailable, InvalidInputError

logger = logging.getLogger(__name__)
settings = get_settings()


RATE_PRECISION = Decimal("0.000001")


@dataclass(frozen=True)
class ExchangeRateQuote:
    """1 from_currency = rate to_currency, as published for as_of."""
    from_currency: str
    to_currency: str
    rate: Decimal
    as_of: date
    source: str


class ExchangeRateService:
    """Service for exchange-rate lookup, storage and conversion."""

    SOURCE_PROVIDER = "frankfurter"
    SOURCE_MANUAL = "manual"

    def __init__(
        self,
        db: AsyncSession,
        cache: Optional[CacheService] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        clock: Optional[Clock] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        self.db = db
        self.cache = cache or get_cache_service()
        self.http_client = http_client
        self.clock = clock or SystemClock()
        self.base_url = (base_url or settings.exchange_rate_api_url).rstrip("/")
        self.timeout = timeout or settings.exchange_rate_timeout_seconds

    # =========================================================================
    # LOOKUP
    # =========================================================================

    async def get_rate(self, from_currency: str, to_currency: str, as_of: date) -> Decimal:
        """
        Rate converting from_currency into to_currency on as_of.

        Raises:
            ConversionUnavailable: no live, stored or fallback rate exists
        """
        quote = await self.get_quote(from_currency, to_currency, as_of)
        return quote.rate

    async def get_quote(self, from_currency: str, to_currency: str, as_of: date) -> ExchangeRateQuote:
        from_currency = CurrencyReconciler.normalize_code(from_currency)
        to_currency = CurrencyReconciler.normalize_code(to_currency)

        if not CurrencyReconciler.needs_conversion(from_currency, to_currency):
            return ExchangeRateQuote(from_currency, to_currency, Decimal("1"), as_of, "identity")

        cached_rate = await self.cache.get_fx_rate(from_currency, to_currency, as_of)
        if cached_rate is not None:
            logger.debug(f"Cache hit for FX rate {from_currency}/{to_currency} on {as_of}")
            return ExchangeRateQuote(from_currency, to_currency, cached_rate, as_of, "cache")

        stored = await self._lookup_stored_rate(from_currency, to_currency, as_of, exact=True)
        if stored is not None:
            await self.cache.set_fx_rate(from_currency, to_currency, as_of, stored.rate)
            return ExchangeRateQuote(
                from_currency, to_currency, stored.rate, stored.rate_date, stored.source or "stored"
            )

        fetch_error: Optional[Exception] = None
        try:
            quote = await self.fetch_quote(from_currency, to_currency, as_of)
        except ConversionUnavailable as e:
            fetch_error = e
        else:
            await self._persist_rate(from_currency, to_currency, quote.rate, as_of, quote.source)
            await self.cache.set_fx_rate(from_currency, to_currency, as_of, quote.rate)
            return quote

        fallback = await self._fallback_quote(from_currency, to_currency, as_of)
        if fallback is not None:
            logger.warning(
                f"FX provider unavailable for {from_currency}/{to_currency} on {as_of}; "
                f"using stored rate {fallback.rate} from {fallback.as_of}"
            )
            return fallback

        raise ConversionUnavailable(
            from_currency,
            to_currency,
            as_of,
            original_error=fetch_error.original_error if fetch_error else None,
        )

    async def fetch_quote(self, from_currency: str, to_currency: str, as_of: date) -> ExchangeRateQuote:
        """
        Fetch a rate from the HTTP provider.

        GET {base_url}/{date}?from=X&to=Y, rate at rates[Y]. Dates after
        today are requested as "latest".

        Raises:
            ConversionUnavailable: timeout, network error, bad status or payload
        """
        path = "latest" if as_of > self.clock.today() else as_of.isoformat()
        url = f"{self.base_url}/{path}"
        params = {"from": from_currency, "to": to_currency}

        try:
            if self.http_client is not None:
                response = await self.http_client.get(url, params=params)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.get(url, params=params)
        except httpx.TimeoutException as e:
            logger.warning(f"FX provider timeout for {from_currency}/{to_currency} on {as_of}")
            raise ConversionUnavailable(from_currency, to_currency, as_of, original_error=e)
        except httpx.RequestError as e:
            logger.warning(f"FX provider network error for {from_currency}/{to_currency}: {e}")
            raise ConversionUnavailable(from_currency, to_currency, as_of, original_error=e)

        if response.status_code != 200:
            logger.warning(
                f"FX provider returned {response.status_code} for {from_currency}/{to_currency} on {as_of}"
            )
            raise ConversionUnavailable(from_currency, to_currency, as_of)

        try:
            data = response.json()
            rate = Decimal(str(data["rates"][to_currency]))
        except (ValueError, KeyError, TypeError, InvalidOperation) as e:
            logger.warning(f"Invalid FX provider payload for {from_currency}/{to_currency}: {e}")
            raise ConversionUnavailable(from_currency, to_currency, as_of, original_error=e)

        if not rate.is_finite() or rate <= 0:
            logger.warning(f"FX provider returned unusable rate {rate} for {from_currency}/{to_currency}")
            raise ConversionUnavailable(from_currency, to_currency, as_of)

        published = as_of
        if isinstance(data.get("date"), str):
            try:
                published = date.fromisoformat(data["date"])
            except ValueError:
                published = as_of

        logger.info(f"Fetched FX rate {from_currency}/{to_currency} = {rate} for {published}")
        return ExchangeRateQuote(from_currency, to_currency, rate, published, self.SOURCE_PROVIDER)

    async def get_stored_rate(
        self,
        from_currency: str,
        to_currency: str,
        as_of: date,
        exact: bool = False,
    ) -> Optional[ExchangeRate]:
        """Stored rate for the exact date, or the latest on or before it."""
        date_clause = ExchangeRate.rate_date == as_of if exact else ExchangeRate.rate_date <= as_of
        result = await self.db.execute(
            select(ExchangeRate)
            .where(and_(
                ExchangeRate.base_currency == from_currency,
                ExchangeRate.target_currency == to_currency,
                date_clause,
            ))
            .order_by(ExchangeRate.rate_date.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def _lookup_stored_rate(
        self,
        from_currency: str,
        to_currency: str,
        as_of: date,
        exact: bool = False,
    ) -> Optional[ExchangeRate]:
        """get_stored_rate, with a database error treated as no stored rate."""
        try:
            async with self.db.begin_nested():
                return await self.get_stored_rate(from_currency, to_currency, as_of, exact=exact)
        except SQLAlchemyError as e:
            logger.warning(f"Stored FX rate lookup failed for {from_currency}/{to_currency} on {as_of}: {e}")
            return None

    async def _fallback_quote(
        self,
        from_currency: str,
        to_currency: str,
        as_of: date,
    ) -> Optional[ExchangeRateQuote]:
        direct = await self._lookup_stored_rate(from_currency, to_currency, as_of)
        if direct is not None:
            return ExchangeRateQuote(
                from_currency, to_currency, direct.rate, direct.rate_date, direct.source or "stored"
            )

        reverse = await self._lookup_stored_rate(to_currency, from_currency, as_of)
        if reverse is not None and reverse.rate > 0:
            rate = (Decimal("1") / reverse.rate).quantize(RATE_PRECISION)
            return ExchangeRateQuote(from_currency, to_currency, rate, reverse.rate_date, "inverted")

        return None

    async def _persist_rate(
        self,
        from_currency: str,
        to_currency: str,
        rate: Decimal,
        rate_date: date,
        source: str,
    ) -> None:
        try:
            async with self.db.begin_nested():
                await self._upsert(from_currency, to_currency, rate, rate_date, source)
        except SQLAlchemyError as e:
            logger.warning(f"Failed to store FX rate {from_currency}/{to_currency} on {rate_date}: {e}")

    async def _upsert(
        self,
        from_currency: str,
        to_currency: str,
        rate: Decimal,
        rate_date: date,
        source: str,
    ) -> ExchangeRate:
        existing = await self.get_stored_rate(from_currency, to_currency, rate_date, exact=True)
        if existing:
            existing.rate = rate
            existing.source = source
            await self.db.flush()
            return existing

        new_rate = ExchangeRate(
            base_currency=from_currency,
            target_currency=to_currency,
            rate=rate,
            rate_date=rate_date,
            source=source,
        )
        self.db.add(new_rate)
        await self.db.flush()
        return new_rate

    # =========================================================================
    # MANAGEMENT
    # =========================================================================

    async def update_exchange_rate(
        self,
        from_currency: str,
        to_currency: str,
        rate: Decimal,
        rate_date: date,
        source: str = SOURCE_MANUAL,
    ) -> ExchangeRate:
        """Add or update an exchange rate. Invalidates cache on update."""
        from_currency = CurrencyReconciler.normalize_code(from_currency)
        to_currency = CurrencyReconciler.normalize_code(to_currency)
        rate = to_decimal(rate)
        if rate <= 0:
            raise InvalidInputError(
                message=f"Exchange rate must be positive (got {rate})",
                field="rate",
            )

        record = await self._upsert(from_currency, to_currency, rate, rate_date, source)
        await self.cache.invalidate_fx_rates(from_currency, to_currency)
        logger.info(f"Stored {source} FX rate {from_currency}/{to_currency} = {rate} for {rate_date}")
        return record

    async def convert_amount(
        self,
        amount: Decimal,
        from_currency: str,
        to_currency: str,
        as_of: date,
    ) -> Tuple[Decimal, ExchangeRateQuote]:
        """Convert an amount at the rate for as_of. Returns (converted, quote)."""
        quote = await self.get_quote(from_currency, to_currency, as_of)
        converted = CurrencyReconciler.convert(amount, from_currency, to_currency, quote.rate)
        return converted, quote
