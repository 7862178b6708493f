"""
Fakturo - Cache Service

Redis cache in front of the exchange-rate table. Keys look like
``fx:rate:USD:CHF:2026-03-16`` and hold the rate as a decimal string.

The cache is an optimisation only: when Redis is disabled or unreachable
reads behave as misses and writes as no-ops, each logged as a warning.
"""

import logging
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

from fakturo.config import get_settings

logger = logging.getLogger(__name__)
settings = get_settings()

# Builtin ConnectionError/TimeoutError surface from the socket layer
CACHE_ERRORS = (RedisError, OSError)


class CacheService:
    """Redis-backed exchange-rate cache."""

    FX_RATE_PREFIX = "fx:rate"
    DEFAULT_FX_RATE_TTL = 3600

    def __init__(
        self,
        redis_url: Optional[str] = None,
        enabled: Optional[bool] = None,
        fx_rate_ttl: Optional[int] = None,
    ):
        self.redis_url = redis_url or settings.redis_url
        self.enabled = settings.rate_cache_enabled if enabled is None else enabled
        self.fx_rate_ttl = fx_rate_ttl or settings.fx_rate_cache_ttl_seconds or self.DEFAULT_FX_RATE_TTL
        self._client: Optional[redis.Redis] = None

    async def get_client(self) -> redis.Redis:
        if self._client is None:
            self._client = redis.from_url(self.redis_url, decode_responses=True)
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    # =========================================================================
    # RAW VALUES
    # =========================================================================

    async def get(self, key: str) -> Optional[str]:
        if not self.enabled:
            return None
        try:
            client = await self.get_client()
            return await client.get(key)
        except CACHE_ERRORS as e:
            logger.warning(f"Rate cache read failed for {key}: {e}")
            return None

    async def set(self, key: str, value: str, ttl: int) -> bool:
        if not self.enabled:
            return False
        try:
            client = await self.get_client()
            await client.setex(key, ttl, value)
        except CACHE_ERRORS as e:
            logger.warning(f"Rate cache write failed for {key}: {e}")
            return False
        return True

    # =========================================================================
    # EXCHANGE RATES
    # =========================================================================

    def _fx_rate_key(self, from_currency: str, to_currency: str, rate_date: date) -> str:
        return f"{self.FX_RATE_PREFIX}:{from_currency}:{to_currency}:{rate_date.isoformat()}"

    async def get_fx_rate(self, from_currency: str, to_currency: str, rate_date: date) -> Optional[Decimal]:
        """Cached rate, or None on a miss or an unreadable value."""
        key = self._fx_rate_key(from_currency, to_currency, rate_date)
        raw = await self.get(key)
        if raw is None:
            return None
        try:
            return Decimal(raw)
        except InvalidOperation:
            logger.warning(f"Ignoring unparseable rate {raw!r} cached under {key}")
            return None

    async def set_fx_rate(
        self,
        from_currency: str,
        to_currency: str,
        rate_date: date,
        rate: Decimal,
        ttl: Optional[int] = None,
    ) -> bool:
        key = self._fx_rate_key(from_currency, to_currency, rate_date)
        return await self.set(key, str(rate), ttl or self.fx_rate_ttl)

    async def invalidate_fx_rates(
        self,
        from_currency: Optional[str] = None,
        to_currency: Optional[str] = None,
    ) -> int:
        """
        Drop cached rates for a pair (all dates), for a base currency, or
        every cached rate when called without arguments.

        Returns the number of keys removed.
        """
        if not self.enabled:
            return 0

        parts = [self.FX_RATE_PREFIX]
        if from_currency:
            parts.append(from_currency)
            if to_currency:
                parts.append(to_currency)
        pattern = ":".join(parts) + ":*"

        try:
            client = await self.get_client()
            keys = [key async for key in client.scan_iter(match=pattern)]
            if not keys:
                return 0
            return await client.delete(*keys)
        except CACHE_ERRORS as e:
            logger.warning(f"Rate cache invalidation failed for {pattern}: {e}")
            return 0

    async def health_check(self) -> Dict[str, Any]:
        if not self.enabled:
            return {"status": "disabled", "connected": False}
        try:
            client = await self.get_client()
            await client.ping()
        except CACHE_ERRORS as e:
            return {"status": "unhealthy", "connected": False, "error": str(e)}
        return {"status": "healthy", "connected": True}


# =========================================================================
# PROCESS-WIDE INSTANCE
# =========================================================================

_cache_service: Optional[CacheService] = None


def get_cache_service() -> CacheService:
    global _cache_service
    if _cache_service is None:
        _cache_service = CacheService()
    return _cache_service


async def close_cache_service() -> None:
    global _cache_service
    if _cache_service is not None:
        await _cache_service.close()
        _cache_service = None
