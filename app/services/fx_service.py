"""USD to INR rates and quote arithmetic.

``get_live_rate`` is the only source allowed for a transfer quote: no cache,
no fallback. ``get_rate`` adds the short cache and a fixed fallback and is
used for informational display only.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Optional

import httpx

from app.logging_config import get_logger
from app.services.errors import CollaboratorUnavailable

logger = get_logger("fx_service")

RATE_CACHE_KEY = "fx_rate:USD_INR"
FEE_PERCENT = Decimal("0.001")
FEE_CAP_USD = Decimal("2.00")
CENT = Decimal("0.01")
RATE_PRECISION = Decimal("0.0001")


@dataclass(frozen=True)
class Quote:
    amount_usd: Decimal
    fee_usd: Decimal
    fx_rate: Decimal
    amount_inr: Decimal
    fee_label: str


@dataclass(frozen=True)
class RateSnapshot:
    rate: Decimal
    source: str  # live, cached, fallback


def calculate_fee(amount_usd: Decimal) -> Decimal:
    return min(Decimal(amount_usd) * FEE_PERCENT, FEE_CAP_USD)


def calculate_quote(amount_usd: Decimal, fx_rate: Decimal) -> Quote:
    amount = Decimal(amount_usd)
    rate = Decimal(fx_rate)
    fee = calculate_fee(amount)
    destination = (amount - fee) * rate
    return Quote(
        amount_usd=amount.quantize(CENT, rounding=ROUND_HALF_UP),
        fee_usd=fee.quantize(CENT, rounding=ROUND_HALF_UP),
        fx_rate=rate.quantize(RATE_PRECISION, rounding=ROUND_HALF_UP),
        amount_inr=destination.quantize(CENT, rounding=ROUND_HALF_UP),
        fee_label="0.1%" if fee < FEE_CAP_USD else "max $2",
    )


class FXRateService:
    def __init__(
        self,
        api_key: Optional[str],
        api_url: str,
        redis_client=None,
        timeout_seconds: float = 5.0,
        cache_ttl_seconds: int = 30,
        fallback_rate: Decimal = Decimal("83.50"),
    ):
        self.api_key = api_key
        self.api_url = api_url
        self.redis_client = redis_client
        self.timeout_seconds = timeout_seconds
        self.cache_ttl_seconds = cache_ttl_seconds
        self.fallback_rate = Decimal(str(fallback_rate))

    async def _fetch_rate(self) -> Decimal:
        if not self.api_key:
            raise CollaboratorUnavailable("Rate API key is not configured", "fx_rate")
        url = self.api_url.format(api_key=self.api_key)
        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                response = await client.get(url)
                response.raise_for_status()
                payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise CollaboratorUnavailable(f"Rate API request failed: {exc}", "fx_rate") from exc

        if payload.get("result") not in (None, "success"):
            raise CollaboratorUnavailable(f"Rate API error: {payload.get('error-type')}", "fx_rate")
        try:
            rate = Decimal(str(payload["conversion_rate"]))
        except (KeyError, InvalidOperation) as exc:
            raise CollaboratorUnavailable("Rate API returned no conversion_rate", "fx_rate") from exc
        if not rate.is_finite() or rate <= 0:
            raise CollaboratorUnavailable(f"Rate API returned invalid rate {rate}", "fx_rate")
        return rate

    async def get_live_rate(self) -> Optional[Decimal]:
        """Fresh rate for transactional use, or None if the source is unavailable."""
        try:
            rate = await self._fetch_rate()
        except CollaboratorUnavailable as exc:
            logger.warning("Live rate unavailable", extra={"context": {"error": exc.message}})
            return None
        await self._cache_rate(rate)
        return rate

    async def get_rate(self) -> RateSnapshot:
        cached = await self._cached_rate()
        if cached is not None:
            return RateSnapshot(rate=cached, source="cached")
        live = await self.get_live_rate()
        if live is not None:
            return RateSnapshot(rate=live, source="live")
        logger.warning("Using fallback rate", extra={"context": {"rate": str(self.fallback_rate)}})
        return RateSnapshot(rate=self.fallback_rate, source="fallback")

    async def _cached_rate(self) -> Optional[Decimal]:
        if self.redis_client is None:
            return None
        try:
            raw = await self.redis_client.get(RATE_CACHE_KEY)
            return Decimal(raw) if raw else None
        except Exception as exc:
            logger.warning("Rate cache read failed", extra={"context": {"error": str(exc)}})
            return None

    async def _cache_rate(self, rate: Decimal) -> None:
        if self.redis_client is None:
            return
        try:
            await self.redis_client.set(RATE_CACHE_KEY, str(rate), ex=self.cache_ttl_seconds)
        except Exception as exc:
            logger.warning("Rate cache write failed", extra={"context": {"error": str(exc)}})
