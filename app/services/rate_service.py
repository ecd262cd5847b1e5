"""
FX rate resolver — provider lookup, inversion fallback and caching.

Resolution order for a pair (from, to):

    1. same currency   -> rate 1, provider "direct", no provider call
    2. direct rate     -> provider.fetch_rate(from, to)
    3. inverted rate   -> 1 / provider.fetch_rate(to, from), provider "inverted"
    4. default rate    -> 1.0 tagged "default", only when FX_RATE_ALLOW_DEFAULT

A provider call that times out, errors or returns malformed data counts as
"unavailable" for steps 2-3. Resolved rates are cached in Redis with their
original fetch timestamp, so a cached value is never presented as fresh.
"""

import asyncio
import json
import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, Mapping, Protocol

import httpx
from redis.exceptions import RedisError

from app.config import settings
from app.transfers.errors import RateUnavailableError
from app.transfers.types import RATE_PLACES, ExchangeRate

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

RATE_CACHE_KEY_PREFIX = "fx_rate:"

PROVIDER_DIRECT = "direct"
PROVIDER_INVERTED = "inverted"
PROVIDER_DEFAULT = "default"

# Static rates for dev/testing (units of target per 1 unit of source)
MOCK_RATES: dict[tuple[str, str], Decimal] = {
    ("USD", "EUR"): Decimal("0.85"),
    ("USD", "GBP"): Decimal("0.73"),
    ("USD", "NGN"): Decimal("760.50"),
    ("USD", "KES"): Decimal("150.25"),
    ("EUR", "USD"): Decimal("1.18"),
    ("EUR", "GBP"): Decimal("0.86"),
    ("EUR", "NGN"): Decimal("895.60"),
    ("GBP", "USD"): Decimal("1.37"),
    ("GBP", "EUR"): Decimal("1.16"),
    ("NGN", "USD"): Decimal("0.0013"),
}

_PROVIDER_ERRORS = (
    httpx.HTTPError,
    asyncio.TimeoutError,
    KeyError,
    TypeError,
    ValueError,
    ArithmeticError,
)


# ---------------------------------------------------------------------------
# Rate provider protocol
# ---------------------------------------------------------------------------


class RateProvider(Protocol):
    name: str

    async def fetch_rate(self, from_currency: str, to_currency: str) -> Decimal | None:
        """Units of to_currency per 1 from_currency, or None if unknown."""
        ...


class StaticRateProvider:
    """Fixed rate table. Pairs not in the table are reported as unknown."""

    name = "static"

    def __init__(self, rates: Mapping[tuple[str, str], Decimal]):
        self._rates = dict(rates)

    async def fetch_rate(self, from_currency: str, to_currency: str) -> Decimal | None:
        return self._rates.get((from_currency, to_currency))


class MockRateProvider(StaticRateProvider):
    """Deterministic rates for dev/testing."""

    name = "mock"

    def __init__(self, rates: Mapping[tuple[str, str], Decimal] | None = None):
        super().__init__(MOCK_RATES if rates is None else rates)


class ExchangeRateAPIProvider:
    """Fetch live rates from an exchangerate-api compatible endpoint."""

    name = "exchangerate-api"

    def __init__(
        self,
        api_url: str,
        api_key: str = "",
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._api_url = api_url.rstrip("/")
        self._api_key = api_key
        self._timeout = timeout
        self._transport = transport

    async def fetch_rate(self, from_currency: str, to_currency: str) -> Decimal | None:
        params = {"access_key": self._api_key} if self._api_key else None
        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            resp = await client.get(f"{self._api_url}/{from_currency}", params=params)
            resp.raise_for_status()
            data = resp.json()

        if not isinstance(data, dict):
            raise ValueError(f"Rate API returned {type(data).__name__}, expected an object")
        if data.get("result", "success") != "success":
            raise ValueError(f"Rate API error: {data.get('error-type', data.get('result'))}")

        rates = data.get("rates")
        if not isinstance(rates, dict):
            raise ValueError("Rate API response has no rates table")
        raw = rates.get(to_currency)
        if raw is None:
            return None
        try:
            return Decimal(str(raw))
        except ArithmeticError as exc:
            raise ValueError(f"Rate API returned non-numeric rate {raw!r}") from exc


# Module-level provider override (for tests)
_provider: RateProvider | None = None


def get_rate_provider() -> RateProvider:
    """Return the configured rate provider."""
    if _provider is not None:
        return _provider
    if settings.FX_RATE_MOCK:
        return MockRateProvider()
    return ExchangeRateAPIProvider(
        api_url=settings.FX_RATE_API_URL,
        api_key=settings.FX_RATE_API_KEY,
        timeout=settings.FX_RATE_TIMEOUT_SECONDS,
    )


def set_rate_provider(provider: RateProvider | None) -> None:
    """Override the rate provider (for testing)."""
    global _provider
    _provider = provider


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# ExchangeRateResolver
# ---------------------------------------------------------------------------


class ExchangeRateResolver:
    """Resolves a directional rate with inversion fallback and caching."""

    def __init__(
        self,
        provider: RateProvider,
        redis=None,
        *,
        cache_ttl_seconds: int = 60,
        timeout_seconds: float = 10.0,
        allow_default: bool = False,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.provider = provider
        self.redis = redis
        self.cache_ttl_seconds = cache_ttl_seconds
        self.timeout_seconds = timeout_seconds
        self.allow_default = allow_default
        self.clock = clock

    async def resolve(self, from_currency: str, to_currency: str) -> ExchangeRate:
        """
        Return the rate for (from, to).

        Raises RateUnavailableError when neither direction is known and the
        default fallback is disabled.
        """
        source = from_currency.upper()
        target = to_currency.upper()

        if source == target:
            return ExchangeRate.direct(source, self.clock())

        cached = await self._get_cached(source, target)
        if cached is not None:
            return cached

        rate = await self._query(source, target)
        if rate is not None:
            resolved = ExchangeRate(source, target, rate, self.clock(), self.provider.name)
        else:
            inverse = await self._query(target, source)
            if inverse is not None:
                resolved = ExchangeRate(
                    source, target,
                    (Decimal("1") / inverse).quantize(RATE_PLACES),
                    self.clock(),
                    PROVIDER_INVERTED,
                )
                logger.info(
                    "Using inverted rate for %s/%s from %s/%s=%s",
                    source, target, target, source, inverse,
                )
            elif self.allow_default:
                logger.error(
                    "No rate for %s/%s in either direction; using DEFAULT rate 1.0. "
                    "Conversion economics are wrong for this transfer. "
                    "Disable FX_RATE_ALLOW_DEFAULT outside test environments.",
                    source, target,
                )
                return ExchangeRate(source, target, Decimal("1"), self.clock(), PROVIDER_DEFAULT)
            else:
                raise RateUnavailableError(f"No exchange rate available for {source}/{target}")

        await self._set_cached(resolved)
        return resolved

    # --- Provider access ---

    async def _query(self, source: str, target: str) -> Decimal | None:
        """Ask the provider for one direction; any failure counts as unavailable."""
        try:
            rate = await asyncio.wait_for(
                self.provider.fetch_rate(source, target),
                timeout=self.timeout_seconds,
            )
        except _PROVIDER_ERRORS as exc:
            logger.warning(
                "Rate provider %s failed for %s/%s: %s",
                self.provider.name, source, target, exc,
            )
            return None

        if rate is None:
            return None
        try:
            rate = rate if isinstance(rate, Decimal) else Decimal(str(rate))
        except ArithmeticError:
            rate = Decimal("NaN")
        if not rate.is_finite() or rate <= 0:
            logger.warning(
                "Rate provider %s returned unusable rate %s for %s/%s",
                self.provider.name, rate, source, target,
            )
            return None
        return rate

    # --- Cache ---

    @staticmethod
    def _cache_key(source: str, target: str) -> str:
        return f"{RATE_CACHE_KEY_PREFIX}{source}:{target}"

    async def _get_cached(self, source: str, target: str) -> ExchangeRate | None:
        if self.redis is None:
            return None
        try:
            raw = await self.redis.get(self._cache_key(source, target))
        except RedisError as exc:
            logger.warning("Rate cache read failed for %s/%s: %s", source, target, exc)
            return None
        if raw is None:
            return None

        data = json.loads(raw)
        return ExchangeRate(
            from_currency=source,
            to_currency=target,
            rate=Decimal(data["rate"]),
            timestamp=datetime.fromisoformat(data["timestamp"]),
            provider=data["provider"],
        )

    async def _set_cached(self, rate: ExchangeRate) -> None:
        if self.redis is None:
            return
        payload = json.dumps({
            "rate": str(rate.rate),
            "timestamp": rate.timestamp.isoformat(),
            "provider": rate.provider,
        })
        try:
            await self.redis.setex(
                self._cache_key(rate.from_currency, rate.to_currency),
                self.cache_ttl_seconds,
                payload,
            )
        except RedisError as exc:
            logger.warning(
                "Rate cache write failed for %s/%s: %s",
                rate.from_currency, rate.to_currency, exc,
            )


def build_rate_resolver(redis=None) -> ExchangeRateResolver:
    """Resolver wired from settings and the configured provider."""
    return ExchangeRateResolver(
        get_rate_provider(),
        redis,
        cache_ttl_seconds=settings.FX_RATE_CACHE_TTL_SECONDS,
        timeout_seconds=settings.FX_RATE_TIMEOUT_SECONDS,
        allow_default=settings.FX_RATE_ALLOW_DEFAULT,
    )
