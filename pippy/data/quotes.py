"""
Quotes - validated real-time quotes with retry and cache fallback.

Order of preference for a symbol:
1. Fresh cache entry (younger than the TTL)       -> origin=cached
2. Live provider response that passes validation -> origin=live (cached)
3. Any earlier cache entry, however old           -> origin=stale
4. Unavailable
"""

import asyncio
import logging
import math
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol

import config
from ..cache.ttl_cache import TTLCache
from ..resilience.errors import InvalidPayload, ProviderError
from ..resilience.results import SourceResult, Success, Unavailable
from ..resilience.retry import RetryPolicy, with_retry

logger = logging.getLogger(__name__)

# Provider field -> Quote attribute; all must be present and non-zero
REQUIRED_FIELDS = {
    'c': 'price',
    'h': 'high',
    'l': 'low',
    'o': 'open',
    'pc': 'previous_close',
}


class QuoteOrigin(Enum):
    """Where a returned quote came from."""
    LIVE = "live"
    CACHED = "cached"
    STALE = "stale"


@dataclass(frozen=True)
class Quote:
    """A validated quote. price > 0 and high >= low always hold."""
    symbol: str
    price: float
    change: float
    percent_change: float
    high: float
    low: float
    open: float
    previous_close: float
    observed_at: datetime
    origin: QuoteOrigin = QuoteOrigin.LIVE

    def to_dict(self) -> Dict[str, Any]:
        return {
            'symbol': self.symbol,
            'price': self.price,
            'change': self.change,
            'percentChange': self.percent_change,
            'high': self.high,
            'low': self.low,
            'open': self.open,
            'previousClose': self.previous_close,
            'observedAt': self.observed_at.isoformat(),
            'origin': self.origin.value,
        }


@dataclass(frozen=True)
class QuoteValidation:
    """Result of validating one provider payload: exactly one of quote/error is set."""
    quote: Optional[Quote] = None
    error: Optional[InvalidPayload] = None

    @property
    def ok(self) -> bool:
        return self.quote is not None


def _as_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    # NaN and inf are not usable prices
    return number if math.isfinite(number) else None


def validate_quote(symbol: str, payload: Any, now: Optional[datetime] = None) -> QuoteValidation:
    """
    Turn a raw provider payload into a Quote, or explain why it is unusable.

    Rejects payloads where any required field is missing, zero or not a
    finite number, where price <= 0, or where high < low.
    """
    if not isinstance(payload, dict):
        return QuoteValidation(error=InvalidPayload(
            f"quote payload for {symbol} is not an object", problems=["not an object"],
        ))

    problems: List[str] = []
    values: Dict[str, float] = {}
    for key, attr in REQUIRED_FIELDS.items():
        number = _as_float(payload.get(key))
        if number is None:
            problems.append(f"missing {key}")
        elif number == 0:
            problems.append(f"zero {key}")
        else:
            values[attr] = number

    price = values.get('price')
    if price is not None and price <= 0:
        problems.append(f"non-positive price {price}")
    high, low = values.get('high'), values.get('low')
    if high is not None and low is not None and high < low:
        problems.append(f"high {high} < low {low}")

    if problems:
        return QuoteValidation(error=InvalidPayload(
            f"invalid quote for {symbol}: {', '.join(problems)}", problems=problems,
        ))

    change = _as_float(payload.get('d'))
    if change is None:
        change = values['price'] - values['previous_close']
    percent_change = _as_float(payload.get('dp'))
    if percent_change is None:
        percent_change = change / values['previous_close'] * 100

    timestamp = _as_float(payload.get('t'))
    if timestamp:
        observed_at = datetime.fromtimestamp(timestamp, tz=timezone.utc)
    else:
        observed_at = now or datetime.now(timezone.utc)

    return QuoteValidation(quote=Quote(
        symbol=symbol,
        price=values['price'],
        change=round(change, 4),
        percent_change=round(percent_change, 4),
        high=values['high'],
        low=values['low'],
        open=values['open'],
        previous_close=values['previous_close'],
        observed_at=observed_at,
        origin=QuoteOrigin.LIVE,
    ))


class QuoteProvider(Protocol):
    async def get_quote(self, symbol: str) -> Dict[str, Any]:
        ...


class ResilientQuoteFetcher:
    """
    Wraps a single quote provider with validation, retry/backoff and cache fallback.

    fetch_quote never raises: every failure path resolves to a SourceResult.
    The cache is only written after a live payload passes validation.
    """

    def __init__(
        self,
        provider: QuoteProvider,
        cache: Optional[TTLCache] = None,
        policy: Optional[RetryPolicy] = None,
        ttl_seconds: float = config.QUOTE_CACHE_TTL_SECONDS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Args:
            provider: Anything with an async get_quote(symbol) -> dict
            cache: Shared quote cache (a private one is created if omitted)
            policy: Retry policy (defaults from config: 3 attempts, linear 1s/2s/3s)
            ttl_seconds: Age under which a cached quote is served without a network call
            sleep: Backoff sleep, injectable for tests
        """
        self.provider = provider
        self.cache = cache if cache is not None else TTLCache(name="quotes")
        self.policy = policy or RetryPolicy(
            max_attempts=config.RETRY_MAX_ATTEMPTS,
            base_delay=config.RETRY_BASE_DELAY_SECONDS,
            attempt_timeout=config.PROVIDER_TIMEOUT_SECONDS,
        )
        self.ttl_seconds = ttl_seconds
        self.sleep = sleep

    async def _fetch_live(self, symbol: str) -> Quote:
        payload = await self.provider.get_quote(symbol)
        validation = validate_quote(symbol, payload, now=self.cache.now())
        if not validation.ok:
            raise validation.error
        return validation.quote

    async def fetch_quote(self, symbol: str) -> SourceResult:
        """Return a Success(Quote) tagged live/cached/stale, or Unavailable."""
        key = symbol.strip().upper()

        entry = self.cache.get_fresh(key, self.ttl_seconds)
        if entry is not None:
            return Success(replace(entry.value, origin=QuoteOrigin.CACHED))

        try:
            quote = await with_retry(
                lambda: self._fetch_live(key),
                self.policy,
                name=f"quote {key}",
                sleep=self.sleep,
            )
        except Exception as e:
            reason = e.reason() if isinstance(e, ProviderError) else f"{type(e).__name__}: {e}"
            stale = self.cache.get(key)
            if stale is not None:
                age = stale.age_seconds(self.cache.now())
                logger.warning(f"Serving stale quote for {key} ({age:.0f}s old): {reason}")
                return Success(replace(stale.value, origin=QuoteOrigin.STALE))
            logger.warning(f"Quote unavailable for {key}: {reason}")
            return Unavailable(reason)

        self.cache.put(key, quote)
        return Success(quote)

    async def fetch_quotes(self, symbols: List[str]) -> Dict[str, SourceResult]:
        """Fetch many symbols concurrently; result keeps the input order."""
        results = await asyncio.gather(*(self.fetch_quote(s) for s in symbols))
        return dict(zip(symbols, results))
