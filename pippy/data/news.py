"""
Company news for a symbol or an index watch-list.
Items are returned most-recent-first; equal timestamps keep provider order.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Protocol

import config
from ..resilience.errors import ProviderError
from ..resilience.retry import RetryPolicy, with_retry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NewsItem:
    """Represents a single news article."""
    headline: str
    summary: str
    source: str
    published_at: datetime
    url: str
    symbol: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            'headline': self.headline,
            'summary': self.summary,
            'source': self.source,
            'publishedAt': self.published_at.isoformat(),
            'url': self.url,
            'symbol': self.symbol,
        }


class NewsProvider(Protocol):
    async def get_company_news(self, symbol: str, since_days: int) -> List[Dict[str, Any]]:
        ...


def parse_news_item(raw: Dict[str, Any], symbol: str = "") -> Optional[NewsItem]:
    """Build a NewsItem from a provider record; None if it has no headline."""
    headline = (raw.get('headline') or "").strip()
    if not headline:
        return None

    ts = raw.get('datetime') or raw.get('publishedAt') or 0
    try:
        published_at = datetime.fromtimestamp(float(ts), tz=timezone.utc)
    except (TypeError, ValueError, OverflowError):
        published_at = datetime.fromtimestamp(0, tz=timezone.utc)

    return NewsItem(
        headline=headline[:300],
        summary=(raw.get('summary') or "").strip()[:500],
        source=raw.get('source') or "unknown",
        published_at=published_at,
        url=raw.get('url') or "",
        symbol=symbol,
    )


def sort_most_recent_first(items: List[NewsItem]) -> List[NewsItem]:
    """Stable sort: newest first, ties keep their original order."""
    return sorted(items, key=lambda item: item.published_at, reverse=True)


class NewsService:
    """
    Fetch and normalize company news.

    For an index (US30, NAS100, ...) the first few constituents of its
    watch-list are queried concurrently and merged. The call only fails
    when every underlying request fails.
    """

    def __init__(
        self,
        provider: NewsProvider,
        policy: Optional[RetryPolicy] = None,
        since_days: int = config.NEWS_LOOKBACK_DAYS,
        symbols_per_index: int = config.NEWS_SYMBOLS_PER_INDEX,
        sleep=asyncio.sleep,
    ):
        self.provider = provider
        self.policy = policy or RetryPolicy(
            max_attempts=config.RETRY_MAX_ATTEMPTS,
            base_delay=config.RETRY_BASE_DELAY_SECONDS,
            attempt_timeout=config.PROVIDER_TIMEOUT_SECONDS,
        )
        self.since_days = since_days
        self.symbols_per_index = symbols_per_index
        self.sleep = sleep

    def symbols_for(self, target: str) -> List[str]:
        watchlist = config.WATCHLISTS.get(target.upper())
        if watchlist:
            return list(watchlist)[: self.symbols_per_index]
        return [target.upper()]

    async def _fetch_symbol(self, symbol: str, since_days: int) -> List[NewsItem]:
        raw = await with_retry(
            lambda: self.provider.get_company_news(symbol, since_days),
            self.policy,
            name=f"news {symbol}",
            sleep=self.sleep,
        )
        items = []
        for record in raw or []:
            if not isinstance(record, dict):
                continue
            item = parse_news_item(record, symbol=symbol)
            if item is not None:
                items.append(item)
        return items

    async def fetch_news(self, target: str, limit: int = config.NEWS_LIMIT,
                         since_days: Optional[int] = None) -> List[NewsItem]:
        """
        Get recent news for a symbol or index.

        Raises:
            ProviderError: only when every underlying request failed
        """
        since_days = since_days or self.since_days
        symbols = self.symbols_for(target)
        outcomes = await asyncio.gather(
            *(self._fetch_symbol(s, since_days) for s in symbols),
            return_exceptions=True,
        )

        merged: List[NewsItem] = []
        errors: List[BaseException] = []
        for symbol, outcome in zip(symbols, outcomes):
            if isinstance(outcome, BaseException):
                logger.warning(f"News fetch failed for {symbol}: {outcome}")
                errors.append(outcome)
            else:
                merged.extend(outcome)

        if errors and len(errors) == len(symbols):
            first = errors[0]
            if isinstance(first, ProviderError):
                raise first
            raise ProviderError(f"news unavailable for {target}: {first}", provider="news") from first

        seen = set()
        unique = []
        for item in merged:
            key = item.url or item.headline
            if key in seen:
                continue
            seen.add(key)
            unique.append(item)

        ordered = sort_most_recent_first(unique)[:max(1, limit)]
        logger.info(f"News for {target}: {len(ordered)} items from {len(symbols) - len(errors)}/{len(symbols)} symbols")
        return ordered
