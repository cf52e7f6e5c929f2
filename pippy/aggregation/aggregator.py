"""
Data-Source Aggregator

Runs the independent data-gathering tasks (charts, quotes, news, calendar)
concurrently and assembles one request-scoped AggregatedContext.

A failing task never cancels or delays the others: each task converts its
own failure into an Unavailable marker, and the join waits for all of them.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Dict, List, Optional

import config
from ..data.calendar import EconomicCalendarService, EconomicEvent
from ..data.charts import ChartAnalysis, ChartAnalyzer
from ..data.news import NewsItem, NewsService
from ..data.quotes import Quote, ResilientQuoteFetcher
from ..resilience.errors import ProviderError
from ..resilience.results import SourceResult, Success, Unavailable

logger = logging.getLogger(__name__)

SECTION_NAMES = ("chart_analysis", "quotes", "news", "calendar")
NOT_REQUESTED = "not requested"
NOT_CONFIGURED = "not configured"


@dataclass
class AggregationOptions:
    """Which sections to gather and how."""
    include_charts: bool = True
    include_quotes: bool = True
    include_news: bool = True
    include_calendar: bool = True
    timeframe: Optional[str] = None
    news_days: int = config.NEWS_LOOKBACK_DAYS
    news_limit: int = config.NEWS_LIMIT
    calendar_countries: Optional[List[str]] = None

    @classmethod
    def for_categories(cls, categories) -> "AggregationOptions":
        """Only gather what a classified query asked about; 'plan' means everything."""
        categories = set(categories)
        if "plan" in categories:
            return cls()
        return cls(
            include_charts="charts" in categories,
            include_quotes="quotes" in categories,
            include_news="news" in categories,
            include_calendar="calendar" in categories,
        )


@dataclass
class QuoteBoard:
    """Watch-list quotes that could be fetched, plus the symbols that could not."""
    quotes: List[Quote]
    missing: Dict[str, str] = field(default_factory=dict)

    @property
    def stale_symbols(self) -> List[str]:
        return [q.symbol for q in self.quotes if q.origin.value == "stale"]


@dataclass
class AggregatedContext:
    """Composite of every source, each tagged with its SourceResult."""
    target: str
    chart_analysis: SourceResult
    quotes: SourceResult
    news: SourceResult
    calendar: SourceResult
    generated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    elapsed_ms: int = 0

    def sections(self) -> Dict[str, SourceResult]:
        return {name: getattr(self, name) for name in SECTION_NAMES}

    def requested_sections(self) -> Dict[str, SourceResult]:
        return {
            name: result for name, result in self.sections().items()
            if not (isinstance(result, Unavailable) and result.reason == NOT_REQUESTED)
        }

    @property
    def available_count(self) -> int:
        return sum(1 for r in self.requested_sections().values() if r.ok)

    @property
    def requested_count(self) -> int:
        return len(self.requested_sections())

    @property
    def complete(self) -> bool:
        return self.available_count == self.requested_count

    def statuses(self) -> Dict[str, str]:
        """camelCase section -> status, as exposed by the plan endpoint."""
        keys = {
            "chart_analysis": "chartAnalysis",
            "quotes": "quotes",
            "news": "news",
            "calendar": "calendar",
        }
        return {keys[name]: result.status for name, result in self.sections().items()}

    def available_sources(self) -> List[str]:
        return [name for name, result in self.sections().items() if result.ok]


async def settle(name: str, awaitable: Awaitable[Any]) -> SourceResult:
    """Await one task and wrap its outcome; never raises."""
    try:
        data = await awaitable
    except ProviderError as e:
        logger.warning(f"Source '{name}' unavailable: {e.reason()}")
        return Unavailable(e.reason())
    except Exception as e:
        logger.exception(f"Source '{name}' crashed")
        return Unavailable(f"{type(e).__name__}: {e}")
    if isinstance(data, (Success, Unavailable)):
        return data
    return Success(data)


class DataSourceAggregator:
    """
    Fan-out/fan-in over the market data sources.

    Any source may be None (not configured); its section is then reported
    as Unavailable instead of failing the aggregate.
    """

    def __init__(
        self,
        quote_fetcher: Optional[ResilientQuoteFetcher] = None,
        news_service: Optional[NewsService] = None,
        calendar_service: Optional[EconomicCalendarService] = None,
        chart_analyzer: Optional[ChartAnalyzer] = None,
        watchlists: Optional[Dict[str, Dict[str, str]]] = None,
    ):
        self.quote_fetcher = quote_fetcher
        self.news_service = news_service
        self.calendar_service = calendar_service
        self.chart_analyzer = chart_analyzer
        self.watchlists = watchlists if watchlists is not None else config.WATCHLISTS

    def watchlist_for(self, target: str) -> List[str]:
        """Constituents of an index, or just the symbol itself."""
        watchlist = self.watchlists.get(target.upper())
        return list(watchlist) if watchlist else [target.upper()]

    async def _gather_charts(self, target: str, options: AggregationOptions) -> ChartAnalysis:
        return await self.chart_analyzer.analyze(target, options.timeframe)

    async def _gather_quotes(self, target: str) -> SourceResult:
        symbols = self.watchlist_for(target)
        results = await self.quote_fetcher.fetch_quotes(symbols)

        quotes = [r.data for r in results.values() if r.ok]
        missing = {s: r.reason for s, r in results.items() if not r.ok}
        if not quotes:
            return Unavailable(f"no quotes for {len(symbols)} symbols")
        return Success(QuoteBoard(quotes=quotes, missing=missing))

    async def _gather_news(self, target: str, options: AggregationOptions) -> List[NewsItem]:
        return await self.news_service.fetch_news(target, limit=options.news_limit, since_days=options.news_days)

    async def _gather_calendar(self, options: AggregationOptions) -> List[EconomicEvent]:
        return await self.calendar_service.fetch_events(options.calendar_countries)

    async def _skip(self, reason: str) -> Unavailable:
        return Unavailable(reason)

    def _task(self, wanted: bool, source: Any, factory) -> Awaitable[Any]:
        if not wanted:
            return self._skip(NOT_REQUESTED)
        if source is None:
            return self._skip(NOT_CONFIGURED)
        return factory()

    async def aggregate(self, target_symbol: str, options: Optional[AggregationOptions] = None) -> AggregatedContext:
        """
        Gather every requested section concurrently.

        Never raises because of a source failure; failed sections come back
        as Unavailable with a reason.
        """
        options = options or AggregationOptions()
        target = target_symbol.strip().upper()
        start_time = time.time()

        charts, quotes, news, calendar = await asyncio.gather(
            settle("chart_analysis", self._task(
                options.include_charts, self.chart_analyzer, lambda: self._gather_charts(target, options))),
            settle("quotes", self._task(
                options.include_quotes, self.quote_fetcher, lambda: self._gather_quotes(target))),
            settle("news", self._task(
                options.include_news, self.news_service, lambda: self._gather_news(target, options))),
            settle("calendar", self._task(
                options.include_calendar, self.calendar_service, lambda: self._gather_calendar(options))),
        )

        context = AggregatedContext(
            target=target,
            chart_analysis=charts,
            quotes=quotes,
            news=news,
            calendar=calendar,
            elapsed_ms=int((time.time() - start_time) * 1000),
        )
        logger.info(
            f"Aggregated {target}: {context.available_count}/{context.requested_count} "
            f"sources available in {context.elapsed_ms}ms"
        )
        return context
