"""
Service wiring: build the pipeline objects from config/env.

Caches are created here, once per process, and shared by the objects that
need them. Nothing else holds module-level state.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import config
from .aggregation.aggregator import DataSourceAggregator
from .aggregation.formatter import ContextFormatter
from .cache.ttl_cache import TTLCache
from .data.calendar import EconomicCalendarService, FeedCalendarClient
from .data.charts import ChartAnalyzer, ChartStore, LocalChartStore
from .data.finnhub import FinnhubClient
from .data.news import NewsService
from .data.quotes import ResilientQuoteFetcher
from .debate.orchestrator import DebateOrchestrator
from .debate.plan import TradingPlanGenerator
from .llm.llm_service import build_backend

logger = logging.getLogger(__name__)


@dataclass
class PippyServices:
    """Everything the HTTP layer calls into."""
    quote_fetcher: ResilientQuoteFetcher
    news_service: NewsService
    calendar_service: EconomicCalendarService
    chart_analyzer: Optional[ChartAnalyzer]
    aggregator: DataSourceAggregator
    orchestrator: DebateOrchestrator
    plan_generator: TradingPlanGenerator
    chart_store: Optional[ChartStore] = None


def build_services(
    primary_provider: str = config.PRIMARY_PROVIDER,
    secondary_provider: str = config.SECONDARY_PROVIDER,
) -> PippyServices:
    """Create the production object graph."""
    finnhub = FinnhubClient()
    quote_fetcher = ResilientQuoteFetcher(finnhub, cache=TTLCache(name="quotes"))
    news_service = NewsService(finnhub)
    calendar_service = EconomicCalendarService(FeedCalendarClient())

    primary = build_backend(primary_provider)
    secondary = build_backend(secondary_provider)

    chart_store = LocalChartStore()
    vision = next((b for b in (primary, secondary) if b.supports_images), None)
    chart_analyzer = None
    if vision is not None:
        chart_analyzer = ChartAnalyzer(chart_store, vision, cache=TTLCache(name="charts"))
    else:
        logger.warning("No image-capable backend configured - chart analysis disabled")

    aggregator = DataSourceAggregator(
        quote_fetcher=quote_fetcher,
        news_service=news_service,
        calendar_service=calendar_service,
        chart_analyzer=chart_analyzer,
    )
    formatter = ContextFormatter()
    orchestrator = DebateOrchestrator(primary, secondary, formatter=formatter, aggregator=aggregator)

    logger.info(
        f"Services ready: AI {primary.name}={'ok' if primary.is_available() else 'missing key'}, "
        f"{secondary.name}={'ok' if secondary.is_available() else 'missing key'}, "
        f"market data={'ok' if finnhub.is_available() else 'missing key'}"
    )

    return PippyServices(
        quote_fetcher=quote_fetcher,
        news_service=news_service,
        calendar_service=calendar_service,
        chart_analyzer=chart_analyzer,
        aggregator=aggregator,
        orchestrator=orchestrator,
        plan_generator=TradingPlanGenerator(aggregator, orchestrator, formatter),
        chart_store=chart_store,
    )
