"""
Tests for the data-source aggregator.
"""
import asyncio
import time
from datetime import datetime, timezone

import pytest

from pippy.aggregation.aggregator import (
    NOT_CONFIGURED,
    NOT_REQUESTED,
    AggregationOptions,
    DataSourceAggregator,
    QuoteBoard,
    settle,
)
from pippy.data.calendar import EconomicEvent, EventImpact
from pippy.data.charts import ChartAnalysis
from pippy.data.news import NewsItem
from pippy.data.quotes import ResilientQuoteFetcher
from pippy.resilience.errors import TransportError
from pippy.resilience.results import Success, Unavailable
from pippy.resilience.retry import RetryPolicy

WATCHLISTS = {"US30": {"AAPL": "Apple Inc.", "MSFT": "Microsoft Corp."}}


class FakeNews:
    def __init__(self, error=None):
        self.error = error

    async def fetch_news(self, target, limit=10, since_days=3):
        if self.error:
            raise self.error
        return [NewsItem("Dow rallies", "", "Reuters", datetime(2024, 6, 14, tzinfo=timezone.utc), "u")]


class FakeCalendar:
    def __init__(self, error=None):
        self.error = error

    async def fetch_events(self, countries=None):
        if self.error:
            raise self.error
        return [EconomicEvent("CPI m/m", "USD", "2024-06-12", "08:30", EventImpact.HIGH)]


class FakeCharts:
    def __init__(self, error=None):
        self.error = error
        self.timeframes = []

    async def analyze(self, pair, timeframe=None):
        self.timeframes.append(timeframe)
        if self.error:
            raise self.error
        return ChartAnalysis(pair=pair, charts_analyzed=1, text="Uptrend", timeframes=["1hr"])


@pytest.fixture
def quote_fetcher(quote_provider, cache, fast_sleep, aapl_payload):
    quote_provider.set("AAPL", aapl_payload)
    quote_provider.set("MSFT", dict(aapl_payload, c=420.0, h=421, l=410, pc=415))
    return ResilientQuoteFetcher(
        quote_provider, cache=cache, policy=RetryPolicy(max_attempts=1, base_delay=0), sleep=fast_sleep,
    )


def make_aggregator(quote_fetcher, news=None, calendar=None, charts=None):
    return DataSourceAggregator(
        quote_fetcher=quote_fetcher,
        news_service=news or FakeNews(),
        calendar_service=calendar or FakeCalendar(),
        chart_analyzer=charts or FakeCharts(),
        watchlists=WATCHLISTS,
    )


class TestAggregate:

    def test_all_sources_available(self, quote_fetcher):
        context = asyncio.run(make_aggregator(quote_fetcher).aggregate("us30"))
        assert context.target == "US30"
        assert context.complete
        assert context.available_count == 4
        board = context.quotes.data
        assert isinstance(board, QuoteBoard)
        assert [q.symbol for q in board.quotes] == ["AAPL", "MSFT"]
        assert context.statuses() == {
            "chartAnalysis": "available", "quotes": "available", "news": "available", "calendar": "available",
        }

    def test_one_source_failing_does_not_affect_others(self, quote_fetcher):
        aggregator = make_aggregator(quote_fetcher, news=FakeNews(TransportError("news down", provider="finnhub")))

        context = asyncio.run(aggregator.aggregate("US30"))

        assert isinstance(context.news, Unavailable)
        assert "news down" in context.news.reason
        assert context.chart_analysis.ok
        assert context.quotes.ok
        assert context.calendar.ok
        assert context.available_count == 3
        assert not context.complete
        assert context.available_sources() == ["chart_analysis", "quotes", "calendar"]

    def test_unexpected_crash_becomes_unavailable(self, quote_fetcher):
        aggregator = make_aggregator(quote_fetcher, calendar=FakeCalendar(RuntimeError("parser bug")))
        context = asyncio.run(aggregator.aggregate("US30"))
        assert context.calendar.reason == "RuntimeError: parser bug"
        assert context.available_count == 3

    def test_every_source_failing_still_resolves(self, quote_provider, quote_fetcher):
        quote_provider.set("AAPL", TransportError("down"))
        quote_provider.set("MSFT", TransportError("down"))
        aggregator = make_aggregator(
            quote_fetcher,
            news=FakeNews(TransportError("x")),
            calendar=FakeCalendar(TransportError("y")),
            charts=FakeCharts(TransportError("z")),
        )
        context = asyncio.run(aggregator.aggregate("US30"))
        assert context.available_count == 0
        assert all(not r.ok for r in context.sections().values())

    def test_partial_quotes_are_still_available(self, quote_provider, quote_fetcher):
        quote_provider.set("MSFT", TransportError("down"))
        context = asyncio.run(make_aggregator(quote_fetcher).aggregate("US30"))
        assert context.quotes.ok
        assert list(context.quotes.data.missing) == ["MSFT"]

    def test_non_index_target_quotes_itself(self, quote_provider, quote_fetcher):
        context = asyncio.run(make_aggregator(quote_fetcher).aggregate("AAPL"))
        assert [q.symbol for q in context.quotes.data.quotes] == ["AAPL"]

    def test_not_requested_sections(self, quote_fetcher):
        options = AggregationOptions.for_categories({"news"})
        context = asyncio.run(make_aggregator(quote_fetcher).aggregate("US30", options))
        assert context.quotes.reason == NOT_REQUESTED
        assert context.requested_count == 1
        assert context.complete

    def test_not_configured_sections(self):
        context = asyncio.run(DataSourceAggregator(watchlists=WATCHLISTS).aggregate("US30"))
        assert context.news.reason == NOT_CONFIGURED
        assert context.requested_count == 4
        assert context.available_count == 0

    def test_timeframe_forwarded_to_charts(self, quote_fetcher):
        charts = FakeCharts()
        asyncio.run(make_aggregator(quote_fetcher, charts=charts).aggregate("US30", AggregationOptions(timeframe="4hr")))
        assert charts.timeframes == ["4hr"]


class TestOptions:

    def test_plan_means_everything(self):
        options = AggregationOptions.for_categories({"plan"})
        assert options.include_charts and options.include_quotes
        assert options.include_news and options.include_calendar

    def test_only_matching(self):
        options = AggregationOptions.for_categories({"quotes", "calendar"})
        assert options.include_quotes and options.include_calendar
        assert not options.include_news and not options.include_charts


class TestSettle:

    def test_wraps_plain_value(self):
        async def value():
            return 5
        assert asyncio.run(settle("x", value())) == Success(5)

    def test_passes_through_results(self):
        async def marker():
            return Unavailable("nope")
        assert asyncio.run(settle("x", marker())) == Unavailable("nope")


class SlowNews(FakeNews):
    """News that waits before answering (or failing)."""

    def __init__(self, delay, error=None, started=None, wait_for=None):
        super().__init__(error)
        self.delay = delay
        self.started = started
        self.wait_for = wait_for

    async def fetch_news(self, target, limit=10, since_days=3):
        if self.started is not None:
            self.started.set()
        if self.wait_for is not None:
            await asyncio.wait_for(self.wait_for.wait(), timeout=1)
        await asyncio.sleep(self.delay)
        return await super().fetch_news(target, limit, since_days)


class SlowCalendar(FakeCalendar):

    def __init__(self, delay, error=None, started=None, wait_for=None):
        super().__init__(error)
        self.delay = delay
        self.started = started
        self.wait_for = wait_for

    async def fetch_events(self, countries=None):
        if self.started is not None:
            self.started.set()
        if self.wait_for is not None:
            await asyncio.wait_for(self.wait_for.wait(), timeout=1)
        await asyncio.sleep(self.delay)
        return await super().fetch_events(countries)


class TestConcurrency:

    def test_sources_run_at_the_same_time(self, quote_fetcher):
        async def run():
            news_started, calendar_started = asyncio.Event(), asyncio.Event()
            # each source only finishes once the other one has started
            aggregator = make_aggregator(
                quote_fetcher,
                news=SlowNews(0, started=news_started, wait_for=calendar_started),
                calendar=SlowCalendar(0, started=calendar_started, wait_for=news_started),
            )
            return await aggregator.aggregate("US30")

        context = asyncio.run(run())
        assert context.news.ok
        assert context.calendar.ok

    def test_elapsed_is_the_slowest_source_not_the_sum(self, quote_fetcher):
        aggregator = make_aggregator(quote_fetcher, news=SlowNews(0.3), calendar=SlowCalendar(0.3))

        start = time.perf_counter()
        context = asyncio.run(aggregator.aggregate("US30"))
        elapsed = time.perf_counter() - start

        assert context.complete
        assert elapsed < 0.5

    def test_late_failure_does_not_block_other_sources(self, quote_fetcher):
        aggregator = make_aggregator(
            quote_fetcher,
            news=SlowNews(0.1, error=TransportError("news down")),
            calendar=SlowCalendar(0.2),
        )

        context = asyncio.run(aggregator.aggregate("US30"))

        assert isinstance(context.news, Unavailable)
        assert context.calendar.ok
        assert context.calendar.data[0].title == "CPI m/m"
        assert context.available_count == 3
