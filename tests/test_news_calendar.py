"""
Tests for the news service, the economic calendar and the HTTP helper.
"""
import asyncio
from datetime import date

import pytest
import requests

from pippy.data.calendar import (
    EconomicCalendarService,
    EventImpact,
    FeedCalendarClient,
    filter_and_sort,
    parse_event,
)
from pippy.data.finnhub import FinnhubClient
from pippy.data.http import get_json_sync
from pippy.data.news import NewsService, parse_news_item, sort_most_recent_first
from pippy.resilience.errors import InvalidPayload, ProviderError, RateLimited, TransportError
from pippy.resilience.retry import RetryPolicy


class FakeResponse:
    def __init__(self, status_code=200, body=None, headers=None, bad_json=False):
        self.status_code = status_code
        self._body = body
        self.headers = headers or {}
        self._bad_json = bad_json

    def json(self):
        if self._bad_json:
            raise ValueError("not json")
        return self._body


class FakeSession:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.requests = []

    def get(self, url, params=None, timeout=None):
        self.requests.append((url, params, timeout))
        if self.error:
            raise self.error
        return self.response


class FakeNewsProvider:
    def __init__(self, by_symbol):
        self.by_symbol = by_symbol
        self.calls = []

    async def get_company_news(self, symbol, since_days):
        self.calls.append((symbol, since_days))
        item = self.by_symbol[symbol]
        if isinstance(item, BaseException):
            raise item
        return item


class FakeFeed:
    def __init__(self, records):
        self.records = records

    async def get_events(self):
        if isinstance(self.records, BaseException):
            raise self.records
        return self.records


def article(headline, ts, url=None, source="Reuters"):
    return {"headline": headline, "summary": "", "source": source, "datetime": ts, "url": url or headline}


@pytest.fixture
def one_shot():
    return RetryPolicy.no_retry()


class TestHttpHelper:

    def test_ok(self):
        session = FakeSession(FakeResponse(body={"c": 1}))
        assert get_json_sync(session, "http://x", {"a": 1}, provider="p", timeout=5) == {"c": 1}
        assert session.requests == [("http://x", {"a": 1}, 5)]

    def test_rate_limited(self):
        session = FakeSession(FakeResponse(status_code=429, headers={"Retry-After": "2"}))
        with pytest.raises(RateLimited) as exc_info:
            get_json_sync(session, "http://x", provider="p")
        assert exc_info.value.retry_after == 2.0

    def test_http_error(self):
        session = FakeSession(FakeResponse(status_code=502))
        with pytest.raises(TransportError) as exc_info:
            get_json_sync(session, "http://x", provider="p")
        assert exc_info.value.status_code == 502

    def test_timeout(self):
        session = FakeSession(error=requests.Timeout("slow"))
        with pytest.raises(TransportError):
            get_json_sync(session, "http://x", provider="p")

    def test_bad_json(self):
        session = FakeSession(FakeResponse(bad_json=True))
        with pytest.raises(InvalidPayload):
            get_json_sync(session, "http://x", provider="p")


class TestFinnhubClient:

    def test_quote_request(self):
        session = FakeSession(FakeResponse(body={"c": 150.25}))
        client = FinnhubClient(api_key="k", base_url="https://api.test/v1/", session=session)
        assert asyncio.run(client.get_quote("AAPL")) == {"c": 150.25}
        url, params, _ = session.requests[0]
        assert url == "https://api.test/v1/quote"
        assert params == {"token": "k", "symbol": "AAPL"}

    def test_company_news_window(self):
        session = FakeSession(FakeResponse(body=[article("a", 1)]))
        client = FinnhubClient(api_key="k", base_url="https://api.test/v1", session=session)
        news = asyncio.run(client.get_company_news("AAPL", 3, today=date(2024, 6, 14)))
        assert len(news) == 1
        _, params, _ = session.requests[0]
        assert params["from"] == "2024-06-11"
        assert params["to"] == "2024-06-14"

    def test_company_news_non_list(self):
        session = FakeSession(FakeResponse(body={"error": "x"}))
        client = FinnhubClient(api_key="k", session=session)
        assert asyncio.run(client.get_company_news("AAPL", 3)) == []

    def test_availability(self, monkeypatch):
        monkeypatch.delenv("FINNHUB_API_KEY", raising=False)
        assert not FinnhubClient(session=FakeSession()).is_available()
        assert FinnhubClient(api_key="k", session=FakeSession()).is_available()


class TestNews:

    def test_parse_skips_missing_headline(self):
        assert parse_news_item({"headline": "  "}) is None

    def test_parse_bad_timestamp_falls_back_to_epoch(self):
        item = parse_news_item({"headline": "x", "datetime": "soon"})
        assert item.published_at.year == 1970

    def test_most_recent_first_is_stable(self):
        items = [parse_news_item(article(h, ts)) for h, ts in (("a", 100), ("b", 200), ("c", 100))]
        assert [i.headline for i in sort_most_recent_first(items)] == ["b", "a", "c"]

    def test_index_merges_constituents(self, one_shot, fast_sleep):
        provider = FakeNewsProvider({
            "AAPL": [article("Apple beats", 300), article("Shared story", 100, url="u1")],
            "MSFT": [article("Microsoft cloud", 200), article("Shared story", 100, url="u1")],
            "NVDA": [],
        })
        service = NewsService(provider, policy=one_shot, symbols_per_index=3, sleep=fast_sleep)
        service.symbols_for = lambda target: ["AAPL", "MSFT", "NVDA"]

        items = asyncio.run(service.fetch_news("NAS100", limit=10))

        assert [i.headline for i in items] == ["Apple beats", "Microsoft cloud", "Shared story"]

    def test_single_symbol_target(self):
        service = NewsService(FakeNewsProvider({}))
        assert service.symbols_for("tsla") == ["TSLA"]

    def test_index_uses_watchlist_head(self):
        service = NewsService(FakeNewsProvider({}), symbols_per_index=2)
        assert len(service.symbols_for("US30")) == 2

    def test_partial_failure_tolerated(self, one_shot, fast_sleep):
        provider = FakeNewsProvider({"AAPL": [article("ok", 1)], "MSFT": TransportError("down")})
        service = NewsService(provider, policy=one_shot, sleep=fast_sleep)
        service.symbols_for = lambda target: ["AAPL", "MSFT"]
        assert len(asyncio.run(service.fetch_news("X"))) == 1

    def test_all_failed_raises(self, one_shot, fast_sleep):
        provider = FakeNewsProvider({"AAPL": TransportError("down")})
        service = NewsService(provider, policy=one_shot, sleep=fast_sleep)
        with pytest.raises(ProviderError):
            asyncio.run(service.fetch_news("AAPL"))

    def test_limit(self, one_shot, fast_sleep):
        provider = FakeNewsProvider({"AAPL": [article(f"h{i}", i) for i in range(20)]})
        service = NewsService(provider, policy=one_shot, sleep=fast_sleep)
        items = asyncio.run(service.fetch_news("AAPL", limit=5))
        assert [i.headline for i in items] == ["h19", "h18", "h17", "h16", "h15"]

    def test_non_positive_limit_keeps_newest(self, one_shot, fast_sleep):
        provider = FakeNewsProvider({"AAPL": [article(f"h{i}", i) for i in range(3)]})
        service = NewsService(provider, policy=one_shot, sleep=fast_sleep)
        items = asyncio.run(service.fetch_news("AAPL", limit=-1))
        assert [i.headline for i in items] == ["h2"]


class TestCalendar:

    RECORDS = [
        {"title": "CPI m/m", "country": "USD", "date": "2024-06-12T08:30:00-04:00",
         "impact": "High", "forecast": "0.1%", "previous": "0.3%"},
        {"title": "Bank Holiday", "country": "GBP", "date": "2024-06-10T00:00:00-04:00", "impact": "Holiday"},
        {"title": "FOMC Statement", "country": "USD", "date": "2024-06-12T14:00:00-04:00", "impact": "High"},
        {"title": "Retail Sales", "country": "EUR", "date": "2024-06-11T05:00:00-04:00", "impact": "Medium"},
        {"title": "Minor data", "country": "USD", "date": "2024-06-11T10:00:00-04:00", "impact": "Low"},
        {"title": "", "date": "2024-06-11T10:00:00-04:00", "impact": "High"},
        {"title": "Bad date", "date": "someday", "impact": "High"},
    ]

    def test_parse_event(self):
        event = parse_event(self.RECORDS[0])
        assert event.impact == EventImpact.HIGH
        assert event.date == "2024-06-12"
        assert event.time == "08:30"
        assert event.forecast == "0.1%"

    def test_parse_untimed_event(self):
        event = parse_event({"title": "Holiday", "date": "2024-06-10", "impact": "High"})
        assert event.time == "All Day"

    def test_parse_rejects_unknown(self):
        assert parse_event({"title": "x", "date": "2024-06-10", "impact": "Extreme"}) is None
        assert parse_event(self.RECORDS[5]) is None
        assert parse_event(self.RECORDS[6]) is None

    def test_filter_and_sort(self):
        events = [e for e in (parse_event(r) for r in self.RECORDS) if e]
        result = filter_and_sort(events)
        assert [e.title for e in result] == ["Retail Sales", "CPI m/m", "FOMC Statement"]
        assert [e.title for e in filter_and_sort(events, ["usd"])] == ["CPI m/m", "FOMC Statement"]

    def test_service(self, one_shot, fast_sleep):
        service = EconomicCalendarService(FakeFeed(self.RECORDS), policy=one_shot, sleep=fast_sleep)
        events = asyncio.run(service.fetch_events())
        assert len(events) == 3
        assert all(e.impact in (EventImpact.HIGH, EventImpact.MEDIUM) for e in events)

    def test_service_failure_raises(self, one_shot, fast_sleep):
        service = EconomicCalendarService(FakeFeed(TransportError("down")), policy=one_shot, sleep=fast_sleep)
        with pytest.raises(TransportError):
            asyncio.run(service.fetch_events())

    def test_feed_must_be_list(self):
        client = FeedCalendarClient(url="http://feed", session=FakeSession(FakeResponse(body={"x": 1})))
        with pytest.raises(InvalidPayload):
            asyncio.run(client.get_events())
