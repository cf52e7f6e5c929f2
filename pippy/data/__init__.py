"""Market data providers: quotes, news, economic calendar and chart analysis."""
from .quotes import Quote, QuoteOrigin, QuoteValidation, ResilientQuoteFetcher, validate_quote
from .news import NewsItem, NewsService, sort_most_recent_first
from .calendar import EconomicEvent, EventImpact, EconomicCalendarService, FeedCalendarClient
from .charts import ChartAnalysis, ChartAnalyzer, ChartImage, LocalChartStore
from .finnhub import FinnhubClient

__all__ = [
    'Quote',
    'QuoteOrigin',
    'QuoteValidation',
    'ResilientQuoteFetcher',
    'validate_quote',
    'NewsItem',
    'NewsService',
    'sort_most_recent_first',
    'EconomicEvent',
    'EventImpact',
    'EconomicCalendarService',
    'FeedCalendarClient',
    'ChartAnalysis',
    'ChartAnalyzer',
    'ChartImage',
    'LocalChartStore',
    'FinnhubClient',
]
