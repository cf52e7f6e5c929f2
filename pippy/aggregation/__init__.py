"""Concurrent data gathering and prompt formatting."""
from .aggregator import (
    AggregatedContext,
    AggregationOptions,
    DataSourceAggregator,
    QuoteBoard,
    settle,
)
from .formatter import ContextFormatter, quote_breadth, sort_by_change

__all__ = [
    'AggregatedContext',
    'AggregationOptions',
    'DataSourceAggregator',
    'QuoteBoard',
    'settle',
    'ContextFormatter',
    'quote_breadth',
    'sort_by_change',
]
