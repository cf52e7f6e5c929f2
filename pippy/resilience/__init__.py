"""Failure taxonomy, retry policy and tagged results shared by every provider."""
from .errors import (
    ProviderError,
    TransportError,
    RateLimited,
    InvalidPayload,
    AllSourcesUnavailable,
)
from .retry import RetryPolicy, RetryState, with_retry, linear_backoff, exponential_backoff
from .results import Success, Unavailable, SourceResult, AVAILABLE, UNAVAILABLE

__all__ = [
    'ProviderError',
    'TransportError',
    'RateLimited',
    'InvalidPayload',
    'AllSourcesUnavailable',
    'RetryPolicy',
    'RetryState',
    'with_retry',
    'linear_backoff',
    'exponential_backoff',
    'Success',
    'Unavailable',
    'SourceResult',
    'AVAILABLE',
    'UNAVAILABLE',
]
