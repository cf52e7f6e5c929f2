"""In-process caching with freshness tracking."""
from .ttl_cache import CacheEntry, TTLCache, SystemClock

__all__ = [
    'CacheEntry',
    'TTLCache',
    'SystemClock',
]
