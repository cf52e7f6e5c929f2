"""
TTL Cache - keep the last good value per key and know how old it is.

Entries are never evicted on expiry. An expired entry is "stale": the caller
should try to refresh it, but may still serve it when the refresh fails.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Generic, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SystemClock:
    """Wall clock returning timezone-aware UTC datetimes."""

    def __call__(self) -> datetime:
        return datetime.now(timezone.utc)


@dataclass(frozen=True)
class CacheEntry(Generic[T]):
    """A cached value and the moment it was fetched."""
    value: T
    fetched_at: datetime

    def age_seconds(self, now: datetime) -> float:
        return (now - self.fetched_at).total_seconds()


class TTLCache(Generic[T]):
    """
    Key -> CacheEntry store with per-call freshness checks.

    The TTL is not stored on the cache: each consumer decides what "fresh"
    means for its data (quotes go stale in seconds, chart analyses in hours).

    Writes replace the previous entry (last write wins). There is no lock:
    get/put never span an await, so concurrent refreshes of the same key
    can at worst both hit upstream and both store a fresh value.
    """

    def __init__(self, clock: Optional[Callable[[], datetime]] = None, name: str = "cache"):
        """
        Args:
            clock: Callable returning the current time (injected in tests)
            name: Label used in log lines and stats
        """
        self.clock = clock or SystemClock()
        self.name = name
        self._entries: Dict[str, CacheEntry[T]] = {}

        # Cache statistics
        self.hits = 0
        self.misses = 0

    def now(self) -> datetime:
        return self.clock()

    def get(self, key: str) -> Optional[CacheEntry[T]]:
        """Return the entry for key (fresh or stale), or None if never stored."""
        entry = self._entries.get(key)
        if entry is None:
            self.misses += 1
            return None
        self.hits += 1
        return entry

    def put(self, key: str, value: T) -> CacheEntry[T]:
        """Store value under key, stamped with the current clock time."""
        entry = CacheEntry(value=value, fetched_at=self.now())
        self._entries[key] = entry
        logger.debug(f"[{self.name}] stored {key}")
        return entry

    def is_fresh(self, entry: Optional[CacheEntry[T]], ttl_seconds: float) -> bool:
        """An entry is fresh iff now - fetched_at < ttl."""
        if entry is None:
            return False
        return entry.age_seconds(self.now()) < ttl_seconds

    def get_fresh(self, key: str, ttl_seconds: float) -> Optional[CacheEntry[T]]:
        """Return the entry only if it is still within ttl."""
        entry = self._entries.get(key)
        if self.is_fresh(entry, ttl_seconds):
            self.hits += 1
            logger.debug(f"[{self.name}] fresh hit: {key}")
            return entry
        self.misses += 1
        return None

    def invalidate(self, key: Optional[str] = None):
        """
        Drop cache entries.

        Args:
            key: If provided, only drop this key
        """
        if key is None:
            self._entries.clear()
        else:
            self._entries.pop(key, None)
        logger.info(f"[{self.name}] invalidated: {key or 'all'}")

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def get_stats(self) -> Dict[str, Any]:
        """Get cache statistics."""
        total_requests = self.hits + self.misses
        hit_rate = self.hits / total_requests if total_requests > 0 else 0

        return {
            'name': self.name,
            'hits': self.hits,
            'misses': self.misses,
            'hit_rate': hit_rate,
            'entries': len(self._entries),
        }
