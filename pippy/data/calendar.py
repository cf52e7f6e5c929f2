"""
Economic Calendar Integration

Pulls the weekly economic-event feed and keeps only the releases that move
index futures (High and Medium impact), ordered by event date/time.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Protocol

import requests

import config
from ..resilience.errors import InvalidPayload
from ..resilience.retry import RetryPolicy, with_retry
from .http import get_json

logger = logging.getLogger(__name__)


class EventImpact(Enum):
    """Expected impact level as reported by the feed."""
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"
    HOLIDAY = "Holiday"


RETAINED_IMPACTS = {EventImpact(value) for value in config.CALENDAR_IMPACTS}


@dataclass(frozen=True)
class EconomicEvent:
    """A scheduled economic release."""
    title: str
    country: str
    date: str                # YYYY-MM-DD
    time: str                # HH:MM (feed timezone), "All Day" when untimed
    impact: EventImpact
    forecast: str = ""
    previous: str = ""
    actual: str = ""
    scheduled_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'title': self.title,
            'country': self.country,
            'date': self.date,
            'time': self.time,
            'impact': self.impact.value,
            'forecast': self.forecast,
            'previous': self.previous,
            'actual': self.actual,
        }


def parse_event(raw: Dict[str, Any]) -> Optional[EconomicEvent]:
    """Parse one feed record; None when it is unusable."""
    title = (raw.get('title') or "").strip()
    raw_date = raw.get('date') or ""
    if not title or not raw_date:
        return None

    try:
        impact = EventImpact((raw.get('impact') or "").strip().title())
    except ValueError:
        return None

    try:
        scheduled_at = datetime.fromisoformat(str(raw_date))
    except ValueError:
        return None

    time_label = raw.get('time') or scheduled_at.strftime("%H:%M")
    if scheduled_at.hour == 0 and scheduled_at.minute == 0 and not raw.get('time'):
        time_label = "All Day"

    return EconomicEvent(
        title=title,
        country=(raw.get('country') or "").upper(),
        date=scheduled_at.date().isoformat(),
        time=time_label,
        impact=impact,
        forecast=str(raw.get('forecast') or ""),
        previous=str(raw.get('previous') or ""),
        actual=str(raw.get('actual') or ""),
        scheduled_at=scheduled_at,
    )


def _sort_key(event: EconomicEvent):
    when = event.scheduled_at
    if when is None:
        return datetime.max.replace(tzinfo=timezone.utc)
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return when


def filter_and_sort(events: Iterable[EconomicEvent],
                    countries: Optional[Iterable[str]] = None) -> List[EconomicEvent]:
    """Keep High/Medium impact (optionally by country), ascending by date/time."""
    wanted = {c.upper() for c in countries} if countries else None
    kept = [
        e for e in events
        if e.impact in RETAINED_IMPACTS and (wanted is None or e.country in wanted)
    ]
    return sorted(kept, key=_sort_key)


class CalendarFeed(Protocol):
    async def get_events(self) -> List[Dict[str, Any]]:
        ...


class FeedCalendarClient:
    """Reads the weekly JSON calendar feed."""

    name = "calendar"

    def __init__(self, url: str = config.CALENDAR_FEED_URL,
                 timeout: float = config.PROVIDER_TIMEOUT_SECONDS,
                 session: Optional[requests.Session] = None):
        self.url = url
        self.timeout = timeout
        self.session = session or requests.Session()

    async def get_events(self) -> List[Dict[str, Any]]:
        data = await get_json(self.session, self.url, provider=self.name, timeout=self.timeout)
        if not isinstance(data, list):
            raise InvalidPayload("calendar feed is not a list", provider=self.name)
        return data


class EconomicCalendarService:
    """Fetches, filters and orders economic events."""

    def __init__(self, feed: CalendarFeed, policy: Optional[RetryPolicy] = None, sleep=asyncio.sleep):
        self.feed = feed
        self.policy = policy or RetryPolicy(
            max_attempts=config.RETRY_MAX_ATTEMPTS,
            base_delay=config.RETRY_BASE_DELAY_SECONDS,
            attempt_timeout=config.PROVIDER_TIMEOUT_SECONDS,
        )
        self.sleep = sleep

    async def fetch_events(self, countries: Optional[Iterable[str]] = None) -> List[EconomicEvent]:
        """
        Get upcoming High/Medium impact events.

        Args:
            countries: Optional currency/country codes to keep (e.g. ["USD"])

        Raises:
            ProviderError: when the feed cannot be read within the retry budget
        """
        raw = await with_retry(self.feed.get_events, self.policy, name="calendar", sleep=self.sleep)

        events = []
        skipped = 0
        for record in raw:
            event = parse_event(record) if isinstance(record, dict) else None
            if event is None:
                skipped += 1
                continue
            events.append(event)

        result = filter_and_sort(events, countries)
        logger.info(f"Calendar: {len(result)} high/medium events ({skipped} records skipped)")
        return result
