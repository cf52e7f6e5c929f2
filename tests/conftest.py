"""
Pytest configuration and shared fixtures.
"""
import asyncio
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

# Add repo root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from pippy.cache.ttl_cache import TTLCache
from pippy.resilience.errors import TransportError
from pippy.resilience.retry import RetryPolicy


class FakeClock:
    """Deterministic clock; advance() moves time forward."""

    def __init__(self, start: datetime = None):
        self.current = start or datetime(2024, 6, 14, 14, 30, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.current

    def advance(self, seconds: float):
        self.current = self.current + timedelta(seconds=seconds)


class ScriptedQuoteProvider:
    """
    Quote provider returning scripted payloads per symbol.

    Each script item is either a dict payload or an exception to raise.
    The last item repeats once the script runs out.
    """

    def __init__(self, scripts=None):
        self.scripts = {k.upper(): list(v) for k, v in (scripts or {}).items()}
        self.calls = []

    def set(self, symbol, *items):
        self.scripts[symbol.upper()] = list(items)

    async def get_quote(self, symbol):
        self.calls.append(symbol)
        script = self.scripts.get(symbol.upper())
        if not script:
            raise TransportError(f"no script for {symbol}", provider="fake")
        item = script.pop(0) if len(script) > 1 else script[0]
        if isinstance(item, BaseException):
            raise item
        return item


class FakeBackend:
    """
    Generative backend with scripted replies.

    replies: list of str / Exception, consumed in order (last one repeats).
    delay: seconds to await before answering (used for deadline tests).
    """

    def __init__(self, name, replies=None, delay=0.0):
        self.name = name
        self.replies = list(replies or [f"{name} says hello"])
        self.delay = delay
        self.prompts = []
        self.systems = []
        self.images = []

    def is_available(self):
        return True

    async def generate(self, prompt, system):
        self.prompts.append(prompt)
        self.systems.append(system)
        if self.delay:
            await asyncio.sleep(self.delay)
        item = self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]
        if isinstance(item, BaseException):
            raise item
        return item

    async def generate_with_image(self, prompt, system, image_bytes, mime_type):
        self.images.append(mime_type)
        return await self.generate(prompt, system)


async def no_sleep(seconds):
    no_sleep.calls.append(seconds)


no_sleep.calls = []


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return TTLCache(clock=clock, name="test")


@pytest.fixture
def sleeps():
    """Recorded backoff delays; the sleep itself is a no-op."""
    no_sleep.calls = []
    return no_sleep.calls


@pytest.fixture
def fast_sleep(sleeps):
    return no_sleep


@pytest.fixture
def policy():
    return RetryPolicy(max_attempts=3, base_delay=1.0)


@pytest.fixture
def quote_provider():
    return ScriptedQuoteProvider()


@pytest.fixture
def aapl_payload():
    return {"c": 150.25, "h": 151, "l": 149, "o": 150, "pc": 149.5}
