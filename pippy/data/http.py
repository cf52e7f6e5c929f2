"""
Shared JSON-over-HTTP helper for the market data providers.

requests is blocking, so calls run in a worker thread via asyncio.to_thread
and never block the event loop.
"""

import asyncio
import logging
from typing import Any, Dict, Optional

import requests

from ..resilience.errors import InvalidPayload, RateLimited, TransportError

logger = logging.getLogger(__name__)

RATE_LIMIT_STATUSES = (429,)


def _retry_after(response: requests.Response) -> Optional[float]:
    raw = response.headers.get("Retry-After")
    if not raw:
        return None
    try:
        return float(raw)
    except ValueError:
        return None


def get_json_sync(
    session: requests.Session,
    url: str,
    params: Optional[Dict[str, Any]] = None,
    provider: str = "http",
    timeout: float = 15.0,
) -> Any:
    """
    GET url and decode JSON, mapping every failure onto the provider taxonomy.

    Raises:
        RateLimited: HTTP 429
        TransportError: connection problems, timeouts, other non-200 statuses
        InvalidPayload: body is not JSON
    """
    try:
        response = session.get(url, params=params, timeout=timeout)
    except requests.Timeout as e:
        raise TransportError(f"{provider} request timed out", provider=provider) from e
    except requests.RequestException as e:
        raise TransportError(f"{provider} request failed: {e}", provider=provider) from e

    if response.status_code in RATE_LIMIT_STATUSES:
        raise RateLimited(
            f"{provider} rate limit hit",
            retry_after=_retry_after(response),
            provider=provider,
        )
    if response.status_code != 200:
        raise TransportError(
            f"{provider} API error: {response.status_code}",
            status_code=response.status_code,
            provider=provider,
        )

    try:
        return response.json()
    except ValueError as e:
        raise InvalidPayload(f"{provider} returned non-JSON body", provider=provider) from e


async def get_json(
    session: requests.Session,
    url: str,
    params: Optional[Dict[str, Any]] = None,
    provider: str = "http",
    timeout: float = 15.0,
) -> Any:
    """Async wrapper around get_json_sync."""
    return await asyncio.to_thread(get_json_sync, session, url, params, provider, timeout)
