"""
Finnhub client: real-time quotes and company news.
"""

import logging
import os
from datetime import date, timedelta
from typing import Any, Dict, List, Optional

import requests

import config
from .http import get_json

logger = logging.getLogger(__name__)


class FinnhubClient:
    """
    Thin async client for the two Finnhub endpoints we use.

    Methods return raw decoded JSON; validation belongs to the callers.
    """

    name = "finnhub"

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: str = config.FINNHUB_BASE_URL,
        timeout: float = config.PROVIDER_TIMEOUT_SECONDS,
        session: Optional[requests.Session] = None,
    ):
        self.api_key = api_key or os.getenv("FINNHUB_API_KEY", "")
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

        if not self.api_key:
            logger.warning("FINNHUB_API_KEY not set - quote and news calls will fail")

    def is_available(self) -> bool:
        return bool(self.api_key)

    def _params(self, **extra) -> Dict[str, Any]:
        params = {"token": self.api_key}
        params.update(extra)
        return params

    async def get_quote(self, symbol: str) -> Dict[str, Any]:
        """GET /quote -> {c, d, dp, h, l, o, pc, t}"""
        return await get_json(
            self.session,
            f"{self.base_url}/quote",
            params=self._params(symbol=symbol),
            provider=self.name,
            timeout=self.timeout,
        )

    async def get_company_news(self, symbol: str, since_days: int, today: Optional[date] = None) -> List[Dict[str, Any]]:
        """GET /company-news -> [{headline, summary, source, datetime, url, ...}]"""
        today = today or date.today()
        start = today - timedelta(days=since_days)
        data = await get_json(
            self.session,
            f"{self.base_url}/company-news",
            params=self._params(symbol=symbol, **{"from": start.isoformat(), "to": today.isoformat()}),
            provider=self.name,
            timeout=self.timeout,
        )
        return data if isinstance(data, list) else []
