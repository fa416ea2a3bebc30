"""
BETSYNC - TheOddsAPI Collector

Read-only client for the upstream odds provider: per-sport odds, scores
and the active sports list.
"""

import logging
from typing import Any, Dict, List, Optional

import httpx

from app.core.config import settings
from app.core.exceptions import UpstreamError, UpstreamMalformedResponseError
from app.services.collectors.base_collector import BaseCollector
from app.services.monitoring.metrics_service import monitoring_service

logger = logging.getLogger(__name__)


class OddsApiCollector(BaseCollector):
    """
    Collector for TheOddsAPI.

    Features:
    - American odds for spreads, moneylines and totals
    - Scores with completion flags
    - Requests-remaining tracking from response headers
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        **kwargs,
    ):
        super().__init__(
            name="odds_api",
            base_url=base_url or settings.ODDS_API_BASE_URL,
            rate_limit=settings.ODDS_API_RATE_LIMIT,
            rate_window=settings.ODDS_API_RATE_WINDOW,
            timeout=settings.ODDS_API_TIMEOUT,
            max_retries=settings.ODDS_API_MAX_RETRIES,
            transport=transport,
            **kwargs,
        )
        self.api_key = api_key if api_key is not None else settings.ODDS_API_KEY
        self.requests_remaining: Optional[int] = None

    def _on_response(self, endpoint: str, response: httpx.Response) -> None:
        remaining = response.headers.get("x-requests-remaining")
        if remaining is None:
            return
        logger.info(f"[{self.name}] {endpoint} fetched, {remaining} requests remaining")
        try:
            self.requests_remaining = int(float(remaining))
        except ValueError:
            logger.debug(f"[{self.name}] Unparseable x-requests-remaining header: {remaining}")
            return
        monitoring_service.record_rate_limit_remaining(self.name, self.requests_remaining)

    def _params(self, **extra: Any) -> Dict[str, Any]:
        if not self.api_key:
            raise UpstreamError("ODDS_API_KEY not configured")
        return {"apiKey": self.api_key, **extra}

    @staticmethod
    def _expect_list(data: Any, endpoint: str) -> List[Dict[str, Any]]:
        if not isinstance(data, list):
            raise UpstreamMalformedResponseError(f"Expected a list from {endpoint}, got {type(data).__name__}")
        return data

    async def fetch_odds(self, sport_key: str) -> List[Dict[str, Any]]:
        """Raw odds events for one provider sport key."""
        endpoint = f"/sports/{sport_key}/odds"
        data = await self.get(
            endpoint,
            params=self._params(
                regions=settings.ODDS_API_REGIONS,
                markets=settings.ODDS_API_MARKETS,
                oddsFormat="american",
            ),
        )
        return self._expect_list(data, endpoint)

    async def fetch_scores(self, sport_key: str) -> List[Dict[str, Any]]:
        """Raw score events (live and recently completed) for one sport key."""
        endpoint = f"/sports/{sport_key}/scores"
        data = await self.get(
            endpoint,
            params=self._params(daysFrom=settings.ODDS_API_SCORES_DAYS_FROM),
        )
        return self._expect_list(data, endpoint)

    async def fetch_sports(self) -> List[Dict[str, Any]]:
        """Active sports offered by the provider."""
        data = await self.get("/sports", params=self._params())
        return [s for s in self._expect_list(data, "/sports") if s.get("active", True)]
