"""
BETSYNC - Upstream Collectors Package

    base_collector.py      - httpx client with rate limiting, retry and typed errors
    odds_api_collector.py  - The Odds API (odds, scores, active sports)
"""

from .base_collector import BaseCollector, RateLimiter, RetryStrategy
from .odds_api_collector import OddsApiCollector

__all__ = [
    "BaseCollector",
    "RateLimiter",
    "RetryStrategy",
    "OddsApiCollector",
]
