"""
BETSYNC - Base Collector Framework

Base class for upstream HTTP collectors with rate limiting, bounded
timeouts and retry logic. Transport failures are raised as typed
upstream errors so callers can decide on cache fallback.
"""

import asyncio
import logging
import math
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

import httpx

from app.core.exceptions import (
    UpstreamError,
    UpstreamMalformedResponseError,
    UpstreamNetworkError,
    UpstreamRateLimitedError,
)

logger = logging.getLogger(__name__)


@dataclass
class RateLimiter:
    """Token bucket rate limiter with sliding window."""

    max_requests: int
    window_seconds: int
    clock: Callable[[], float] = time.time
    requests: List[float] = field(default_factory=list)

    def can_request(self) -> bool:
        """Check if a request can be made."""
        self._cleanup()
        return len(self.requests) < self.max_requests

    def add_request(self) -> None:
        """Record a request."""
        self.requests.append(self.clock())

    def wait_time(self) -> float:
        """Get time to wait before next request."""
        self._cleanup()
        if len(self.requests) < self.max_requests:
            return 0.0
        oldest = min(self.requests)
        return max(0.0, oldest + self.window_seconds - self.clock())

    def _cleanup(self) -> None:
        """Remove expired requests from window."""
        cutoff = self.clock() - self.window_seconds
        self.requests = [r for r in self.requests if r > cutoff]


@dataclass
class RetryStrategy:
    """Exponential backoff retry strategy."""

    max_retries: int = 1
    base_delay: float = 0.25
    max_delay: float = 2.0
    multiplier: float = 2.0

    def get_delay(self, attempt: int) -> float:
        """Calculate delay for retry attempt."""
        delay = self.base_delay * (self.multiplier ** attempt)
        return min(delay, self.max_delay)


class BaseCollector:
    """
    Base class for upstream HTTP collectors.

    Provides:
    - HTTP client with connection pooling and a bounded timeout
    - Sliding-window rate limiting
    - Retry with backoff for connection errors, timeouts and 5xx
    - Typed upstream errors (network, rate limited, malformed)
    """

    def __init__(
        self,
        name: str,
        base_url: str,
        rate_limit: int = 100,
        rate_window: int = 60,
        timeout: float = 10.0,
        max_retries: int = 1,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        retry_strategy: Optional[RetryStrategy] = None,
    ):
        self.name = name
        self.base_url = base_url.rstrip("/")
        self.rate_limiter = RateLimiter(rate_limit, rate_window)
        self.retry_strategy = retry_strategy or RetryStrategy(max_retries=max_retries)
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                limits=httpx.Limits(max_keepalive_connections=10, max_connections=20),
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    def _get_headers(self) -> Dict[str, str]:
        """Get request headers. Override in subclasses for auth."""
        return {"Accept": "application/json"}

    def _on_response(self, endpoint: str, response: httpx.Response) -> None:
        """Hook for subclasses to inspect successful responses."""

    async def _make_request(
        self,
        method: str,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """
        Make HTTP request with rate limiting and retry logic.

        Args:
            method: HTTP method (GET, POST, etc.)
            endpoint: API endpoint
            params: Query parameters

        Returns:
            Parsed JSON response

        Raises:
            UpstreamRateLimitedError: provider or local rate limit hit
            UpstreamNetworkError: connection failure or timeout after retries
            UpstreamMalformedResponseError: body is not valid JSON
            UpstreamError: any other non-success status
        """
        wait_time = self.rate_limiter.wait_time()
        if wait_time > 0:
            if wait_time > self.timeout:
                raise UpstreamRateLimitedError(
                    f"[{self.name}] Local rate limit reached",
                    retry_after=math.ceil(wait_time),
                )
            logger.debug(f"[{self.name}] Rate limit: waiting {wait_time:.2f}s")
            await asyncio.sleep(wait_time)

        client = await self.get_client()
        last_error: Optional[UpstreamError] = None

        for attempt in range(self.retry_strategy.max_retries + 1):
            try:
                self.rate_limiter.add_request()
                logger.debug(f"[{self.name}] {method} {endpoint}")

                response = await client.request(
                    method=method,
                    url=endpoint,
                    params=params,
                    headers=self._get_headers(),
                )

                if response.status_code == 429:
                    retry_after = int(response.headers.get("Retry-After", 60))
                    logger.warning(f"[{self.name}] Rate limited by provider, retry after {retry_after}s")
                    raise UpstreamRateLimitedError(retry_after=retry_after)

                response.raise_for_status()
                self._on_response(endpoint, response)

                try:
                    return response.json()
                except ValueError as e:
                    raise UpstreamMalformedResponseError(
                        f"[{self.name}] Invalid JSON from {endpoint}"
                    ) from e

            except httpx.HTTPStatusError as e:
                status = e.response.status_code
                logger.error(f"[{self.name}] HTTP {status} from {endpoint}")

                # Don't retry client errors
                if 400 <= status < 500:
                    raise UpstreamError(
                        f"[{self.name}] HTTP {status} from {endpoint}",
                        {"upstream_status": status},
                    ) from e
                last_error = UpstreamNetworkError(f"[{self.name}] HTTP {status} from {endpoint}")

            except (httpx.ConnectError, httpx.TimeoutException, httpx.NetworkError) as e:
                logger.warning(f"[{self.name}] Connection error on {endpoint}: {e!r}")
                last_error = UpstreamNetworkError(f"[{self.name}] Network error: {type(e).__name__}")

            if attempt < self.retry_strategy.max_retries:
                delay = self.retry_strategy.get_delay(attempt)
                logger.info(f"[{self.name}] Retry {attempt + 1}/{self.retry_strategy.max_retries} in {delay:.2f}s")
                await asyncio.sleep(delay)

        raise last_error

    async def get(
        self,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """Make GET request."""
        return await self._make_request("GET", endpoint, params=params)
