"""
BETSYNC - Monitoring Service
Prometheus metrics and component health checks
"""

import logging
import platform
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    Info,
    generate_latest,
)

from app.core.config import settings

logger = logging.getLogger(__name__)


class HealthStatus(str, Enum):
    """Health status levels"""
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


class ComponentHealth:
    """Health status for a single component"""

    def __init__(
        self,
        name: str,
        status: HealthStatus,
        message: str = "",
        latency_ms: float = 0,
        metadata: Optional[Dict[str, Any]] = None
    ):
        self.name = name
        self.status = status
        self.message = message
        self.latency_ms = latency_ms
        self.metadata = metadata or {}
        self.timestamp = datetime.now(timezone.utc)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "status": self.status.value,
            "message": self.message,
            "latency_ms": round(self.latency_ms, 2),
            "metadata": self.metadata,
            "timestamp": self.timestamp.isoformat()
        }


class MetricsRegistry:
    """Prometheus metrics registry for BetSync"""

    def __init__(self):
        self.registry = CollectorRegistry()

        self.app_info = Info(
            'betsync_app',
            'Application information',
            registry=self.registry
        )
        self.app_info.info({
            'version': settings.APP_VERSION,
            'environment': settings.ENVIRONMENT,
            'python_version': platform.python_version()
        })

        # HTTP Request Metrics
        self.http_requests_total = Counter(
            'betsync_http_requests_total',
            'Total HTTP requests',
            ['method', 'endpoint', 'status'],
            registry=self.registry
        )

        self.http_request_duration = Histogram(
            'betsync_http_request_duration_seconds',
            'HTTP request duration in seconds',
            ['method', 'endpoint'],
            buckets=[.005, .01, .025, .05, .075, .1, .25, .5, .75, 1.0, 2.5, 5.0, 10.0],
            registry=self.registry
        )

        # Odds Sync Metrics
        self.odds_syncs = Counter(
            'betsync_odds_syncs_total',
            'Odds listing syncs by source',
            ['listing', 'source'],
            registry=self.registry
        )

        self.odds_persist_failures = Counter(
            'betsync_odds_persist_failures_total',
            'Fresh odds snapshots that could not be written to the store',
            ['listing'],
            registry=self.registry
        )

        self.api_rate_limit_remaining = Gauge(
            'betsync_api_rate_limit_remaining',
            'Upstream API requests remaining',
            ['api'],
            registry=self.registry
        )

        # Betting Metrics
        self.bets_placed = Counter(
            'betsync_bets_placed_total',
            'Total bets placed',
            ['bet_type'],
            registry=self.registry
        )

        self.bets_rejected = Counter(
            'betsync_bets_rejected_total',
            'Bet placements rejected by error code',
            ['reason'],
            registry=self.registry
        )

        # Error Metrics
        self.errors_total = Counter(
            'betsync_errors_total',
            'Total errors',
            ['type', 'component'],
            registry=self.registry
        )

    def get_metrics(self) -> bytes:
        return generate_latest(self.registry)

    def get_content_type(self) -> str:
        return CONTENT_TYPE_LATEST


class MonitoringService:
    """Metrics recording and dependency health checks"""

    def __init__(self):
        self.metrics = MetricsRegistry()

    async def check_health(self, db=None, cache=None) -> Dict[str, Any]:
        """Overall health from the transactional store and the cache"""
        components: List[ComponentHealth] = []
        if db is not None:
            components.append(await self._check_database_health(db))
        if cache is not None:
            components.append(await self._check_redis_health(cache))

        overall = self._calculate_overall_status(components)
        return {
            "status": overall.value,
            "version": settings.APP_VERSION,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "components": {c.name: c.to_dict() for c in components},
        }

    async def _check_database_health(self, db) -> ComponentHealth:
        result = await db.health_check()
        healthy = result.get("status") == "healthy"
        return ComponentHealth(
            name="database",
            status=HealthStatus.HEALTHY if healthy else HealthStatus.UNHEALTHY,
            message=result.get("error", ""),
            latency_ms=result.get("latency_ms", 0),
        )

    async def _check_redis_health(self, cache) -> ComponentHealth:
        result = await cache.health_check()
        healthy = result.get("status") == "healthy"
        # Reads still fall back to the store when the cache is down
        return ComponentHealth(
            name="cache",
            status=HealthStatus.HEALTHY if healthy else HealthStatus.DEGRADED,
            message=result.get("error", ""),
            latency_ms=result.get("latency_ms", 0),
            metadata={"circuit_breaker": result.get("circuit_breaker")},
        )

    def _calculate_overall_status(self, components: List[ComponentHealth]) -> HealthStatus:
        statuses = [c.status for c in components]
        if HealthStatus.UNHEALTHY in statuses:
            return HealthStatus.UNHEALTHY
        if HealthStatus.DEGRADED in statuses:
            return HealthStatus.DEGRADED
        return HealthStatus.HEALTHY

    def record_http_request(self, method: str, endpoint: str, status_code: int, duration: float):
        self.metrics.http_requests_total.labels(method=method, endpoint=endpoint, status=str(status_code)).inc()
        self.metrics.http_request_duration.labels(method=method, endpoint=endpoint).observe(duration)

    def record_sync(self, listing: str, from_cache: bool, is_stale: bool, db_persisted: Optional[bool]):
        if not from_cache:
            source = "upstream"
        elif is_stale:
            source = "cache_stale"
        else:
            source = "cache"
        self.metrics.odds_syncs.labels(listing=listing, source=source).inc()
        if db_persisted is False and not from_cache:
            self.metrics.odds_persist_failures.labels(listing=listing).inc()

    def record_rate_limit_remaining(self, api: str, remaining: int):
        self.metrics.api_rate_limit_remaining.labels(api=api).set(remaining)

    def record_bet_placed(self, bet_type: str):
        self.metrics.bets_placed.labels(bet_type=bet_type).inc()

    def record_bet_rejected(self, reason: str):
        self.metrics.bets_rejected.labels(reason=reason).inc()

    def record_error(self, error_type: str, component: str):
        self.metrics.errors_total.labels(type=error_type, component=component).inc()

    def get_prometheus_metrics(self) -> bytes:
        return self.metrics.get_metrics()

    def get_prometheus_content_type(self) -> str:
        return self.metrics.get_content_type()


# Global monitoring service instance
monitoring_service = MonitoringService()


def get_monitoring_service() -> MonitoringService:
    return monitoring_service
