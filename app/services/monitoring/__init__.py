"""Monitoring service module."""

from .metrics_service import (
    MetricsRegistry,
    MonitoringService,
    get_monitoring_service,
    monitoring_service,
    ComponentHealth,
    HealthStatus,
)

__all__ = [
    "MetricsRegistry",
    "MonitoringService",
    "get_monitoring_service",
    "monitoring_service",
    "ComponentHealth",
    "HealthStatus",
]
