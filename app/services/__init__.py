"""
BETSYNC - Services Module
Odds sync, caching, validation and bet settlement services.
"""

# Odds Services
from app.services.odds.games_cache import GamesCache
from app.services.odds.external_sync import ExternalOddsSync
from app.services.odds.unified_sync import UnifiedOddsSync
from app.services.odds.odds_validator import OddsValidator

# Betting Services
from app.services.betting.bet_placement import BetPlacementService
from app.services.betting.fraud import HttpFraudChecker, StakeLimitFraudCheck

# Data Collection Services
from app.services.collectors.odds_api_collector import OddsApiCollector

# Platform Services
from app.services.monitoring.metrics_service import MonitoringService, monitoring_service
from app.services.notifications.notification_service import NotificationService, notification_service
from app.services.scheduling.scheduler_service import SchedulerService, scheduler_service

__all__ = [
    # Odds Services
    "GamesCache",
    "ExternalOddsSync",
    "UnifiedOddsSync",
    "OddsValidator",
    # Betting Services
    "BetPlacementService",
    "HttpFraudChecker",
    "StakeLimitFraudCheck",
    # Data Collection Services
    "OddsApiCollector",
    # Platform Services
    "MonitoringService",
    "monitoring_service",
    "NotificationService",
    "notification_service",
    "SchedulerService",
    "scheduler_service",
]
