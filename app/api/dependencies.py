"""
BETSYNC - API Dependencies
FastAPI Dependency Injection
"""

import logging
from typing import Optional

from fastapi import Depends, Header
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.core.cache import cache_manager
from app.core.database import DatabaseManager, db_manager
from app.core.exceptions import UnauthorizedError
from app.core.security import security_manager
from app.services.betting.bet_placement import BetPlacementService
from app.services.betting.fraud import FraudChecker, get_fraud_checker
from app.services.collectors.odds_api_collector import OddsApiCollector
from app.services.notifications.notification_service import NotificationService, get_notification_service
from app.services.odds.external_sync import ExternalOddsSync
from app.services.odds.games_cache import GamesCache
from app.services.odds.odds_validator import OddsValidator
from app.services.odds.unified_sync import UnifiedOddsSync

logger = logging.getLogger(__name__)

# Security schemes
bearer_scheme = HTTPBearer(auto_error=False)

_odds_provider: Optional[OddsApiCollector] = None


# =============================================================================
# AUTH
# =============================================================================

async def get_optional_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Optional[str]:
    """
    User id from a valid bearer token, None otherwise.

    Session issuance lives with the auth collaborator; this only decodes.
    """
    if not credentials:
        return None

    payload = security_manager.decode_token(credentials.credentials)
    if not payload:
        return None
    return payload.get("sub")


async def verify_cron_secret(authorization: Optional[str] = Header(None)) -> None:
    """Guard for scheduler-invoked endpoints."""
    if not security_manager.verify_cron_secret(authorization):
        logger.warning("Rejected sync trigger with invalid cron secret")
        raise UnauthorizedError("Invalid cron secret")


# =============================================================================
# SERVICES
# =============================================================================

def get_database() -> DatabaseManager:
    return db_manager


def get_games_cache() -> GamesCache:
    return GamesCache(cache_manager)


def get_odds_provider() -> OddsApiCollector:
    global _odds_provider
    if _odds_provider is None:
        _odds_provider = OddsApiCollector()
    return _odds_provider


def build_orchestrator(
    cache: Optional[GamesCache] = None,
    provider=None,
    db: Optional[DatabaseManager] = None,
) -> UnifiedOddsSync:
    """Wire the orchestrator outside a request (scheduler, startup)."""
    cache = cache or get_games_cache()
    external = ExternalOddsSync(cache, provider or get_odds_provider(), clock=cache.clock)
    return UnifiedOddsSync(external, db or get_database(), clock=cache.clock)


def get_orchestrator(
    cache: GamesCache = Depends(get_games_cache),
    provider: OddsApiCollector = Depends(get_odds_provider),
    db: DatabaseManager = Depends(get_database),
) -> UnifiedOddsSync:
    return build_orchestrator(cache, provider, db)


def get_validator(orchestrator: UnifiedOddsSync = Depends(get_orchestrator)) -> OddsValidator:
    return OddsValidator(orchestrator.cache, orchestrator)


def get_fraud_service() -> FraudChecker:
    return get_fraud_checker()


def get_notifier() -> NotificationService:
    return get_notification_service()


def get_bet_service(
    validator: OddsValidator = Depends(get_validator),
    db: DatabaseManager = Depends(get_database),
    fraud_checker: FraudChecker = Depends(get_fraud_service),
    notifier: NotificationService = Depends(get_notifier),
) -> BetPlacementService:
    return BetPlacementService(validator, db, fraud_checker=fraud_checker, notifier=notifier)


async def close_odds_provider() -> None:
    global _odds_provider
    if _odds_provider is not None:
        await _odds_provider.close()
        _odds_provider = None
