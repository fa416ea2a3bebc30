"""
BETSYNC - Odds Services
Games cache, upstream sync, orchestration and bet-slip odds validation.
"""

from .games_cache import CacheEntry, GamesCache, listing_key
from .external_sync import ExternalOddsSync, SyncResult
from .unified_sync import UnifiedOddsSync
from .odds_validator import (
    BetSelection,
    BetValidationResult,
    OddsValidationResult,
    OddsValidator,
    calculate_drift,
)

__all__ = [
    # Cache
    "CacheEntry",
    "GamesCache",
    "listing_key",

    # Sync
    "ExternalOddsSync",
    "SyncResult",
    "UnifiedOddsSync",

    # Validation
    "BetSelection",
    "BetValidationResult",
    "OddsValidationResult",
    "OddsValidator",
    "calculate_drift",
]
