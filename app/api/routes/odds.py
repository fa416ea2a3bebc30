"""
BETSYNC - Odds API Routes
Cached odds reads, live tracking, sync trigger and bet slip validation
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Query

from app.api.dependencies import get_orchestrator, get_validator, verify_cron_secret
from app.api.schemas import (
    AvailableSportsResponse,
    GameOddsResponse,
    LiveTrackingResponse,
    SlipValidationResponse,
    SupportedSportsResponse,
    SyncResponse,
    SyncTriggerResponse,
    ValidateSlipRequest,
)
from app.services.odds.odds_validator import OddsValidator
from app.services.odds.unified_sync import UnifiedOddsSync

logger = logging.getLogger(__name__)


router = APIRouter(tags=["odds"])


# ============================================================================
# ENDPOINTS
# ============================================================================

# Specific routes must come before the parameterized /{game_id} route

@router.get("/sports", response_model=SupportedSportsResponse)
async def get_supported_sports(orchestrator: UnifiedOddsSync = Depends(get_orchestrator)):
    """Internal sport ids this service syncs."""
    return {"sports": orchestrator.get_supported_sports()}


@router.get("/sports/available", response_model=AvailableSportsResponse)
async def get_available_sports(orchestrator: UnifiedOddsSync = Depends(get_orchestrator)):
    """Sports currently active at the upstream provider."""
    return {"sports": await orchestrator.fetch_available_sports()}


@router.get("/sport/{sport_id}", response_model=SyncResponse)
async def get_sport_odds(
    sport_id: str,
    include_scores: bool = Query(True, description="Merge live scores into the games"),
    orchestrator: UnifiedOddsSync = Depends(get_orchestrator),
):
    """
    Odds for every game of a sport.

    Served from cache while fresh; otherwise fetched upstream, written
    through to the cache and persisted for audit.
    """
    result = await orchestrator.sync_sport(sport_id, include_scores=include_scores)
    return result.to_dict()


@router.get("/featured", response_model=SyncResponse)
async def get_featured_odds(orchestrator: UnifiedOddsSync = Depends(get_orchestrator)):
    """Curated cross-sport listing."""
    result = await orchestrator.sync_featured()
    return result.to_dict()


@router.post("/live/{game_id}", response_model=LiveTrackingResponse)
async def start_live_tracking(game_id: str, orchestrator: UnifiedOddsSync = Depends(get_orchestrator)):
    """Add a game to the live set and sync its sport."""
    return await orchestrator.start_live_tracking(game_id)


@router.post(
    "/sync",
    response_model=SyncTriggerResponse,
    dependencies=[Depends(verify_cron_secret)],
)
async def trigger_sync(
    sport: Optional[str] = Query(None, description="Sport id; omit to sync every sport plus featured"),
    force_refresh: bool = Query(False, description="Drop the cached listing before syncing"),
    orchestrator: UnifiedOddsSync = Depends(get_orchestrator),
):
    """Scheduler trigger; idempotent and safe to retry."""
    if sport:
        if force_refresh:
            await orchestrator.cache.invalidate(sport)
        result = await orchestrator.sync_sport(sport)
        results = {
            sport: {
                "games": len(result.games),
                "from_cache": result.from_cache,
                "is_stale": result.is_stale,
                "db_persisted": result.db_persisted,
            }
        }
    else:
        if force_refresh:
            await orchestrator.cache.invalidate()
        results = await orchestrator.sync_all()

    logger.info(f"Sync trigger completed for {', '.join(results)}")
    return {"success": True, "results": results, "timestamp": datetime.now(timezone.utc)}


@router.post("/validate", response_model=SlipValidationResponse)
async def validate_slip(
    request: ValidateSlipRequest,
    validator: OddsValidator = Depends(get_validator),
):
    """Check a bet slip against current odds without placing it."""
    result = await validator.validate_bet_odds([s.to_selection() for s in request.selections])
    return result.to_dict()


@router.get("/{game_id}", response_model=GameOddsResponse)
async def get_game_odds(game_id: str, orchestrator: UnifiedOddsSync = Depends(get_orchestrator)):
    """Odds for one game from the cache, falling back to the latest stored snapshot."""
    return await orchestrator.get_game_odds(game_id)
