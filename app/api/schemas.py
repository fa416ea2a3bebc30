"""
BETSYNC - API Schemas
Pydantic Request/Response Models
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from app.models.models import BetStatus, BetType, MarketType
from app.services.odds.odds_validator import BetSelection


# =============================================================================
# ERROR SCHEMAS
# =============================================================================

class ErrorResponse(BaseModel):
    """Error envelope returned for every typed failure."""
    error: str
    message: str
    retryable: Optional[bool] = None

    model_config = ConfigDict(extra="allow")


# =============================================================================
# ODDS SCHEMAS
# =============================================================================

class SyncResponse(BaseModel):
    """Result of a sport or featured sync."""
    sport: str
    games: List[Dict[str, Any]]
    from_cache: bool
    is_stale: bool
    age_seconds: Optional[float] = None
    db_persisted: Optional[bool] = None


class GameOddsResponse(BaseModel):
    """Odds for a single game and where they were served from."""
    game: Dict[str, Any]
    source: str  # cache, cache_stale, database


class SupportedSportsResponse(BaseModel):
    sports: List[str]


class AvailableSportsResponse(BaseModel):
    sports: List[Dict[str, Any]]


class LiveTrackingResponse(BaseModel):
    game_id: str
    sport: str
    sync: SyncResponse


class SyncTriggerResponse(BaseModel):
    """Scheduler trigger summary keyed by listing."""
    success: bool = True
    results: Dict[str, Any]
    timestamp: datetime


# =============================================================================
# BET SLIP SCHEMAS
# =============================================================================

class BetSelectionRequest(BaseModel):
    """One leg of a bet slip."""
    game_id: str = Field(..., min_length=1)
    market: MarketType
    selection: str = Field(..., min_length=1, description="home, away, over or under")
    odds: int = Field(..., description="Expected American odds captured when the slip was built")
    stake: Optional[float] = Field(None, gt=0, description="Per-selection stake for single bets")

    def to_selection(self) -> BetSelection:
        return BetSelection(
            game_id=self.game_id,
            market=self.market.value,
            selection=self.selection,
            expected_odds=self.odds,
            stake=self.stake,
        )


class ValidateSlipRequest(BaseModel):
    selections: List[BetSelectionRequest] = Field(..., min_length=1)


class LegValidationResponse(BaseModel):
    valid: bool
    game_id: str
    market: str
    selection: str
    expected_odds: int
    current_odds: Optional[int] = None
    drift: Optional[int] = None
    reason: Optional[str] = None


class SlipValidationResponse(BaseModel):
    valid: bool
    invalid_count: int
    results: List[LegValidationResponse]


class PlaceBetRequest(BaseModel):
    """Place bet request."""
    bet_type: BetType
    selections: List[BetSelectionRequest] = Field(..., min_length=1)
    total_stake: float = Field(..., gt=0)


class BetResponse(BaseModel):
    """Committed wager."""
    id: str
    user_id: str
    bet_type: BetType
    selections: List[Dict[str, Any]]
    total_stake: float
    potential_payout: float
    combined_odds: Optional[int] = None
    odds_snapshot: Dict[str, int]
    status: BetStatus
    balance_after: float
    placed_at: datetime
