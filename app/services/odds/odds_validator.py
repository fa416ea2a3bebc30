"""
BETSYNC - Odds Validator

Checks a wager's expected odds against the current cached odds before it
is accepted. Drift is the absolute difference in American-odds points and
must not exceed the ceiling for the game's state (tighter when live).
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from app.core.config import settings
from app.core.exceptions import UpstreamUnavailableError
from app.models.models import GameStatus
from app.services.odds.games_cache import GamesCache
from app.services.odds.normalizer import get_selection_odds

logger = logging.getLogger(__name__)

REASON_GAME_NOT_FOUND = "game not found"
REASON_GAME_ENDED = "game has already ended"
REASON_SELECTION_UNAVAILABLE = "selection not available"


@dataclass
class BetSelection:
    """One leg of a bet slip as submitted by the bettor"""
    game_id: str
    market: str
    selection: str
    expected_odds: int
    stake: Optional[float] = None

    @property
    def key(self) -> str:
        return f"{self.game_id}:{self.market}:{self.selection}"

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "game_id": self.game_id,
            "market": self.market,
            "selection": self.selection,
            "expected_odds": self.expected_odds,
        }
        if self.stake is not None:
            result["stake"] = self.stake
        return result


@dataclass
class OddsValidationResult:
    valid: bool
    game_id: str
    market: str
    selection: str
    expected_odds: int
    current_odds: Optional[int] = None
    drift: Optional[int] = None
    reason: Optional[str] = None
    game_status: Optional[str] = None

    @property
    def is_game_missing(self) -> bool:
        return self.reason == REASON_GAME_NOT_FOUND

    @property
    def is_game_closed(self) -> bool:
        return self.reason == REASON_GAME_ENDED

    @property
    def is_selection_missing(self) -> bool:
        return self.reason == REASON_SELECTION_UNAVAILABLE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "valid": self.valid,
            "game_id": self.game_id,
            "market": self.market,
            "selection": self.selection,
            "expected_odds": self.expected_odds,
            "current_odds": self.current_odds,
            "drift": self.drift,
            "reason": self.reason,
        }


@dataclass
class BetValidationResult:
    valid: bool
    results: List[OddsValidationResult] = field(default_factory=list)

    @property
    def invalid_count(self) -> int:
        return sum(1 for r in self.results if not r.valid)

    @property
    def invalid_results(self) -> List[OddsValidationResult]:
        return [r for r in self.results if not r.valid]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "valid": self.valid,
            "invalid_count": self.invalid_count,
            "results": [r.to_dict() for r in self.results],
        }


def calculate_drift(expected: int, current: int) -> int:
    return abs(current - expected)


class OddsValidator:
    """
    Read-only validator over the games cache.

    On a cache miss it asks the orchestrator to refresh the game's sport and,
    if the provider is unavailable, falls back to the last cached snapshot.
    """

    def __init__(self, cache: GamesCache, orchestrator=None):
        self.cache = cache
        self.orchestrator = orchestrator

    async def _current_game(self, game_id: str) -> Optional[Dict[str, Any]]:
        game = await self.cache.get_game(game_id)
        if game is not None:
            return game

        if self.orchestrator is not None:
            try:
                game = await self.orchestrator.refresh_game(game_id)
            except UpstreamUnavailableError as e:
                logger.warning(f"Refresh failed for game {game_id}, using last cached snapshot: {e.message}")
            if game is not None:
                return game

        entry = await self.cache.peek_game(game_id)
        return entry.data if entry is not None else None

    async def validate_selection_odds(self, selection: BetSelection) -> OddsValidationResult:
        result = OddsValidationResult(
            valid=False,
            game_id=selection.game_id,
            market=selection.market,
            selection=selection.selection,
            expected_odds=selection.expected_odds,
        )

        game = await self._current_game(selection.game_id)
        if game is None:
            result.reason = REASON_GAME_NOT_FOUND
            return self._rejected(result)

        result.game_status = game.get("status")
        if game.get("status") == GameStatus.FINISHED.value or game.get("completed"):
            result.reason = REASON_GAME_ENDED
            return self._rejected(result)

        current = get_selection_odds(game, selection.market, selection.selection)
        if current is None:
            result.reason = REASON_SELECTION_UNAVAILABLE
            return self._rejected(result)

        result.current_odds = current
        result.drift = calculate_drift(selection.expected_odds, current)

        is_live = game.get("status") == GameStatus.LIVE.value or await self.cache.is_live(selection.game_id)
        ceiling = settings.get_drift_ceiling(is_live)
        if result.drift > ceiling:
            result.reason = f"odds have changed ({selection.expected_odds} → {current})"
            return self._rejected(result)

        result.valid = True
        return result

    @staticmethod
    def _rejected(result: OddsValidationResult) -> OddsValidationResult:
        logger.info(f"Rejected leg {result.game_id} {result.market}/{result.selection}: {result.reason}")
        return result

    async def validate_bet_odds(self, selections: List[BetSelection]) -> BetValidationResult:
        """Validate every leg concurrently; the bet is valid only if all legs are."""
        results = await asyncio.gather(*(self.validate_selection_odds(s) for s in selections))
        return BetValidationResult(valid=all(r.valid for r in results), results=list(results))
