"""
BETSYNC - Game/Odds Cache

Per-game odds snapshots, per-sport and featured listings, and the live-game
set on top of the cache backend. Entries carry their own fetch timestamp and
soft TTL; the backend's hard TTL is a multiple of it so soft-expired entries
remain readable for fallback.
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from app.core.cache import CachePrefix
from app.core.config import settings

logger = logging.getLogger(__name__)

LIVE_SET_KEY = "games"
FEATURED_KEY = "featured"
AVAILABLE_SPORTS_KEY = "available"
AVAILABLE_SPORTS_TTL = 3600


@dataclass
class CacheEntry:
    """A cached payload with its fetch time and soft TTL"""
    data: Any
    fetched_at: float
    ttl: int

    def age(self, now: float) -> float:
        return max(0.0, now - self.fetched_at)

    def is_fresh(self, now: float) -> bool:
        return self.age(now) <= self.ttl

    @classmethod
    def from_raw(cls, raw: Optional[Dict[str, Any]]) -> Optional["CacheEntry"]:
        if not raw or "fetched_at" not in raw:
            return None
        return cls(data=raw.get("data"), fetched_at=float(raw["fetched_at"]), ttl=int(raw.get("ttl", 0)))


def listing_key(sport_id: Optional[str]) -> str:
    return f"sport:{sport_id}" if sport_id else FEATURED_KEY


class GamesCache:
    """
    Odds cache owned by the sync subsystem.

    `backend` is a CacheManager or any object with the same async
    get/set/compare_and_set/delete/delete_pattern/sadd/srem/sismember/smembers
    surface.
    """

    def __init__(self, backend, clock: Callable[[], float] = time.time):
        self.backend = backend
        self.clock = clock

    def _hard_ttl(self, ttl: int) -> int:
        return max(1, int(ttl * settings.CACHE_HARD_TTL_MULTIPLIER))

    # =========================================================================
    # PER-GAME SNAPSHOTS
    # =========================================================================

    async def peek_game(self, game_id: str) -> Optional[CacheEntry]:
        """Cached entry for a game regardless of freshness."""
        raw = await self.backend.get(game_id, prefix=CachePrefix.GAME)
        return CacheEntry.from_raw(raw)

    async def get_game(self, game_id: str) -> Optional[Dict[str, Any]]:
        """Fresh snapshot for a game; absent and soft-expired are both a miss."""
        entry = await self.peek_game(game_id)
        if entry is None or not entry.is_fresh(self.clock()):
            return None
        return entry.data

    async def put_game(self, game: Dict[str, Any], ttl: int) -> bool:
        """Write a snapshot unless a later fetch is already cached."""
        payload = {"fetched_at": game["fetched_at"], "ttl": ttl, "data": game}
        applied = await self.backend.compare_and_set(
            game["id"],
            payload,
            prefix=CachePrefix.GAME,
            ttl=self._hard_ttl(ttl),
        )
        if not applied:
            logger.debug(f"Kept newer cached snapshot for game {game['id']}")
        return applied

    # =========================================================================
    # LISTINGS
    # =========================================================================

    async def get_listing(self, sport_id: Optional[str] = None) -> Optional[CacheEntry]:
        """Sport (or featured) listing regardless of freshness."""
        raw = await self.backend.get(listing_key(sport_id), prefix=CachePrefix.GAMES)
        return CacheEntry.from_raw(raw)

    async def put_listing(
        self,
        games: List[Dict[str, Any]],
        fetched_at: float,
        ttl: int,
        sport_id: Optional[str] = None,
    ) -> bool:
        payload = {"fetched_at": fetched_at, "ttl": ttl, "data": games}
        return await self.backend.compare_and_set(
            listing_key(sport_id),
            payload,
            prefix=CachePrefix.GAMES,
            ttl=self._hard_ttl(ttl),
        )

    async def invalidate(self, sport_id: Optional[str] = None) -> None:
        """Drop aggregate listings (all of them if no sport given); per-game entries stay."""
        if sport_id:
            await self.backend.delete(listing_key(sport_id), prefix=CachePrefix.GAMES)
        else:
            await self.backend.delete_pattern("sport:*", prefix=CachePrefix.GAMES)
            await self.backend.delete(FEATURED_KEY, prefix=CachePrefix.GAMES)
        logger.info(f"Invalidated cached listings for {sport_id or 'all sports'}")

    # =========================================================================
    # LIVE-GAME SET
    # =========================================================================

    async def add_live_game(self, game_id: str) -> None:
        await self.backend.sadd(LIVE_SET_KEY, game_id, prefix=CachePrefix.LIVE)

    async def remove_live_game(self, game_id: str) -> None:
        await self.backend.srem(LIVE_SET_KEY, game_id, prefix=CachePrefix.LIVE)

    async def is_live(self, game_id: str) -> bool:
        return await self.backend.sismember(LIVE_SET_KEY, game_id, prefix=CachePrefix.LIVE)

    async def get_live_games(self) -> List[str]:
        return await self.backend.smembers(LIVE_SET_KEY, prefix=CachePrefix.LIVE)

    # =========================================================================
    # PROVIDER SPORTS
    # =========================================================================

    async def get_available_sports(self) -> Optional[List[Dict[str, Any]]]:
        return await self.backend.get(AVAILABLE_SPORTS_KEY, prefix=CachePrefix.SPORTS)

    async def put_available_sports(self, sports: List[Dict[str, Any]]) -> None:
        await self.backend.set(AVAILABLE_SPORTS_KEY, sports, prefix=CachePrefix.SPORTS, ttl=AVAILABLE_SPORTS_TTL)
