"""
BETSYNC - External Odds Sync

Pulls odds from the upstream provider, normalizes them and writes through
to the games cache. Cache hits short-circuit the provider; upstream
failures fall back to whatever the cache still holds.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from app.core.config import settings
from app.core.exceptions import NotFoundError, UpstreamError, UpstreamUnavailableError
from app.models.models import GameStatus
from app.services.odds.games_cache import GamesCache
from app.services.odds.normalizer import (
    OddsChange,
    merge_scores,
    merge_with_previous,
    normalize_events,
)

logger = logging.getLogger(__name__)


@dataclass
class SyncResult:
    """Outcome of a sport or featured sync"""
    games: List[Dict[str, Any]]
    from_cache: bool
    is_stale: bool
    age_seconds: Optional[float]
    db_persisted: Optional[bool] = None
    sport_id: Optional[str] = None
    fetched_at: Optional[float] = None
    # Selections that moved relative to the previously cached snapshots
    changes: List[OddsChange] = field(default_factory=list)

    @property
    def has_live_games(self) -> bool:
        return any(g.get("status") == GameStatus.LIVE.value for g in self.games)

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "sport": self.sport_id or "featured",
            "games": self.games,
            "from_cache": self.from_cache,
            "is_stale": self.is_stale,
            "age_seconds": round(self.age_seconds, 1) if self.age_seconds is not None else None,
        }
        if self.db_persisted is not None:
            result["db_persisted"] = self.db_persisted
        return result


class ExternalOddsSync:
    """
    Cache-first odds sync against the upstream provider.

    `provider` exposes async fetch_odds(sport_key), fetch_scores(sport_key)
    and fetch_sports(); OddsApiCollector is the production implementation.
    """

    def __init__(self, cache: GamesCache, provider, clock: Callable[[], float] = time.time):
        self.cache = cache
        self.provider = provider
        self.clock = clock

    # =========================================================================
    # FETCH
    # =========================================================================

    async def fetch_sport_odds(
        self,
        sport_key: str,
        include_scores: bool = True,
        fetched_at: Optional[float] = None,
    ) -> List[Dict[str, Any]]:
        """Normalized games for one provider sport key."""
        fetched_at = fetched_at if fetched_at is not None else self.clock()
        events = await self.provider.fetch_odds(sport_key)
        games = normalize_events(events, fetched_at)

        if include_scores and games:
            try:
                scores = await self.provider.fetch_scores(sport_key)
                merge_scores(games, scores)
            except UpstreamError as e:
                logger.warning(f"Scores unavailable for {sport_key}, using odds only: {e.message}")

        return games

    async def fetch_available_sports(self) -> List[Dict[str, Any]]:
        """Provider's active sports, cached for an hour."""
        cached = await self.cache.get_available_sports()
        if cached is not None:
            return cached

        try:
            sports = await self.provider.fetch_sports()
        except UpstreamError as e:
            logger.error(f"Failed to fetch available sports: {e.message}")
            raise UpstreamUnavailableError("Sports list is temporarily unavailable") from e

        await self.cache.put_available_sports(sports)
        return sports

    async def _fetch_games(self, sport_keys: List[str], include_scores: bool, fetched_at: float) -> List[Dict[str, Any]]:
        """Fetch all sport keys concurrently; partial success is accepted."""
        results = await asyncio.gather(
            *(self.fetch_sport_odds(key, include_scores, fetched_at) for key in sport_keys),
            return_exceptions=True,
        )

        games: List[Dict[str, Any]] = []
        errors: List[UpstreamError] = []
        for key, result in zip(sport_keys, results):
            if isinstance(result, UpstreamError):
                logger.error(f"Upstream fetch failed for {key}: {result.message}")
                errors.append(result)
            elif isinstance(result, BaseException):
                raise result
            else:
                games.extend(result)

        if errors and len(errors) == len(sport_keys):
            raise errors[0]

        games.sort(key=lambda g: g.get("commence_time") or "")
        return games

    # =========================================================================
    # WRITE-THROUGH
    # =========================================================================

    async def _write_through(
        self,
        games: List[Dict[str, Any]],
        fetched_at: float,
        sport_id: Optional[str],
    ) -> List[OddsChange]:
        live_ids = set(await self.cache.get_live_games())
        changes: List[OddsChange] = []

        for game in games:
            previous = await self.cache.peek_game(game["id"])
            game_changes = merge_with_previous(previous.data if previous else None, game)
            is_live = game["status"] == GameStatus.LIVE.value or game["id"] in live_ids
            if await self.cache.put_game(game, ttl=settings.get_game_cache_ttl(is_live)):
                changes.extend(game_changes)

        has_live = any(g["status"] == GameStatus.LIVE.value or g["id"] in live_ids for g in games)
        listing_ttl = settings.get_sport_cache_ttl(sport_id or "featured", has_live)
        if not await self.cache.put_listing(games, fetched_at, listing_ttl, sport_id):
            logger.debug(f"Kept newer cached listing for {sport_id or 'featured'}")

        return changes

    # =========================================================================
    # SYNC
    # =========================================================================

    async def _sync_listing(
        self,
        sport_id: Optional[str],
        sport_keys: List[str],
        include_scores: bool,
        force: bool,
        limit: Optional[int] = None,
    ) -> SyncResult:
        label = sport_id or "featured"
        now = self.clock()
        entry = await self.cache.get_listing(sport_id)

        if entry is not None:
            age = entry.age(now)
            if not force and entry.is_fresh(now):
                logger.debug(f"Cache hit for {label} (age {age:.1f}s)")
                return SyncResult(entry.data, from_cache=True, is_stale=False, age_seconds=age, sport_id=sport_id)
            if age < settings.MIN_SYNC_INTERVAL:
                logger.debug(f"Skipping upstream fetch for {label}, last fetch {age:.1f}s ago")
                return SyncResult(
                    entry.data,
                    from_cache=True,
                    is_stale=not entry.is_fresh(now),
                    age_seconds=age,
                    sport_id=sport_id,
                )

        logger.info(f"Fetching fresh odds for {label} (cache age: {entry.age(now) if entry else None})")
        fetched_at = now
        try:
            games = await self._fetch_games(sport_keys, include_scores, fetched_at)
        except UpstreamError as e:
            if entry is not None:
                logger.warning(f"Upstream failed for {label} ({e.error_code}), serving cached listing")
                return SyncResult(
                    entry.data,
                    from_cache=True,
                    is_stale=True,
                    age_seconds=entry.age(self.clock()),
                    sport_id=sport_id,
                )
            logger.error(f"Upstream failed for {label} with nothing cached: {e.message}")
            raise UpstreamUnavailableError(
                f"Odds for {label} are temporarily unavailable",
                {"cause": e.error_code},
            ) from e

        if limit is not None:
            games = games[:limit]

        changes = await self._write_through(games, fetched_at, sport_id)
        return SyncResult(
            games,
            from_cache=False,
            is_stale=False,
            age_seconds=0.0,
            sport_id=sport_id,
            fetched_at=fetched_at,
            changes=changes,
        )

    async def sync_sport(self, sport_id: str, include_scores: bool = True, force: bool = False) -> SyncResult:
        """
        Sync one internal sport id.

        `force` skips the freshness check but still honours MIN_SYNC_INTERVAL.
        """
        sport_keys = settings.SPORT_ID_TO_API_KEYS.get(sport_id)
        if not sport_keys:
            raise NotFoundError(f"Unknown sport: {sport_id}", {"sport": sport_id})
        return await self._sync_listing(sport_id, sport_keys, include_scores, force)

    async def sync_featured(self, include_scores: bool = True, force: bool = False) -> SyncResult:
        """Sync the curated cross-sport featured listing."""
        return await self._sync_listing(
            None,
            settings.FEATURED_SPORT_KEYS,
            include_scores,
            force,
            limit=settings.FEATURED_LIMIT,
        )

    def get_supported_sports(self) -> List[str]:
        return list(settings.SPORT_ID_TO_API_KEYS.keys())
