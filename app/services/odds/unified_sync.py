"""
BETSYNC - Unified Sync Orchestrator

Single entry point for schedulers and read endpoints. Wraps the external
sync with the staleness policy and mirrors freshly fetched snapshots into
the transactional store as an append-only audit trail.
"""

import logging
import time
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.database import DatabaseManager, QueryBuilder
from app.core.exceptions import BetSyncError, NotFoundError
from app.models.models import Game, GameStatus, MarketType, OddsChangeLog, OddsSnapshotRecord
from app.services.monitoring.metrics_service import monitoring_service
from app.services.odds.external_sync import ExternalOddsSync, SyncResult
from app.services.odds.games_cache import GamesCache
from app.services.odds.normalizer import OddsChange, parse_time

logger = logging.getLogger(__name__)


class UnifiedOddsSync:
    """Cache + transactional store odds sync"""

    def __init__(
        self,
        external: ExternalOddsSync,
        db: DatabaseManager,
        clock: Callable[[], float] = time.time,
    ):
        self.external = external
        self.cache: GamesCache = external.cache
        self.db = db
        self.clock = clock

    # =========================================================================
    # SYNC
    # =========================================================================

    def _apply_staleness(self, result: SyncResult, sport_id: str) -> SyncResult:
        if result.from_cache and result.age_seconds is not None:
            threshold = settings.get_stale_threshold(sport_id, result.has_live_games)
            result.is_stale = result.age_seconds > threshold
        return result

    async def _finish(self, result: SyncResult, sport_id: Optional[str]) -> SyncResult:
        if result.from_cache:
            result.db_persisted = False
        else:
            result.db_persisted = await self.persist_snapshots(result.games, result.changes)
        listing = sport_id or "featured"
        self._apply_staleness(result, listing)
        monitoring_service.record_sync(listing, result.from_cache, result.is_stale, result.db_persisted)
        return result

    async def sync_sport(self, sport_id: str, include_scores: bool = True, force: bool = False) -> SyncResult:
        result = await self.external.sync_sport(sport_id, include_scores=include_scores, force=force)
        return await self._finish(result, sport_id)

    async def sync_featured(self, include_scores: bool = True, force: bool = False) -> SyncResult:
        result = await self.external.sync_featured(include_scores=include_scores, force=force)
        return await self._finish(result, None)

    async def sync_all(self, include_scores: bool = True) -> Dict[str, Any]:
        """Sync every supported sport plus featured; one failure does not stop the rest."""
        summary: Dict[str, Any] = {}
        for sport_id in self.get_supported_sports():
            summary[sport_id] = await self._summarize(self.sync_sport(sport_id, include_scores))
        summary["featured"] = await self._summarize(self.sync_featured(include_scores))
        return summary

    async def _summarize(self, pending) -> Dict[str, Any]:
        try:
            result = await pending
        except BetSyncError as e:
            return {"error": e.error_code, "message": e.message}
        return {
            "games": len(result.games),
            "from_cache": result.from_cache,
            "is_stale": result.is_stale,
            "db_persisted": result.db_persisted,
        }

    def get_supported_sports(self) -> List[str]:
        return self.external.get_supported_sports()

    async def fetch_available_sports(self) -> List[Dict[str, Any]]:
        return await self.external.fetch_available_sports()

    # =========================================================================
    # PERSISTENCE
    # =========================================================================

    async def persist_snapshots(self, games: List[Dict[str, Any]], changes: List[OddsChange]) -> bool:
        """Append audit rows for fresh snapshots; False (and logged) on failure."""
        if not games:
            return True

        try:
            async with self.db.session() as session:
                for game in games:
                    await self._upsert_game(session, game)
                await session.flush()

                for game in games:
                    odds = game.get("odds") or {}
                    session.add(OddsSnapshotRecord(
                        game_id=game["id"],
                        sport_id=game["sport"],
                        bookmaker=game.get("bookmaker"),
                        moneyline=odds.get("moneyline") or {},
                        spread=odds.get("spread") or {},
                        total=odds.get("total") or {},
                        status=GameStatus(game["status"]),
                        fetched_at=game["fetched_at"],
                    ))

                fetched_by_game = {g["id"]: g["fetched_at"] for g in games}
                for change in changes:
                    session.add(OddsChangeLog(
                        game_id=change.game_id,
                        market=MarketType(change.market),
                        selection=change.selection,
                        old_odds=change.old_odds,
                        new_odds=change.new_odds,
                        change_percent=change.change_percent,
                        change_type=change.change_type,
                        fetched_at=fetched_by_game.get(change.game_id, self.clock()),
                    ))
        except SQLAlchemyError as e:
            sports = sorted({g.get("sport") for g in games})
            logger.error(f"Odds persistence failed for {sports}, cache still updated: {e}")
            return False

        significant = sum(1 for c in changes if c.change_type.value == "significant")
        logger.info(f"Persisted {len(games)} odds snapshots, {len(changes)} changes ({significant} significant)")
        return True

    async def _upsert_game(self, session: AsyncSession, game: Dict[str, Any]) -> None:
        """Insert or update a game row; status only moves forward."""
        row = await session.get(Game, game["id"])
        status = GameStatus(game["status"])

        if row is None:
            row = Game(id=game["id"], sport_id=game["sport"])
            session.add(row)
        elif row.status == GameStatus.FINISHED:
            status = GameStatus.FINISHED
        elif row.status == GameStatus.LIVE and status == GameStatus.SCHEDULED:
            status = GameStatus.LIVE

        row.sport_key = game.get("sport_key")
        row.league = game.get("league")
        row.home_team = game["home_team"]["name"]
        row.away_team = game["away_team"]["name"]
        row.commence_time = parse_time(game.get("commence_time"))
        row.status = status
        row.completed = bool(row.completed or game.get("completed"))
        if game["home_team"].get("score") is not None:
            row.home_score = game["home_team"]["score"]
        if game["away_team"].get("score") is not None:
            row.away_score = game["away_team"]["score"]

    # =========================================================================
    # SINGLE GAME
    # =========================================================================

    async def _latest_snapshot(self, game_id: str):
        stmt = (
            QueryBuilder(OddsSnapshotRecord)
            .filter(OddsSnapshotRecord.game_id == game_id)
            .order_by(OddsSnapshotRecord.fetched_at.desc())
            .limit(1)
            .build()
        )
        async with self.db.session() as session:
            record = (await session.execute(stmt)).scalar_one_or_none()
            game = await session.get(Game, game_id) if record else None
        return record, game

    @staticmethod
    def _snapshot_from_record(record: OddsSnapshotRecord, game: Game) -> Dict[str, Any]:
        status = game.status if game.status == GameStatus.FINISHED else record.status
        commence: Optional[datetime] = game.commence_time
        return {
            "id": game.id,
            "sport": game.sport_id,
            "sport_key": game.sport_key,
            "league": game.league,
            "status": GameStatus(status).value,
            "completed": bool(game.completed),
            "commence_time": commence.isoformat() if commence else None,
            "home_team": {"name": game.home_team, "abbr": None, "score": game.home_score},
            "away_team": {"name": game.away_team, "abbr": None, "score": game.away_score},
            "bookmaker": record.bookmaker,
            "odds": {
                "moneyline": record.moneyline or None,
                "spread": record.spread or None,
                "total": record.total or None,
            },
            "movement": {},
            "fetched_at": record.fetched_at,
        }

    async def get_game_odds(self, game_id: str) -> Dict[str, Any]:
        """
        Odds for one game: fresh cache entry first, then the latest persisted
        snapshot, which is written back through compare-and-write so it can
        never replace a newer cached fetch.
        """
        cached = await self.cache.get_game(game_id)
        if cached is not None:
            return {"game": cached, "source": "cache"}

        try:
            record, game = await self._latest_snapshot(game_id)
        except SQLAlchemyError as e:
            logger.error(f"Snapshot lookup failed for game {game_id}: {e}")
            record, game = None, None

        if record is None or game is None:
            stale = await self.cache.peek_game(game_id)
            if stale is not None:
                return {"game": stale.data, "source": "cache_stale"}
            raise NotFoundError(f"Game {game_id} not found", {"game_id": game_id})

        snapshot = self._snapshot_from_record(record, game)
        is_live = snapshot["status"] == GameStatus.LIVE.value or await self.cache.is_live(game_id)
        await self.cache.put_game(snapshot, ttl=settings.get_game_cache_ttl(is_live))
        return {"game": snapshot, "source": "database"}

    async def _sport_for_game(self, game_id: str) -> Optional[str]:
        entry = await self.cache.peek_game(game_id)
        if entry is not None:
            return entry.data.get("sport")
        try:
            async with self.db.session() as session:
                result = await session.execute(select(Game.sport_id).where(Game.id == game_id))
                return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error(f"Game lookup failed for {game_id}: {e}")
            return None

    async def refresh_game(self, game_id: str) -> Optional[Dict[str, Any]]:
        """Re-sync the sport a game belongs to and return its fresh snapshot."""
        sport_id = await self._sport_for_game(game_id)
        if sport_id is None or sport_id not in settings.SPORT_ID_TO_API_KEYS:
            return None
        await self.sync_sport(sport_id, force=True)
        return await self.cache.get_game(game_id)

    # =========================================================================
    # LIVE GAMES
    # =========================================================================

    async def start_live_tracking(self, game_id: str) -> Dict[str, Any]:
        """Add a game to the live set and sync its sport."""
        sport_id = await self._sport_for_game(game_id)
        if sport_id is None:
            raise NotFoundError(f"Game {game_id} not found", {"game_id": game_id})

        await self.cache.add_live_game(game_id)
        logger.info(f"Started live tracking for game {game_id} ({sport_id})")
        result = await self.sync_sport(sport_id, force=True)
        return {"game_id": game_id, "sport": sport_id, "sync": result.to_dict()}

    async def sync_live_games(self) -> Dict[str, Any]:
        """Re-sync the sports of all live games; finished games leave the live set."""
        live_ids = await self.cache.get_live_games()
        if not live_ids:
            return {"live_games": 0, "sports": {}}

        sports: Dict[str, List[str]] = {}
        for game_id in live_ids:
            entry = await self.cache.peek_game(game_id)
            if entry is not None and entry.data.get("status") == GameStatus.FINISHED.value:
                await self.cache.remove_live_game(game_id)
                logger.info(f"Game {game_id} finished, removed from live set")
                continue
            sport_id = await self._sport_for_game(game_id)
            if sport_id:
                sports.setdefault(sport_id, []).append(game_id)

        summary = {}
        for sport_id in sports:
            summary[sport_id] = await self._summarize(self.sync_sport(sport_id, force=True))

        for game_ids in sports.values():
            for game_id in game_ids:
                entry = await self.cache.peek_game(game_id)
                if entry is not None and entry.data.get("status") == GameStatus.FINISHED.value:
                    await self.cache.remove_live_game(game_id)

        return {"live_games": sum(len(v) for v in sports.values()), "sports": summary}
