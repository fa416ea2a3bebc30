"""
BETSYNC - Test Configuration
Pytest fixtures, in-memory fakes and event builders for the test suite.
"""

import os

# Must be set before app.core.config builds its settings singleton
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("CRON_SECRET", "test-cron-secret")
os.environ.setdefault("JWT_SECRET_KEY", "test-jwt-secret-key-with-enough-length-for-hs256")
os.environ.setdefault("SCHEDULER_ENABLED", "false")
os.environ.setdefault("ODDS_API_KEY", "test-key")

import asyncio
import copy
import fnmatch
import json
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional

import pytest

from app.core.cache import CachePrefix
from app.core.database import DatabaseManager
from app.models.models import FinancialAccount
from app.services.betting.fraud import FraudCheckResult, RiskLevel
from app.services.odds.games_cache import GamesCache

START_TIME = 1_700_000_000.0


# =============================================================================
# CLOCK & CACHE
# =============================================================================

class FakeClock:
    """Controllable epoch clock"""

    def __init__(self, now: float = START_TIME):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class InMemoryCacheBackend:
    """CacheManager stand-in with hard TTL expiry on a fake clock"""

    def __init__(self, clock: FakeClock):
        self.clock = clock
        self._values: Dict[str, Any] = {}
        self._expires: Dict[str, float] = {}
        self._sets: Dict[str, set] = {}
        self.writes_rejected = 0

    @staticmethod
    def _key(prefix: CachePrefix, key: str) -> str:
        return f"{prefix.value}:{key}"

    def _live(self, full_key: str) -> bool:
        expires = self._expires.get(full_key)
        if expires is not None and self.clock() >= expires:
            self._values.pop(full_key, None)
            self._expires.pop(full_key, None)
        return full_key in self._values

    async def get(self, key: str, prefix: CachePrefix = CachePrefix.GAMES) -> Optional[Any]:
        full_key = self._key(prefix, key)
        if not self._live(full_key):
            return None
        return json.loads(self._values[full_key])

    async def set(self, key: str, value: Any, prefix: CachePrefix = CachePrefix.GAMES, ttl: Optional[int] = None) -> bool:
        full_key = self._key(prefix, key)
        self._values[full_key] = json.dumps(value)
        self._expires[full_key] = self.clock() + (ttl or 300)
        return True

    async def compare_and_set(
        self,
        key: str,
        value: Dict[str, Any],
        prefix: CachePrefix = CachePrefix.GAME,
        ttl: Optional[int] = None,
        version_field: str = "fetched_at",
    ) -> bool:
        current = await self.get(key, prefix=prefix)
        if current is not None and current.get(version_field) is not None:
            if float(current[version_field]) >= float(value[version_field]):
                self.writes_rejected += 1
                return False
        return await self.set(key, value, prefix=prefix, ttl=ttl)

    async def delete(self, key: str, prefix: CachePrefix = CachePrefix.GAMES) -> bool:
        full_key = self._key(prefix, key)
        self._expires.pop(full_key, None)
        return self._values.pop(full_key, None) is not None

    async def delete_pattern(self, pattern: str, prefix: CachePrefix = CachePrefix.GAMES) -> int:
        full_pattern = self._key(prefix, pattern)
        matches = [k for k in self._values if fnmatch.fnmatch(k, full_pattern)]
        for full_key in matches:
            self._values.pop(full_key, None)
            self._expires.pop(full_key, None)
        return len(matches)

    async def sadd(self, key: str, *members: str, prefix: CachePrefix = CachePrefix.LIVE) -> int:
        members_set = self._sets.setdefault(self._key(prefix, key), set())
        added = len(set(members) - members_set)
        members_set.update(members)
        return added

    async def srem(self, key: str, *members: str, prefix: CachePrefix = CachePrefix.LIVE) -> int:
        members_set = self._sets.get(self._key(prefix, key), set())
        removed = len(members_set & set(members))
        members_set.difference_update(members)
        return removed

    async def sismember(self, key: str, member: str, prefix: CachePrefix = CachePrefix.LIVE) -> bool:
        return member in self._sets.get(self._key(prefix, key), set())

    async def smembers(self, key: str, prefix: CachePrefix = CachePrefix.LIVE) -> List[str]:
        return sorted(self._sets.get(self._key(prefix, key), set()))


# =============================================================================
# UPSTREAM PROVIDER
# =============================================================================

class FakeOddsProvider:
    """Scripted upstream provider; errors and delays are set per sport key"""

    def __init__(self):
        self.odds: Dict[str, List[Dict[str, Any]]] = {}
        self.scores: Dict[str, List[Dict[str, Any]]] = {}
        self.sports: List[Dict[str, Any]] = []
        self.errors: Dict[str, Exception] = {}
        self.delays: Dict[str, float] = {}
        self.calls: List[str] = []

    async def fetch_odds(self, sport_key: str) -> List[Dict[str, Any]]:
        self.calls.append(f"odds:{sport_key}")
        # Snapshot before any delay so a slow fetch returns what it saw when it started
        events = copy.deepcopy(self.odds.get(sport_key, []))
        error = self.errors.get(sport_key)
        if sport_key in self.delays:
            await asyncio.sleep(self.delays[sport_key])
        if error is not None:
            raise error
        return events

    async def fetch_scores(self, sport_key: str) -> List[Dict[str, Any]]:
        self.calls.append(f"scores:{sport_key}")
        return copy.deepcopy(self.scores.get(sport_key, []))

    async def fetch_sports(self) -> List[Dict[str, Any]]:
        self.calls.append("sports")
        if "sports" in self.errors:
            raise self.errors["sports"]
        return copy.deepcopy(self.sports)

    @property
    def odds_calls(self) -> List[str]:
        return [c for c in self.calls if c.startswith("odds:")]


# =============================================================================
# COLLABORATORS
# =============================================================================

class RecordingNotifier:
    """Captures bet_placed notifications"""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.events: List[Dict[str, Any]] = []

    def bet_placed(self, user_id: str, bet: Dict[str, Any]) -> None:
        if self.fail:
            raise RuntimeError("notification transport down")
        self.events.append({"user_id": user_id, "bet": bet})


class StaticFraudChecker:
    """Returns a fixed decision and records every call"""

    def __init__(self, result: Optional[FraudCheckResult] = None):
        self.result = result or FraudCheckResult(allowed=True, risk_level=RiskLevel.LOW)
        self.calls: List[Dict[str, Any]] = []

    async def check(self, user_id: str, amount: float, context: Dict[str, Any]) -> FraudCheckResult:
        self.calls.append({"user_id": user_id, "amount": amount, "context": context})
        return self.result


# =============================================================================
# BUILDERS
# =============================================================================

def iso_at(epoch: float) -> str:
    return datetime.fromtimestamp(epoch, tz=timezone.utc).isoformat().replace("+00:00", "Z")


def make_event(
    event_id: str,
    sport_key: str = "basketball_nba",
    home: str = "Los Angeles Lakers",
    away: str = "Boston Celtics",
    commence_time: Optional[str] = None,
    moneyline: Optional[tuple] = (-110, 150),
    spread: Optional[tuple] = (-3.5, -110, -110),
    total: Optional[tuple] = (220.5, -110, -110),
    bookmaker: str = "fanduel",
) -> Dict[str, Any]:
    """Provider odds event in the upstream wire shape"""
    markets = []
    if moneyline is not None:
        markets.append({"key": "h2h", "outcomes": [
            {"name": home, "price": moneyline[0]},
            {"name": away, "price": moneyline[1]},
        ]})
    if spread is not None:
        line, home_price, away_price = spread
        markets.append({"key": "spreads", "outcomes": [
            {"name": home, "price": home_price, "point": line},
            {"name": away, "price": away_price, "point": -line},
        ]})
    if total is not None:
        line, over_price, under_price = total
        markets.append({"key": "totals", "outcomes": [
            {"name": "Over", "price": over_price, "point": line},
            {"name": "Under", "price": under_price, "point": line},
        ]})

    return {
        "id": event_id,
        "sport_key": sport_key,
        "sport_title": "NBA",
        "commence_time": commence_time or iso_at(START_TIME + 3600),
        "home_team": home,
        "away_team": away,
        "bookmakers": [{"key": bookmaker, "title": bookmaker, "markets": markets}],
    }


def make_score(event_id: str, home_score: int, away_score: int, completed: bool = False,
               home: str = "Los Angeles Lakers", away: str = "Boston Celtics") -> Dict[str, Any]:
    return {
        "id": event_id,
        "completed": completed,
        "scores": [
            {"name": home, "score": str(home_score)},
            {"name": away, "score": str(away_score)},
        ],
    }


def make_game(
    game_id: str,
    fetched_at: float,
    status: str = "scheduled",
    moneyline: Optional[Dict[str, int]] = None,
    spread: Optional[Dict[str, Any]] = None,
    total: Optional[Dict[str, Any]] = None,
    sport: str = "basketball",
) -> Dict[str, Any]:
    """Normalized game snapshot as stored in the cache"""
    return {
        "id": game_id,
        "sport": sport,
        "sport_key": "basketball_nba",
        "league": "NBA",
        "status": status,
        "completed": status == "finished",
        "commence_time": iso_at(fetched_at + 3600),
        "home_team": {"name": "Los Angeles Lakers", "abbr": "LAK", "score": None},
        "away_team": {"name": "Boston Celtics", "abbr": "CEL", "score": None},
        "bookmaker": "fanduel",
        "odds": {
            "moneyline": moneyline if moneyline is not None else {"home": -110, "away": 150},
            "spread": spread,
            "total": total,
        },
        "movement": {},
        "fetched_at": fetched_at,
    }


async def seed_account(db: DatabaseManager, user_id: str, balance: float) -> None:
    amount = Decimal(str(balance))
    async with db.session() as session:
        session.add(FinancialAccount(
            user_id=user_id,
            balance=amount,
            locked_amount=Decimal("0"),
            available_balance=amount,
            currency="USD",
        ))


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache_backend(clock) -> InMemoryCacheBackend:
    return InMemoryCacheBackend(clock)


@pytest.fixture
def games_cache(cache_backend, clock) -> GamesCache:
    return GamesCache(cache_backend, clock=clock)


@pytest.fixture
def provider() -> FakeOddsProvider:
    return FakeOddsProvider()


@pytest.fixture
async def db(tmp_path):
    """File-backed SQLite store; BEGIN IMMEDIATE serializes writers like row locks would"""
    manager = DatabaseManager(url=f"sqlite+aiosqlite:///{tmp_path / 'betsync_test.db'}")
    await manager.create_all()
    yield manager
    await manager.close()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def fraud_checker() -> StaticFraudChecker:
    return StaticFraudChecker()
