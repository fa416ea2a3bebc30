"""
BETSYNC - Odds Normalization

Converts provider events into the internal game/odds snapshot shape and
derives movement between consecutive snapshots.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional

from app.core.config import settings
from app.models.models import GameStatus, MarketType, OddsChangeType

logger = logging.getLogger(__name__)


# Selection labels offered per market
MARKET_SELECTIONS: Dict[str, tuple] = {
    MarketType.MONEYLINE.value: ("home", "away"),
    MarketType.SPREAD.value: ("home", "away"),
    MarketType.TOTAL.value: ("over", "under"),
}

# Snapshot field holding the price of each selection
_PRICE_FIELDS: Dict[str, Dict[str, str]] = {
    MarketType.MONEYLINE.value: {"home": "home", "away": "away"},
    MarketType.SPREAD.value: {"home": "home_odds", "away": "away_odds"},
    MarketType.TOTAL.value: {"over": "over", "under": "under"},
}

SIGNIFICANT_CHANGE_PERCENT = 10.0
MAX_AMERICAN_ODDS = 100000


@dataclass
class OddsChange:
    """Price movement of one selection between two snapshots"""
    game_id: str
    market: str
    selection: str
    old_odds: int
    new_odds: int

    @property
    def movement(self) -> str:
        if self.new_odds > self.old_odds:
            return "up"
        if self.new_odds < self.old_odds:
            return "down"
        return "stable"

    @property
    def change_percent(self) -> float:
        if self.old_odds == 0:
            return 100.0
        return round(abs(self.new_odds - self.old_odds) / abs(self.old_odds) * 100, 2)

    @property
    def change_type(self) -> OddsChangeType:
        if self.change_percent > SIGNIFICANT_CHANGE_PERCENT:
            return OddsChangeType.SIGNIFICANT
        return OddsChangeType.MINOR

    def to_dict(self) -> Dict[str, Any]:
        return {
            "game_id": self.game_id,
            "market": self.market,
            "selection": self.selection,
            "old_odds": self.old_odds,
            "new_odds": self.new_odds,
            "movement": self.movement,
            "change_percent": self.change_percent,
            "change_type": self.change_type.value,
        }


def to_american(price: Any) -> Optional[int]:
    """Coerce a provider price to signed American odds, or None if unusable."""
    if isinstance(price, bool) or price is None:
        return None
    try:
        value = int(round(float(price)))
    except (TypeError, ValueError):
        return None
    if abs(value) < 100 or abs(value) > MAX_AMERICAN_ODDS:
        return None
    return value


def parse_time(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def infer_status(commence_time: Optional[datetime], now: datetime) -> GameStatus:
    """Live once started and within the live window, scheduled otherwise."""
    if commence_time is None or commence_time > now:
        return GameStatus.SCHEDULED
    if now < commence_time + timedelta(hours=settings.LIVE_WINDOW_HOURS):
        return GameStatus.LIVE
    return GameStatus.SCHEDULED


def select_bookmaker(bookmakers: List[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """First preferred bookmaker present on the event, else the first listed."""
    if not bookmakers:
        return None
    by_key = {b.get("key"): b for b in bookmakers}
    for key in settings.PREFERRED_BOOKMAKERS:
        if key in by_key:
            return by_key[key]
    return bookmakers[0]


def _outcome_for(outcomes: List[Dict[str, Any]], name: str) -> Optional[Dict[str, Any]]:
    for outcome in outcomes:
        if outcome.get("name") == name:
            return outcome
    return None


def extract_odds(bookmaker: Dict[str, Any], home_team: str, away_team: str) -> Dict[str, Any]:
    """
    Build the moneyline/spread/total snapshot from one bookmaker.

    Markets the bookmaker does not quote (or quotes with unusable prices)
    are None rather than defaulted, so they read as "not available".
    """
    markets = {m.get("key"): m.get("outcomes") or [] for m in bookmaker.get("markets") or []}
    odds: Dict[str, Any] = {"moneyline": None, "spread": None, "total": None}

    h2h = markets.get("h2h")
    if h2h:
        home = _outcome_for(h2h, home_team)
        away = _outcome_for(h2h, away_team)
        home_price = to_american(home.get("price")) if home else None
        away_price = to_american(away.get("price")) if away else None
        if home_price is not None and away_price is not None:
            odds["moneyline"] = {"home": home_price, "away": away_price}

    spreads = markets.get("spreads")
    if spreads:
        home = _outcome_for(spreads, home_team)
        away = _outcome_for(spreads, away_team)
        if home and away and home.get("point") is not None:
            home_price = to_american(home.get("price"))
            away_price = to_american(away.get("price"))
            if home_price is not None and away_price is not None:
                odds["spread"] = {
                    "home_odds": home_price,
                    "away_odds": away_price,
                    "line": float(home["point"]),
                }

    totals = markets.get("totals")
    if totals:
        over = next((o for o in totals if str(o.get("name", "")).lower() == "over"), None)
        under = next((o for o in totals if str(o.get("name", "")).lower() == "under"), None)
        if over and under and over.get("point") is not None:
            over_price = to_american(over.get("price"))
            under_price = to_american(under.get("price"))
            if over_price is not None and under_price is not None:
                odds["total"] = {
                    "over": over_price,
                    "under": under_price,
                    "line": float(over["point"]),
                }

    return odds


def team_abbr(name: str) -> str:
    words = name.split()
    if len(words) <= 1:
        return name[:3].upper()
    return words[-1][:3].upper()


def normalize_event(event: Dict[str, Any], fetched_at: float, now: Optional[datetime] = None) -> Optional[Dict[str, Any]]:
    """Provider odds event -> internal game snapshot, or None if unusable."""
    try:
        event_id = str(event["id"])
        sport_key = event["sport_key"]
        home_team = event["home_team"]
        away_team = event["away_team"]
    except (KeyError, TypeError):
        logger.warning(f"Skipping malformed provider event: {str(event)[:200]}")
        return None

    bookmaker = select_bookmaker(event.get("bookmakers") or [])
    if bookmaker is None:
        logger.debug(f"No bookmaker quotes for event {event_id}")
        return None

    now = now or datetime.fromtimestamp(fetched_at, tz=timezone.utc)
    commence_time = parse_time(event.get("commence_time"))
    sport_info = settings.get_sport_info(sport_key)

    return {
        "id": event_id,
        "sport": sport_info["id"],
        "sport_key": sport_key,
        "league": sport_info.get("name") or event.get("sport_title"),
        "status": infer_status(commence_time, now).value,
        "completed": False,
        "commence_time": commence_time.isoformat() if commence_time else None,
        "home_team": {"name": home_team, "abbr": team_abbr(home_team), "score": None},
        "away_team": {"name": away_team, "abbr": team_abbr(away_team), "score": None},
        "bookmaker": bookmaker.get("key"),
        "odds": extract_odds(bookmaker, home_team, away_team),
        "movement": {},
        "fetched_at": fetched_at,
    }


def normalize_events(events: Iterable[Dict[str, Any]], fetched_at: float) -> List[Dict[str, Any]]:
    now = datetime.fromtimestamp(fetched_at, tz=timezone.utc)
    games = []
    for event in events:
        game = normalize_event(event, fetched_at, now)
        if game is not None:
            games.append(game)
    return games


def merge_scores(games: List[Dict[str, Any]], score_events: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Fold provider scores into games: completed -> finished, scores present -> live."""
    scores_by_id = {str(s.get("id")): s for s in score_events if s.get("id") is not None}

    for game in games:
        score_event = scores_by_id.get(game["id"])
        if not score_event:
            continue

        scores = score_event.get("scores") or []
        for entry in scores:
            value = entry.get("score")
            try:
                score = int(value) if value is not None else None
            except (TypeError, ValueError):
                score = None
            if entry.get("name") == game["home_team"]["name"]:
                game["home_team"]["score"] = score
            elif entry.get("name") == game["away_team"]["name"]:
                game["away_team"]["score"] = score

        if score_event.get("completed"):
            game["completed"] = True
            game["status"] = GameStatus.FINISHED.value
        elif scores:
            game["status"] = GameStatus.LIVE.value

    return games


def get_selection_odds(game: Dict[str, Any], market: str, selection: str) -> Optional[int]:
    """Current price of market/selection on a snapshot, or None if not offered."""
    field_name = _PRICE_FIELDS.get(market, {}).get(selection)
    if field_name is None:
        return None
    market_odds = (game.get("odds") or {}).get(market)
    if not market_odds:
        return None
    return market_odds.get(field_name)


def diff_snapshots(previous: Optional[Dict[str, Any]], current: Dict[str, Any]) -> List[OddsChange]:
    """Selections whose price differs between two snapshots of the same game."""
    if not previous:
        return []

    changes = []
    for market, selections in MARKET_SELECTIONS.items():
        for selection in selections:
            old = get_selection_odds(previous, market, selection)
            new = get_selection_odds(current, market, selection)
            if old is None or new is None or old == new:
                continue
            changes.append(OddsChange(current["id"], market, selection, old, new))
    return changes


def merge_with_previous(previous: Optional[Dict[str, Any]], current: Dict[str, Any]) -> List[OddsChange]:
    """
    Carry state forward from the prior snapshot into the new one.

    Status only moves forward (scheduled, live, finished), and the movement
    map records the previous price and direction of every selection that moved.
    """
    if not previous:
        return []

    previous_status = previous.get("status")
    if previous_status == GameStatus.FINISHED.value:
        current["status"] = GameStatus.FINISHED.value
        current["completed"] = True
    elif previous_status == GameStatus.LIVE.value and current["status"] != GameStatus.FINISHED.value:
        current["status"] = GameStatus.LIVE.value

    if current["status"] != GameStatus.SCHEDULED.value:
        for side in ("home_team", "away_team"):
            if current[side].get("score") is None:
                current[side]["score"] = (previous.get(side) or {}).get("score")

    changes = diff_snapshots(previous, current)
    current["movement"] = {
        f"{c.market}.{c.selection}": {"direction": c.movement, "previous": c.old_odds}
        for c in changes
    }
    return changes
