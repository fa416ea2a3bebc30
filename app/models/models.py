"""
BETSYNC - Database Models

SQLAlchemy 2.0 models for games, odds audit history, financial accounts,
bets and the transaction ledger.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum as PyEnum
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import (
    JSON, BigInteger, Boolean, CheckConstraint, DateTime, Enum, Float,
    ForeignKey, Index, Integer, Numeric, String, Uuid, event, func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.orm.attributes import get_history

from app.core.database import Base


# JSONB on PostgreSQL, plain JSON elsewhere
JSONType = JSON().with_variant(JSONB(), "postgresql")


def _enum(enum_cls):
    return Enum(enum_cls, values_callable=lambda obj: [e.value for e in obj], native_enum=False, length=20)


# =============================================================================
# ENUMS
# =============================================================================

class GameStatus(str, PyEnum):
    SCHEDULED = "scheduled"
    LIVE = "live"
    FINISHED = "finished"


class MarketType(str, PyEnum):
    SPREAD = "spread"
    MONEYLINE = "moneyline"
    TOTAL = "total"


class BetType(str, PyEnum):
    SINGLE = "single"
    PARLAY = "parlay"


class BetStatus(str, PyEnum):
    PENDING = "pending"
    WON = "won"
    LOST = "lost"
    CASHOUT = "cashout"


class OddsChangeType(str, PyEnum):
    SIGNIFICANT = "significant"
    MINOR = "minor"


class LedgerEntryType(str, PyEnum):
    BET_PLACED = "bet_placed"


# =============================================================================
# GAMES & ODDS HISTORY
# =============================================================================

class Game(Base):
    """Game/event records keyed by the provider event id."""
    __tablename__ = "games"

    id: Mapped[str] = mapped_column(String(100), primary_key=True)
    sport_id: Mapped[str] = mapped_column(String(50), nullable=False)
    sport_key: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    league: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    home_team: Mapped[str] = mapped_column(String(200), nullable=False)
    away_team: Mapped[str] = mapped_column(String(200), nullable=False)
    commence_time: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    status: Mapped[GameStatus] = mapped_column(_enum(GameStatus), default=GameStatus.SCHEDULED)
    completed: Mapped[bool] = mapped_column(Boolean, default=False)

    home_score: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    away_score: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=func.now(), onupdate=func.now())

    __table_args__ = (Index("ix_games_sport_commence", "sport_id", "commence_time"),)


class OddsSnapshotRecord(Base):
    """Append-only audit row for every freshly fetched odds snapshot."""
    __tablename__ = "odds_snapshots"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    game_id: Mapped[str] = mapped_column(String(100), ForeignKey("games.id", ondelete="CASCADE"), nullable=False)
    sport_id: Mapped[str] = mapped_column(String(50), nullable=False)
    bookmaker: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    moneyline: Mapped[dict] = mapped_column(JSONType, nullable=False)
    spread: Mapped[dict] = mapped_column(JSONType, nullable=False)
    total: Mapped[dict] = mapped_column(JSONType, nullable=False)
    status: Mapped[GameStatus] = mapped_column(_enum(GameStatus), default=GameStatus.SCHEDULED)
    # Epoch seconds captured when the upstream fetch started
    fetched_at: Mapped[float] = mapped_column(Float, nullable=False)
    recorded_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=func.now())

    __table_args__ = (Index("ix_odds_snapshots_game_fetched", "game_id", "fetched_at"),)


class OddsChangeLog(Base):
    """One row per selection whose odds moved between consecutive snapshots."""
    __tablename__ = "odds_change_log"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    game_id: Mapped[str] = mapped_column(String(100), ForeignKey("games.id", ondelete="CASCADE"), nullable=False)
    market: Mapped[MarketType] = mapped_column(_enum(MarketType), nullable=False)
    selection: Mapped[str] = mapped_column(String(20), nullable=False)
    old_odds: Mapped[int] = mapped_column(Integer, nullable=False)
    new_odds: Mapped[int] = mapped_column(Integer, nullable=False)
    change_percent: Mapped[float] = mapped_column(Float, nullable=False)
    change_type: Mapped[OddsChangeType] = mapped_column(_enum(OddsChangeType), nullable=False)
    fetched_at: Mapped[float] = mapped_column(Float, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=func.now())

    __table_args__ = (Index("ix_odds_change_log_game", "game_id", "created_at"),)


# =============================================================================
# MONEY
# =============================================================================

class FinancialAccount(Base):
    """Bettor cash account; available = balance - locked."""
    __tablename__ = "financial_accounts"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    user_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    balance: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    locked_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    available_balance: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    currency: Mapped[str] = mapped_column(String(3), default="USD")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=func.now(), onupdate=func.now())

    __table_args__ = (
        CheckConstraint("available_balance >= 0", name="ck_financial_accounts_available_non_negative"),
    )


class Bet(Base):
    """Accepted wagers; odds_snapshot is frozen at acceptance."""
    __tablename__ = "bets"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    account_id: Mapped[UUID] = mapped_column(Uuid, ForeignKey("financial_accounts.id"), nullable=False)

    bet_type: Mapped[BetType] = mapped_column(_enum(BetType), nullable=False)
    selections: Mapped[list] = mapped_column(JSONType, nullable=False)
    total_stake: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    potential_payout: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    combined_odds: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    status: Mapped[BetStatus] = mapped_column(_enum(BetStatus), default=BetStatus.PENDING)
    odds_snapshot: Mapped[dict] = mapped_column(JSONType, nullable=False)

    placed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=func.now())
    settled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (Index("ix_bets_user_placed", "user_id", "placed_at"),)


@event.listens_for(Bet, "before_update")
def _freeze_odds_snapshot(mapper, connection, target: Bet) -> None:
    """Accepted odds are the settlement record and cannot be rewritten."""
    if get_history(target, "odds_snapshot").has_changes():
        raise ValueError(f"odds_snapshot of bet {target.id} is immutable")


class LedgerEntry(Base):
    """Account transaction history."""
    __tablename__ = "ledger_entries"

    id: Mapped[int] = mapped_column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    account_id: Mapped[UUID] = mapped_column(Uuid, ForeignKey("financial_accounts.id", ondelete="CASCADE"), nullable=False)
    entry_type: Mapped[LedgerEntryType] = mapped_column(_enum(LedgerEntryType), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)  # negative for debits
    balance_after: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    reference_id: Mapped[Optional[UUID]] = mapped_column(Uuid, nullable=True)  # bet id
    currency: Mapped[str] = mapped_column(String(3), default="USD")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=func.now())

    __table_args__ = (Index("ix_ledger_entries_account", "account_id", "created_at"),)
