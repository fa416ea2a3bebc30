"""
BETSYNC - Database Models
"""

from app.models.models import (
    Base,

    # Enums
    GameStatus,
    MarketType,
    BetType,
    BetStatus,
    OddsChangeType,
    LedgerEntryType,

    # Games & odds history
    Game,
    OddsSnapshotRecord,
    OddsChangeLog,

    # Money
    FinancialAccount,
    Bet,
    LedgerEntry,
)

__all__ = [
    "Base",
    "GameStatus",
    "MarketType",
    "BetType",
    "BetStatus",
    "OddsChangeType",
    "LedgerEntryType",
    "Game",
    "OddsSnapshotRecord",
    "OddsChangeLog",
    "FinancialAccount",
    "Bet",
    "LedgerEntry",
]
