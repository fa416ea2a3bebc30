"""
BETSYNC - Bet Settlement Transaction

Turns a validated bet slip into a committed wager:

1. Reject unauthenticated callers before any read
2. Reject malformed slips before any I/O
3. Re-validate every leg against current odds
4. Price the wager with the validated current odds
5. Consult the fraud collaborator
6. Debit the account, insert the bet and its ledger entry in one transaction
7. Dispatch a notification after commit without waiting for it

The debit is a single guarded UPDATE (available_balance >= stake), so two
concurrent placements on the same account cannot both spend the same funds.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.database import DatabaseManager, TransactionManager
from app.core.exceptions import (
    BetSyncError,
    FraudBlockedError,
    GameClosedError,
    InsufficientFundsError,
    PersistenceError,
    SelectionNotFoundError,
    StaleOddsError,
    UnauthorizedError,
    ValidationError,
)
from app.models.models import (
    Bet,
    BetStatus,
    BetType,
    FinancialAccount,
    LedgerEntry,
    LedgerEntryType,
    MarketType,
)
from app.services.betting.fraud import FraudChecker, StakeLimitFraudCheck
from app.services.betting.payout import PayoutQuote, quote_parlay, quote_singles
from app.services.monitoring.metrics_service import monitoring_service
from app.services.odds.odds_validator import BetSelection, BetValidationResult, OddsValidator

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


def to_money(value: float) -> Decimal:
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass
class PlacedBet:
    """Committed wager returned to the caller"""
    id: UUID
    user_id: str
    bet_type: BetType
    selections: List[Dict[str, Any]]
    total_stake: Decimal
    potential_payout: Decimal
    combined_odds: Optional[int]
    odds_snapshot: Dict[str, int]
    status: BetStatus
    balance_after: Decimal
    placed_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": str(self.id),
            "user_id": self.user_id,
            "bet_type": self.bet_type.value,
            "selections": self.selections,
            "total_stake": float(self.total_stake),
            "potential_payout": float(self.potential_payout),
            "combined_odds": self.combined_odds,
            "odds_snapshot": self.odds_snapshot,
            "status": self.status.value,
            "balance_after": float(self.balance_after),
            "placed_at": self.placed_at.isoformat(),
        }


class BetPlacementService:
    """Validates, prices and atomically commits wagers"""

    def __init__(
        self,
        validator: OddsValidator,
        db: DatabaseManager,
        fraud_checker: Optional[FraudChecker] = None,
        notifier=None,
    ):
        self.validator = validator
        self.db = db
        self.transactions = TransactionManager(db)
        self.fraud_checker = fraud_checker or StakeLimitFraudCheck()
        self.notifier = notifier

    # =========================================================================
    # PUBLIC
    # =========================================================================

    async def place_bet(
        self,
        user_id: Optional[str],
        bet_type: str,
        selections: List[BetSelection],
        total_stake: float,
    ) -> PlacedBet:
        try:
            placed = await self._place(user_id, bet_type, selections, total_stake)
        except BetSyncError as e:
            monitoring_service.record_bet_rejected(e.error_code)
            raise
        monitoring_service.record_bet_placed(placed.bet_type.value)
        return placed

    async def _place(
        self,
        user_id: Optional[str],
        bet_type: str,
        selections: List[BetSelection],
        total_stake: float,
    ) -> PlacedBet:
        if not user_id:
            raise UnauthorizedError("Please sign in to place bets")

        kind = self._validate_request(bet_type, selections, total_stake)
        stakes = self._selection_stakes(kind, selections, total_stake)

        validation = await self.validator.validate_bet_odds(selections)
        if not validation.valid:
            self._raise_rejection(validation)

        current_odds = [r.current_odds for r in validation.results]
        quote = self._quote(kind, stakes, total_stake, current_odds)

        await self._check_fraud(user_id, total_stake, kind, selections)
        await self._check_balance(user_id, total_stake)

        placed = await self._commit(user_id, kind, selections, validation, stakes, total_stake, quote)
        logger.info(
            f"Bet {placed.id} placed for user {user_id}: {kind.value}, "
            f"stake {placed.total_stake}, payout {placed.potential_payout}"
        )

        self._notify(user_id, placed)
        return placed

    # =========================================================================
    # REQUEST RULES
    # =========================================================================

    def _validate_request(self, bet_type: str, selections: List[BetSelection], total_stake: float) -> BetType:
        try:
            kind = BetType(bet_type)
        except ValueError:
            raise ValidationError(f"Unknown bet type: {bet_type}", {"field": "bet_type"})

        if not selections:
            raise ValidationError("At least one selection is required", {"field": "selections"})
        if len(selections) > settings.MAX_SELECTIONS:
            raise ValidationError(
                f"Maximum {settings.MAX_SELECTIONS} selections allowed", {"field": "selections"}
            )
        if kind == BetType.PARLAY and len(selections) < 2:
            raise ValidationError("Parlay bets require at least 2 selections", {"field": "selections"})

        if total_stake is None or total_stake < settings.MIN_STAKE:
            raise ValidationError(f"Minimum stake is {settings.MIN_STAKE:g}", {"field": "total_stake"})
        if total_stake > settings.MAX_STAKE:
            raise ValidationError(f"Maximum stake is {settings.MAX_STAKE:g}", {"field": "total_stake"})

        for sel in selections:
            if not sel.game_id:
                raise ValidationError("Game ID is required", {"field": "game_id"})
            if not sel.selection:
                raise ValidationError("Selection is required", {"field": "selection"})
            try:
                MarketType(sel.market)
            except ValueError:
                raise ValidationError(f"Unknown market type: {sel.market}", {"field": "market"})
            if isinstance(sel.expected_odds, bool) or not isinstance(sel.expected_odds, int) or abs(sel.expected_odds) < 100:
                raise ValidationError("Invalid American odds format", {"field": "expected_odds"})

        keys = [sel.key for sel in selections]
        if len(set(keys)) != len(keys):
            raise ValidationError("Each selection may appear only once per slip", {"field": "selections"})

        if kind == BetType.SINGLE and len(selections) == 1:
            stake = selections[0].stake
            if stake is not None and to_money(stake) != to_money(total_stake):
                raise ValidationError(
                    "Selection stake must equal the total stake",
                    {"field": "total_stake", "selection_stakes": stake},
                )

        if kind == BetType.SINGLE and len(selections) > 1:
            if any(sel.stake is None or sel.stake < settings.MIN_STAKE for sel in selections):
                raise ValidationError(
                    f"Each single bet selection requires a stake of at least {settings.MIN_STAKE:g}",
                    {"field": "selections"},
                )

        return kind

    @staticmethod
    def _selection_stakes(kind: BetType, selections: List[BetSelection], total_stake: float) -> List[float]:
        if kind == BetType.PARLAY:
            return []
        if len(selections) == 1:
            return [selections[0].stake or total_stake]

        stakes = [sel.stake for sel in selections]
        if to_money(sum(stakes)) != to_money(total_stake):
            raise ValidationError(
                "Selection stakes must add up to the total stake",
                {"field": "total_stake", "selection_stakes": round(sum(stakes), 2)},
            )
        return stakes

    @staticmethod
    def _raise_rejection(validation: BetValidationResult) -> None:
        results = [r.to_dict() for r in validation.results]
        invalid = validation.invalid_results

        if any(r.is_game_closed for r in invalid):
            raise GameClosedError("One or more games have already ended", results)
        if any(r.is_game_missing or r.is_selection_missing for r in invalid):
            raise SelectionNotFoundError("One or more selections are no longer available", results)
        raise StaleOddsError("Some odds have changed since you added them to your bet slip", results)

    @staticmethod
    def _quote(kind: BetType, stakes: List[float], total_stake: float, current_odds: List[int]) -> PayoutQuote:
        if kind == BetType.PARLAY:
            return quote_parlay(total_stake, current_odds)
        return quote_singles(stakes, current_odds)

    # =========================================================================
    # COLLABORATORS
    # =========================================================================

    async def _check_fraud(
        self,
        user_id: str,
        total_stake: float,
        kind: BetType,
        selections: List[BetSelection],
    ) -> None:
        first = selections[0]
        context = {
            "bet_type": kind.value,
            "game_id": first.game_id,
            "market": first.market,
            "selection": first.selection,
            "selection_count": len(selections),
        }
        result = await self.fraud_checker.check(user_id, total_stake, context)

        if not result.allowed:
            logger.info(f"Fraud check blocked bet for user {user_id}: {result.to_dict()}")
            raise FraudBlockedError(result.message or "Bet blocked", result.risk_level.value)

        if result.is_high_risk:
            logger.warning(f"High-risk bet allowed for user {user_id}: score {result.risk_score}")

    async def _check_balance(self, user_id: str, total_stake: float) -> None:
        """Read-only early rejection; the guarded debit is the real check."""
        async with self.db.session() as session:
            result = await session.execute(
                select(FinancialAccount.available_balance).where(FinancialAccount.user_id == user_id)
            )
            available = result.scalar_one_or_none()

        if available is None or available < to_money(total_stake):
            raise InsufficientFundsError(float(available or 0), total_stake)

    def _notify(self, user_id: str, placed: PlacedBet) -> None:
        if self.notifier is None:
            return
        try:
            self.notifier.bet_placed(user_id, placed.to_dict())
        except Exception as e:
            logger.error(f"Failed to dispatch notification for bet {placed.id}: {e}")

    # =========================================================================
    # TRANSACTION
    # =========================================================================

    async def _commit(
        self,
        user_id: str,
        kind: BetType,
        selections: List[BetSelection],
        validation: BetValidationResult,
        stakes: List[float],
        total_stake: float,
        quote: PayoutQuote,
    ) -> PlacedBet:
        amount = to_money(total_stake)
        try:
            async with self.transactions.transaction() as session:
                account_id, balance_after = await self._debit_account(session, user_id, amount)
                bet = await self._create_bet(session, user_id, account_id, kind, selections, validation, stakes, amount, quote)
                await self._record_ledger_entry(session, account_id, amount, balance_after, bet.id)
        except SQLAlchemyError as e:
            logger.error(f"Bet placement failed for user {user_id}, transaction rolled back: {e}")
            raise PersistenceError() from e

        return PlacedBet(
            id=bet.id,
            user_id=user_id,
            bet_type=kind,
            selections=bet.selections,
            total_stake=amount,
            potential_payout=bet.potential_payout,
            combined_odds=bet.combined_odds,
            odds_snapshot=bet.odds_snapshot,
            status=BetStatus.PENDING,
            balance_after=balance_after,
            placed_at=bet.placed_at,
        )

    async def _debit_account(self, session: AsyncSession, user_id: str, amount: Decimal) -> Tuple[UUID, Decimal]:
        """Guarded debit; matches no row when funds are short."""
        stmt = (
            update(FinancialAccount)
            .where(
                FinancialAccount.user_id == user_id,
                FinancialAccount.available_balance >= amount,
            )
            .values(
                balance=FinancialAccount.balance - amount,
                available_balance=FinancialAccount.available_balance - amount,
            )
            .returning(FinancialAccount.id, FinancialAccount.available_balance)
            .execution_options(synchronize_session=False)
        )
        row = (await session.execute(stmt)).first()

        if row is None:
            current = await session.execute(
                select(FinancialAccount.available_balance).where(FinancialAccount.user_id == user_id)
            )
            available = current.scalar_one_or_none()
            raise InsufficientFundsError(float(available or 0), float(amount))

        return row[0], to_money(row[1])

    async def _create_bet(
        self,
        session: AsyncSession,
        user_id: str,
        account_id: UUID,
        kind: BetType,
        selections: List[BetSelection],
        validation: BetValidationResult,
        stakes: List[float],
        amount: Decimal,
        quote: PayoutQuote,
    ) -> Bet:
        odds_snapshot: Dict[str, int] = {}
        legs: List[Dict[str, Any]] = []
        for i, (sel, result) in enumerate(zip(selections, validation.results)):
            odds_snapshot[sel.key] = result.current_odds
            leg = sel.to_dict()
            leg["accepted_odds"] = result.current_odds
            if stakes:
                leg["stake"] = stakes[i]
            legs.append(leg)

        bet = Bet(
            user_id=user_id,
            account_id=account_id,
            bet_type=kind,
            selections=legs,
            total_stake=amount,
            potential_payout=to_money(quote.potential_payout),
            combined_odds=quote.combined_odds,
            status=BetStatus.PENDING,
            odds_snapshot=odds_snapshot,
            placed_at=datetime.now(timezone.utc),
        )
        session.add(bet)
        await session.flush()
        return bet

    async def _record_ledger_entry(
        self,
        session: AsyncSession,
        account_id: UUID,
        amount: Decimal,
        balance_after: Decimal,
        bet_id: UUID,
    ) -> None:
        session.add(LedgerEntry(
            account_id=account_id,
            entry_type=LedgerEntryType.BET_PLACED,
            amount=-amount,
            balance_after=balance_after,
            reference_id=bet_id,
            currency=settings.DEFAULT_CURRENCY,
        ))
        await session.flush()
