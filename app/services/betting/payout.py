"""
BETSYNC - Payout Calculator

American odds payout math for single and parlay wagers.

- Single leg: payout = stake + stake * odds / 100 for underdogs (odds > 0),
  stake + stake * 100 / |odds| for favorites (odds < 0).
- Parlay: each leg is converted to decimal odds, the decimal odds are
  multiplied, and the product is converted back to American odds before the
  single-leg formula is applied to the total stake.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

logger = logging.getLogger(__name__)


# =============================================================================
# ODDS CONVERSION
# =============================================================================

def american_to_decimal(odds: int) -> float:
    """Convert American odds to decimal odds."""
    if odds > 0:
        return 1 + odds / 100
    return 1 + 100 / abs(odds)


def decimal_to_american(decimal_odds: float) -> int:
    """Convert decimal odds back to (rounded) American odds."""
    if decimal_odds <= 1:
        raise ValueError(f"Decimal odds must be greater than 1, got {decimal_odds}")
    if decimal_odds >= 2:
        return round((decimal_odds - 1) * 100)
    return round(-100 / (decimal_odds - 1))


def calculate_payout(stake: float, odds: int) -> float:
    """Total return (stake included) for a winning leg at American odds."""
    if odds > 0:
        return stake + stake * odds / 100
    return stake + stake * 100 / abs(odds)


def calculate_parlay_odds(odds_list: Sequence[int]) -> int:
    """Combined American odds for a parlay."""
    if not odds_list:
        raise ValueError("A parlay needs at least one leg")

    combined = 1.0
    for odds in odds_list:
        combined *= american_to_decimal(odds)
    return decimal_to_american(combined)


# =============================================================================
# BET SLIP PAYOUT
# =============================================================================

@dataclass
class PayoutQuote:
    """Payout computed from validated current odds."""
    potential_payout: float
    combined_odds: Optional[int] = None
    leg_payouts: List[float] = field(default_factory=list)

    def to_dict(self) -> Dict[str, object]:
        return {
            "potential_payout": self.potential_payout,
            "combined_odds": self.combined_odds,
            "leg_payouts": self.leg_payouts,
        }


def quote_parlay(total_stake: float, current_odds: Sequence[int]) -> PayoutQuote:
    combined = calculate_parlay_odds(current_odds)
    payout = round(calculate_payout(total_stake, combined), 2)
    return PayoutQuote(potential_payout=payout, combined_odds=combined)


def quote_singles(stakes: Sequence[float], current_odds: Sequence[int]) -> PayoutQuote:
    """Each selection pays independently against its own stake; payouts are summed."""
    if len(stakes) != len(current_odds):
        raise ValueError("Each selection needs exactly one stake")

    legs = [round(calculate_payout(s, o), 2) for s, o in zip(stakes, current_odds)]
    return PayoutQuote(potential_payout=round(sum(legs), 2), leg_payouts=legs)
