"""
BETSYNC - Betting Services Module

This module provides the bet settlement pipeline:
- American odds payout and parlay pricing
- Fraud collaborator clients
- Atomic bet placement (debit, bet record and ledger entry)
"""

from .payout import (
    PayoutQuote,
    american_to_decimal,
    calculate_parlay_odds,
    calculate_payout,
    decimal_to_american,
    quote_parlay,
    quote_singles,
)
from .fraud import (
    FraudChecker,
    FraudCheckResult,
    HttpFraudChecker,
    RiskLevel,
    StakeLimitFraudCheck,
    get_fraud_checker,
)
from .bet_placement import BetPlacementService, PlacedBet

__all__ = [
    # Payout
    'PayoutQuote',
    'american_to_decimal',
    'calculate_parlay_odds',
    'calculate_payout',
    'decimal_to_american',
    'quote_parlay',
    'quote_singles',

    # Fraud
    'FraudChecker',
    'FraudCheckResult',
    'HttpFraudChecker',
    'RiskLevel',
    'StakeLimitFraudCheck',
    'get_fraud_checker',

    # Placement
    'BetPlacementService',
    'PlacedBet',
]
