"""
BETSYNC - Odds Sync and Bet Settlement Service

Keeps a live odds feed consistent across the upstream provider, the Redis
cache and the transactional store, and turns validated bet slips into
atomic financial commitments.
"""

__version__ = "1.0.0"
__description__ = "Odds synchronization, caching and bet settlement service"
