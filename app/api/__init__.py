"""
BETSYNC - API Module
FastAPI routes and schemas for odds reads, sync triggers and bet placement.
"""

from app.api.routes import bets, health, odds

__all__ = [
    "bets",
    "health",
    "odds",
]
