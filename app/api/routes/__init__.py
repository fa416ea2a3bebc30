"""
BETSYNC - API Routes Package

- Odds (odds)
- Bets (bets)
- Health Checks (health)
"""

from fastapi import APIRouter

from app.api.routes import bets
from app.api.routes import health
from app.api.routes import odds

# Create main API router
api_router = APIRouter()

api_router.include_router(
    odds.router,
    prefix="/odds",
    tags=["Odds"]
)

api_router.include_router(
    bets.router,
    prefix="/bets",
    tags=["Bets"]
)

# Export individual routers for direct access
odds_router = odds.router
bets_router = bets.router
health_router = health.router

__all__ = [
    "api_router",
    "odds_router",
    "bets_router",
    "health_router",
]
