"""
BETSYNC - Bet Placement Routes
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends

from app.api.dependencies import get_bet_service, get_optional_user_id
from app.api.schemas import BetResponse, ErrorResponse, PlaceBetRequest
from app.services.betting.bet_placement import BetPlacementService

logger = logging.getLogger(__name__)


router = APIRouter(tags=["bets"])


@router.post(
    "",
    response_model=BetResponse,
    responses={
        status_code: {"model": ErrorResponse}
        for status_code in (400, 401, 403, 404, 409, 503)
    },
)
async def place_bet(
    request: PlaceBetRequest,
    user_id: Optional[str] = Depends(get_optional_user_id),
    service: BetPlacementService = Depends(get_bet_service),
):
    """
    Place a bet.

    Every leg is re-validated against current odds. Odds drift returns 409
    with each leg's current odds so the slip can be re-accepted.
    """
    placed = await service.place_bet(
        user_id,
        request.bet_type.value,
        [s.to_selection() for s in request.selections],
        request.total_stake,
    )
    return placed.to_dict()
