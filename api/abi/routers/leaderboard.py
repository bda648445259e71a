"""Reputation leaderboard.

GET /api/community/leaderboard?period=week|month|all-time&limit=
"""

from typing import Literal

from fastapi import APIRouter, Query

from abi.dependencies import DbSession, OptionalUser
from abi.middleware.rate_limiter import ReadRateLimit
from abi.schemas.reputation import LeaderboardEntryResponse, LeaderboardResponse
from abi.services.leaderboard import get_leaderboard as get_leaderboard_service

router = APIRouter(prefix="/api/community", tags=["leaderboard"])


@router.get("/leaderboard", response_model=LeaderboardResponse)
async def get_leaderboard(
    db: DbSession,
    viewer: OptionalUser,
    _rate: ReadRateLimit,
    period: Literal["week", "month", "all-time"] = "all-time",
    limit: int = Query(default=10, ge=1, le=100),
) -> LeaderboardResponse:
    """Top users by reputation. Signed-in viewers also get their own rank."""
    board = await get_leaderboard_service(
        db, period=period, limit=limit, viewer_id=viewer.id if viewer else None
    )
    return LeaderboardResponse(
        period=board.period,
        entries=[LeaderboardEntryResponse.model_validate(e) for e in board.entries],
        current_user_rank=board.current_user_rank,
        current_user_reputation=board.current_user_reputation,
    )
