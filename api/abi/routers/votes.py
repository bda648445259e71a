"""Vote endpoint for questions and answers.

POST /api/community/votes -- cast, switch, toggle off, or clear (value 0) a vote
"""

from fastapi import APIRouter

from abi.dependencies import CurrentUser, DbSession
from abi.middleware.rate_limiter import WriteRateLimit
from abi.schemas.vote import VoteRequest, VoteResponse
from abi.services.badges import run_badge_checks
from abi.services.votes import cast_vote as cast_vote_service

router = APIRouter(prefix="/api/community", tags=["votes"])


@router.post("/votes", response_model=VoteResponse)
async def cast_vote(
    body: VoteRequest,
    user: CurrentUser,
    db: DbSession,
    _rate: WriteRateLimit,
) -> VoteResponse:
    """Apply a vote request.

    - Target must exist (404)
    - Cannot vote on your own question or answer (403)
    - Repeating your current vote removes it; the opposite value switches it

    Score and reputation changes commit together; badges are evaluated after.
    """
    outcome = await cast_vote_service(
        db, user.id, body.target_type, body.target_id, body.value
    )
    await db.commit()

    if outcome.transition != "noop":
        await run_badge_checks(db, [user.id, outcome.target_owner_id])

    return VoteResponse(new_score=outcome.new_score, user_vote=outcome.user_vote)
