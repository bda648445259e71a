"""Community profile endpoints.

GET /api/community/users/{user_id}/stats      -- counts, reputation, badges
GET /api/community/users/{user_id}/reputation -- reputation ledger, newest first
GET /api/community/badges                     -- badge catalogue
"""

import uuid

from fastapi import APIRouter, Query
from sqlalchemy import select

from abi.dependencies import DbSession
from abi.errors import NotFound
from abi.middleware.rate_limiter import ReadRateLimit
from abi.models.user import Profile
from abi.schemas.reputation import (
    BadgeResponse,
    ReputationEntryResponse,
    ReputationHistoryResponse,
    UserBadgeResponse,
    UserStatsResponse,
)
from abi.services import reputation
from abi.services.badges import get_user_community_stats, list_badges

router = APIRouter(prefix="/api/community", tags=["users"])


async def _get_profile(db, user_id: uuid.UUID) -> Profile:
    profile = await db.scalar(
        select(Profile)
        .where(Profile.user_id == user_id)
        .execution_options(populate_existing=True)
    )
    if profile is None:
        raise NotFound("User not found")
    return profile


@router.get("/users/{user_id}/stats", response_model=UserStatsResponse)
async def get_user_stats(
    user_id: uuid.UUID,
    db: DbSession,
    _rate: ReadRateLimit,
) -> UserStatsResponse:
    profile = await _get_profile(db, user_id)
    stats = await get_user_community_stats(db, user_id)
    badges = [
        UserBadgeResponse(
            **BadgeResponse.model_validate(badge).model_dump(),
            awarded_at=awarded_at,
        )
        for badge, awarded_at in stats.pop("badges")
    ]
    return UserStatsResponse(
        user_id=user_id,
        display_name=profile.display_name,
        question_count=stats["question_count"],
        answer_count=stats["answer_count"],
        accepted_answer_count=stats["accepted_answer_count"],
        total_upvotes=stats["total_upvotes"],
        votes_cast=stats["votes_cast"],
        reputation=stats["reputation"],
        current_streak=stats["current_streak"],
        longest_streak=stats["longest_streak"],
        badges=badges,
    )


@router.get("/users/{user_id}/reputation", response_model=ReputationHistoryResponse)
async def get_reputation_history(
    user_id: uuid.UUID,
    db: DbSession,
    _rate: ReadRateLimit,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
) -> ReputationHistoryResponse:
    profile = await _get_profile(db, user_id)
    entries, total = await reputation.get_history(db, user_id, limit=limit, offset=offset)
    return ReputationHistoryResponse(
        user_id=user_id,
        reputation=profile.reputation,
        entries=[ReputationEntryResponse.model_validate(e) for e in entries],
        total_count=total,
    )


@router.get("/badges", response_model=list[BadgeResponse])
async def get_badges(db: DbSession, _rate: ReadRateLimit) -> list[BadgeResponse]:
    return [BadgeResponse.model_validate(b) for b in await list_badges(db)]
