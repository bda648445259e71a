"""Pydantic schemas for reputation, badges, user stats and the leaderboard."""

import uuid
from datetime import datetime
from typing import Optional

from abi.schemas.common import CamelModel


class BadgeResponse(CamelModel):
    id: uuid.UUID
    slug: str
    name: str
    description: str
    tier: str
    icon: str
    criteria: dict


class UserBadgeResponse(BadgeResponse):
    awarded_at: datetime


class UserStatsResponse(CamelModel):
    user_id: uuid.UUID
    display_name: Optional[str] = None
    question_count: int
    answer_count: int
    accepted_answer_count: int
    total_upvotes: int
    votes_cast: int
    reputation: int
    current_streak: int
    longest_streak: int
    badges: list[UserBadgeResponse]


class ReputationEntryResponse(CamelModel):
    id: uuid.UUID
    change: int
    reason: str
    source_type: Optional[str] = None
    source_id: Optional[uuid.UUID] = None
    created_at: datetime


class ReputationHistoryResponse(CamelModel):
    user_id: uuid.UUID
    reputation: int
    entries: list[ReputationEntryResponse]
    total_count: int


class LeaderboardEntryResponse(CamelModel):
    rank: int
    user_id: uuid.UUID
    display_name: Optional[str] = None
    avatar_url: Optional[str] = None
    reputation: int


class LeaderboardResponse(CamelModel):
    period: str
    entries: list[LeaderboardEntryResponse]
    current_user_rank: Optional[int] = None
    current_user_reputation: Optional[int] = None
