"""Reputation leaderboard.

All-time standings read the cached profile totals. Weekly and monthly
standings sum reputation_log changes since the start of the window, so they
include reversals that happened inside the window.
"""

import uuid
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from abi.errors import ValidationError
from abi.models.base import utcnow
from abi.models.reputation import ReputationLogEntry
from abi.models.user import Profile

PERIODS = {
    "week": timedelta(days=7),
    "month": timedelta(days=30),
    "all-time": None,
}


@dataclass
class LeaderboardEntry:
    rank: int
    user_id: uuid.UUID
    display_name: Optional[str]
    avatar_url: Optional[str]
    reputation: int


@dataclass
class Leaderboard:
    period: str
    entries: list[LeaderboardEntry]
    current_user_rank: Optional[int] = None
    current_user_reputation: Optional[int] = None


def _period_totals(since):
    return (
        select(
            ReputationLogEntry.user_id.label("user_id"),
            func.sum(ReputationLogEntry.change).label("points"),
        )
        .where(ReputationLogEntry.created_at >= since)
        .group_by(ReputationLogEntry.user_id)
        .subquery()
    )


async def get_leaderboard(
    db: AsyncSession,
    period: str = "all-time",
    limit: int = 10,
    viewer_id: Optional[uuid.UUID] = None,
) -> Leaderboard:
    if period not in PERIODS:
        raise ValidationError("period must be one of: week, month, all-time")

    window = PERIODS[period]
    if window is None:
        points = Profile.reputation
        stmt = select(
            Profile.user_id, Profile.display_name, Profile.avatar_url, points.label("points")
        ).where(Profile.reputation > 0)
        totals = None
    else:
        totals = _period_totals(utcnow() - window)
        points = totals.c.points
        stmt = (
            select(
                Profile.user_id,
                Profile.display_name,
                Profile.avatar_url,
                points.label("points"),
            )
            .join(totals, totals.c.user_id == Profile.user_id)
            .where(points > 0)
        )

    result = await db.execute(stmt.order_by(points.desc(), Profile.user_id).limit(limit))
    entries = [
        LeaderboardEntry(
            rank=index + 1,
            user_id=row.user_id,
            display_name=row.display_name,
            avatar_url=row.avatar_url,
            reputation=int(row.points),
        )
        for index, row in enumerate(result.all())
    ]
    board = Leaderboard(period=period, entries=entries)

    if viewer_id is not None:
        if totals is None:
            mine = await db.scalar(
                select(Profile.reputation).where(Profile.user_id == viewer_id)
            )
            mine = mine or 0
            ahead = await db.scalar(
                select(func.count()).select_from(Profile).where(Profile.reputation > mine)
            )
        else:
            mine = await db.scalar(
                select(totals.c.points).where(totals.c.user_id == viewer_id)
            )
            mine = int(mine or 0)
            ahead = await db.scalar(
                select(func.count()).select_from(totals).where(totals.c.points > mine)
            )
        board.current_user_rank = (ahead or 0) + 1
        board.current_user_reputation = mine

    return board
