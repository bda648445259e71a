"""Reputation ledger.

Every reputation change is appended to ``reputation_log`` and applied to
``profiles.reputation`` in the caller's transaction. The profile total is
clamped at zero; the ledger row always records the nominal delta so that an
award and its reversal for the same source sum to zero.

Point table:

    question_upvoted   +5   (question owner)
    question_downvoted -2   (question owner)
    answer_upvoted    +10   (answer owner)
    answer_downvoted   -2   (answer owner)
    answer_accepted   +15   (answerer)
    accepted_answer    +2   (question owner)
    downvote_cast      -1   (the voter)

Reversals use the reason ``<base_reason>_reversed`` with the negated delta.
"""

import uuid
from typing import Optional

import structlog
from sqlalchemy import case, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from abi.metrics import reputation_entries
from abi.models.reputation import ReputationLogEntry
from abi.models.user import Profile

log = structlog.get_logger()

REPUTATION_POINTS: dict[str, int] = {
    "question_upvoted": 5,
    "question_downvoted": -2,
    "answer_upvoted": 10,
    "answer_downvoted": -2,
    "answer_accepted": 15,
    "accepted_answer": 2,
    "downvote_cast": -1,
}

REVERSED_SUFFIX = "_reversed"


def reversed_reason(base_reason: str) -> str:
    return f"{base_reason}{REVERSED_SUFFIX}"


async def _apply(
    db: AsyncSession,
    user_id: uuid.UUID,
    change: int,
    reason: str,
    source_type: Optional[str],
    source_id: Optional[uuid.UUID],
) -> ReputationLogEntry:
    entry = ReputationLogEntry(
        user_id=user_id,
        change=change,
        reason=reason,
        source_type=source_type,
        source_id=source_id,
    )
    db.add(entry)

    # Atomic clamped update: reputation = max(0, reputation + change)
    new_value = Profile.reputation + change
    await db.execute(
        update(Profile)
        .where(Profile.user_id == user_id)
        .values(reputation=case((new_value < 0, 0), else_=new_value))
        .execution_options(synchronize_session=False)
    )
    await db.flush()

    reputation_entries.labels(reason=reason).inc()
    log.debug(
        "reputation_changed",
        user_id=str(user_id),
        change=change,
        reason=reason,
        source_type=source_type,
        source_id=str(source_id) if source_id else None,
    )
    return entry


async def award(
    db: AsyncSession,
    user_id: uuid.UUID,
    reason: str,
    source_type: Optional[str] = None,
    source_id: Optional[uuid.UUID] = None,
) -> ReputationLogEntry:
    """Append a ledger row for ``reason`` and apply its delta to the profile.

    Never raises for a negative running total; the profile is clamped at zero.
    The caller owns the transaction.
    """
    return await _apply(
        db, user_id, REPUTATION_POINTS[reason], reason, source_type, source_id
    )


async def reverse(
    db: AsyncSession,
    user_id: uuid.UUID,
    base_reason: str,
    source_type: Optional[str] = None,
    source_id: Optional[uuid.UUID] = None,
) -> ReputationLogEntry:
    """Undo a prior ``award`` of ``base_reason`` for the same source."""
    return await _apply(
        db,
        user_id,
        -REPUTATION_POINTS[base_reason],
        reversed_reason(base_reason),
        source_type,
        source_id,
    )


async def get_reputation(db: AsyncSession, user_id: uuid.UUID) -> int:
    result = await db.execute(
        select(Profile.reputation).where(Profile.user_id == user_id)
    )
    return result.scalar_one_or_none() or 0


async def get_history(
    db: AsyncSession,
    user_id: uuid.UUID,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[ReputationLogEntry], int]:
    """Return a page of a user's ledger rows (newest first) and the row count."""
    total = await db.scalar(
        select(func.count())
        .select_from(ReputationLogEntry)
        .where(ReputationLogEntry.user_id == user_id)
    )
    result = await db.execute(
        select(ReputationLogEntry)
        .where(ReputationLogEntry.user_id == user_id)
        .order_by(ReputationLogEntry.created_at.desc())
        .limit(limit)
        .offset(offset)
    )
    return list(result.scalars().all()), total or 0
