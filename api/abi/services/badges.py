"""Badge catalogue and evaluation engine.

Badges are one-shot: evaluation only considers badges a user does not hold,
and the (user_id, badge_id) unique constraint turns a racing duplicate award
into a no-op. Evaluation runs after the triggering write has committed and
must never fail the user's request; see run_badge_checks.
"""

import uuid
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Iterable, Optional

import structlog
from sqlalchemy import case, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from abi.config import settings
from abi.metrics import badge_check_failures, badges_awarded
from abi.models.answer import Answer
from abi.models.badge import Badge, UserBadge
from abi.models.question import Question
from abi.models.user import Profile
from abi.models.vote import Vote

log = structlog.get_logger()


def _badge(slug, name, description, tier, icon, criteria_type, threshold=None) -> dict:
    criteria = {"type": criteria_type}
    if threshold is not None:
        criteria["threshold"] = threshold
    return {
        "slug": slug,
        "name": name,
        "description": description,
        "tier": tier,
        "icon": icon,
        "criteria": criteria,
    }


BADGE_CATALOGUE: list[dict] = [
    # Bronze
    _badge("first-question", "First Question", "Asked your first question", "bronze", "HelpCircle", "first_question"),
    _badge("first-answer", "First Answer", "Posted your first answer", "bronze", "MessageSquare", "first_answer"),
    _badge("curious", "Curious", "Asked 5 questions", "bronze", "Search", "question_count", 5),
    _badge("contributor", "Contributor", "Posted 5 answers", "bronze", "PenLine", "answer_count", 5),
    _badge("supporter", "Supporter", "Cast 10 votes", "bronze", "ThumbsUp", "votes_cast", 10),
    _badge("consistent", "Consistent", "Maintained a 7-day activity streak", "bronze", "Flame", "streak_days", 7),
    # Silver
    _badge("good-question", "Good Question", "Received 25 upvotes on your questions", "silver", "ThumbsUp", "upvotes_received", 25),
    _badge("helpful", "Helpful", "Posted 10 answers", "silver", "Heart", "answer_count", 10),
    _badge("teacher", "Teacher", "Had 5 answers accepted", "silver", "GraduationCap", "accepted_count", 5),
    _badge("rising-star", "Rising Star", "Reached 500 reputation", "silver", "TrendingUp", "reputation", 500),
    _badge("civic-duty", "Civic Duty", "Cast 100 votes", "silver", "Vote", "votes_cast", 100),
    _badge("dedicated", "Dedicated", "Maintained a 14-day activity streak", "silver", "Flame", "streak_days", 14),
    _badge("nice-answer", "Nice Answer", "Posted an answer with 10+ score", "silver", "Star", "answer_score", 10),
    _badge("nice-question", "Nice Question", "Asked a question with 10+ score", "silver", "Sparkles", "question_score", 10),
    # Gold
    _badge("great-answer", "Great Answer", "Received 100 upvotes on your answers", "gold", "Award", "upvotes_received", 100),
    _badge("guru", "Guru", "Had 50 answers accepted", "gold", "Crown", "accepted_count", 50),
    _badge("legend", "Legend", "Reached 10,000 reputation", "gold", "Star", "reputation", 10000),
    _badge("inquisitor", "Inquisitor", "Asked 50 questions", "gold", "HelpCircle", "question_count", 50),
    _badge("electorate", "Electorate", "Cast 500 votes", "gold", "CheckCircle", "votes_cast", 500),
    _badge("fanatic", "Fanatic", "Maintained a 30-day activity streak", "gold", "Flame", "streak_days", 30),
    _badge("yearling", "Yearling", "Achieved a 100-day longest streak", "gold", "Calendar", "longest_streak", 100),
    _badge("stellar-question", "Stellar Question", "Asked a question with 25+ score", "gold", "Sparkles", "question_score", 25),
    _badge("stellar-answer", "Stellar Answer", "Posted an answer with 25+ score", "gold", "Zap", "answer_score", 25),
]


@dataclass
class UserStats:
    question_count: int = 0
    answer_count: int = 0
    accepted_answer_count: int = 0
    total_upvotes: int = 0
    reputation: int = 0
    current_streak: int = 0
    longest_streak: int = 0
    votes_cast: int = 0
    max_question_score: int = 0
    max_answer_score: int = 0


def _positive(column):
    return case((column > 0, column), else_=0)


async def get_user_stats(db: AsyncSession, user_id: uuid.UUID) -> UserStats:
    """Derive the badge-relevant aggregates for one user."""
    q_row = (
        await db.execute(
            select(
                func.count(Question.id),
                func.coalesce(func.sum(_positive(Question.score)), 0),
                func.coalesce(func.max(Question.score), 0),
            ).where(Question.user_id == user_id)
        )
    ).one()
    a_row = (
        await db.execute(
            select(
                func.count(Answer.id),
                func.coalesce(func.sum(case((Answer.is_accepted, 1), else_=0)), 0),
                func.coalesce(func.sum(_positive(Answer.score)), 0),
                func.coalesce(func.max(Answer.score), 0),
            ).where(Answer.user_id == user_id)
        )
    ).one()
    votes = await db.scalar(select(func.count(Vote.id)).where(Vote.user_id == user_id))
    profile = (
        await db.execute(
            select(Profile.reputation, Profile.current_streak, Profile.longest_streak).where(
                Profile.user_id == user_id
            )
        )
    ).one_or_none()

    stats = UserStats(
        question_count=q_row[0],
        answer_count=a_row[0],
        accepted_answer_count=int(a_row[1]),
        total_upvotes=int(q_row[1]) + int(a_row[2]),
        votes_cast=votes or 0,
        max_question_score=int(q_row[2]),
        max_answer_score=int(a_row[3]),
    )
    if profile is not None:
        stats.reputation, stats.current_streak, stats.longest_streak = profile
    return stats


_CRITERIA_STATS = {
    "first_question": "question_count",
    "first_answer": "answer_count",
    "question_count": "question_count",
    "answer_count": "answer_count",
    "accepted_count": "accepted_answer_count",
    "upvotes_received": "total_upvotes",
    "reputation": "reputation",
    "streak_days": "current_streak",
    "longest_streak": "longest_streak",
    "votes_cast": "votes_cast",
    # Helpful votes are not tracked separately; votes cast stands in
    "helpful_votes": "votes_cast",
    "answer_score": "max_answer_score",
    "question_score": "max_question_score",
}


def evaluate_criterion(criteria: dict, stats: UserStats) -> bool:
    """True when ``stats`` satisfies a badge criterion. Unknown types never pass."""
    attr = _CRITERIA_STATS.get(criteria.get("type"))
    if attr is None:
        return False
    threshold = criteria.get("threshold") or 1
    return getattr(stats, attr) >= threshold


async def get_badge_by_slug(db: AsyncSession, slug: str) -> Optional[Badge]:
    return await db.scalar(select(Badge).where(Badge.slug == slug))


async def has_badge(db: AsyncSession, user_id: uuid.UUID, badge_id: uuid.UUID) -> bool:
    result = await db.execute(
        select(UserBadge.id).where(
            UserBadge.user_id == user_id, UserBadge.badge_id == badge_id
        )
    )
    return result.scalar_one_or_none() is not None


async def award_badge(db: AsyncSession, user_id: uuid.UUID, badge: Badge) -> bool:
    """Insert a user_badges row. Returns False if the user already holds it."""
    if await has_badge(db, user_id, badge.id):
        return False

    # Savepoint: a duplicate undoes only this row, not earlier awards
    try:
        async with db.begin_nested():
            db.add(UserBadge(user_id=user_id, badge_id=badge.id))
            await db.flush()
    except IntegrityError:
        log.info("badge_already_awarded", user_id=str(user_id), badge=badge.slug)
        return False

    badges_awarded.labels(slug=badge.slug, tier=badge.tier).inc()
    log.info("badge_awarded", user_id=str(user_id), badge=badge.slug, tier=badge.tier)
    return True


async def check_and_award_badges(db: AsyncSession, user_id: uuid.UUID) -> list[str]:
    """Evaluate every badge the user does not hold; award those that pass.

    Returns the slugs newly awarded. The caller commits.
    """
    held = select(UserBadge.badge_id).where(UserBadge.user_id == user_id)
    result = await db.execute(
        select(Badge).where(Badge.id.not_in(held)).order_by(Badge.name)
    )
    candidates = list(result.scalars().all())
    if not candidates:
        return []

    stats = await get_user_stats(db, user_id)
    awarded: list[str] = []
    for badge in candidates:
        if evaluate_criterion(badge.criteria, stats):
            if await award_badge(db, user_id, badge):
                awarded.append(badge.slug)
    return awarded


async def run_badge_checks(
    db: AsyncSession, user_ids: Iterable[Optional[uuid.UUID]]
) -> dict[uuid.UUID, list[str]]:
    """Post-commit badge evaluation for the users touched by a write.

    Each user's awards commit independently. Failures are logged and
    swallowed so the already-committed request still succeeds.
    """
    awarded: dict[uuid.UUID, list[str]] = {}
    if not settings.badge_checks_enabled:
        return awarded

    for user_id in dict.fromkeys(uid for uid in user_ids if uid is not None):
        try:
            slugs = await check_and_award_badges(db, user_id)
            await db.commit()
        except Exception:
            await db.rollback()
            badge_check_failures.inc()
            log.error("badge_check_failed", user_id=str(user_id), exc_info=True)
            continue
        if slugs:
            awarded[user_id] = slugs
    return awarded


async def seed_badges(db: AsyncSession) -> int:
    """Upsert the catalogue by slug. Returns how many badges were created."""
    created = 0
    for entry in BADGE_CATALOGUE:
        badge = await get_badge_by_slug(db, entry["slug"])
        if badge is None:
            db.add(Badge(**entry))
            created += 1
        else:
            for key, value in entry.items():
                setattr(badge, key, value)
    await db.flush()
    log.info("badges_seeded", created=created, total=len(BADGE_CATALOGUE))
    return created


async def list_badges(db: AsyncSession) -> list[Badge]:
    tier_order = case({"bronze": 0, "silver": 1, "gold": 2}, value=Badge.tier, else_=3)
    result = await db.execute(select(Badge).order_by(tier_order, Badge.name))
    return list(result.scalars().all())


async def get_user_badges(
    db: AsyncSession, user_id: uuid.UUID
) -> list[tuple[Badge, datetime]]:
    """(badge, awarded_at) pairs for a user, most recent first."""
    result = await db.execute(
        select(Badge, UserBadge.awarded_at)
        .join(UserBadge, UserBadge.badge_id == Badge.id)
        .where(UserBadge.user_id == user_id)
        .order_by(UserBadge.awarded_at.desc())
    )
    return [(row[0], row[1]) for row in result.all()]


async def get_user_community_stats(db: AsyncSession, user_id: uuid.UUID) -> dict:
    stats = await get_user_stats(db, user_id)
    badges = await get_user_badges(db, user_id)
    return {
        **asdict(stats),
        "badges": badges,
    }
