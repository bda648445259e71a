"""Vote engine.

A user's vote on a target is in one of three states: none, +1 or -1. A cast
request moves the (user, target) pair between those states. The transition
table below is the whole contract:

    old   new   row      score   owner ledger                 voter ledger
    0     v     insert   +v      award <type>_<dir>           award downvote_cast if v=-1
    v     0     delete   -v      reverse <type>_<dir>         reverse downvote_cast if v=-1
    v    -v     update   -2v     reverse old, award new       refund or charge downvote_cast

Casting the value already held toggles it off (v -> 0). A value of 0 removes
any existing vote. Every ledger row posted here uses the voted target as its
source, so each award/reverse pair nets to zero.

Score updates are column expressions (score = score + delta) inside the
caller's transaction; the existing vote row (or, failing that, the target
row) is locked FOR UPDATE to serialise concurrent casts by the same user.
A first cast re-reads the vote once it holds the target lock, so it sees a
cast that committed while it waited.
"""

import uuid
from dataclasses import dataclass
from typing import Optional

import structlog
from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from abi.errors import Conflict, SelfVoteForbidden, TargetNotFound, ValidationError
from abi.metrics import votes_cast
from abi.models.answer import Answer
from abi.models.base import utcnow
from abi.models.question import Question
from abi.models.vote import TargetType, Vote
from abi.services import reputation

log = structlog.get_logger()

_TARGET_MODELS = {
    TargetType.question.value: Question,
    TargetType.answer.value: Answer,
}

DOWNVOTE_COST_REASON = "downvote_cast"


@dataclass
class VoteOutcome:
    new_score: int
    user_vote: Optional[int]
    target_owner_id: uuid.UUID
    transition: str


def owner_reason(target_type: str, value: int) -> str:
    """Ledger reason credited to the target owner for a vote of ``value``."""
    direction = "upvoted" if value > 0 else "downvoted"
    return f"{target_type}_{direction}"


def resolve_transition(old: int, requested: int) -> int:
    """Return the new vote state for a request of ``requested`` from ``old``.

    Repeating the held value toggles it off; 0 always clears.
    """
    if requested not in (-1, 0, 1):
        raise ValidationError("Vote value must be -1, 0 or 1")
    if requested == 0 or requested == old:
        return 0
    return requested


def _transition_name(old: int, new: int) -> str:
    if old == new:
        return "noop"
    if old == 0:
        return "cast"
    if new == 0:
        return "undo"
    return "switch"


async def _find_vote(
    db: AsyncSession,
    voter_id: uuid.UUID,
    target_type: str,
    target_id: uuid.UUID,
) -> Optional[Vote]:
    result = await db.execute(
        select(Vote)
        .where(
            Vote.user_id == voter_id,
            Vote.target_type == target_type,
            Vote.target_id == target_id,
        )
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def _load_vote_and_target(
    db: AsyncSession,
    voter_id: uuid.UUID,
    target_type: str,
    target_id: uuid.UUID,
):
    model = _TARGET_MODELS[target_type]

    vote = await _find_vote(db, voter_id, target_type, target_id)

    target_stmt = select(model.id, model.user_id).where(model.id == target_id)
    if vote is None:
        # No vote row to lock yet; serialise on the target instead
        target_stmt = target_stmt.with_for_update()
    target = (await db.execute(target_stmt)).one_or_none()

    if vote is None and target is not None:
        # A concurrent first cast may have committed while we waited on the target lock
        vote = await _find_vote(db, voter_id, target_type, target_id)
    return vote, target


async def _post_ledger(
    db: AsyncSession,
    voter_id: uuid.UUID,
    owner_id: uuid.UUID,
    target_type: str,
    target_id: uuid.UUID,
    old: int,
    new: int,
) -> None:
    if old != 0:
        await reputation.reverse(
            db, owner_id, owner_reason(target_type, old), target_type, target_id
        )
        if old == -1:
            await reputation.reverse(
                db, voter_id, DOWNVOTE_COST_REASON, target_type, target_id
            )
    if new != 0:
        await reputation.award(
            db, owner_id, owner_reason(target_type, new), target_type, target_id
        )
        if new == -1:
            await reputation.award(
                db, voter_id, DOWNVOTE_COST_REASON, target_type, target_id
            )


async def cast_vote(
    db: AsyncSession,
    voter_id: uuid.UUID,
    target_type: str,
    target_id: uuid.UUID,
    value: int,
) -> VoteOutcome:
    """Apply a vote request and return the target's new score and the voter's state.

    Raises:
        ValidationError: unknown target type or value outside {-1, 0, 1}.
        TargetNotFound: the question/answer does not exist.
        SelfVoteForbidden: the voter owns the target.
        Conflict: a concurrent cast by the same voter won the insert race.
    """
    if target_type not in _TARGET_MODELS:
        raise ValidationError("targetType must be 'question' or 'answer'")

    vote, target = await _load_vote_and_target(db, voter_id, target_type, target_id)
    if target is None:
        raise TargetNotFound(f"{target_type.capitalize()} not found")
    owner_id = target.user_id
    if owner_id == voter_id:
        raise SelfVoteForbidden()

    old = vote.value if vote is not None else 0
    new = resolve_transition(old, value)
    transition = _transition_name(old, new)
    model = _TARGET_MODELS[target_type]

    if transition == "noop":
        score = await db.scalar(select(model.score).where(model.id == target_id))
        return VoteOutcome(score, None, owner_id, transition)

    if old == 0:
        db.add(
            Vote(user_id=voter_id, target_type=target_type, target_id=target_id, value=new)
        )
        try:
            await db.flush()
        except IntegrityError as exc:
            await db.rollback()
            raise Conflict("Vote was changed concurrently; retry the request") from exc
    elif new == 0:
        await db.execute(delete(Vote).where(Vote.id == vote.id))
    else:
        await db.execute(
            update(Vote)
            .where(Vote.id == vote.id)
            .values(value=new, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )

    # Single delta covers cast, undo and switch: new - old
    await db.execute(
        update(model)
        .where(model.id == target_id)
        .values(score=model.score + (new - old))
        .execution_options(synchronize_session=False)
    )

    await _post_ledger(db, voter_id, owner_id, target_type, target_id, old, new)

    new_score = await db.scalar(select(model.score).where(model.id == target_id))

    votes_cast.labels(target_type=target_type, transition=transition).inc()
    log.info(
        "vote_cast",
        voter_id=str(voter_id),
        target_type=target_type,
        target_id=str(target_id),
        old_value=old,
        new_value=new,
        score=new_score,
    )
    return VoteOutcome(new_score, new or None, owner_id, transition)


async def get_user_votes(
    db: AsyncSession,
    viewer_id: Optional[uuid.UUID],
    target_type: str,
    target_ids: list[uuid.UUID],
) -> dict[uuid.UUID, int]:
    """Map target id -> the viewer's vote value for the given targets."""
    if viewer_id is None or not target_ids:
        return {}
    result = await db.execute(
        select(Vote.target_id, Vote.value).where(
            Vote.user_id == viewer_id,
            Vote.target_type == target_type,
            Vote.target_id.in_(target_ids),
        )
    )
    return {row.target_id: row.value for row in result}


async def delete_votes_for_targets(
    db: AsyncSession,
    target_type: str,
    target_ids: list[uuid.UUID],
) -> None:
    """Drop vote rows pointing at deleted content. Reputation already earned stays."""
    if not target_ids:
        return
    await db.execute(
        delete(Vote).where(Vote.target_type == target_type, Vote.target_id.in_(target_ids))
    )
