"""Answer service and accepted-answer toggling.

Acceptance moves reputation as well as flags:

    answerer   answer_accepted  +15   source ("answer", answer_id)
    owner      accepted_answer   +2   source ("question", question_id)

Switching the accepted answer reverses the previous pair before awarding
the new one, so the owner's net change on a switch is zero.
"""

import uuid
from dataclasses import dataclass
from typing import Optional

import structlog
from sqlalchemy import case, delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from abi.errors import Conflict, Forbidden, NotFound
from abi.models.answer import Answer
from abi.models.base import utcnow
from abi.models.question import Question, QuestionStatus
from abi.services import reputation
from abi.services.questions import (
    AnswerView,
    get_profiles,
    load_question,
    screen_post,
    validate_body,
)
from abi.services.votes import delete_votes_for_targets, get_user_votes

log = structlog.get_logger()


@dataclass
class AcceptOutcome:
    question_id: uuid.UUID
    accepted_answer_id: uuid.UUID
    changed: bool
    owner_id: uuid.UUID
    answerer_id: uuid.UUID
    previous_answerer_id: Optional[uuid.UUID] = None


@dataclass
class DeleteAnswerOutcome:
    question_id: uuid.UUID
    was_accepted: bool
    question_owner_id: uuid.UUID


async def load_answer(
    db: AsyncSession, answer_id: uuid.UUID, for_update: bool = False
) -> Answer:
    stmt = (
        select(Answer)
        .where(Answer.id == answer_id)
        .execution_options(populate_existing=True)
    )
    if for_update:
        stmt = stmt.with_for_update()
    answer = (await db.execute(stmt)).scalar_one_or_none()
    if answer is None:
        raise NotFound("Answer not found")
    return answer


async def list_answers(
    db: AsyncSession,
    question_id: uuid.UUID,
    viewer_id: Optional[uuid.UUID] = None,
) -> list[AnswerView]:
    """Answers for a question: accepted first, then by score, then oldest first."""
    result = await db.execute(
        select(Answer)
        .where(Answer.question_id == question_id)
        .order_by(Answer.is_accepted.desc(), Answer.score.desc(), Answer.created_at.asc())
        .execution_options(populate_existing=True)
    )
    answers = list(result.scalars().all())
    votes = await get_user_votes(db, viewer_id, "answer", [a.id for a in answers])
    authors = await get_profiles(db, {a.user_id for a in answers})
    return [
        AnswerView(answer=a, user_vote=votes.get(a.id), author=authors.get(a.user_id))
        for a in answers
    ]


async def create_answer(
    db: AsyncSession, user_id: uuid.UUID, question_id: uuid.UUID, body: str
) -> Answer:
    """Insert an answer, bump the question's answer_count and updated_at.

    Raises:
        NotFound: the question does not exist.
        ValidationError: body shorter than the minimum after trimming.
        ContentFlagged: the guardrails rejected the body.
    """
    body = validate_body(body)
    question = await load_question(db, question_id, for_update=True)
    screen_post("", body)

    answer = Answer(question_id=question.id, user_id=user_id, body=body)
    db.add(answer)
    await db.flush()

    await db.execute(
        update(Question)
        .where(Question.id == question.id)
        .values(answer_count=Question.answer_count + 1, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )

    log.info(
        "answer_created",
        answer_id=str(answer.id),
        question_id=str(question.id),
        user_id=str(user_id),
    )
    return answer


async def update_answer(
    db: AsyncSession, answer_id: uuid.UUID, user_id: uuid.UUID, body: str
) -> Answer:
    answer = await load_answer(db, answer_id, for_update=True)
    if answer.user_id != user_id:
        raise Forbidden("Only the author can edit this answer")

    body = validate_body(body)
    screen_post("", body)

    now = utcnow()
    answer.body = body
    answer.updated_at = now
    await db.execute(
        update(Question)
        .where(Question.id == answer.question_id)
        .values(updated_at=now)
        .execution_options(synchronize_session=False)
    )
    await db.flush()
    return answer


async def delete_answer(
    db: AsyncSession, answer_id: uuid.UUID, user_id: uuid.UUID
) -> DeleteAnswerOutcome:
    """Owner-only delete.

    Decrements the question's answer_count. Deleting the accepted answer
    reopens the question and reverses the acceptance reputation.
    """
    answer = await load_answer(db, answer_id)
    if answer.user_id != user_id:
        raise Forbidden("Only the author can delete this answer")

    question = await load_question(db, answer.question_id, for_update=True)
    was_accepted = answer.is_accepted or question.accepted_answer_id == answer.id

    values: dict = {
        "answer_count": case(
            (Question.answer_count > 0, Question.answer_count - 1), else_=0
        ),
        "updated_at": utcnow(),
    }
    if was_accepted:
        await reputation.reverse(db, answer.user_id, "answer_accepted", "answer", answer.id)
        await reputation.reverse(
            db, question.user_id, "accepted_answer", "question", question.id
        )
        values.update(accepted_answer_id=None, status=QuestionStatus.open.value)

    await delete_votes_for_targets(db, "answer", [answer.id])
    await db.execute(
        delete(Answer)
        .where(Answer.id == answer.id)
        .execution_options(synchronize_session=False)
    )
    await db.execute(
        update(Question)
        .where(Question.id == question.id)
        .values(**values)
        .execution_options(synchronize_session=False)
    )

    log.info(
        "answer_deleted",
        answer_id=str(answer_id),
        question_id=str(question.id),
        was_accepted=was_accepted,
    )
    return DeleteAnswerOutcome(question.id, was_accepted, question.user_id)


async def accept_answer(
    db: AsyncSession,
    question_id: uuid.UUID,
    answer_id: uuid.UUID,
    user_id: uuid.UUID,
) -> AcceptOutcome:
    """Mark an answer as the accepted one for its question.

    Re-accepting the current answer is a no-op. Switching from A to B
    reverses A's acceptance reputation, clears A, sets B, marks the
    question answered, then awards B's acceptance reputation.

    Raises:
        NotFound: question missing, or the answer is not on this question.
        Forbidden: caller is not the question owner.
        Conflict: a concurrent accept on the same question won.
    """
    question = await load_question(db, question_id, for_update=True)
    if question.user_id != user_id:
        raise Forbidden("Only the question author can accept an answer")

    answer = await db.scalar(
        select(Answer).where(Answer.id == answer_id, Answer.question_id == question_id)
    )
    if answer is None:
        raise NotFound("Answer not found for this question")

    if question.accepted_answer_id == answer.id:
        return AcceptOutcome(question.id, answer.id, False, question.user_id, answer.user_id)

    previous_answerer_id = None
    previous_id = question.accepted_answer_id
    if previous_id is not None:
        previous_answerer_id = await db.scalar(
            select(Answer.user_id).where(Answer.id == previous_id)
        )
        if previous_answerer_id is not None:
            await reputation.reverse(
                db, previous_answerer_id, "answer_accepted", "answer", previous_id
            )
            await reputation.reverse(
                db, question.user_id, "accepted_answer", "question", question.id
            )
        await db.execute(
            update(Answer)
            .where(Answer.id == previous_id)
            .values(is_accepted=False)
            .execution_options(synchronize_session=False)
        )

    try:
        await db.execute(
            update(Answer)
            .where(Answer.id == answer.id)
            .values(is_accepted=True)
            .execution_options(synchronize_session=False)
        )
    except IntegrityError as exc:
        await db.rollback()
        raise Conflict("Another answer was accepted concurrently") from exc

    await db.execute(
        update(Question)
        .where(Question.id == question.id)
        .values(
            accepted_answer_id=answer.id,
            status=QuestionStatus.answered.value,
            updated_at=utcnow(),
        )
        .execution_options(synchronize_session=False)
    )

    await reputation.award(db, answer.user_id, "answer_accepted", "answer", answer.id)
    await reputation.award(db, question.user_id, "accepted_answer", "question", question.id)

    log.info(
        "answer_accepted",
        question_id=str(question.id),
        answer_id=str(answer.id),
        previous_answer_id=str(previous_id) if previous_id else None,
    )
    return AcceptOutcome(
        question_id=question.id,
        accepted_answer_id=answer.id,
        changed=True,
        owner_id=question.user_id,
        answerer_id=answer.user_id,
        previous_answerer_id=previous_answerer_id,
    )
