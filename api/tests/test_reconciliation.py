"""Tests for the counter-cache reconciliation worker."""

from sqlalchemy import select, update

from abi.models.answer import Answer
from abi.models.question import Question
from abi.models.tag import Tag
from abi.services.answers import create_answer
from abi.services.questions import create_question
from abi.services.tags import upsert_tag
from abi.services.votes import cast_vote
from abi.worker.reconciliation_worker import run_reconciliation_cycle

BODY = "We are reviewing our approach and would like to hear how other teams handle this."


async def test_clean_database_needs_no_repairs(db, alice, bob):
    question = await create_question(db, alice.id, "Steel pricing outlook for next year", BODY)
    await cast_vote(db, bob.id, "question", question.id, 1)
    await db.commit()

    stats = await run_reconciliation_cycle(db)

    assert stats == {
        "question_scores": 0,
        "answer_scores": 0,
        "answer_counts": 0,
        "tag_question_counts": 0,
        "question_status": 0,
    }


async def test_drifted_counters_are_repaired(db, alice, bob):
    tag = await upsert_tag(db, "Pricing")
    question = await create_question(
        db, alice.id, "Steel pricing outlook for next year", BODY, tag_ids=[tag.id]
    )
    answer = await create_answer(db, bob.id, question.id, BODY)
    await cast_vote(db, alice.id, "answer", answer.id, 1)
    await db.commit()

    await db.execute(
        update(Question)
        .where(Question.id == question.id)
        .values(score=7, answer_count=0, status="answered")
    )
    await db.execute(update(Answer).where(Answer.id == answer.id).values(score=-3))
    await db.execute(update(Tag).where(Tag.id == tag.id).values(question_count=4))
    await db.commit()

    stats = await run_reconciliation_cycle(db)

    assert stats["question_scores"] == 1
    assert stats["answer_scores"] == 1
    assert stats["answer_counts"] == 1
    assert stats["tag_question_counts"] == 1
    assert stats["question_status"] == 1

    row = (
        await db.execute(
            select(Question.score, Question.answer_count, Question.status).where(
                Question.id == question.id
            )
        )
    ).one()
    assert tuple(row) == (0, 1, "open")
    assert await db.scalar(select(Answer.score).where(Answer.id == answer.id)) == 1
    assert await db.scalar(select(Tag.question_count).where(Tag.id == tag.id)) == 1
