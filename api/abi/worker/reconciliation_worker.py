"""Reconciliation worker for the community counter caches.

questions.score, answers.score, questions.answer_count and
tags.question_count are caches of SQL aggregates patched inline by the
write paths. This worker recomputes each aggregate periodically and repairs
drift, and re-derives questions.status from accepted_answer_id.

profiles.reputation is not recomputed: with clamping at zero it is not a
plain sum of the ledger.

Run with: python -m abi.worker.reconciliation_worker
"""

import asyncio

import structlog
from sqlalchemy import and_, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from abi.config import settings
from abi.database import async_session_factory
from abi.logging_config import configure_logging
from abi.metrics import reconciliation_repairs
from abi.models.answer import Answer
from abi.models.question import Question, QuestionStatus
from abi.models.tag import Tag, question_tags
from abi.models.vote import Vote

log = structlog.get_logger()


async def _repair(session: AsyncSession, model, counter: str, rows) -> int:
    repaired = 0
    for row_id, expected in rows:
        await session.execute(
            update(model)
            .where(model.id == row_id)
            .values({counter: expected})
            .execution_options(synchronize_session=False)
        )
        repaired += 1
    if repaired:
        reconciliation_repairs.labels(counter=f"{model.__tablename__}.{counter}").inc(repaired)
    return repaired


async def _reconcile_scores(session: AsyncSession, model, target_type: str) -> int:
    totals = (
        select(Vote.target_id, func.sum(Vote.value).label("total"))
        .where(Vote.target_type == target_type)
        .group_by(Vote.target_id)
        .subquery()
    )
    expected = func.coalesce(totals.c.total, 0)
    result = await session.execute(
        select(model.id, expected)
        .outerjoin(totals, totals.c.target_id == model.id)
        .where(model.score != expected)
    )
    return await _repair(session, model, "score", result.all())


async def _reconcile_answer_counts(session: AsyncSession) -> int:
    counts = (
        select(Answer.question_id, func.count(Answer.id).label("n"))
        .group_by(Answer.question_id)
        .subquery()
    )
    expected = func.coalesce(counts.c.n, 0)
    result = await session.execute(
        select(Question.id, expected)
        .outerjoin(counts, counts.c.question_id == Question.id)
        .where(Question.answer_count != expected)
    )
    return await _repair(session, Question, "answer_count", result.all())


async def _reconcile_tag_counts(session: AsyncSession) -> int:
    counts = (
        select(question_tags.c.tag_id, func.count().label("n"))
        .group_by(question_tags.c.tag_id)
        .subquery()
    )
    expected = func.coalesce(counts.c.n, 0)
    result = await session.execute(
        select(Tag.id, expected)
        .outerjoin(counts, counts.c.tag_id == Tag.id)
        .where(Tag.question_count != expected)
    )
    return await _repair(session, Tag, "question_count", result.all())


async def _reconcile_question_status(session: AsyncSession) -> int:
    """answered <=> accepted_answer_id is set. Closed questions are left alone."""
    reopened = await session.execute(
        update(Question)
        .where(
            Question.status == QuestionStatus.answered.value,
            Question.accepted_answer_id.is_(None),
        )
        .values(status=QuestionStatus.open.value)
        .execution_options(synchronize_session=False)
    )
    marked = await session.execute(
        update(Question)
        .where(
            and_(
                Question.status == QuestionStatus.open.value,
                Question.accepted_answer_id.is_not(None),
            )
        )
        .values(status=QuestionStatus.answered.value)
        .execution_options(synchronize_session=False)
    )
    repaired = (reopened.rowcount or 0) + (marked.rowcount or 0)
    if repaired:
        reconciliation_repairs.labels(counter="questions.status").inc(repaired)
    return repaired


async def run_reconciliation_cycle(session: AsyncSession) -> dict:
    """Run every reconciliation job in one transaction and return repair counts.

    One job failing does not stop the others; its entry is "error".
    """
    stats: dict = {}
    jobs = [
        ("question_scores", lambda: _reconcile_scores(session, Question, "question")),
        ("answer_scores", lambda: _reconcile_scores(session, Answer, "answer")),
        ("answer_counts", lambda: _reconcile_answer_counts(session)),
        ("tag_question_counts", lambda: _reconcile_tag_counts(session)),
        ("question_status", lambda: _reconcile_question_status(session)),
    ]
    errors = []
    for job_name, job in jobs:
        try:
            stats[job_name] = await job()
        except Exception:
            log.error("reconciliation_job_failed", job=job_name, exc_info=True)
            stats[job_name] = "error"
            errors.append(job_name)

    await session.commit()

    if errors:
        log.warning("reconciliation_partial", failed_jobs=errors, stats=stats)
    else:
        log.info("reconciliation_completed", stats=stats)
    return stats


async def run_worker() -> None:
    """Main loop: one reconciliation cycle every reconciliation_interval_minutes."""
    configure_logging()
    interval = settings.reconciliation_interval_minutes * 60
    log.info("reconciliation_worker_started", interval_seconds=interval)

    while True:
        try:
            async with async_session_factory() as session:
                await run_reconciliation_cycle(session)
        except Exception as exc:
            log.error("worker_loop_error", error=str(exc))

        await asyncio.sleep(interval)


if __name__ == "__main__":
    asyncio.run(run_worker())
