"""Question service: listing, detail, create/update/delete, view counts.

All mutations run in the caller's session and leave the commit to the
router. Counter caches touched here (tag.question_count) are patched with
column-expression updates in the same transaction as the row change.
"""

import uuid
from dataclasses import dataclass
from typing import Optional

import structlog
from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from abi.config import settings
from abi.errors import Forbidden, NotFound, ValidationError
from abi.models.answer import Answer
from abi.models.base import utcnow
from abi.models.question import Question, QuestionStatus
from abi.models.tag import Tag, question_tags
from abi.models.user import Profile
from abi.services import moderation, scanner
from abi.services.tags import (
    attach_tags,
    detach_tags,
    get_question_tag_ids,
    get_tag_id_by_slug,
    get_tags_for_questions,
    validate_tag_ids,
)
from abi.services.votes import delete_votes_for_targets, get_user_votes

log = structlog.get_logger()

MIN_TITLE_LENGTH = 15
MIN_BODY_LENGTH = 30

SORTS = ("newest", "active", "votes", "unanswered")
FILTERS = ("all", "open", "answered", "unanswered")


@dataclass
class AnswerView:
    answer: Answer
    user_vote: Optional[int] = None
    author: Optional[Profile] = None


@dataclass
class QuestionView:
    question: Question
    tags: list[Tag]
    user_vote: Optional[int] = None
    author: Optional[Profile] = None
    answers: Optional[list[AnswerView]] = None


@dataclass
class QuestionPage:
    items: list[QuestionView]
    total_count: int
    has_more: bool
    page: int
    page_size: int


def validate_title(title: str) -> str:
    title = (title or "").strip()
    if len(title) < MIN_TITLE_LENGTH:
        raise ValidationError(f"Title must be at least {MIN_TITLE_LENGTH} characters")
    return title


def validate_body(body: str) -> str:
    body = (body or "").strip()
    if len(body) < MIN_BODY_LENGTH:
        raise ValidationError(f"Body must be at least {MIN_BODY_LENGTH} characters")
    return body


def screen_post(title: str, body: str) -> None:
    """Run the hard-block guardrails over a post. Raises ContentFlagged."""
    moderation.ensure_clean(title, body)
    scanner.ensure_no_secrets(title, body)


async def get_profiles(
    db: AsyncSession, user_ids: set[uuid.UUID]
) -> dict[uuid.UUID, Profile]:
    if not user_ids:
        return {}
    result = await db.execute(select(Profile).where(Profile.user_id.in_(user_ids)))
    return {profile.user_id: profile for profile in result.scalars().all()}


async def load_question(
    db: AsyncSession, question_id: uuid.UUID, for_update: bool = False
) -> Question:
    """Fetch a question fresh from the database. Raises NotFound."""
    stmt = (
        select(Question)
        .where(Question.id == question_id)
        .execution_options(populate_existing=True)
    )
    if for_update:
        stmt = stmt.with_for_update()
    question = (await db.execute(stmt)).scalar_one_or_none()
    if question is None:
        raise NotFound("Question not found")
    return question


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


async def list_questions(
    db: AsyncSession,
    *,
    sort: str = "newest",
    filter: str = "all",
    tag_slug: Optional[str] = None,
    search: Optional[str] = None,
    page: int = 1,
    page_size: Optional[int] = None,
    viewer_id: Optional[uuid.UUID] = None,
) -> QuestionPage:
    """List questions with filtering, sorting and pagination.

    An unknown tag slug yields an empty page rather than an error.
    ``page_size`` is capped at settings.page_size_max.
    """
    if sort not in SORTS:
        raise ValidationError(f"sort must be one of: {', '.join(SORTS)}")
    if filter not in FILTERS:
        raise ValidationError(f"filter must be one of: {', '.join(FILTERS)}")

    page = max(page, 1)
    page_size = min(max(page_size or settings.page_size_default, 1), settings.page_size_max)

    stmt = select(Question)

    if tag_slug:
        tag_id = await get_tag_id_by_slug(db, tag_slug)
        if tag_id is None:
            return QuestionPage([], 0, False, page, page_size)
        stmt = stmt.where(
            Question.id.in_(
                select(question_tags.c.question_id).where(question_tags.c.tag_id == tag_id)
            )
        )

    if filter == "open":
        stmt = stmt.where(Question.status == QuestionStatus.open.value)
    elif filter == "answered":
        stmt = stmt.where(Question.status == QuestionStatus.answered.value)
    elif filter == "unanswered":
        stmt = stmt.where(Question.answer_count == 0)

    if search and search.strip():
        pattern = f"%{_escape_like(search.strip())}%"
        stmt = stmt.where(
            or_(
                Question.title.ilike(pattern, escape="\\"),
                Question.body.ilike(pattern, escape="\\"),
            )
        )

    if sort == "active":
        stmt = stmt.order_by(Question.updated_at.desc(), Question.id)
    elif sort == "votes":
        stmt = stmt.order_by(Question.score.desc(), Question.created_at.desc(), Question.id)
    elif sort == "unanswered":
        stmt = stmt.where(Question.answer_count == 0).order_by(
            Question.answer_count.asc(), Question.created_at.desc(), Question.id
        )
    else:
        stmt = stmt.order_by(Question.created_at.desc(), Question.id)

    total = await db.scalar(
        select(func.count()).select_from(stmt.order_by(None).subquery())
    ) or 0

    offset = (page - 1) * page_size
    result = await db.execute(
        stmt.limit(page_size).offset(offset).execution_options(populate_existing=True)
    )
    questions = list(result.scalars().all())

    ids = [q.id for q in questions]
    tags = await get_tags_for_questions(db, ids)
    votes = await get_user_votes(db, viewer_id, "question", ids)
    authors = await get_profiles(db, {q.user_id for q in questions})

    items = [
        QuestionView(
            question=q,
            tags=tags.get(q.id, []),
            user_vote=votes.get(q.id),
            author=authors.get(q.user_id),
        )
        for q in questions
    ]
    return QuestionPage(
        items=items,
        total_count=total,
        has_more=offset + len(items) < total,
        page=page,
        page_size=page_size,
    )


async def get_question(
    db: AsyncSession,
    question_id: uuid.UUID,
    viewer_id: Optional[uuid.UUID] = None,
    include_answers: bool = False,
) -> QuestionView:
    question = await load_question(db, question_id)
    tags = await get_tags_for_questions(db, [question.id])
    votes = await get_user_votes(db, viewer_id, "question", [question.id])
    authors = await get_profiles(db, {question.user_id})

    view = QuestionView(
        question=question,
        tags=tags.get(question.id, []),
        user_vote=votes.get(question.id),
        author=authors.get(question.user_id),
    )
    if include_answers:
        # Imported here: answers imports this module for the shared views
        from abi.services.answers import list_answers

        view.answers = await list_answers(db, question.id, viewer_id)
    return view


async def create_question(
    db: AsyncSession,
    user_id: uuid.UUID,
    title: str,
    body: str,
    tag_ids: Optional[list[uuid.UUID]] = None,
    ai_context_summary: Optional[str] = None,
) -> Question:
    """Validate, screen and insert a question with its tags.

    Raises:
        ValidationError: short title/body, too many or unknown tags.
        ContentFlagged: the guardrails rejected the text. Nothing is inserted.
    """
    title = validate_title(title)
    body = validate_body(body)
    tag_ids = await validate_tag_ids(db, list(tag_ids or []))
    screen_post(title, body)

    question = Question(
        user_id=user_id,
        title=title,
        body=body,
        ai_context_summary=ai_context_summary,
    )
    db.add(question)
    await db.flush()

    await attach_tags(db, question.id, tag_ids)

    log.info(
        "question_created",
        question_id=str(question.id),
        user_id=str(user_id),
        tag_count=len(tag_ids),
    )
    return question


async def update_question(
    db: AsyncSession,
    question_id: uuid.UUID,
    user_id: uuid.UUID,
    title: Optional[str] = None,
    body: Optional[str] = None,
    tag_ids: Optional[list[uuid.UUID]] = None,
    ai_context_summary: Optional[str] = None,
) -> Question:
    """Owner-only patch. Omitted fields are left unchanged."""
    question = await load_question(db, question_id, for_update=True)
    if question.user_id != user_id:
        raise Forbidden("Only the author can edit this question")

    new_title = validate_title(title) if title is not None else question.title
    new_body = validate_body(body) if body is not None else question.body
    if title is not None or body is not None:
        screen_post(new_title, new_body)

    if tag_ids is not None:
        wanted = await validate_tag_ids(db, tag_ids)
        current = await get_question_tag_ids(db, question.id)
        added = [tid for tid in wanted if tid not in current]
        removed = [tid for tid in current if tid not in wanted]
        await attach_tags(db, question.id, added)
        await detach_tags(db, question.id, removed)

    question.title = new_title
    question.body = new_body
    if ai_context_summary is not None:
        question.ai_context_summary = ai_context_summary
    question.updated_at = utcnow()
    await db.flush()

    log.info("question_updated", question_id=str(question.id))
    return question


async def delete_question(
    db: AsyncSession, question_id: uuid.UUID, user_id: uuid.UUID
) -> None:
    """Owner-only hard delete.

    Deletes in dependency order: tag counts and join rows, votes on the
    question and its answers, answers, then the question. Reputation already
    earned from those votes is kept.
    """
    question = await load_question(db, question_id, for_update=True)
    if question.user_id != user_id:
        raise Forbidden("Only the author can delete this question")

    await detach_tags(db, question.id, await get_question_tag_ids(db, question.id))

    answer_ids = list(
        (await db.execute(select(Answer.id).where(Answer.question_id == question.id)))
        .scalars()
        .all()
    )
    await delete_votes_for_targets(db, "answer", answer_ids)
    await delete_votes_for_targets(db, "question", [question.id])

    await db.execute(
        delete(Answer)
        .where(Answer.question_id == question.id)
        .execution_options(synchronize_session=False)
    )
    await db.execute(
        delete(Question)
        .where(Question.id == question.id)
        .execution_options(synchronize_session=False)
    )

    log.info(
        "question_deleted",
        question_id=str(question_id),
        answer_count=len(answer_ids),
    )


async def increment_view_count(db: AsyncSession, question_id: uuid.UUID) -> None:
    """Best-effort atomic view counter bump; no ownership or dedup checks."""
    await db.execute(
        update(Question)
        .where(Question.id == question_id)
        .values(view_count=Question.view_count + 1)
        .execution_options(synchronize_session=False)
    )
