"""Question endpoints.

GET    /api/community/questions                         -- list with filters, sort, paging
GET    /api/community/questions/similar                 -- titles similar to a draft
GET    /api/community/questions/{id}                    -- detail (+ answers); counts a view
POST   /api/community/questions                         -- ask
PATCH  /api/community/questions/{id}                    -- edit (owner)
DELETE /api/community/questions/{id}                    -- delete (owner)
GET    /api/community/questions/{id}/answers            -- answers, accepted first
POST   /api/community/questions/{qid}/accept/{aid}      -- accept an answer (owner)
"""

import uuid
from typing import Literal, Optional

from fastapi import APIRouter, Query, Response

from abi.dependencies import CurrentUser, DbSession, OptionalUser
from abi.middleware.rate_limiter import ReadRateLimit, WriteRateLimit
from abi.models.user import Profile
from abi.schemas.guardrails import SimilarThreadResponse, SimilarThreadsResponse
from abi.schemas.question import (
    AcceptResponse,
    AnswerResponse,
    AuthorSummary,
    QuestionCreate,
    QuestionListResponse,
    QuestionResponse,
    QuestionUpdate,
    TagResponse,
)
from abi.services import answers as answer_service
from abi.services import questions as question_service
from abi.services.badges import run_badge_checks
from abi.services.questions import AnswerView, QuestionView
from abi.services.similarity import find_similar_threads

router = APIRouter(prefix="/api/community", tags=["questions"])


def author_summary(profile: Optional[Profile]) -> Optional[AuthorSummary]:
    if profile is None:
        return None
    return AuthorSummary(
        user_id=profile.user_id,
        display_name=profile.display_name,
        avatar_url=profile.avatar_url,
        reputation=profile.reputation,
    )


def answer_response(view: AnswerView) -> AnswerResponse:
    answer = view.answer
    return AnswerResponse(
        id=answer.id,
        question_id=answer.question_id,
        user_id=answer.user_id,
        body=answer.body,
        score=answer.score,
        is_accepted=answer.is_accepted,
        created_at=answer.created_at,
        updated_at=answer.updated_at,
        user_vote=view.user_vote,
        author=author_summary(view.author),
    )


def question_response(view: QuestionView) -> QuestionResponse:
    question = view.question
    return QuestionResponse(
        id=question.id,
        user_id=question.user_id,
        title=question.title,
        body=question.body,
        ai_context_summary=question.ai_context_summary,
        score=question.score,
        view_count=question.view_count,
        answer_count=question.answer_count,
        accepted_answer_id=question.accepted_answer_id,
        status=question.status,
        created_at=question.created_at,
        updated_at=question.updated_at,
        tags=[TagResponse.model_validate(tag) for tag in view.tags],
        user_vote=view.user_vote,
        author=author_summary(view.author),
        answers=(
            [answer_response(a) for a in view.answers] if view.answers is not None else None
        ),
    )


@router.get("/questions", response_model=QuestionListResponse)
async def list_questions(
    db: DbSession,
    viewer: OptionalUser,
    _rate: ReadRateLimit,
    sort: Literal["newest", "active", "votes", "unanswered"] = "newest",
    filter: Literal["all", "open", "answered", "unanswered"] = "all",
    tag: Optional[str] = Query(default=None, max_length=50),
    search: Optional[str] = Query(default=None, max_length=200),
    page: int = Query(default=1, ge=1),
    page_size: Optional[int] = Query(default=None, alias="pageSize", ge=1),
) -> QuestionListResponse:
    """List questions. ``pageSize`` above the maximum is capped, not rejected."""
    result = await question_service.list_questions(
        db,
        sort=sort,
        filter=filter,
        tag_slug=tag,
        search=search,
        page=page,
        page_size=page_size,
        viewer_id=viewer.id if viewer else None,
    )
    return QuestionListResponse(
        questions=[question_response(item) for item in result.items],
        total_count=result.total_count,
        page=result.page,
        page_size=result.page_size,
        has_more=result.has_more,
    )


@router.get("/questions/similar", response_model=SimilarThreadsResponse)
async def similar_questions(
    db: DbSession,
    _rate: ReadRateLimit,
    q: str = Query(default="", max_length=300),
    limit: Optional[int] = Query(default=None, ge=1, le=20),
    exclude: Optional[uuid.UUID] = None,
) -> SimilarThreadsResponse:
    threads = await find_similar_threads(
        db, q, limit=limit, exclude_ids=[exclude] if exclude else ()
    )
    return SimilarThreadsResponse(
        threads=[SimilarThreadResponse.model_validate(t) for t in threads]
    )


@router.get("/questions/{question_id}", response_model=QuestionResponse)
async def get_question(
    question_id: uuid.UUID,
    db: DbSession,
    viewer: OptionalUser,
    _rate: ReadRateLimit,
    include_answers: bool = Query(default=True, alias="includeAnswers"),
) -> QuestionResponse:
    """Question detail. Each fetch counts as a view (best effort, not deduplicated)."""
    await question_service.increment_view_count(db, question_id)
    await db.commit()

    view = await question_service.get_question(
        db,
        question_id,
        viewer_id=viewer.id if viewer else None,
        include_answers=include_answers,
    )
    return question_response(view)


@router.post("/questions", response_model=QuestionResponse, status_code=201)
async def create_question(
    body: QuestionCreate,
    user: CurrentUser,
    db: DbSession,
    _rate: WriteRateLimit,
) -> QuestionResponse:
    """Ask a question.

    400 for a short title/body, too many or unknown tags; 409 when the
    guardrails flag the text. Nothing is written in either case.
    """
    question = await question_service.create_question(
        db,
        user_id=user.id,
        title=body.title,
        body=body.body,
        tag_ids=body.tag_ids,
        ai_context_summary=body.ai_context_summary,
    )
    question_id = question.id
    await db.commit()
    await run_badge_checks(db, [user.id])

    view = await question_service.get_question(db, question_id, viewer_id=user.id)
    return question_response(view)


@router.patch("/questions/{question_id}", response_model=QuestionResponse)
async def update_question(
    question_id: uuid.UUID,
    body: QuestionUpdate,
    user: CurrentUser,
    db: DbSession,
    _rate: WriteRateLimit,
) -> QuestionResponse:
    await question_service.update_question(
        db,
        question_id,
        user.id,
        title=body.title,
        body=body.body,
        tag_ids=body.tag_ids,
        ai_context_summary=body.ai_context_summary,
    )
    await db.commit()

    view = await question_service.get_question(db, question_id, viewer_id=user.id)
    return question_response(view)


@router.delete("/questions/{question_id}", status_code=204)
async def delete_question(
    question_id: uuid.UUID,
    user: CurrentUser,
    db: DbSession,
    _rate: WriteRateLimit,
) -> Response:
    await question_service.delete_question(db, question_id, user.id)
    await db.commit()
    return Response(status_code=204)


@router.get("/questions/{question_id}/answers", response_model=list[AnswerResponse])
async def list_answers(
    question_id: uuid.UUID,
    db: DbSession,
    viewer: OptionalUser,
    _rate: ReadRateLimit,
) -> list[AnswerResponse]:
    await question_service.load_question(db, question_id)
    views = await answer_service.list_answers(
        db, question_id, viewer_id=viewer.id if viewer else None
    )
    return [answer_response(v) for v in views]


@router.post(
    "/questions/{question_id}/accept/{answer_id}",
    response_model=AcceptResponse,
)
async def accept_answer(
    question_id: uuid.UUID,
    answer_id: uuid.UUID,
    user: CurrentUser,
    db: DbSession,
    _rate: WriteRateLimit,
) -> AcceptResponse:
    """Accept an answer. Re-accepting the current answer succeeds without changes."""
    outcome = await answer_service.accept_answer(db, question_id, answer_id, user.id)
    await db.commit()

    if outcome.changed:
        await run_badge_checks(
            db, [outcome.owner_id, outcome.answerer_id, outcome.previous_answerer_id]
        )
    return AcceptResponse(
        accepted_answer_id=outcome.accepted_answer_id, changed=outcome.changed
    )
