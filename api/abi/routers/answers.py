"""Answer endpoints.

POST   /api/community/answers       -- answer a question
PATCH  /api/community/answers/{id}  -- edit (owner)
DELETE /api/community/answers/{id}  -- delete (owner); reopens the question if it was accepted
"""

import uuid

from fastapi import APIRouter, Response

from abi.dependencies import CurrentUser, DbSession
from abi.middleware.rate_limiter import WriteRateLimit
from abi.routers.questions import answer_response
from abi.schemas.question import AnswerCreate, AnswerResponse, AnswerUpdate
from abi.services import answers as answer_service
from abi.services.badges import run_badge_checks
from abi.services.questions import AnswerView, get_profiles

router = APIRouter(prefix="/api/community", tags=["answers"])


async def _view(db, answer) -> AnswerView:
    profiles = await get_profiles(db, {answer.user_id})
    return AnswerView(answer=answer, author=profiles.get(answer.user_id))


@router.post("/answers", response_model=AnswerResponse, status_code=201)
async def create_answer(
    body: AnswerCreate,
    user: CurrentUser,
    db: DbSession,
    _rate: WriteRateLimit,
) -> AnswerResponse:
    answer = await answer_service.create_answer(db, user.id, body.question_id, body.body)
    answer_id = answer.id
    await db.commit()
    await run_badge_checks(db, [user.id])

    # Badge checks may roll back and expire the session; reload
    answer = await answer_service.load_answer(db, answer_id)
    return answer_response(await _view(db, answer))


@router.patch("/answers/{answer_id}", response_model=AnswerResponse)
async def update_answer(
    answer_id: uuid.UUID,
    body: AnswerUpdate,
    user: CurrentUser,
    db: DbSession,
    _rate: WriteRateLimit,
) -> AnswerResponse:
    answer = await answer_service.update_answer(db, answer_id, user.id, body.body)
    await db.commit()
    return answer_response(await _view(db, answer))


@router.delete("/answers/{answer_id}", status_code=204)
async def delete_answer(
    answer_id: uuid.UUID,
    user: CurrentUser,
    db: DbSession,
    _rate: WriteRateLimit,
) -> Response:
    outcome = await answer_service.delete_answer(db, answer_id, user.id)
    await db.commit()
    await run_badge_checks(db, [user.id, outcome.question_owner_id])
    return Response(status_code=204)
