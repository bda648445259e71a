"""Pre-submission guardrails for the ask-question form.

POST /api/community/guardrails/check -- profanity result, similar threads, submit readiness

The profanity result here is advisory; create_question enforces it again.
Similar threads never block submission.
"""

from fastapi import APIRouter

from abi.dependencies import DbSession
from abi.middleware.rate_limiter import ReadRateLimit
from abi.schemas.guardrails import (
    GuardrailCheckRequest,
    GuardrailCheckResponse,
    ProfanityResult,
    SimilarThreadResponse,
)
from abi.services.moderation import check_question_content
from abi.services.similarity import can_submit, find_similar_threads

router = APIRouter(prefix="/api/community/guardrails", tags=["guardrails"])


@router.post("/check", response_model=GuardrailCheckResponse)
async def check_guardrails(
    body: GuardrailCheckRequest,
    db: DbSession,
    _rate: ReadRateLimit,
) -> GuardrailCheckResponse:
    moderation = check_question_content(body.title, body.body)
    threads = await find_similar_threads(db, body.title)
    return GuardrailCheckResponse(
        profanity=ProfanityResult.model_validate(moderation),
        similar_threads=[SimilarThreadResponse.model_validate(t) for t in threads],
        can_submit=can_submit(body.title, moderation),
    )
