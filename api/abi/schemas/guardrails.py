"""Pydantic schemas for the pre-submission guardrail checks."""

import uuid
from typing import Optional

from pydantic import Field

from abi.schemas.common import CamelModel


class GuardrailCheckRequest(CamelModel):
    title: str = Field("", max_length=300)
    body: str = Field("", max_length=30000)


class ProfanityResult(CamelModel):
    flagged: bool
    reason: Optional[str] = None
    severity: str = "none"
    flagged_terms: list[str] = Field(default_factory=list)


class SimilarThreadResponse(CamelModel):
    question_id: uuid.UUID
    title: str
    score: float
    answer_count: int
    is_answered: bool


class GuardrailCheckResponse(CamelModel):
    profanity: ProfanityResult
    similar_threads: list[SimilarThreadResponse]
    can_submit: bool


class SimilarThreadsResponse(CamelModel):
    threads: list[SimilarThreadResponse]
