"""Pydantic schemas for questions, answers and tags."""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import Field

from abi.schemas.common import CamelModel


class TagResponse(CamelModel):
    id: uuid.UUID
    name: str
    slug: str
    description: Optional[str] = None
    question_count: int


class AuthorSummary(CamelModel):
    user_id: uuid.UUID
    display_name: Optional[str] = None
    avatar_url: Optional[str] = None
    reputation: int = 0


class AnswerCreate(CamelModel):
    question_id: uuid.UUID
    body: str = Field(max_length=30000)


class AnswerUpdate(CamelModel):
    body: str = Field(max_length=30000)


class AnswerResponse(CamelModel):
    id: uuid.UUID
    question_id: uuid.UUID
    user_id: uuid.UUID
    body: str
    score: int
    is_accepted: bool
    created_at: datetime
    updated_at: datetime
    user_vote: Optional[int] = None
    author: Optional[AuthorSummary] = None


class QuestionCreate(CamelModel):
    """Server re-enforces title/body minimums after trimming; see services.questions."""

    title: str = Field(max_length=300)
    body: str = Field(max_length=30000)
    tag_ids: list[uuid.UUID] = Field(default_factory=list)
    ai_context_summary: Optional[str] = Field(None, max_length=5000)


class QuestionUpdate(CamelModel):
    title: Optional[str] = Field(None, max_length=300)
    body: Optional[str] = Field(None, max_length=30000)
    tag_ids: Optional[list[uuid.UUID]] = None
    ai_context_summary: Optional[str] = Field(None, max_length=5000)


class QuestionResponse(CamelModel):
    id: uuid.UUID
    user_id: uuid.UUID
    title: str
    body: str
    ai_context_summary: Optional[str] = None
    score: int
    view_count: int
    answer_count: int
    accepted_answer_id: Optional[uuid.UUID] = None
    status: str
    created_at: datetime
    updated_at: datetime
    tags: list[TagResponse] = Field(default_factory=list)
    user_vote: Optional[int] = None
    author: Optional[AuthorSummary] = None
    answers: Optional[list[AnswerResponse]] = None


class QuestionListResponse(CamelModel):
    questions: list[QuestionResponse]
    total_count: int
    page: int
    page_size: int
    has_more: bool


class AcceptResponse(CamelModel):
    success: bool = True
    accepted_answer_id: uuid.UUID
    changed: bool
