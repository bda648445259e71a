"""Pydantic schemas for voting on questions and answers."""

import uuid
from typing import Literal, Optional

from abi.schemas.common import CamelModel


class VoteRequest(CamelModel):
    """Cast, switch or clear a vote. ``value`` 0 clears; repeating a value toggles it off."""

    target_type: Literal["question", "answer"]
    target_id: uuid.UUID
    value: Literal[-1, 0, 1]


class VoteResponse(CamelModel):
    new_score: int
    user_vote: Optional[int] = None
