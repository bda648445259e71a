"""Pydantic schemas for API key management and sign-in."""

import uuid
from typing import Optional

from pydantic import Field

from abi.schemas.common import CamelModel


class APIKeyCreate(CamelModel):
    """Request schema for first sign-in: creates the account and its profile."""

    email: Optional[str] = Field(None, max_length=255)
    display_name: Optional[str] = Field(None, max_length=100)
    job_title: Optional[str] = Field(None, max_length=150)
    company: Optional[str] = Field(None, max_length=150)


class APIKeyResponse(CamelModel):
    """Response after a new API key is generated.

    The api_key is shown exactly once. Only its hash is stored.
    """

    api_key: str
    user_id: uuid.UUID
    message: str = "Store this key securely -- it cannot be retrieved again"


class VerifyResponse(CamelModel):
    valid: bool = True
    user_id: uuid.UUID
    role: str
