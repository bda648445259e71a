"""Pydantic schemas for upgrade requests and their approval trail."""

import uuid
from datetime import datetime
from typing import Literal, Optional

from pydantic import Field

from abi.schemas.common import CamelModel

RequestTypeLiteral = Literal[
    "analyst_qa",
    "analyst_call",
    "report_upgrade",
    "expert_consult",
    "expert_deepdive",
    "bespoke_project",
]


class UpgradeRequestCreate(CamelModel):
    type: RequestTypeLiteral
    title: str = Field(min_length=1, max_length=300)
    description: str = Field("", max_length=10000)
    estimated_credits: int = Field(0, ge=0)
    context: dict = Field(default_factory=dict)
    team_id: Optional[uuid.UUID] = None


class DenyRequest(CamelModel):
    reason: str = Field(max_length=2000)


class FulfilRequest(CamelModel):
    deliverables: dict = Field(default_factory=dict)


class ApprovalEventResponse(CamelModel):
    id: uuid.UUID
    event_type: str
    performed_by: Optional[uuid.UUID] = None
    from_status: Optional[str] = None
    to_status: Optional[str] = None
    reason: Optional[str] = None
    created_at: datetime


class UpgradeRequestResponse(CamelModel):
    id: uuid.UUID
    requester_id: uuid.UUID
    team_id: Optional[uuid.UUID] = None
    type: str
    title: str
    description: str
    approval_level: str
    status: str
    estimated_credits: int
    context: dict
    deliverables: Optional[dict] = None
    denial_reason: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    decided_at: Optional[datetime] = None
    decided_by: Optional[uuid.UUID] = None
    fulfilled_at: Optional[datetime] = None
    actionable: bool = False
    admin_only: bool = False
    events: Optional[list[ApprovalEventResponse]] = None


class UpgradeRequestListResponse(CamelModel):
    requests: list[UpgradeRequestResponse]
    actionable_count: int = 0
