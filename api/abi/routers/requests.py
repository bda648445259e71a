"""Upgrade request endpoints.

POST /api/requests                -- submit a request (pending)
GET  /api/requests?role=          -- own requests, or the approver queue
GET  /api/requests/{id}           -- one request with its audit trail
POST /api/requests/{id}/approve   -- approver/admin decision
POST /api/requests/{id}/deny      -- approver/admin decision, reason required
POST /api/requests/{id}/fulfil    -- admin records delivery
POST /api/requests/{id}/cancel    -- requester withdraws a pending request
"""

import uuid
from typing import Literal

from fastapi import APIRouter

from abi.dependencies import AdminUser, ApproverUser, CurrentUser, DbSession
from abi.middleware.rate_limiter import ReadRateLimit, WriteRateLimit
from abi.models.upgrade_request import UpgradeRequest
from abi.schemas.upgrade_request import (
    ApprovalEventResponse,
    DenyRequest,
    FulfilRequest,
    UpgradeRequestCreate,
    UpgradeRequestListResponse,
    UpgradeRequestResponse,
)
from abi.services import approvals

router = APIRouter(prefix="/api/requests", tags=["requests"])


def request_response(
    request: UpgradeRequest, actionable: bool = False, admin_only: bool = False
) -> UpgradeRequestResponse:
    data = UpgradeRequestResponse.model_validate(request)
    data.actionable = actionable
    data.admin_only = admin_only
    return data


@router.post("", response_model=UpgradeRequestResponse, status_code=201)
async def submit_request(
    body: UpgradeRequestCreate,
    user: CurrentUser,
    db: DbSession,
    _rate: WriteRateLimit,
) -> UpgradeRequestResponse:
    request = await approvals.submit_request(
        db,
        user,
        type=body.type,
        title=body.title,
        description=body.description,
        estimated_credits=body.estimated_credits,
        context=body.context,
        team_id=body.team_id,
    )
    await db.commit()
    return request_response(request)


@router.get("", response_model=UpgradeRequestListResponse)
async def list_requests(
    user: CurrentUser,
    db: DbSession,
    _rate: ReadRateLimit,
    role: Literal["requester", "approver", "admin"] = "requester",
) -> UpgradeRequestListResponse:
    listing = await approvals.list_requests(db, user, role)
    return UpgradeRequestListResponse(
        requests=[
            request_response(v.request, v.actionable, v.admin_only) for v in listing.items
        ],
        actionable_count=listing.actionable_count,
    )


@router.get("/{request_id}", response_model=UpgradeRequestResponse)
async def get_request(
    request_id: uuid.UUID,
    user: CurrentUser,
    db: DbSession,
    _rate: ReadRateLimit,
) -> UpgradeRequestResponse:
    request, events = await approvals.get_request(db, user, request_id)
    data = request_response(request)
    data.events = [ApprovalEventResponse.model_validate(e) for e in events]
    return data


@router.post("/{request_id}/approve", response_model=UpgradeRequestResponse)
async def approve_request(
    request_id: uuid.UUID,
    user: ApproverUser,
    db: DbSession,
    _rate: WriteRateLimit,
) -> UpgradeRequestResponse:
    request = await approvals.approve_request(db, user, request_id)
    await db.commit()
    return request_response(request)


@router.post("/{request_id}/deny", response_model=UpgradeRequestResponse)
async def deny_request(
    request_id: uuid.UUID,
    body: DenyRequest,
    user: ApproverUser,
    db: DbSession,
    _rate: WriteRateLimit,
) -> UpgradeRequestResponse:
    request = await approvals.deny_request(db, user, request_id, body.reason)
    await db.commit()
    return request_response(request)


@router.post("/{request_id}/fulfil", response_model=UpgradeRequestResponse)
async def fulfil_request(
    request_id: uuid.UUID,
    body: FulfilRequest,
    user: AdminUser,
    db: DbSession,
    _rate: WriteRateLimit,
) -> UpgradeRequestResponse:
    request = await approvals.fulfil_request(db, user, request_id, body.deliverables)
    await db.commit()
    return request_response(request)


@router.post("/{request_id}/cancel", response_model=UpgradeRequestResponse)
async def cancel_request(
    request_id: uuid.UUID,
    user: CurrentUser,
    db: DbSession,
    _rate: WriteRateLimit,
) -> UpgradeRequestResponse:
    request = await approvals.cancel_request(db, user, request_id)
    await db.commit()
    return request_response(request)
