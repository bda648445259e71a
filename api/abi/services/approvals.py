"""Approval workflow for paid upgrade requests.

State machine (anything not listed is illegal and raises Conflict):

    pending  -> approved | denied | cancelled
    approved -> fulfilled

Authority: deciding a request (approve/deny) needs a role at least the
request's approval_level, where member < approver < admin, and the decider
may not be the requester. Fulfilment is recorded by an admin on behalf of
the delivery team. Cancelling is the requester's alone.

The request row is locked FOR UPDATE for every transition, and every
transition appends an ApprovalEvent in the same transaction.
"""

import uuid
from dataclasses import dataclass
from typing import Optional

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from abi.config import settings
from abi.errors import Conflict, Forbidden, NotFound, ValidationError
from abi.metrics import approval_transitions
from abi.models.base import utcnow
from abi.models.upgrade_request import (
    ApprovalEvent,
    ApprovalLevel,
    RequestStatus,
    RequestType,
    UpgradeRequest,
)
from abi.models.user import ROLE_RANK, Role, User

log = structlog.get_logger()

VALID_TRANSITIONS: dict[RequestStatus, frozenset[RequestStatus]] = {
    RequestStatus.pending: frozenset(
        {RequestStatus.approved, RequestStatus.denied, RequestStatus.cancelled}
    ),
    RequestStatus.approved: frozenset({RequestStatus.fulfilled}),
    RequestStatus.denied: frozenset(),
    RequestStatus.fulfilled: frozenset(),
    RequestStatus.cancelled: frozenset(),
}


@dataclass
class RequestView:
    request: UpgradeRequest
    actionable: bool = False
    admin_only: bool = False


@dataclass
class RequestListing:
    items: list[RequestView]
    actionable_count: int = 0


def approval_level_for(estimated_credits: int) -> ApprovalLevel:
    """Requests up to the admin threshold can be decided by an approver."""
    if estimated_credits <= settings.approval_admin_threshold:
        return ApprovalLevel.approver
    return ApprovalLevel.admin


def role_covers(role: str, level: str) -> bool:
    """True when ``role`` ranks at or above the role named by ``level``."""
    return ROLE_RANK[Role(role)] >= ROLE_RANK[Role(level)]


def can_transition(current: str, target: RequestStatus) -> bool:
    return target in VALID_TRANSITIONS[RequestStatus(current)]


async def _load_request(
    db: AsyncSession, request_id: uuid.UUID, for_update: bool = True
) -> UpgradeRequest:
    stmt = (
        select(UpgradeRequest)
        .where(UpgradeRequest.id == request_id)
        .execution_options(populate_existing=True)
    )
    if for_update:
        stmt = stmt.with_for_update()
    request = (await db.execute(stmt)).scalar_one_or_none()
    if request is None:
        raise NotFound("Request not found")
    return request


def _record_event(
    db: AsyncSession,
    request: UpgradeRequest,
    event_type: str,
    actor_id: Optional[uuid.UUID],
    from_status: Optional[str],
    reason: Optional[str] = None,
) -> None:
    db.add(
        ApprovalEvent(
            request_id=request.id,
            event_type=event_type,
            performed_by=actor_id,
            from_status=from_status,
            to_status=request.status,
            reason=reason,
        )
    )
    approval_transitions.labels(
        event_type=event_type, approval_level=request.approval_level
    ).inc()
    log.info(
        f"request_{event_type}",
        request_id=str(request.id),
        actor_id=str(actor_id) if actor_id else None,
        from_status=from_status,
        to_status=request.status,
    )


def _ensure_transition(request: UpgradeRequest, target: RequestStatus) -> str:
    current = request.status
    if not can_transition(current, target):
        raise Conflict(f"Cannot move a {current} request to {target.value}")
    return current


def _ensure_decider(actor: User, request: UpgradeRequest) -> None:
    if not role_covers(actor.role, request.approval_level):
        raise Forbidden(
            f"Deciding this request requires the {request.approval_level} role"
        )
    if actor.id == request.requester_id:
        raise Forbidden("You cannot decide your own request")


async def submit_request(
    db: AsyncSession,
    requester: User,
    type: str,
    title: str,
    description: str = "",
    estimated_credits: int = 0,
    context: Optional[dict] = None,
    team_id: Optional[uuid.UUID] = None,
) -> UpgradeRequest:
    """Create a pending request routed to the approval level its cost needs."""
    if type not in RequestType.__members__:
        raise ValidationError(f"Unknown request type: {type}")
    title = (title or "").strip()
    if not title:
        raise ValidationError("Title is required")
    if estimated_credits < 0:
        raise ValidationError("estimatedCredits must be zero or more")

    request = UpgradeRequest(
        requester_id=requester.id,
        team_id=team_id,
        type=type,
        title=title,
        description=(description or "").strip(),
        estimated_credits=estimated_credits,
        approval_level=approval_level_for(estimated_credits).value,
        status=RequestStatus.pending.value,
        context=context or {},
    )
    db.add(request)
    await db.flush()
    _record_event(db, request, "submitted", requester.id, None)
    await db.flush()
    return request


async def approve_request(
    db: AsyncSession, actor: User, request_id: uuid.UUID
) -> UpgradeRequest:
    request = await _load_request(db, request_id)
    _ensure_decider(actor, request)
    previous = _ensure_transition(request, RequestStatus.approved)

    request.status = RequestStatus.approved.value
    request.decided_at = utcnow()
    request.decided_by = actor.id
    _record_event(db, request, "approved", actor.id, previous)
    await db.flush()
    return request


async def deny_request(
    db: AsyncSession, actor: User, request_id: uuid.UUID, reason: str
) -> UpgradeRequest:
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("A reason is required to deny a request")

    request = await _load_request(db, request_id)
    _ensure_decider(actor, request)
    previous = _ensure_transition(request, RequestStatus.denied)

    request.status = RequestStatus.denied.value
    request.denial_reason = reason
    request.decided_at = utcnow()
    request.decided_by = actor.id
    _record_event(db, request, "denied", actor.id, previous, reason=reason)
    await db.flush()
    return request


async def fulfil_request(
    db: AsyncSession,
    actor: User,
    request_id: uuid.UUID,
    deliverables: Optional[dict] = None,
) -> UpgradeRequest:
    """Mark an approved request as delivered. Admin only."""
    if Role(actor.role) is not Role.admin:
        raise Forbidden("Only an admin can record fulfilment")

    request = await _load_request(db, request_id)
    previous = _ensure_transition(request, RequestStatus.fulfilled)

    request.status = RequestStatus.fulfilled.value
    request.deliverables = deliverables or {}
    request.fulfilled_at = utcnow()
    _record_event(db, request, "fulfilled", actor.id, previous)
    await db.flush()
    return request


async def cancel_request(
    db: AsyncSession, actor: User, request_id: uuid.UUID
) -> UpgradeRequest:
    request = await _load_request(db, request_id)
    if request.requester_id != actor.id:
        raise Forbidden("Only the requester can cancel this request")
    previous = _ensure_transition(request, RequestStatus.cancelled)

    request.status = RequestStatus.cancelled.value
    _record_event(db, request, "cancelled", actor.id, previous)
    await db.flush()
    return request


async def get_request(
    db: AsyncSession, viewer: User, request_id: uuid.UUID
) -> tuple[UpgradeRequest, list[ApprovalEvent]]:
    """A request with its audit trail. Visible to the requester and to deciders."""
    request = await _load_request(db, request_id, for_update=False)
    if request.requester_id != viewer.id and not role_covers(viewer.role, Role.approver.value):
        raise Forbidden("You cannot view this request")

    result = await db.execute(
        select(ApprovalEvent)
        .where(ApprovalEvent.request_id == request.id)
        .order_by(ApprovalEvent.created_at.asc())
    )
    return request, list(result.scalars().all())


async def list_requests(db: AsyncSession, viewer: User, role: str = "requester") -> RequestListing:
    """List requests for the requester view or the approver queue.

    The approver queue holds every pending request. Requests above the
    viewer's level are returned read-only and marked admin_only.
    """
    if role == "requester":
        result = await db.execute(
            select(UpgradeRequest)
            .where(UpgradeRequest.requester_id == viewer.id)
            .order_by(UpgradeRequest.created_at.desc())
        )
        return RequestListing(items=[RequestView(r) for r in result.scalars().all()])

    if role not in (Role.approver.value, Role.admin.value):
        raise ValidationError("role must be 'requester', 'approver' or 'admin'")
    if not role_covers(viewer.role, Role.approver.value):
        raise Forbidden("The approval queue is limited to approvers and admins")

    result = await db.execute(
        select(UpgradeRequest)
        .where(UpgradeRequest.status == RequestStatus.pending.value)
        .order_by(UpgradeRequest.created_at.asc())
    )
    items: list[RequestView] = []
    for request in result.scalars().all():
        covered = role_covers(viewer.role, request.approval_level)
        items.append(
            RequestView(
                request=request,
                actionable=covered and request.requester_id != viewer.id,
                admin_only=request.approval_level == ApprovalLevel.admin.value and not covered,
            )
        )
    return RequestListing(items=items, actionable_count=sum(1 for v in items if v.actionable))
