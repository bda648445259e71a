"""Upgrade request and approval audit trail models.

An upgrade request asks for paid work (analyst time, report upgrades,
expert calls). Requests move through a small state machine:

    pending -> approved -> fulfilled
    pending -> denied
    pending -> cancelled

Every transition appends an ApprovalEvent row; events are never updated.
"""

import enum
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    JSON,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Uuid,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, utcnow


class RequestStatus(str, enum.Enum):
    pending = "pending"
    approved = "approved"
    denied = "denied"
    fulfilled = "fulfilled"
    cancelled = "cancelled"


class RequestType(str, enum.Enum):
    analyst_qa = "analyst_qa"
    analyst_call = "analyst_call"
    report_upgrade = "report_upgrade"
    expert_consult = "expert_consult"
    expert_deepdive = "expert_deepdive"
    bespoke_project = "bespoke_project"


class ApprovalLevel(str, enum.Enum):
    approver = "approver"
    admin = "admin"


class UpgradeRequest(Base):
    __tablename__ = "upgrade_requests"
    __table_args__ = (
        CheckConstraint("estimated_credits >= 0", name="ck_upgrade_requests_credits"),
        Index("ix_upgrade_requests_status_level", "status", "approval_level"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    requester_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    team_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)
    type: Mapped[str] = mapped_column(String(30), nullable=False)
    title: Mapped[str] = mapped_column(String(300), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    approval_level: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), default=RequestStatus.pending, nullable=False
    )
    estimated_credits: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    # Free-form pointers back into the app (reportId, categoryId, queryText, ...)
    context: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)
    deliverables: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    denial_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        onupdate=utcnow,
        nullable=False,
    )
    decided_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    decided_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    fulfilled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)


class ApprovalEvent(Base):
    __tablename__ = "approval_events"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    request_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("upgrade_requests.id", ondelete="CASCADE"), nullable=False, index=True
    )
    event_type: Mapped[str] = mapped_column(String(20), nullable=False)
    performed_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    from_status: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    to_status: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )
