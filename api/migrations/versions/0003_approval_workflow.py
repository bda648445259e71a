"""Upgrade requests and approval audit trail

Revision ID: c92e6a0d5f47
Revises: 7b4d2e8f1c33
Create Date: 2026-10-19 00:03:00.000000

Creates upgrade_requests (pending/approved/denied/fulfilled/cancelled) and
the append-only approval_events table written on every transition.
"""

from typing import Sequence, Union

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB, UUID

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "c92e6a0d5f47"
down_revision: Union[str, None] = "7b4d2e8f1c33"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "upgrade_requests",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "requester_id",
            UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("team_id", UUID(as_uuid=True), nullable=True),
        sa.Column("type", sa.String(30), nullable=False),
        sa.Column("title", sa.String(300), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("approval_level", sa.String(20), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("estimated_credits", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("context", JSONB(), nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column("deliverables", JSONB(), nullable=True),
        sa.Column("denial_reason", sa.Text(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.Column("decided_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "decided_by",
            UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("fulfilled_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("estimated_credits >= 0", name="ck_upgrade_requests_credits"),
        sa.CheckConstraint(
            "status IN ('pending', 'approved', 'denied', 'fulfilled', 'cancelled')",
            name="ck_upgrade_requests_status",
        ),
        sa.CheckConstraint(
            "approval_level IN ('approver', 'admin')",
            name="ck_upgrade_requests_approval_level",
        ),
    )
    op.create_index(
        "ix_upgrade_requests_requester_id", "upgrade_requests", ["requester_id"]
    )
    op.create_index(
        "ix_upgrade_requests_status_level",
        "upgrade_requests",
        ["status", "approval_level"],
    )

    op.create_table(
        "approval_events",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "request_id",
            UUID(as_uuid=True),
            sa.ForeignKey("upgrade_requests.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("event_type", sa.String(20), nullable=False),
        sa.Column(
            "performed_by",
            UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("from_status", sa.String(20), nullable=True),
        sa.Column("to_status", sa.String(20), nullable=True),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
    )
    op.create_index("ix_approval_events_request_id", "approval_events", ["request_id"])


def downgrade() -> None:
    op.drop_index("ix_approval_events_request_id", table_name="approval_events")
    op.drop_table("approval_events")
    op.drop_index("ix_upgrade_requests_status_level", table_name="upgrade_requests")
    op.drop_index("ix_upgrade_requests_requester_id", table_name="upgrade_requests")
    op.drop_table("upgrade_requests")
