"""Community core schema

Revision ID: 3f1a9c2e7b10
Revises:
Create Date: 2026-10-19 00:01:00.000000

Creates users, profiles, tags, questions, answers, question_tags, votes and
reputation_log, including the partial unique index that allows at most one
accepted answer per question.
"""
from typing import Sequence, Union

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "3f1a9c2e7b10"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps(*names: str) -> list[sa.Column]:
    return [
        sa.Column(
            name,
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        )
        for name in names
    ]


def upgrade() -> None:
    # --- users ---
    op.create_table(
        "users",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("email", sa.String(255), nullable=True, unique=True),
        sa.Column("api_key_hash", sa.String(255), nullable=True, unique=True),
        sa.Column("role", sa.String(20), nullable=False, server_default="member"),
        *_timestamps("created_at"),
    )

    # --- profiles (one per user, created on first sign-in) ---
    op.create_table(
        "profiles",
        sa.Column(
            "user_id",
            UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("display_name", sa.String(100), nullable=True),
        sa.Column("avatar_url", sa.String(500), nullable=True),
        sa.Column("job_title", sa.String(150), nullable=True),
        sa.Column("company", sa.String(150), nullable=True),
        sa.Column("reputation", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("current_streak", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("longest_streak", sa.Integer(), nullable=False, server_default="0"),
        *_timestamps("created_at", "updated_at"),
        sa.CheckConstraint("reputation >= 0", name="ck_profiles_reputation_non_negative"),
    )

    # --- tags ---
    op.create_table(
        "tags",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("name", sa.String(50), nullable=False, unique=True),
        sa.Column("slug", sa.String(50), nullable=False, unique=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("question_count", sa.Integer(), nullable=False, server_default="0"),
        *_timestamps("created_at"),
    )
    op.create_index("ix_tags_slug", "tags", ["slug"])

    # --- questions ---
    op.create_table(
        "questions",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "user_id",
            UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("title", sa.String(300), nullable=False),
        sa.Column("body", sa.Text(), nullable=False),
        sa.Column("ai_context_summary", sa.Text(), nullable=True),
        sa.Column("score", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("view_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("answer_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("accepted_answer_id", UUID(as_uuid=True), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="open"),
        *_timestamps("created_at", "updated_at"),
        sa.CheckConstraint(
            "status IN ('open', 'answered', 'closed')", name="ck_questions_status"
        ),
    )
    op.create_index("ix_questions_user_id", "questions", ["user_id"])
    op.create_index("ix_questions_created_at", "questions", ["created_at"])
    op.create_index("ix_questions_updated_at", "questions", ["updated_at"])
    op.create_index("ix_questions_score", "questions", ["score"])

    # --- answers ---
    op.create_table(
        "answers",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "question_id",
            UUID(as_uuid=True),
            sa.ForeignKey("questions.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "user_id",
            UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("body", sa.Text(), nullable=False),
        sa.Column("score", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_accepted", sa.Boolean(), nullable=False, server_default="false"),
        *_timestamps("created_at", "updated_at"),
    )
    op.create_index("ix_answers_question_id", "answers", ["question_id"])
    op.create_index("ix_answers_user_id", "answers", ["user_id"])
    op.create_index(
        "uq_answers_one_accepted_per_question",
        "answers",
        ["question_id"],
        unique=True,
        postgresql_where=sa.text("is_accepted"),
    )

    # --- question_tags (composite PK) ---
    op.create_table(
        "question_tags",
        sa.Column(
            "question_id",
            UUID(as_uuid=True),
            sa.ForeignKey("questions.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column(
            "tag_id",
            UUID(as_uuid=True),
            sa.ForeignKey("tags.id", ondelete="CASCADE"),
            primary_key=True,
        ),
    )
    op.create_index("ix_question_tags_tag_id", "question_tags", ["tag_id"])

    # --- votes ---
    op.create_table(
        "votes",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "user_id",
            UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("target_type", sa.String(20), nullable=False),
        sa.Column("target_id", UUID(as_uuid=True), nullable=False),
        sa.Column("value", sa.SmallInteger(), nullable=False),
        *_timestamps("created_at", "updated_at"),
        sa.UniqueConstraint(
            "user_id", "target_type", "target_id", name="uq_votes_user_target"
        ),
        sa.CheckConstraint("value IN (1, -1)", name="ck_votes_value"),
        sa.CheckConstraint(
            "target_type IN ('question', 'answer')", name="ck_votes_target_type"
        ),
    )
    op.create_index("ix_votes_target", "votes", ["target_type", "target_id"])

    # --- reputation_log (append-only) ---
    op.create_table(
        "reputation_log",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "user_id",
            UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("change", sa.Integer(), nullable=False),
        sa.Column("reason", sa.String(50), nullable=False),
        sa.Column("source_type", sa.String(20), nullable=True),
        sa.Column("source_id", UUID(as_uuid=True), nullable=True),
        *_timestamps("created_at"),
    )
    op.create_index(
        "ix_reputation_log_user_created", "reputation_log", ["user_id", "created_at"]
    )
    op.create_index(
        "ix_reputation_log_source", "reputation_log", ["source_type", "source_id"]
    )


def downgrade() -> None:
    op.drop_table("reputation_log")
    op.drop_table("votes")
    op.drop_table("question_tags")
    op.drop_index("uq_answers_one_accepted_per_question", table_name="answers")
    op.drop_table("answers")
    op.drop_table("questions")
    op.drop_table("tags")
    op.drop_table("profiles")
    op.drop_table("users")
