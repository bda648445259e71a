"""ReputationLogEntry ORM model.

Append-only ledger of every reputation change. ``profiles.reputation`` is a
clamped running total of these rows. Reversals are stored as their own
``<reason>_reversed`` rows rather than negative rows of the base reason.
"""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, utcnow


class ReputationLogEntry(Base):
    __tablename__ = "reputation_log"
    __table_args__ = (
        Index("ix_reputation_log_user_created", "user_id", "created_at"),
        Index("ix_reputation_log_source", "source_type", "source_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    change: Mapped[int] = mapped_column(Integer, nullable=False)
    reason: Mapped[str] = mapped_column(String(50), nullable=False)
    source_type: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    source_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )
