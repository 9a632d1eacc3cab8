"""Compacted session (mid-term memory) model."""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import INTEGER, TEXT, VARCHAR, Index
from sqlalchemy.orm import Mapped, mapped_column

from ..types import JSONType, UTCDateTime, utcnow
from .base import Base
from .enums import MemoryTier


class CompactedSession(Base):
    """Memory record produced by one compaction event.

    Attributes:
        id: Primary key (UUID)
        session_id: Conversation the summary was taken from
        summary: Summary text of the replaced range
        key_topics: Topics extracted by the summarizer
        decisions: Decisions extracted by the summarizer
        message_start: Sequence of the first replaced message
        message_end: Sequence of the last replaced message
        condense_id: Summary message that stands in for the range
        created_at: Creation timestamp
        last_accessed_at: Last time the memory was injected into a prompt
        access_count: Number of injections
        tier: mid-term or long-term
        tier_updated_at: Last tier transition (None until promoted)
        promotion_history: Ordered tier-change events
    """

    __tablename__ = "compacted_sessions"
    __table_args__ = (
        Index(
            "ix_compacted_sessions_promotion",
            "tier",
            "access_count",
            "last_accessed_at",
        ),
    )

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    session_id: Mapped[str] = mapped_column(VARCHAR(255), index=True)
    summary: Mapped[str] = mapped_column(TEXT)
    key_topics: Mapped[list[str]] = mapped_column(JSONType, default=list)
    decisions: Mapped[list[str]] = mapped_column(JSONType, default=list)
    message_start: Mapped[int] = mapped_column(INTEGER)
    message_end: Mapped[int] = mapped_column(INTEGER)
    condense_id: Mapped[UUID | None] = mapped_column()
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow)
    last_accessed_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow)
    access_count: Mapped[int] = mapped_column(INTEGER, default=0)
    tier: Mapped[str] = mapped_column(
        VARCHAR(20), default=MemoryTier.MID_TERM.value, index=True
    )
    tier_updated_at: Mapped[datetime | None] = mapped_column(UTCDateTime())
    promotion_history: Mapped[list[dict[str, Any]]] = mapped_column(JSONType, default=list)

    def __repr__(self) -> str:
        return f"<CompactedSession(id={self.id}, session={self.session_id}, tier={self.tier})>"
