"""Checkpoint model."""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import INTEGER, TEXT, VARCHAR
from sqlalchemy.orm import Mapped, mapped_column

from ..types import JSONType, UTCDateTime, utcnow
from .base import Base


class Checkpoint(Base):
    """Immutable point-in-time snapshot of a session transcript.

    Attributes:
        id: Primary key (UUID)
        session_id: Conversation identifier
        name: User-facing label
        message_count: Number of stored messages captured
        token_count: Active token usage at capture time
        summary: Human-readable description
        messages_snapshot: Serialized copy of every stored message (JSON list)
        last_sequence: Highest message sequence covered by the snapshot
        is_auto: Created by the interval trigger rather than the user
        created_at: Creation timestamp
    """

    __tablename__ = "chat_checkpoints"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    session_id: Mapped[str] = mapped_column(VARCHAR(255), index=True)
    name: Mapped[str] = mapped_column(VARCHAR(255))
    message_count: Mapped[int] = mapped_column(INTEGER)
    token_count: Mapped[int] = mapped_column(INTEGER)
    summary: Mapped[str] = mapped_column(TEXT)
    messages_snapshot: Mapped[list[dict[str, Any]]] = mapped_column(JSONType)
    last_sequence: Mapped[int] = mapped_column(INTEGER, default=0)
    is_auto: Mapped[bool] = mapped_column(default=False)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), default=utcnow, index=True
    )

    def __repr__(self) -> str:
        return f"<Checkpoint(id={self.id}, session={self.session_id}, name={self.name})>"
