"""Chat message model."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import (
    BOOLEAN,
    FLOAT,
    INTEGER,
    TEXT,
    VARCHAR,
    CheckConstraint,
    Index,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from ..types import UTCDateTime, utcnow
from .base import Base
from .enums import MessageState

PRUNED_MARKER = "[tool output pruned: {tokens} tokens]"


class ChatMessage(Base):
    """Single transcript entry of a conversation session.

    Compression never deletes rows. A message leaves the active set by
    changing ``state`` and pointing ``replaced_by`` at the summary
    (condensed) or the truncation group (truncated) that displaced it.

    Attributes:
        id: Primary key (UUID)
        session_id: Conversation identifier
        sequence: Append order within the session (unique per session)
        position: Timeline sort key (summaries sit between the range they
            replace and the first kept message)
        role: Author role (user, assistant, system, tool)
        content: Original message text, kept intact even when pruned
        timestamp: Message time, non-decreasing within a session
        token_count: Cached token count of the effective content
        state: active, condensed or truncated
        replaced_by: Condense id or truncation id that displaced this message
        condense_id: Set only on synthetic summary messages
        is_pruned: Tool payload replaced by a short marker
        original_token_count: Token count before pruning
        checkpoint_id: First checkpoint that captured this message
        created_at: Row creation timestamp
    """

    __tablename__ = "chat_messages"
    __table_args__ = (
        UniqueConstraint("session_id", "sequence", name="uq_chat_messages_session_sequence"),
        CheckConstraint(
            "(state = 'active' AND replaced_by IS NULL) "
            "OR (state != 'active' AND replaced_by IS NOT NULL)",
            name="ck_chat_messages_state_link",
        ),
        Index("ix_chat_messages_session_position", "session_id", "position"),
    )

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    session_id: Mapped[str] = mapped_column(VARCHAR(255), index=True)
    sequence: Mapped[int] = mapped_column(INTEGER)
    position: Mapped[float] = mapped_column(FLOAT)
    role: Mapped[str] = mapped_column(VARCHAR(20))
    content: Mapped[str] = mapped_column(TEXT)
    timestamp: Mapped[datetime] = mapped_column(UTCDateTime())
    token_count: Mapped[int | None] = mapped_column(INTEGER)
    state: Mapped[str] = mapped_column(
        VARCHAR(20), default=MessageState.ACTIVE.value, index=True
    )
    replaced_by: Mapped[UUID | None] = mapped_column(index=True)
    condense_id: Mapped[UUID | None] = mapped_column(unique=True)
    is_pruned: Mapped[bool] = mapped_column(BOOLEAN, default=False)
    original_token_count: Mapped[int | None] = mapped_column(INTEGER)
    checkpoint_id: Mapped[UUID | None] = mapped_column()
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow)

    @property
    def is_active(self) -> bool:
        return self.state == MessageState.ACTIVE.value

    @property
    def is_summary(self) -> bool:
        return self.condense_id is not None

    @property
    def condense_parent(self) -> UUID | None:
        """Summary id that replaced this message, if condensed."""
        return self.replaced_by if self.state == MessageState.CONDENSED.value else None

    @property
    def is_truncation_marker(self) -> bool:
        return self.state == MessageState.TRUNCATED.value

    @property
    def truncation_id(self) -> UUID | None:
        return self.replaced_by if self.state == MessageState.TRUNCATED.value else None

    @property
    def effective_content(self) -> str:
        """Content as presented to the model."""
        if self.is_pruned:
            return PRUNED_MARKER.format(tokens=self.original_token_count or 0)
        return self.content

    def __repr__(self) -> str:
        return (
            f"<ChatMessage(id={self.id}, session={self.session_id}, "
            f"seq={self.sequence}, state={self.state})>"
        )
