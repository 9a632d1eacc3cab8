"""Schemas shared by the compression engine and checkpoints."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from ..db.models.enums import MessageState
from ..db.models.message import PRUNED_MARKER


class MessageSnapshot(BaseModel):
    """Serialized copy of a stored message, as captured by a checkpoint."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    session_id: str
    sequence: int
    position: float
    role: str
    content: str
    timestamp: datetime
    token_count: int | None = None
    state: MessageState = MessageState.ACTIVE
    replaced_by: UUID | None = None
    condense_id: UUID | None = None
    is_pruned: bool = False
    original_token_count: int | None = None

    @property
    def is_active(self) -> bool:
        return self.state == MessageState.ACTIVE

    @property
    def is_summary(self) -> bool:
        return self.condense_id is not None

    @property
    def condense_parent(self) -> UUID | None:
        return self.replaced_by if self.state == MessageState.CONDENSED else None

    @property
    def is_truncation_marker(self) -> bool:
        return self.state == MessageState.TRUNCATED

    @property
    def truncation_id(self) -> UUID | None:
        return self.replaced_by if self.state == MessageState.TRUNCATED else None

    @property
    def effective_content(self) -> str:
        if self.is_pruned:
            return PRUNED_MARKER.format(tokens=self.original_token_count or 0)
        return self.content
