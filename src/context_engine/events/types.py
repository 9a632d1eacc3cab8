"""Event type definitions for the event bus."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum
from uuid import UUID

from pydantic import BaseModel, Field


class EventType(StrEnum):
    """All event types emitted by the engine."""

    CONTEXT_COMPRESSED = "context.compressed"
    CHECKPOINT_CREATED = "checkpoint.created"
    PROMOTION_COMPLETED = "memory.promotion_completed"
    CLEANUP_COMPLETED = "memory.cleanup_completed"


class Event(BaseModel):
    """Base class for all events."""

    type: EventType
    session_id: str | None = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))

    model_config = {"use_enum_values": True}


class ContextCompressedEvent(Event):
    """Emitted after each compression pass that did something or degraded."""

    type: EventType = EventType.CONTEXT_COMPRESSED
    action: str
    degraded: bool = False
    cancelled: bool = False
    tokens_before: int = 0
    tokens_after: int = 0


class CheckpointCreatedEvent(Event):
    """Emitted when a checkpoint is written."""

    type: EventType = EventType.CHECKPOINT_CREATED
    checkpoint_id: UUID
    name: str
    is_auto: bool = False


class PromotionCompletedEvent(Event):
    """Emitted after a promotion run."""

    type: EventType = EventType.PROMOTION_COMPLETED
    promoted: int
    checked: int
    embedding_errors: list[str] = Field(default_factory=list)


class CleanupCompletedEvent(Event):
    """Emitted after a cleanup run."""

    type: EventType = EventType.CLEANUP_COMPLETED
    expired_mid_term: int
    dangling_count: int
    orphaned_count: int
    errors: list[str] = Field(default_factory=list)
