"""Event bus for caller-facing reports."""

from .bus import EventBus, EventHandler
from .types import (
    CheckpointCreatedEvent,
    CleanupCompletedEvent,
    ContextCompressedEvent,
    Event,
    EventType,
    PromotionCompletedEvent,
)

__all__ = [
    "CheckpointCreatedEvent",
    "CleanupCompletedEvent",
    "ContextCompressedEvent",
    "Event",
    "EventBus",
    "EventHandler",
    "EventType",
    "PromotionCompletedEvent",
]
