"""Repositories for database access."""

from .base import BaseRepository
from .checkpoint_repo import CheckpointRepository
from .compacted_session_repo import CompactedSessionRepository
from .message_repo import MessageRepository

__all__ = [
    "BaseRepository",
    "CheckpointRepository",
    "CompactedSessionRepository",
    "MessageRepository",
]
