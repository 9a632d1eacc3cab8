"""Database models."""

from .base import Base
from .checkpoint import Checkpoint
from .compacted_session import CompactedSession
from .enums import MemoryTier, MessageRole, MessageState
from .memory_embedding import EMBEDDING_DIMENSION, MemoryEmbedding
from .message import PRUNED_MARKER, ChatMessage

__all__ = [
    "EMBEDDING_DIMENSION",
    "PRUNED_MARKER",
    "Base",
    "ChatMessage",
    "Checkpoint",
    "CompactedSession",
    "MemoryEmbedding",
    "MemoryTier",
    "MessageRole",
    "MessageState",
]
