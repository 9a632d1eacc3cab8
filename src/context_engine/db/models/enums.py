"""Enums for database models."""

from enum import Enum


class MessageRole(str, Enum):
    """Transcript message author."""

    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"
    TOOL = "tool"


class MessageState(str, Enum):
    """Compression state of a stored message.

    Only ``ACTIVE`` messages count toward token usage. Condensed and
    truncated messages stay in storage for checkpoints and audit.
    """

    ACTIVE = "active"
    CONDENSED = "condensed"
    TRUNCATED = "truncated"


class MemoryTier(str, Enum):
    """Durability class of a compacted session record."""

    MID_TERM = "mid-term"
    LONG_TERM = "long-term"
