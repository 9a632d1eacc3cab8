"""Pydantic schemas for memory operations."""

from __future__ import annotations

from datetime import datetime
from typing import Self
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ..db.models.enums import MemoryTier
from ..db.types import utcnow


class MemoryCreate(BaseModel):
    """Validation schema for creating compacted session records.

    Attributes:
        session_id: Source conversation (1-255 characters)
        summary: Summary text of the replaced range
        key_topics: Extracted topics (max 50)
        decisions: Extracted decisions (max 50)
        message_start: Sequence of the first replaced message
        message_end: Sequence of the last replaced message
        condense_id: Summary message standing in for the range
    """

    session_id: str = Field(..., min_length=1, max_length=255)
    summary: str = Field(..., min_length=1, max_length=100_000)
    key_topics: list[str] = Field(default_factory=list, max_length=50)
    decisions: list[str] = Field(default_factory=list, max_length=50)
    message_start: int = Field(..., ge=0)
    message_end: int = Field(..., ge=0)
    condense_id: UUID | None = None

    @field_validator("session_id", "summary")
    @classmethod
    def validate_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("value cannot be empty or whitespace")
        return v

    @field_validator("key_topics", "decisions")
    @classmethod
    def drop_blank_items(cls, v: list[str]) -> list[str]:
        return [item.strip() for item in v if item and item.strip()]

    @model_validator(mode="after")
    def validate_range(self) -> Self:
        if self.message_start > self.message_end:
            raise ValueError("message_start must not exceed message_end")
        return self


class PromotionEvent(BaseModel):
    """One entry of a record's promotion history."""

    model_config = ConfigDict(populate_by_name=True)

    from_tier: MemoryTier = Field(alias="from")
    to_tier: MemoryTier = Field(alias="to")
    at: datetime = Field(default_factory=utcnow)

    def to_history_entry(self) -> dict[str, str]:
        return self.model_dump(mode="json", by_alias=True)


class PromotionReport(BaseModel):
    """Result of one promotion run."""

    enabled: bool = True
    checked: int = 0
    promoted: list[UUID] = Field(default_factory=list)
    skipped: int = 0
    conflicts: int = 0
    embedding_errors: list[str] = Field(default_factory=list)

    @property
    def promoted_count(self) -> int:
        return len(self.promoted)


class CleanupReport(BaseModel):
    """Result of one cleanup run."""

    expired_mid_term: int = 0
    dangling_count: int = 0
    orphaned_count: int = 0
    errors: list[str] = Field(default_factory=list)

    @property
    def is_clean(self) -> bool:
        return not (
            self.expired_mid_term or self.dangling_count or self.orphaned_count or self.errors
        )


class CleanupStats(BaseModel):
    """Read-only view of what cleanup would find."""

    mid_term_total: int = 0
    long_term_total: int = 0
    expired_candidates: int = 0
    dangling_candidates: int = 0
    orphaned_embeddings: int = 0


class AccessInfo(BaseModel):
    """Access statistics of a memory record."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    access_count: int
    last_accessed_at: datetime
    tier: MemoryTier
