"""Request and response schemas for the HTTP API."""

from __future__ import annotations

from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from ..core.token_budget import CompressionAction
from ..db.models.enums import MemoryTier, MessageState


class ErrorResponse(BaseModel):
    """Error body returned by every exception handler."""

    error: str
    detail: str | None = None
    code: str
    request_id: str | None = None


# === Messages ===


class MessageCreate(BaseModel):
    role: Literal["user", "assistant", "system", "tool"]
    content: str = Field(..., min_length=1)
    timestamp: datetime | None = None


class MessageResponse(BaseModel):
    """Stored or snapshotted message with its compression state."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    session_id: str
    sequence: int
    role: str
    content: str
    effective_content: str
    timestamp: datetime
    token_count: int | None
    state: MessageState
    is_summary: bool
    condense_id: UUID | None
    condense_parent: UUID | None
    is_truncation_marker: bool
    truncation_id: UUID | None
    is_pruned: bool


class CompressionResponse(BaseModel):
    """What a compression pass did, for display."""

    model_config = ConfigDict(from_attributes=True)

    action_requested: CompressionAction
    action_taken: CompressionAction
    degraded: bool
    cancelled: bool
    reason: str | None
    tokens_before: int
    tokens_after: int
    affected_messages: int
    summary_message_id: UUID | None
    compacted_session_id: UUID | None
    truncation_id: UUID | None


class AppendResponse(BaseModel):
    message: MessageResponse
    compression: CompressionResponse
    checkpoint_ids: list[UUID] = Field(default_factory=list)


class CompressRequest(BaseModel):
    action: CompressionAction | None = Field(
        default=None, description="Force an action instead of evaluating thresholds"
    )
    hint: str | None = Field(default=None, max_length=2000)


class CancelResponse(BaseModel):
    cancelled: bool


class BudgetResponse(BaseModel):
    """Current token budget status of a session."""

    model_config = ConfigDict(from_attributes=True)

    action: CompressionAction
    used_tokens: int
    effective_limit: int
    usage_ratio: float
    level: str
    message: str


class SessionDeleteResponse(BaseModel):
    messages: int
    checkpoints: int
    memories: int


# === Checkpoints ===


class CheckpointCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)


class CheckpointResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    session_id: str
    name: str
    message_count: int
    token_count: int
    summary: str
    is_auto: bool
    created_at: datetime


class RestoreResponse(BaseModel):
    checkpoint_id: UUID
    messages: list[MessageResponse]


class DeletedResponse(BaseModel):
    deleted: int


# === Memories ===


class MemoryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    session_id: str
    summary: str
    key_topics: list[str]
    decisions: list[str]
    message_start: int
    message_end: int
    created_at: datetime
    last_accessed_at: datetime
    access_count: int
    tier: MemoryTier
    tier_updated_at: datetime | None
    promotion_history: list[dict[str, str]]


class AccessResponse(BaseModel):
    updated: int


class MemoryStatsResponse(BaseModel):
    mid_term_total: int
    long_term_total: int
    expired_candidates: int
    dangling_candidates: int
    orphaned_embeddings: int


# === Settings ===


class ContextConfigUpdate(BaseModel):
    """Partial update of the context engine configuration."""

    enabled: bool | None = None
    max_tokens: int | None = None
    model_context_limit: int | None = None
    model_output_limit: int | None = None
    prune_threshold: float | None = None
    compact_threshold: float | None = None
    truncate_threshold: float | None = None
    messages_to_keep: int | None = None
    checkpoint_interval: int | None = None
    prune_min_tokens: int | None = None
    min_messages_to_compact: int | None = None
    checkpoint_after_compression: bool | None = None


class AutoUpgradeConfigUpdate(BaseModel):
    """Partial update of the memory auto-upgrade configuration."""

    enabled: bool | None = None
    days_threshold: int | None = None
    min_access_count: int | None = None
    batch_size: int | None = None
    check_interval_seconds: float | None = None
