"""Test doubles and factories shared across test modules."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from types import SimpleNamespace
from typing import Any
from uuid import uuid4

from context_engine.core.compression import CompressionResult
from context_engine.core.schemas import MessageSnapshot
from context_engine.core.summarizer import SummaryResult
from context_engine.core.token_budget import CompressionAction
from context_engine.db.models.message import ChatMessage
from context_engine.db.types import utcnow

SESSION = "session-1"

SeedMessages = Callable[[str, Sequence[tuple[str, str, int]]], Awaitable[list[ChatMessage]]]


class FakeSummarizer:
    """Summarizer double that records calls.

    Args:
        result: Summary to return (defaults to a generated one)
        error: Exception to raise instead of returning
        delay: Seconds to sleep before answering
    """

    def __init__(
        self,
        result: SummaryResult | None = None,
        error: Exception | None = None,
        delay: float = 0.0,
    ) -> None:
        self.result = result
        self.error = error
        self.delay = delay
        self.calls: list[tuple[list[ChatMessage], str | None]] = []
        self.started = asyncio.Event()

    async def summarize(
        self, messages: Sequence[ChatMessage], hint: str | None = None
    ) -> SummaryResult:
        self.calls.append((list(messages), hint))
        self.started.set()
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        if self.result is not None:
            return self.result
        return SummaryResult(
            summary=f"Summary of {len(messages)} messages",
            key_topics=["testing"],
            decisions=["keep going"],
        )


# === API factories ===


def make_snapshot(content: str = "hello", sequence: int = 1, **overrides: Any) -> MessageSnapshot:
    values: dict[str, Any] = {
        "id": uuid4(),
        "session_id": SESSION,
        "sequence": sequence,
        "position": float(sequence),
        "role": "user",
        "content": content,
        "timestamp": utcnow(),
        "token_count": 2,
    }
    values.update(overrides)
    return MessageSnapshot(**values)


def make_compression(
    action: CompressionAction = CompressionAction.NONE, **overrides: Any
) -> CompressionResult:
    values: dict[str, Any] = {"action_requested": action, "action_taken": action}
    values.update(overrides)
    return CompressionResult(session_id=SESSION, **values)


def make_checkpoint(name: str = "cp", **overrides: Any) -> SimpleNamespace:
    values: dict[str, Any] = {
        "id": uuid4(),
        "session_id": SESSION,
        "name": name,
        "message_count": 2,
        "token_count": 10,
        "summary": "Session snapshot - 2 messages",
        "is_auto": False,
        "created_at": utcnow(),
    }
    values.update(overrides)
    return SimpleNamespace(**values)


def make_memory(**overrides: Any) -> SimpleNamespace:
    now = utcnow()
    values: dict[str, Any] = {
        "id": uuid4(),
        "session_id": SESSION,
        "summary": "Discussed deploys",
        "key_topics": ["deploy"],
        "decisions": [],
        "message_start": 1,
        "message_end": 4,
        "created_at": now,
        "last_accessed_at": now,
        "access_count": 0,
        "tier": "mid-term",
        "tier_updated_at": None,
        "promotion_history": [],
    }
    values.update(overrides)
    return SimpleNamespace(**values)
