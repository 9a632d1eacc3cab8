"""Shared pytest fixtures."""

from __future__ import annotations

from collections.abc import AsyncGenerator, Sequence
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from context_engine.config import ContextEngineConfig
from context_engine.core.token_budget import TokenCounter, estimate_tokens
from context_engine.db.models.message import ChatMessage
from context_engine.db.repository.message_repo import MessageRepository
from context_engine.db.session import DatabaseSessionManager
from helpers import FakeSummarizer, SeedMessages


@pytest.fixture
async def session_manager(tmp_path: Path) -> AsyncGenerator[DatabaseSessionManager, None]:
    """File-backed SQLite database with the full schema."""
    manager = DatabaseSessionManager(f"sqlite+aiosqlite:///{tmp_path / 'context.db'}")
    await manager.create_all()
    yield manager
    await manager.close()


@pytest.fixture
def config() -> ContextEngineConfig:
    """Config with a 10,000 token effective limit."""
    return ContextEngineConfig(
        _env_file=None,
        max_tokens=11_000,
        model_context_limit=11_000,
        model_output_limit=1_000,
        prune_threshold=0.70,
        compact_threshold=0.85,
        truncate_threshold=0.95,
        messages_to_keep=2,
        checkpoint_interval=0,
        prune_min_tokens=100,
        min_messages_to_compact=3,
    )


@pytest.fixture
def token_counter() -> MagicMock:
    """Deterministic counter using the character estimate."""
    counter = MagicMock(spec=TokenCounter)
    counter.count.side_effect = estimate_tokens
    return counter


@pytest.fixture
def summarizer() -> FakeSummarizer:
    return FakeSummarizer()


@pytest.fixture
def vector_store() -> MagicMock:
    """Vector store double with no orphans."""
    store = MagicMock()
    store.upsert_embedding = AsyncMock(return_value=None)
    store.list_orphaned = AsyncMock(return_value=[])
    store.delete_embedding = AsyncMock(return_value=True)
    return store


@pytest.fixture
def seed_messages(session_manager: DatabaseSessionManager) -> SeedMessages:
    """Insert ``(role, content, token_count)`` triples and commit."""

    async def _seed(
        session_id: str, specs: Sequence[tuple[str, str, int]]
    ) -> list[ChatMessage]:
        items: list[dict[str, Any]] = [
            {"role": role, "content": content, "token_count": tokens}
            for role, content, tokens in specs
        ]
        async with session_manager.session() as session:
            messages = await MessageRepository(session).add_batch(session_id, items)
            await session.commit()
        return messages

    return _seed
