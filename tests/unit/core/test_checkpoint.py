"""Tests for CheckpointManager."""

from __future__ import annotations

from unittest.mock import MagicMock
from uuid import uuid4

import pytest

from context_engine.config import ContextEngineConfig
from context_engine.core.checkpoint import CheckpointManager, build_summary
from context_engine.core.compression import CompressionEngine
from context_engine.core.token_budget import CompressionAction
from context_engine.db.models.enums import MessageState
from context_engine.db.models.message import ChatMessage
from context_engine.db.repository.message_repo import MessageRepository
from context_engine.db.session import DatabaseSessionManager
from context_engine.db.types import utcnow
from context_engine.exceptions import CheckpointNotFoundError
from helpers import FakeSummarizer, SeedMessages

SESSION = "session-1"


@pytest.fixture
def manager(config: ContextEngineConfig) -> CheckpointManager:
    return CheckpointManager(config.model_copy(update={"checkpoint_interval": 3}))


def transient(role: str, content: str) -> ChatMessage:
    return ChatMessage(
        session_id=SESSION, sequence=1, position=1.0, role=role, content=content, timestamp=utcnow()
    )


class TestBuildSummary:
    """Tests for the one-line checkpoint summary."""

    def test_quotes_last_user_message(self) -> None:
        messages = [transient("user", "first"), transient("assistant", "ok"), transient("user", "second")]

        assert build_summary(messages) == "Session snapshot - 3 messages, last user message: second"

    def test_long_message_is_shortened(self) -> None:
        summary = build_summary([transient("user", "word " * 30)])

        assert summary.endswith("...")
        assert len(summary.split("last user message: ")[1]) == 53

    def test_no_user_message(self) -> None:
        assert build_summary([transient("assistant", "hi")]) == "Session snapshot - 1 messages"


class TestCreate:
    """Tests for checkpoint creation."""

    async def test_create_captures_every_message(
        self,
        session_manager: DatabaseSessionManager,
        seed_messages: SeedMessages,
        manager: CheckpointManager,
    ) -> None:
        await seed_messages(
            SESSION, [("user", "hello", 10), ("assistant", "hi there", 20), ("user", "bye", 5)]
        )

        async with session_manager.session() as session:
            checkpoint = await manager.create(session, SESSION, "first")
            await session.commit()

        assert checkpoint.message_count == 3
        assert checkpoint.token_count == 35
        assert checkpoint.last_sequence == 3
        assert checkpoint.summary.endswith("last user message: bye")
        assert not checkpoint.is_auto
        assert len(checkpoint.messages_snapshot) == 3

        async with session_manager.session() as session:
            stored = await MessageRepository(session).list_all(SESSION)
        assert all(m.checkpoint_id == checkpoint.id for m in stored)

    async def test_later_checkpoint_keeps_first_stamp(
        self,
        session_manager: DatabaseSessionManager,
        seed_messages: SeedMessages,
        manager: CheckpointManager,
    ) -> None:
        await seed_messages(SESSION, [("user", "a", 1)])
        async with session_manager.session() as session:
            first = await manager.create(session, SESSION, "first")
            await session.commit()
        await seed_messages(SESSION, [("user", "b", 1)])
        async with session_manager.session() as session:
            second = await manager.create(session, SESSION, "second")
            await session.commit()

        async with session_manager.session() as session:
            stored = await MessageRepository(session).list_all(SESSION)
        assert [m.checkpoint_id for m in stored] == [first.id, second.id]


class TestRestore:
    """Tests for restoring snapshots."""

    async def test_restore_round_trip(
        self,
        session_manager: DatabaseSessionManager,
        seed_messages: SeedMessages,
        manager: CheckpointManager,
    ) -> None:
        seeded = await seed_messages(SESSION, [("user", "hello", 10), ("assistant", "hi", 10)])
        async with session_manager.session() as session:
            checkpoint = await manager.create(session, SESSION, "cp")
            await session.commit()

        async with session_manager.session() as session:
            restored = await manager.restore(session, checkpoint.id)

        assert [m.id for m in restored] == [m.id for m in seeded]
        assert [m.content for m in restored] == ["hello", "hi"]
        assert all(m.is_active for m in restored)

    async def test_restore_after_compaction_returns_original_state(
        self,
        session_manager: DatabaseSessionManager,
        seed_messages: SeedMessages,
        config: ContextEngineConfig,
        manager: CheckpointManager,
        token_counter: MagicMock,
    ) -> None:
        await seed_messages(SESSION, [("user", "m", 100)] * 6)
        async with session_manager.session() as session:
            checkpoint = await manager.create(session, SESSION, "before")
            await session.commit()

        engine = CompressionEngine(config, FakeSummarizer(), token_counter=token_counter)
        async with session_manager.session() as session:
            await engine.run(session, SESSION, action=CompressionAction.COMPACT)
            await session.commit()

        async with session_manager.session() as session:
            restored = await manager.restore(session, checkpoint.id)
            after = await manager.create(session, SESSION, "after")
            await session.commit()

        assert len(restored) == 6
        assert all(m.state == MessageState.ACTIVE for m in restored)
        # The second snapshot holds the condensed originals plus the summary
        assert after.message_count == 7

    async def test_restore_missing_checkpoint(
        self, session_manager: DatabaseSessionManager, manager: CheckpointManager
    ) -> None:
        async with session_manager.session() as session:
            with pytest.raises(CheckpointNotFoundError):
                await manager.restore(session, uuid4())


class TestQueries:
    """Tests for list, since, delete and is_due."""

    async def test_list_newest_first(
        self,
        session_manager: DatabaseSessionManager,
        seed_messages: SeedMessages,
        manager: CheckpointManager,
    ) -> None:
        await seed_messages(SESSION, [("user", "a", 1)])
        async with session_manager.session() as session:
            older = await manager.create(session, SESSION, "older")
            await session.commit()
        await seed_messages(SESSION, [("user", "b", 1)])
        async with session_manager.session() as session:
            newer = await manager.create(session, SESSION, "newer")
            await session.commit()

        async with session_manager.session() as session:
            listed = await manager.list(session, SESSION)

        assert [c.id for c in listed] == [newer.id, older.id]

    async def test_messages_since(
        self,
        session_manager: DatabaseSessionManager,
        seed_messages: SeedMessages,
        manager: CheckpointManager,
    ) -> None:
        await seed_messages(SESSION, [("user", "a", 1), ("assistant", "b", 1)])
        async with session_manager.session() as session:
            checkpoint = await manager.create(session, SESSION, "cp")
            await session.commit()
        await seed_messages(SESSION, [("user", "c", 1), ("assistant", "d", 1)])

        async with session_manager.session() as session:
            since = await manager.messages_since(session, checkpoint.id)

        assert [m.content for m in since] == ["c", "d"]

    async def test_delete(
        self,
        session_manager: DatabaseSessionManager,
        seed_messages: SeedMessages,
        manager: CheckpointManager,
    ) -> None:
        await seed_messages(SESSION, [("user", "a", 1)])
        async with session_manager.session() as session:
            checkpoint = await manager.create(session, SESSION, "cp")
            await session.commit()

        async with session_manager.session() as session:
            assert await manager.delete(session, checkpoint.id) is True
            await session.commit()
        async with session_manager.session() as session:
            assert await manager.delete(session, checkpoint.id) is False

    async def test_is_due_after_interval(
        self,
        session_manager: DatabaseSessionManager,
        seed_messages: SeedMessages,
        manager: CheckpointManager,
    ) -> None:
        await seed_messages(SESSION, [("user", "a", 1), ("user", "b", 1)])
        async with session_manager.session() as session:
            assert not await manager.is_due(session, SESSION)

        await seed_messages(SESSION, [("user", "c", 1)])
        async with session_manager.session() as session:
            assert await manager.is_due(session, SESSION)
            await manager.create(session, SESSION, "auto", is_auto=True)
            await session.commit()

        async with session_manager.session() as session:
            assert not await manager.is_due(session, SESSION)

    async def test_compaction_summary_does_not_count_toward_interval(
        self,
        session_manager: DatabaseSessionManager,
        seed_messages: SeedMessages,
        config: ContextEngineConfig,
        manager: CheckpointManager,
        token_counter: MagicMock,
    ) -> None:
        await seed_messages(SESSION, [("user", "m", 100)] * 6)
        async with session_manager.session() as session:
            await manager.create(session, SESSION, "auto", is_auto=True)
            await session.commit()

        engine = CompressionEngine(config, FakeSummarizer(), token_counter=token_counter)
        async with session_manager.session() as session:
            result = await engine.run(session, SESSION, action=CompressionAction.COMPACT)
            await session.commit()
        assert result.action_taken == CompressionAction.COMPACT

        await seed_messages(SESSION, [("user", "n", 1), ("user", "o", 1)])
        async with session_manager.session() as session:
            assert not await manager.is_due(session, SESSION)

        await seed_messages(SESSION, [("user", "p", 1)])
        async with session_manager.session() as session:
            assert await manager.is_due(session, SESSION)

    async def test_interval_zero_disables(
        self, session_manager: DatabaseSessionManager, seed_messages: SeedMessages, config: ContextEngineConfig
    ) -> None:
        await seed_messages(SESSION, [("user", "a", 1)] * 5)

        async with session_manager.session() as session:
            assert not await CheckpointManager(config).is_due(session, SESSION)
