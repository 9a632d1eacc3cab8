"""Tests for MessageRepository."""

from __future__ import annotations

from datetime import timedelta
from uuid import uuid4

import pytest
from sqlalchemy.exc import IntegrityError

from context_engine.db.models.enums import MessageState
from context_engine.db.models.message import ChatMessage
from context_engine.db.repository.message_repo import MessageRepository
from context_engine.db.session import DatabaseSessionManager
from context_engine.db.types import utcnow
from helpers import SeedMessages

SESSION = "session-1"


class TestAppend:
    """Tests for appending messages."""

    async def test_sequence_and_position_increase(
        self, session_manager: DatabaseSessionManager
    ) -> None:
        async with session_manager.session() as session:
            repo = MessageRepository(session)
            first = await repo.append(SESSION, "user", "hello", token_count=2)
            second = await repo.append(SESSION, "assistant", "hi", token_count=1)
            await session.commit()

        assert (first.sequence, second.sequence) == (1, 2)
        assert (first.position, second.position) == (1.0, 2.0)
        assert first.state == MessageState.ACTIVE.value
        assert first.replaced_by is None
        assert not first.is_pruned

    async def test_sessions_are_numbered_independently(
        self, session_manager: DatabaseSessionManager
    ) -> None:
        async with session_manager.session() as session:
            repo = MessageRepository(session)
            await repo.append("a", "user", "1")
            other = await repo.append("b", "user", "1")
            await session.commit()

        assert other.sequence == 1

    async def test_timestamp_never_goes_backwards(
        self, session_manager: DatabaseSessionManager
    ) -> None:
        now = utcnow()
        async with session_manager.session() as session:
            repo = MessageRepository(session)
            first = await repo.append(SESSION, "user", "late", timestamp=now)
            second = await repo.append(SESSION, "user", "early", timestamp=now - timedelta(hours=1))
            await session.commit()

        assert second.timestamp == first.timestamp

    async def test_duplicate_sequence_rejected(self, session_manager: DatabaseSessionManager) -> None:
        async with session_manager.session() as session:
            await MessageRepository(session).append(SESSION, "user", "a")
            session.add(
                ChatMessage(
                    session_id=SESSION,
                    sequence=1,
                    position=1.0,
                    role="user",
                    content="dup",
                    timestamp=utcnow(),
                )
            )
            with pytest.raises(IntegrityError):
                await session.flush()


class TestStateTransitions:
    """Tests for condensed/truncated flags."""

    async def test_mark_condensed_hides_from_active(
        self, session_manager: DatabaseSessionManager, seed_messages: SeedMessages
    ) -> None:
        await seed_messages(SESSION, [("user", "a", 1), ("user", "b", 1), ("user", "c", 1)])
        condense_id = uuid4()

        async with session_manager.session() as session:
            repo = MessageRepository(session)
            active = await repo.list_active(SESSION)
            await repo.mark_condensed(active[:2], condense_id)
            await session.commit()

        async with session_manager.session() as session:
            repo = MessageRepository(session)
            assert [m.content for m in await repo.list_active(SESSION)] == ["c"]
            stored = await repo.list_all(SESSION)

        assert [m.condense_parent for m in stored[:2]] == [condense_id, condense_id]
        assert stored[2].condense_parent is None

    async def test_mark_truncated(
        self, session_manager: DatabaseSessionManager, seed_messages: SeedMessages
    ) -> None:
        await seed_messages(SESSION, [("user", "a", 1), ("user", "b", 1)])
        truncation_id = uuid4()

        async with session_manager.session() as session:
            repo = MessageRepository(session)
            await repo.mark_truncated((await repo.list_active(SESSION))[:1], truncation_id)
            await session.commit()

        async with session_manager.session() as session:
            stored = await MessageRepository(session).list_all(SESSION)

        assert stored[0].is_truncation_marker
        assert stored[0].truncation_id == truncation_id
        assert not stored[1].is_truncation_marker

    async def test_state_link_constraint(self, session_manager: DatabaseSessionManager) -> None:
        """Test a non-active message must point at its replacement."""
        async with session_manager.session() as session:
            message = await MessageRepository(session).append(SESSION, "user", "a")
            message.state = MessageState.CONDENSED.value
            with pytest.raises(IntegrityError):
                await session.flush()

    async def test_summary_sorts_inside_replaced_range(
        self, session_manager: DatabaseSessionManager, seed_messages: SeedMessages
    ) -> None:
        seeded = await seed_messages(SESSION, [("user", "a", 1), ("user", "b", 1), ("user", "c", 1)])
        condense_id = uuid4()

        async with session_manager.session() as session:
            repo = MessageRepository(session)
            summary = await repo.insert_summary(
                SESSION,
                "summary",
                condense_id=condense_id,
                position=2.5,
                timestamp=seeded[1].timestamp,
                token_count=2,
            )
            await session.commit()

        async with session_manager.session() as session:
            ordered = await MessageRepository(session).list_all(SESSION)

        assert summary.sequence == 4
        assert summary.is_summary
        assert [m.content for m in ordered] == ["a", "b", "summary", "c"]


class TestQueries:
    """Tests for read helpers."""

    async def test_list_and_count_after(
        self, session_manager: DatabaseSessionManager, seed_messages: SeedMessages
    ) -> None:
        await seed_messages(SESSION, [("user", str(i), 1) for i in range(5)])

        async with session_manager.session() as session:
            repo = MessageRepository(session)
            after = await repo.list_after(SESSION, 3)
            count = await repo.count_after(SESSION, 3)

        assert [m.sequence for m in after] == [4, 5]
        assert count == 2

    async def test_session_ids_and_exists(
        self, session_manager: DatabaseSessionManager, seed_messages: SeedMessages
    ) -> None:
        await seed_messages("b", [("user", "x", 1)])
        await seed_messages("a", [("user", "x", 1)])

        async with session_manager.session() as session:
            repo = MessageRepository(session)
            assert await repo.list_session_ids() == ["a", "b"]
            assert await repo.session_exists("a")
            assert not await repo.session_exists("missing")

    async def test_delete_by_session(
        self, session_manager: DatabaseSessionManager, seed_messages: SeedMessages
    ) -> None:
        await seed_messages(SESSION, [("user", "x", 1)] * 3)
        await seed_messages("other", [("user", "x", 1)])

        async with session_manager.session() as session:
            deleted = await MessageRepository(session).delete_by_session(SESSION)
            await session.commit()

        async with session_manager.session() as session:
            assert await MessageRepository(session).list_session_ids() == ["other"]
        assert deleted == 3

    async def test_repair_orphaned_links(
        self, session_manager: DatabaseSessionManager, seed_messages: SeedMessages
    ) -> None:
        await seed_messages(SESSION, [("user", "a", 1), ("user", "b", 1)])

        async with session_manager.session() as session:
            repo = MessageRepository(session)
            active = await repo.list_active(SESSION)
            # Condensed against a summary that was never stored
            await repo.mark_condensed(active[:1], uuid4())
            await session.commit()

        async with session_manager.session() as session:
            repaired = await MessageRepository(session).repair_orphaned_links(SESSION)
            await session.commit()

        async with session_manager.session() as session:
            active = await MessageRepository(session).list_active(SESSION)
        assert repaired == 1
        assert len(active) == 2
