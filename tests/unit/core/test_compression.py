"""Tests for the compression engine."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
from sqlalchemy import func, select

from context_engine.config import ContextEngineConfig
from context_engine.core.compression import CompressionEngine, CompressionResult
from context_engine.core.token_budget import CompressionAction
from context_engine.db.models.compacted_session import CompactedSession
from context_engine.db.models.enums import MessageState
from context_engine.db.models.message import ChatMessage
from context_engine.db.repository.message_repo import MessageRepository
from context_engine.db.session import DatabaseSessionManager
from context_engine.exceptions import SummarizationError
from helpers import FakeSummarizer, SeedMessages

SESSION = "session-1"


def make_engine(
    config: ContextEngineConfig,
    summarizer: FakeSummarizer,
    token_counter: MagicMock,
    timeout: float = 5.0,
) -> CompressionEngine:
    return CompressionEngine(
        config, summarizer, token_counter=token_counter, summarizer_timeout=timeout
    )


async def run(
    session_manager: DatabaseSessionManager,
    engine: CompressionEngine,
    action: CompressionAction | None = None,
) -> CompressionResult:
    async with session_manager.session() as session:
        result = await engine.run(session, SESSION, action=action)
        await session.commit()
    return result


async def all_messages(session_manager: DatabaseSessionManager) -> list[ChatMessage]:
    async with session_manager.session() as session:
        return await MessageRepository(session).list_all(SESSION)


async def active_messages(session_manager: DatabaseSessionManager) -> list[ChatMessage]:
    async with session_manager.session() as session:
        return await MessageRepository(session).list_active(SESSION)


async def record_count(session_manager: DatabaseSessionManager) -> int:
    async with session_manager.session() as session:
        result = await session.execute(select(func.count(CompactedSession.id)))
        return result.scalar_one()


class TestRunNoAction:
    """Tests for transcripts below every threshold."""

    async def test_below_threshold_changes_nothing(
        self,
        session_manager: DatabaseSessionManager,
        seed_messages: SeedMessages,
        config: ContextEngineConfig,
        summarizer: FakeSummarizer,
        token_counter: MagicMock,
    ) -> None:
        await seed_messages(SESSION, [("user", "hi", 100)] * 5)

        result = await run(session_manager, make_engine(config, summarizer, token_counter))

        assert result.action_taken == CompressionAction.NONE
        assert result.tokens_before == 500
        assert result.tokens_after == 500
        assert summarizer.calls == []

    async def test_disabled_config_skips_compression(
        self,
        session_manager: DatabaseSessionManager,
        seed_messages: SeedMessages,
        config: ContextEngineConfig,
        summarizer: FakeSummarizer,
        token_counter: MagicMock,
    ) -> None:
        disabled = config.model_copy(update={"enabled": False})
        await seed_messages(SESSION, [("user", "hi", 1_000)] * 10)

        result = await run(session_manager, make_engine(disabled, summarizer, token_counter))

        assert result.action_taken == CompressionAction.NONE
        assert len(await active_messages(session_manager)) == 10


class TestPrune:
    """Tests for pruning tool outputs."""

    async def test_prunes_large_tool_outputs_outside_keep_window(
        self,
        session_manager: DatabaseSessionManager,
        seed_messages: SeedMessages,
        config: ContextEngineConfig,
        summarizer: FakeSummarizer,
        token_counter: MagicMock,
    ) -> None:
        seeded = await seed_messages(
            SESSION,
            [
                ("tool", "x" * 400, 3_000),
                ("user", "question", 2_000),
                ("tool", "y" * 400, 2_000),
                ("assistant", "answer", 100),
                ("tool", "z" * 400, 100),
            ],
        )

        result = await run(session_manager, make_engine(config, summarizer, token_counter))

        assert result.action_requested == CompressionAction.PRUNE
        assert result.action_taken == CompressionAction.PRUNE
        assert result.affected_messages == 2
        assert result.tokens_before == 7_200
        assert result.tokens_after < result.tokens_before

        stored = {m.id: m for m in await all_messages(session_manager)}
        first, _, third, _, last = (stored[m.id] for m in seeded)
        assert first.is_pruned and first.original_token_count == 3_000
        assert third.is_pruned and third.original_token_count == 2_000
        assert not last.is_pruned
        # Original payload is kept; only the presented content changes
        assert first.content == "x" * 400
        assert first.effective_content == "[tool output pruned: 3000 tokens]"
        assert all(m.state == MessageState.ACTIVE.value for m in stored.values())

    async def test_prune_is_idempotent(
        self,
        session_manager: DatabaseSessionManager,
        seed_messages: SeedMessages,
        config: ContextEngineConfig,
        summarizer: FakeSummarizer,
        token_counter: MagicMock,
    ) -> None:
        await seed_messages(
            SESSION,
            [("tool", "x" * 400, 7_500), ("user", "a", 10), ("assistant", "b", 10)],
        )
        engine = make_engine(config, summarizer, token_counter)

        first = await run(session_manager, engine, action=CompressionAction.PRUNE)
        before = [(m.id, m.token_count, m.is_pruned) for m in await all_messages(session_manager)]
        second = await run(session_manager, engine, action=CompressionAction.PRUNE)
        after = [(m.id, m.token_count, m.is_pruned) for m in await all_messages(session_manager)]

        assert first.affected_messages == 1
        assert second.affected_messages == 0
        assert second.action_taken == CompressionAction.PRUNE
        assert before == after

    async def test_small_tool_outputs_untouched(
        self,
        session_manager: DatabaseSessionManager,
        seed_messages: SeedMessages,
        config: ContextEngineConfig,
        summarizer: FakeSummarizer,
        token_counter: MagicMock,
    ) -> None:
        await seed_messages(
            SESSION,
            [("tool", "small", 50), ("user", "q", 7_500), ("assistant", "a", 10), ("user", "b", 10)],
        )

        result = await run(session_manager, make_engine(config, summarizer, token_counter))

        assert result.action_taken == CompressionAction.PRUNE
        assert result.affected_messages == 0


class TestCompact:
    """Tests for compaction into a summary."""

    async def test_compact_replaces_range_with_summary(
        self,
        session_manager: DatabaseSessionManager,
        seed_messages: SeedMessages,
        config: ContextEngineConfig,
        summarizer: FakeSummarizer,
        token_counter: MagicMock,
    ) -> None:
        roles = ["user", "assistant"] * 3
        seeded = await seed_messages(
            SESSION, [(role, f"message {i}", 1_500) for i, role in enumerate(roles)]
        )

        result = await run(session_manager, make_engine(config, summarizer, token_counter))

        assert result.action_taken == CompressionAction.COMPACT
        assert not result.degraded
        assert result.affected_messages == 4
        assert result.summary_message_id is not None
        assert result.compacted_session_id is not None
        assert len(summarizer.calls) == 1
        assert [m.id for m in summarizer.calls[0][0]] == [m.id for m in seeded[:4]]

        active = await active_messages(session_manager)
        summary = active[0]
        assert summary.is_summary
        assert summary.role == "system"
        assert summary.content == "Summary of 4 messages"
        assert summary.position == pytest.approx(4.5)
        assert [m.id for m in active[1:]] == [m.id for m in seeded[4:]]

        stored = {m.id: m for m in await all_messages(session_manager)}
        for message in seeded[:4]:
            replaced = stored[message.id]
            assert replaced.state == MessageState.CONDENSED.value
            assert replaced.condense_parent == summary.condense_id
        assert result.tokens_after == summary.token_count + 3_000

    async def test_crowded_positions_are_respaced(
        self,
        session_manager: DatabaseSessionManager,
        seed_messages: SeedMessages,
        config: ContextEngineConfig,
        summarizer: FakeSummarizer,
        token_counter: MagicMock,
    ) -> None:
        seeded = await seed_messages(
            SESSION, [("user", f"message {i}", 1_500) for i in range(6)]
        )
        async with session_manager.session() as session:
            crowded = await session.get(ChatMessage, seeded[3].id)
            assert crowded is not None
            crowded.position = 5.0 - 1e-9
            await session.commit()

        result = await run(
            session_manager,
            make_engine(config, summarizer, token_counter),
            action=CompressionAction.COMPACT,
        )

        assert result.action_taken == CompressionAction.COMPACT
        timeline = await all_messages(session_manager)
        assert [m.position for m in timeline] == [1.0, 2.0, 3.0, 4.0, 4.5, 5.0, 6.0]
        assert timeline[4].is_summary
        assert [m.id for m in timeline if not m.is_summary] == [m.id for m in seeded]

    async def test_compact_never_deletes_messages(
        self,
        session_manager: DatabaseSessionManager,
        seed_messages: SeedMessages,
        config: ContextEngineConfig,
        summarizer: FakeSummarizer,
        token_counter: MagicMock,
    ) -> None:
        await seed_messages(SESSION, [("user", "m", 1_500)] * 6)

        await run(session_manager, make_engine(config, summarizer, token_counter))

        # Six originals plus one summary
        assert len(await all_messages(session_manager)) == 7

    async def test_compact_stores_mid_term_record(
        self,
        session_manager: DatabaseSessionManager,
        seed_messages: SeedMessages,
        config: ContextEngineConfig,
        summarizer: FakeSummarizer,
        token_counter: MagicMock,
    ) -> None:
        await seed_messages(SESSION, [("user", "m", 1_500)] * 6)

        result = await run(session_manager, make_engine(config, summarizer, token_counter))

        async with session_manager.session() as session:
            record = await session.get(CompactedSession, result.compacted_session_id)
        assert record is not None
        assert record.session_id == SESSION
        assert record.tier == "mid-term"
        assert record.message_start == 1
        assert record.message_end == 4
        assert record.key_topics == ["testing"]
        assert record.decisions == ["keep going"]
        assert record.access_count == 0

    async def test_summarizer_failure_degrades_to_prune(
        self,
        session_manager: DatabaseSessionManager,
        seed_messages: SeedMessages,
        config: ContextEngineConfig,
        token_counter: MagicMock,
    ) -> None:
        failing = FakeSummarizer(error=SummarizationError("model unavailable"))
        await seed_messages(
            SESSION,
            [
                ("tool", "x" * 400, 3_000),
                ("user", "m", 1_500),
                ("assistant", "m", 1_500),
                ("user", "m", 1_500),
                ("assistant", "m", 1_000),
            ],
        )

        result = await run(session_manager, make_engine(config, failing, token_counter))

        assert result.action_requested == CompressionAction.COMPACT
        assert result.action_taken == CompressionAction.PRUNE
        assert result.degraded
        assert result.affected_messages == 1
        assert result.reason is not None and "model unavailable" in result.reason
        assert await record_count(session_manager) == 0
        assert not any(m.is_summary for m in await all_messages(session_manager))

    async def test_summarizer_timeout_degrades_to_prune(
        self,
        session_manager: DatabaseSessionManager,
        seed_messages: SeedMessages,
        config: ContextEngineConfig,
        token_counter: MagicMock,
    ) -> None:
        slow = FakeSummarizer(delay=1.0)
        await seed_messages(SESSION, [("user", "m", 1_500)] * 6)

        result = await run(session_manager, make_engine(config, slow, token_counter, timeout=0.01))

        assert result.degraded
        assert result.action_taken == CompressionAction.PRUNE
        assert result.reason is not None and "timed out" in result.reason
        assert await record_count(session_manager) == 0
        assert len(await active_messages(session_manager)) == 6

    async def test_too_few_messages_prunes_without_degrading(
        self,
        session_manager: DatabaseSessionManager,
        seed_messages: SeedMessages,
        config: ContextEngineConfig,
        summarizer: FakeSummarizer,
        token_counter: MagicMock,
    ) -> None:
        await seed_messages(SESSION, [("user", "m", 100)] * 4)

        result = await run(
            session_manager,
            make_engine(config, summarizer, token_counter),
            action=CompressionAction.COMPACT,
        )

        assert result.action_taken == CompressionAction.PRUNE
        assert not result.degraded
        assert result.reason == "not_enough_messages"
        assert summarizer.calls == []

    async def test_hint_is_forwarded(
        self,
        session_manager: DatabaseSessionManager,
        seed_messages: SeedMessages,
        config: ContextEngineConfig,
        summarizer: FakeSummarizer,
        token_counter: MagicMock,
    ) -> None:
        await seed_messages(SESSION, [("user", "m", 100)] * 6)
        engine = make_engine(config, summarizer, token_counter)

        async with session_manager.session() as session:
            await engine.run(session, SESSION, action=CompressionAction.COMPACT, hint="focus on code")
            await session.commit()

        assert summarizer.calls[0][1] == "focus on code"


class TestTruncate:
    """Tests for truncation."""

    async def test_truncates_oldest_until_below_compact(
        self,
        session_manager: DatabaseSessionManager,
        seed_messages: SeedMessages,
        config: ContextEngineConfig,
        summarizer: FakeSummarizer,
        token_counter: MagicMock,
    ) -> None:
        seeded = await seed_messages(SESSION, [("user", "m", 1_000)] * 10)

        result = await run(session_manager, make_engine(config, summarizer, token_counter))

        assert result.action_taken == CompressionAction.TRUNCATE
        assert result.affected_messages == 2
        assert result.tokens_after == 8_000
        assert result.truncation_id is not None

        stored = {m.id: m for m in await all_messages(session_manager)}
        cut = [stored[m.id] for m in seeded[:2]]
        assert all(m.state == MessageState.TRUNCATED.value for m in cut)
        assert {m.truncation_id for m in cut} == {result.truncation_id}
        assert len(await active_messages(session_manager)) == 8

    async def test_keep_window_is_never_cut(
        self,
        session_manager: DatabaseSessionManager,
        seed_messages: SeedMessages,
        config: ContextEngineConfig,
        summarizer: FakeSummarizer,
        token_counter: MagicMock,
    ) -> None:
        await seed_messages(SESSION, [("user", "m", 100), ("user", "m", 5_000), ("user", "m", 5_000)])

        result = await run(session_manager, make_engine(config, summarizer, token_counter))

        assert result.action_taken == CompressionAction.TRUNCATE
        assert result.affected_messages == 1
        assert len(await active_messages(session_manager)) == 2

    async def test_nothing_to_truncate(
        self,
        session_manager: DatabaseSessionManager,
        seed_messages: SeedMessages,
        config: ContextEngineConfig,
        summarizer: FakeSummarizer,
        token_counter: MagicMock,
    ) -> None:
        await seed_messages(SESSION, [("user", "m", 6_000), ("user", "m", 6_000)])

        result = await run(session_manager, make_engine(config, summarizer, token_counter))

        assert result.action_requested == CompressionAction.TRUNCATE
        assert result.action_taken == CompressionAction.NONE
        assert result.reason == "nothing_to_truncate"
