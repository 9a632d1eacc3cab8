"""Transcript compression: prune, compact and truncate.

Every action flags messages instead of deleting them, so any earlier
state can be rebuilt from a checkpoint.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any
from uuid import UUID, uuid4

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import ContextEngineConfig
from ..db.models.enums import MessageRole
from ..db.models.message import ChatMessage
from ..db.repository.message_repo import MessageRepository
from ..exceptions import SummarizationError
from ..memory.store import MidTermMemoryStore
from .summarizer import Summarizer, SummaryResult
from .token_budget import CompressionAction, TokenBudgetEvaluator, TokenCounter

logger = structlog.get_logger()

# Smallest gap between neighbouring positions a summary may be slotted into
MIN_POSITION_GAP = 1e-6


@dataclass
class CompressionResult:
    """Outcome of one compression pass.

    ``action_requested`` is what the evaluator (or caller) asked for;
    ``action_taken`` is what was applied. A compact that fell back to
    prune because the summarizer failed is ``degraded``.
    """

    session_id: str
    action_requested: CompressionAction
    action_taken: CompressionAction
    degraded: bool = False
    cancelled: bool = False
    reason: str | None = None
    tokens_before: int = 0
    tokens_after: int = 0
    affected_messages: int = 0
    summary_message_id: UUID | None = None
    compacted_session_id: UUID | None = None
    truncation_id: UUID | None = None

    def to_payload(self) -> dict[str, Any]:
        """Caller-facing report of the pass."""
        return {
            "action": self.action_taken.value,
            "degraded": self.degraded,
            "cancelled": self.cancelled,
            "reason": self.reason,
            "tokens_before": self.tokens_before,
            "tokens_after": self.tokens_after,
            "affected_messages": self.affected_messages,
        }


class CompressionEngine:
    """Applies the compression action a transcript needs.

    The engine works inside the caller's database session and never
    commits. The summarizer is called before any write, so a failed,
    timed out or cancelled summary leaves nothing to roll back.
    """

    def __init__(
        self,
        config: ContextEngineConfig,
        summarizer: Summarizer,
        token_counter: TokenCounter | None = None,
        summarizer_timeout: float = 60.0,
    ) -> None:
        """Initialize compression engine.

        Args:
            config: Thresholds and keep counts
            summarizer: Collaborator producing compaction summaries
            token_counter: Counter for new summary messages and markers
            summarizer_timeout: Seconds before a summary call is abandoned
        """
        self.config = config
        self.evaluator = TokenBudgetEvaluator(config)
        self.summarizer = summarizer
        self.token_counter = token_counter or TokenCounter()
        self.summarizer_timeout = summarizer_timeout

    def _outside_keep_window(self, messages: Sequence[ChatMessage]) -> list[ChatMessage]:
        keep = self.config.messages_to_keep
        return list(messages[: max(len(messages) - keep, 0)])

    async def run(
        self,
        session: AsyncSession,
        session_id: str,
        action: CompressionAction | None = None,
        hint: str | None = None,
    ) -> CompressionResult:
        """Evaluate a session and apply the required action.

        Args:
            session: Database session owning the transaction
            session_id: Conversation identifier
            action: Force an action instead of evaluating thresholds
            hint: Extra summarizer instruction for compaction

        Returns:
            Compression result

        Raises:
            asyncio.CancelledError: If cancelled while summarizing
            sqlalchemy.exc.SQLAlchemyError: On storage failure
        """
        messages = MessageRepository(session)
        active = await messages.list_active(session_id)
        evaluation = self.evaluator.evaluate(active)
        requested = action or evaluation.action

        if requested == CompressionAction.NONE:
            return CompressionResult(
                session_id=session_id,
                action_requested=requested,
                action_taken=CompressionAction.NONE,
                tokens_before=evaluation.used_tokens,
                tokens_after=evaluation.used_tokens,
            )

        logger.info(
            "compression_start",
            session_id=session_id,
            action=requested.value,
            usage_ratio=round(evaluation.usage_ratio, 4),
            active_messages=len(active),
        )

        if requested == CompressionAction.PRUNE:
            result = await self.prune(session, session_id, active)
        elif requested == CompressionAction.COMPACT:
            result = await self.compact(session, session_id, active, hint=hint)
        else:
            result = await self.truncate(session, session_id, active)

        result.action_requested = requested
        result.tokens_before = evaluation.used_tokens
        result.tokens_after = self.evaluator.used_tokens(await messages.list_active(session_id))

        logger.info(
            "compression_complete",
            session_id=session_id,
            action_requested=requested.value,
            action_taken=result.action_taken.value,
            degraded=result.degraded,
            affected=result.affected_messages,
            tokens_before=result.tokens_before,
            tokens_after=result.tokens_after,
        )
        return result

    # === Prune ===

    async def prune(
        self,
        session: AsyncSession,
        session_id: str,
        active: Sequence[ChatMessage],
    ) -> CompressionResult:
        """Replace oversized tool outputs with a short marker.

        Already-pruned messages are skipped, so a second pass over an
        unchanged transcript changes nothing.
        """
        pruned = 0
        for message in self._outside_keep_window(active):
            if message.role != MessageRole.TOOL.value or message.is_pruned:
                continue
            tokens = self.evaluator.message_tokens(message)
            if tokens <= self.config.prune_min_tokens:
                continue
            message.original_token_count = tokens
            message.is_pruned = True
            message.token_count = self.token_counter.count(message.effective_content)
            pruned += 1

        if pruned:
            await session.flush()
            logger.debug("messages_pruned", session_id=session_id, count=pruned)

        return CompressionResult(
            session_id=session_id,
            action_requested=CompressionAction.PRUNE,
            action_taken=CompressionAction.PRUNE,
            affected_messages=pruned,
        )

    # === Compact ===

    async def compact(
        self,
        session: AsyncSession,
        session_id: str,
        active: Sequence[ChatMessage],
        hint: str | None = None,
    ) -> CompressionResult:
        """Replace the range before the keep window with one summary.

        Falls back to prune when the range is too short (not degraded)
        or when the summarizer fails or times out (degraded).
        """
        replaced = self._outside_keep_window(active)
        if len(replaced) < self.config.min_messages_to_compact:
            result = await self.prune(session, session_id, active)
            result.reason = "not_enough_messages"
            return result

        try:
            summary = await self._summarize(replaced, hint)
        except SummarizationError as e:
            logger.warning(
                "compaction_degraded_to_prune",
                session_id=session_id,
                error=str(e),
            )
            result = await self.prune(session, session_id, active)
            result.degraded = True
            result.reason = str(e)
            return result

        kept = active[len(replaced) :]
        last = replaced[-1]
        messages = MessageRepository(session)
        if kept and kept[0].position - last.position < MIN_POSITION_GAP:
            await messages.renumber_positions(session_id)
            logger.info("timeline_respaced", session_id=session_id)
        if kept:
            position = (last.position + kept[0].position) / 2
        else:
            position = last.position + 0.5

        condense_id = uuid4()
        summary_message = await messages.insert_summary(
            session_id=session_id,
            content=summary.summary,
            condense_id=condense_id,
            position=position,
            timestamp=last.timestamp,
            token_count=self.token_counter.count(summary.summary),
        )
        await messages.mark_condensed(replaced, condense_id)

        record = await MidTermMemoryStore(session).create(
            session_id=session_id,
            summary=summary.summary,
            key_topics=summary.key_topics,
            decisions=summary.decisions,
            message_start=replaced[0].sequence,
            message_end=last.sequence,
            condense_id=condense_id,
        )

        return CompressionResult(
            session_id=session_id,
            action_requested=CompressionAction.COMPACT,
            action_taken=CompressionAction.COMPACT,
            affected_messages=len(replaced),
            summary_message_id=summary_message.id,
            compacted_session_id=record.id,
        )

    async def _summarize(
        self, messages: Sequence[ChatMessage], hint: str | None
    ) -> SummaryResult:
        try:
            return await asyncio.wait_for(
                self.summarizer.summarize(messages, hint),
                timeout=self.summarizer_timeout,
            )
        except TimeoutError as e:
            raise SummarizationError(
                f"Summarizer timed out after {self.summarizer_timeout}s", e
            ) from e

    # === Truncate ===

    async def truncate(
        self,
        session: AsyncSession,
        session_id: str,
        active: Sequence[ChatMessage],
    ) -> CompressionResult:
        """Cut the oldest active messages until usage drops below compact.

        The keep window is never cut, so usage may stay above the
        threshold when the recent messages alone exceed it.
        """
        candidates = self._outside_keep_window(active)
        remaining = self.evaluator.used_tokens(active)
        target = self.config.compact_threshold

        cut: list[ChatMessage] = []
        for message in candidates:
            if self.evaluator.usage_ratio(remaining) < target:
                break
            cut.append(message)
            remaining -= self.evaluator.message_tokens(message)

        if not cut:
            return CompressionResult(
                session_id=session_id,
                action_requested=CompressionAction.TRUNCATE,
                action_taken=CompressionAction.NONE,
                reason="nothing_to_truncate",
            )

        truncation_id = uuid4()
        await MessageRepository(session).mark_truncated(cut, truncation_id)

        if self.evaluator.usage_ratio(remaining) >= target:
            logger.warning(
                "truncation_target_not_reached",
                session_id=session_id,
                usage_ratio=round(self.evaluator.usage_ratio(remaining), 4),
            )

        return CompressionResult(
            session_id=session_id,
            action_requested=CompressionAction.TRUNCATE,
            action_taken=CompressionAction.TRUNCATE,
            affected_messages=len(cut),
            truncation_id=truncation_id,
        )
