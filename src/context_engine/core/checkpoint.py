"""Checkpoint creation, listing and restore."""

from __future__ import annotations

from collections.abc import Sequence
from uuid import UUID

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import ContextEngineConfig
from ..db.models.checkpoint import Checkpoint
from ..db.models.enums import MessageRole
from ..db.models.message import ChatMessage
from ..db.repository.checkpoint_repo import CheckpointRepository
from ..db.repository.message_repo import MessageRepository
from ..exceptions import CheckpointNotFoundError
from .schemas import MessageSnapshot
from .token_budget import TokenBudgetEvaluator

logger = structlog.get_logger()

# Max characters of the last user message quoted in a summary
SUMMARY_TOPIC_LENGTH = 50


def build_summary(messages: Sequence[ChatMessage]) -> str:
    """Describe a transcript in one line."""
    last_user = next(
        (m for m in reversed(messages) if m.role == MessageRole.USER.value),
        None,
    )
    summary = f"Session snapshot - {len(messages)} messages"
    if last_user is not None:
        topic = last_user.content.strip().replace("\n", " ")
        if len(topic) > SUMMARY_TOPIC_LENGTH:
            topic = topic[:SUMMARY_TOPIC_LENGTH] + "..."
        summary += f", last user message: {topic}"
    return summary


class CheckpointManager:
    """Creates and restores immutable transcript snapshots.

    Like the compression engine, it works inside the caller's session
    and never commits.
    """

    def __init__(self, config: ContextEngineConfig) -> None:
        self.config = config
        self.evaluator = TokenBudgetEvaluator(config)

    async def create(
        self,
        session: AsyncSession,
        session_id: str,
        name: str,
        is_auto: bool = False,
    ) -> Checkpoint:
        """Snapshot every stored message of a session, flagged ones included.

        Args:
            session: Database session owning the transaction
            session_id: Conversation identifier
            name: Checkpoint label
            is_auto: Created by the interval trigger

        Returns:
            Persisted checkpoint
        """
        messages = MessageRepository(session)
        history = await messages.list_all(session_id)
        active = [m for m in history if m.is_active]

        snapshot = [
            MessageSnapshot.model_validate(m).model_dump(mode="json") for m in history
        ]
        checkpoint = await CheckpointRepository(session).create(
            session_id=session_id,
            name=name,
            message_count=len(history),
            token_count=self.evaluator.used_tokens(active),
            summary=build_summary(history),
            messages_snapshot=snapshot,
            last_sequence=max((m.sequence for m in history), default=0),
            is_auto=is_auto,
        )
        stamped = await messages.mark_checkpointed(history, checkpoint.id)

        logger.info(
            "checkpoint_created",
            session_id=session_id,
            checkpoint_id=str(checkpoint.id),
            message_count=len(history),
            newly_captured=stamped,
            is_auto=is_auto,
        )
        return checkpoint

    async def list(self, session: AsyncSession, session_id: str) -> list[Checkpoint]:
        """List checkpoints of a session, newest first."""
        return await CheckpointRepository(session).list_by_session(session_id)

    async def get(self, session: AsyncSession, checkpoint_id: UUID) -> Checkpoint:
        """Get a checkpoint.

        Raises:
            CheckpointNotFoundError: If the checkpoint doesn't exist
        """
        checkpoint = await CheckpointRepository(session).get_by_id(checkpoint_id)
        if checkpoint is None:
            raise CheckpointNotFoundError(checkpoint_id)
        return checkpoint

    async def restore(
        self, session: AsyncSession, checkpoint_id: UUID
    ) -> list[MessageSnapshot]:
        """Rebuild the transcript captured by a checkpoint.

        Stored messages are not touched; reconciling the working
        transcript is left to the caller.

        Raises:
            CheckpointNotFoundError: If the checkpoint doesn't exist
        """
        checkpoint = await self.get(session, checkpoint_id)
        restored = [MessageSnapshot.model_validate(item) for item in checkpoint.messages_snapshot]
        logger.info(
            "checkpoint_restored",
            session_id=checkpoint.session_id,
            checkpoint_id=str(checkpoint_id),
            message_count=len(restored),
        )
        return restored

    async def messages_since(
        self, session: AsyncSession, checkpoint_id: UUID
    ) -> list[ChatMessage]:
        """Messages appended after a checkpoint was taken."""
        checkpoint = await self.get(session, checkpoint_id)
        return await MessageRepository(session).list_after(
            checkpoint.session_id, checkpoint.last_sequence
        )

    async def delete(self, session: AsyncSession, checkpoint_id: UUID) -> bool:
        """Delete one checkpoint. Returns False if it did not exist."""
        deleted = await CheckpointRepository(session).delete(checkpoint_id)
        if deleted:
            logger.info("checkpoint_deleted", checkpoint_id=str(checkpoint_id))
        return deleted

    async def delete_by_session(self, session: AsyncSession, session_id: str) -> int:
        """Delete every checkpoint of a session."""
        count = await CheckpointRepository(session).delete_by_session(session_id)
        logger.info("checkpoints_deleted", session_id=session_id, count=count)
        return count

    async def is_due(self, session: AsyncSession, session_id: str) -> bool:
        """Whether enough messages arrived since the last checkpoint."""
        interval = self.config.checkpoint_interval
        if interval <= 0:
            return False
        latest = await CheckpointRepository(session).get_latest(session_id)
        since = latest.last_sequence if latest else 0
        appended = await MessageRepository(session).count_after(session_id, since)
        return appended >= interval
