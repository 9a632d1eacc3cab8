"""Chat message repository."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from datetime import datetime
from typing import Any
from uuid import UUID

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.enums import MessageRole, MessageState
from ..models.message import ChatMessage
from ..types import utcnow
from .base import BaseRepository, rowcount

logger = structlog.get_logger()


class MessageRepository(BaseRepository[ChatMessage]):
    """Repository for transcript messages."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(ChatMessage, session)

    async def append(
        self,
        session_id: str,
        role: str,
        content: str,
        token_count: int | None = None,
        timestamp: datetime | None = None,
    ) -> ChatMessage:
        """Append a message at the end of a session transcript.

        Timestamps never go backwards within a session; an earlier
        timestamp is raised to the latest one already stored.

        Args:
            session_id: Conversation identifier
            role: Author role
            content: Message text
            token_count: Precomputed token count, if known
            timestamp: Message time (defaults to now)

        Returns:
            Stored message
        """
        last = await self.get_last(session_id)
        sequence = last.sequence + 1 if last else 1
        ts = timestamp or utcnow()
        if last is not None and ts < last.timestamp:
            ts = last.timestamp

        message = ChatMessage(
            session_id=session_id,
            sequence=sequence,
            position=float(sequence),
            role=role,
            content=content,
            token_count=token_count,
            timestamp=ts,
        )
        self.session.add(message)
        await self.session.flush()
        return message

    async def add_batch(
        self, session_id: str, items: Sequence[dict[str, Any]]
    ) -> list[ChatMessage]:
        """Insert several messages in one flush.

        Args:
            session_id: Conversation identifier
            items: Dicts with role, content and optional token_count/timestamp

        Returns:
            Stored messages in append order
        """
        last = await self.get_last(session_id)
        sequence = last.sequence if last else 0
        floor = last.timestamp if last else None

        messages: list[ChatMessage] = []
        for item in items:
            sequence += 1
            ts = item.get("timestamp") or utcnow()
            if floor is not None and ts < floor:
                ts = floor
            floor = ts
            messages.append(
                ChatMessage(
                    session_id=session_id,
                    sequence=sequence,
                    position=float(sequence),
                    role=item["role"],
                    content=item["content"],
                    token_count=item.get("token_count"),
                    timestamp=ts,
                )
            )

        self.session.add_all(messages)
        await self.session.flush()
        logger.debug("messages_batch_added", session_id=session_id, count=len(messages))
        return messages

    async def get_last(self, session_id: str) -> ChatMessage | None:
        """Get the most recently appended message of a session."""
        stmt = (
            select(ChatMessage)
            .where(ChatMessage.session_id == session_id)
            .order_by(ChatMessage.sequence.desc())
            .limit(1)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_all(self, session_id: str) -> list[ChatMessage]:
        """List every stored message, flagged ones included, in timeline order."""
        stmt = (
            select(ChatMessage)
            .where(ChatMessage.session_id == session_id)
            .order_by(ChatMessage.position)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def renumber_positions(self, session_id: str) -> None:
        """Respace the timeline to whole-number positions, keeping its order.

        New positions never exceed the next free sequence number, so later
        appends still sort last.
        """
        for index, message in enumerate(await self.list_all(session_id), start=1):
            message.position = float(index)
        await self.session.flush()

    async def list_active(self, session_id: str) -> list[ChatMessage]:
        """List messages that are neither condensed nor truncated."""
        stmt = (
            select(ChatMessage)
            .where(
                ChatMessage.session_id == session_id,
                ChatMessage.state == MessageState.ACTIVE.value,
            )
            .order_by(ChatMessage.position)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def list_after(self, session_id: str, sequence: int) -> list[ChatMessage]:
        """List messages appended after the given sequence number."""
        stmt = (
            select(ChatMessage)
            .where(
                ChatMessage.session_id == session_id,
                ChatMessage.sequence > sequence,
            )
            .order_by(ChatMessage.sequence)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def count_after(self, session_id: str, sequence: int) -> int:
        """Count messages appended after the given sequence number.

        Summaries written by compaction take sequence numbers too but were
        never appended by the caller, so they are left out.
        """
        stmt = select(func.count(ChatMessage.id)).where(
            ChatMessage.session_id == session_id,
            ChatMessage.sequence > sequence,
            ChatMessage.condense_id.is_(None),
        )
        result = await self.session.execute(stmt)
        return result.scalar_one()

    async def mark_condensed(self, messages: Iterable[ChatMessage], condense_id: UUID) -> None:
        """Flag messages as replaced by the summary carrying ``condense_id``."""
        for message in messages:
            message.state = MessageState.CONDENSED.value
            message.replaced_by = condense_id
        await self.session.flush()

    async def mark_truncated(self, messages: Iterable[ChatMessage], truncation_id: UUID) -> None:
        """Flag messages as cut by the truncation group ``truncation_id``."""
        for message in messages:
            message.state = MessageState.TRUNCATED.value
            message.replaced_by = truncation_id
        await self.session.flush()

    async def mark_checkpointed(
        self, messages: Iterable[ChatMessage], checkpoint_id: UUID
    ) -> int:
        """Stamp ``checkpoint_id`` on messages no earlier checkpoint captured.

        Returns:
            Number of messages stamped
        """
        stamped = 0
        for message in messages:
            if message.checkpoint_id is None:
                message.checkpoint_id = checkpoint_id
                stamped += 1
        await self.session.flush()
        return stamped

    async def session_exists(self, session_id: str) -> bool:
        """Check whether a session has any stored message."""
        stmt = select(ChatMessage.id).where(ChatMessage.session_id == session_id).limit(1)
        result = await self.session.execute(stmt)
        return result.first() is not None

    async def list_session_ids(self) -> list[str]:
        """List distinct session ids that have messages."""
        stmt = select(ChatMessage.session_id).distinct().order_by(ChatMessage.session_id)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def repair_orphaned_links(self, session_id: str) -> int:
        """Reactivate condensed messages whose summary message is gone.

        Returns:
            Number of repaired messages
        """
        summaries = (
            select(ChatMessage.condense_id)
            .where(
                ChatMessage.session_id == session_id,
                ChatMessage.condense_id.is_not(None),
            )
        )
        stmt = (
            update(ChatMessage)
            .where(
                ChatMessage.session_id == session_id,
                ChatMessage.state == MessageState.CONDENSED.value,
                ChatMessage.replaced_by.not_in(summaries),
            )
            .values(state=MessageState.ACTIVE.value, replaced_by=None)
            .execution_options(synchronize_session="fetch")
        )
        repaired = rowcount(await self.session.execute(stmt))
        await self.session.flush()
        if repaired:
            logger.warning("orphaned_condense_links_repaired", session_id=session_id, count=repaired)
        return repaired

    async def insert_summary(
        self,
        session_id: str,
        content: str,
        condense_id: UUID,
        position: float,
        timestamp: datetime,
        token_count: int | None = None,
    ) -> ChatMessage:
        """Insert a synthetic summary message at a given timeline position.

        The summary takes the next free sequence number but sorts at
        ``position``, which the caller places inside the replaced range.
        """
        last = await self.get_last(session_id)
        message = ChatMessage(
            session_id=session_id,
            sequence=last.sequence + 1 if last else 1,
            position=position,
            role=MessageRole.SYSTEM.value,
            content=content,
            condense_id=condense_id,
            token_count=token_count,
            timestamp=timestamp,
        )
        self.session.add(message)
        await self.session.flush()
        return message
