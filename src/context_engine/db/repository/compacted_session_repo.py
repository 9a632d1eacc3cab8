"""Compacted session (mid-term memory) repository."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime
from typing import Any
from uuid import UUID

import structlog
from sqlalchemy import delete, exists, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.compacted_session import CompactedSession
from ..models.enums import MemoryTier
from ..models.message import ChatMessage
from ..types import utcnow
from .base import BaseRepository, rowcount

logger = structlog.get_logger()


class CompactedSessionRepository(BaseRepository[CompactedSession]):
    """Repository for mid-term and long-term memory records."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(CompactedSession, session)

    async def list_by_session(self, session_id: str) -> list[CompactedSession]:
        """List records of a session, oldest first."""
        stmt = (
            select(CompactedSession)
            .where(CompactedSession.session_id == session_id)
            .order_by(CompactedSession.created_at, CompactedSession.message_start)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def list_recent(self, limit: int = 100, offset: int = 0) -> list[CompactedSession]:
        stmt = (
            select(CompactedSession)
            .order_by(CompactedSession.created_at.desc())
            .limit(limit)
            .offset(offset)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_for_promotion(self, limit: int = 10) -> list[CompactedSession]:
        """Get promotion candidates.

        Mid-term records ordered by access count descending, then by
        least recently accessed.

        Args:
            limit: Maximum candidates to return

        Returns:
            Candidate records
        """
        stmt = (
            select(CompactedSession)
            .where(CompactedSession.tier == MemoryTier.MID_TERM.value)
            .order_by(
                CompactedSession.access_count.desc(),
                CompactedSession.last_accessed_at.asc(),
            )
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def record_access(self, session_id: str, at: datetime | None = None) -> int:
        """Increment access count and touch last access for a session's records.

        The increment happens in SQL so concurrent callers never lose counts.

        Args:
            session_id: Session whose memories were injected into a prompt
            at: Access time (defaults to now)

        Returns:
            Number of records updated
        """
        stmt = (
            update(CompactedSession)
            .where(CompactedSession.session_id == session_id)
            .values(
                access_count=CompactedSession.access_count + 1,
                last_accessed_at=at or utcnow(),
            )
            .execution_options(synchronize_session="fetch")
        )
        updated = rowcount(await self.session.execute(stmt))
        await self.session.flush()
        return updated

    async def promote_if_unchanged(
        self,
        seen: CompactedSession,
        at: datetime,
        history: list[dict[str, Any]],
    ) -> bool:
        """Compare-and-swap a record from mid-term to long-term.

        The update only applies while the stored record still matches the
        candidate the caller judged eligible: same tier, same
        ``tier_updated_at``, and no access recorded since the read. An
        access in between makes the record fresh again, so the swap
        reports a conflict instead of promoting it.

        Args:
            seen: Record as read when selecting candidates
            at: Promotion time
            history: Full promotion history including the new event

        Returns:
            True if this call performed the transition
        """
        tier_guard = (
            CompactedSession.tier_updated_at.is_(None)
            if seen.tier_updated_at is None
            else CompactedSession.tier_updated_at == seen.tier_updated_at
        )
        stmt = (
            update(CompactedSession)
            .where(
                CompactedSession.id == seen.id,
                CompactedSession.tier == MemoryTier.MID_TERM.value,
                tier_guard,
                CompactedSession.last_accessed_at == seen.last_accessed_at,
                CompactedSession.access_count == seen.access_count,
            )
            .values(
                tier=MemoryTier.LONG_TERM.value,
                tier_updated_at=at,
                promotion_history=history,
            )
            .execution_options(synchronize_session="fetch")
        )
        swapped = rowcount(await self.session.execute(stmt))
        await self.session.flush()
        return swapped == 1

    async def find_expired(
        self, created_before: datetime, min_access_count: int
    ) -> list[CompactedSession]:
        """Find mid-term records past retention with too few accesses."""
        stmt = select(CompactedSession).where(
            CompactedSession.tier == MemoryTier.MID_TERM.value,
            CompactedSession.created_at < created_before,
            CompactedSession.access_count < min_access_count,
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def find_dangling(self) -> list[CompactedSession]:
        """Find long-term records whose session has no stored messages."""
        has_messages = exists().where(ChatMessage.session_id == CompactedSession.session_id)
        stmt = select(CompactedSession).where(
            CompactedSession.tier == MemoryTier.LONG_TERM.value,
            ~has_messages,
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def existing_ids(self, ids: Iterable[UUID]) -> set[UUID]:
        """Return the subset of ``ids`` that have a record."""
        id_list = list(ids)
        if not id_list:
            return set()
        stmt = select(CompactedSession.id).where(CompactedSession.id.in_(id_list))
        result = await self.session.execute(stmt)
        return set(result.scalars().all())

    async def delete_many(self, ids: Iterable[UUID], tier: MemoryTier | None = None) -> int:
        """Delete records by id, optionally restricted to one tier.

        Returns:
            Number of deleted records
        """
        id_list = list(ids)
        if not id_list:
            return 0
        stmt = delete(CompactedSession).where(CompactedSession.id.in_(id_list))
        if tier is not None:
            stmt = stmt.where(CompactedSession.tier == tier.value)
        stmt = stmt.execution_options(synchronize_session="fetch")
        deleted = rowcount(await self.session.execute(stmt))
        await self.session.flush()
        return deleted

    async def count_by_tier(self) -> dict[str, int]:
        """Count records per tier."""
        stmt = select(CompactedSession.tier, func.count(CompactedSession.id)).group_by(
            CompactedSession.tier
        )
        result = await self.session.execute(stmt)
        counts = {tier.value: 0 for tier in MemoryTier}
        for tier, count in result.all():
            counts[tier] = count
        return counts
