"""Expiry of stale mid-term memories and repair of inconsistencies."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta
from uuid import UUID

import structlog

from ..config import CleanupConfig
from ..db.models.enums import MemoryTier
from ..db.repository.compacted_session_repo import CompactedSessionRepository
from ..db.session import DatabaseSessionManager
from ..db.types import utcnow
from ..events import CleanupCompletedEvent, EventBus
from ..exceptions import CleanupPartialFailure
from .schemas import CleanupReport, CleanupStats
from .vector_store import VectorStore

logger = structlog.get_logger()


class CleanupService:
    """Runs three independent, best-effort cleanup passes.

    1. Expiry: delete mid-term records past retention with few accesses.
    2. Dangling promotions: delete long-term records whose session has no
       stored messages left, and their embeddings.
    3. Orphaned embeddings: delete vector entries with no memory record.

    A failing pass is recorded in the report and the next pass still
    runs. Each pass uses its own transaction and writes nothing when it
    finds nothing.
    """

    def __init__(
        self,
        session_manager: DatabaseSessionManager,
        config: CleanupConfig,
        vector_store: VectorStore | None = None,
        event_bus: EventBus | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._session_manager = session_manager
        self.config = config
        self._vector_store = vector_store
        self._event_bus = event_bus
        self._clock = clock

    def retention_horizon(self, now: datetime) -> datetime:
        return now - timedelta(days=self.config.retention_days)

    async def run(self, now: datetime | None = None) -> CleanupReport:
        """Run all passes and report what was removed."""
        now = now or self._clock()
        report = CleanupReport()

        report.expired_mid_term = await self._run_pass(
            "expiry", report, lambda: self._expire(now)
        )
        report.dangling_count = await self._run_pass(
            "dangling_promotions", report, lambda: self._repair_dangling(report)
        )
        report.orphaned_count = await self._run_pass(
            "orphaned_embeddings", report, self._repair_orphans
        )

        logger.info(
            "cleanup_complete",
            expired=report.expired_mid_term,
            dangling=report.dangling_count,
            orphaned=report.orphaned_count,
            errors=len(report.errors),
        )

        if self._event_bus is not None:
            await self._event_bus.emit(
                CleanupCompletedEvent(
                    expired_mid_term=report.expired_mid_term,
                    dangling_count=report.dangling_count,
                    orphaned_count=report.orphaned_count,
                    errors=report.errors,
                )
            )
        return report

    async def _run_pass(
        self,
        name: str,
        report: CleanupReport,
        action: Callable[[], Awaitable[int]],
    ) -> int:
        try:
            return await action()
        except Exception as e:
            failure = CleanupPartialFailure(name, str(e), e)
            logger.warning("cleanup_pass_failed", pass_name=name, error=str(e))
            report.errors.append(str(failure))
            return 0

    async def _expire(self, now: datetime) -> int:
        async with self._session_manager.session() as session:
            repo = CompactedSessionRepository(session)
            expired = await repo.find_expired(
                self.retention_horizon(now), self.config.min_access_count
            )
            if not expired:
                return 0
            count = await repo.delete_many(
                [record.id for record in expired], tier=MemoryTier.MID_TERM
            )
            await session.commit()

        logger.info("mid_term_memories_expired", count=count)
        return count

    async def _repair_dangling(self, report: CleanupReport) -> int:
        async with self._session_manager.session() as session:
            repo = CompactedSessionRepository(session)
            dangling = await repo.find_dangling()
            if not dangling:
                return 0
            ids = [record.id for record in dangling]
            count = await repo.delete_many(ids, tier=MemoryTier.LONG_TERM)
            await session.commit()

        logger.info("dangling_promotions_removed", count=count)

        # Leftover vectors are picked up by the orphan pass on a later run
        if self._vector_store is not None:
            for memory_id in ids:
                try:
                    await self._vector_store.delete_embedding(memory_id)
                except Exception as e:
                    report.errors.append(
                        str(CleanupPartialFailure("dangling_promotions", f"{memory_id}: {e}", e))
                    )
        return count

    async def _repair_orphans(self) -> int:
        if self._vector_store is None:
            return 0

        candidates = await self._vector_store.list_orphaned()
        if not candidates:
            return 0

        # Re-check against the store; a record may have appeared since listing
        async with self._session_manager.session() as session:
            existing = await CompactedSessionRepository(session).existing_ids(candidates)
        orphans: list[UUID] = [c for c in candidates if c not in existing]

        deleted = 0
        for memory_id in orphans:
            if await self._vector_store.delete_embedding(memory_id):
                deleted += 1

        logger.info("orphaned_embeddings_removed", count=deleted)
        return deleted

    async def get_stats(self, now: datetime | None = None) -> CleanupStats:
        """Count what a run would touch, without writing."""
        now = now or self._clock()
        async with self._session_manager.session() as session:
            repo = CompactedSessionRepository(session)
            tiers = await repo.count_by_tier()
            expired = await repo.find_expired(
                self.retention_horizon(now), self.config.min_access_count
            )
            dangling = await repo.find_dangling()

        orphaned = await self._vector_store.list_orphaned() if self._vector_store else []

        return CleanupStats(
            mid_term_total=tiers[MemoryTier.MID_TERM.value],
            long_term_total=tiers[MemoryTier.LONG_TERM.value],
            expired_candidates=len(expired),
            dangling_candidates=len(dangling),
            orphaned_embeddings=len(orphaned),
        )
