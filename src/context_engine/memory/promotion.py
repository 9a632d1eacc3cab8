"""Promotion of mid-term memories to the long-term tier."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from datetime import datetime, timedelta
from uuid import UUID

import structlog

from ..config import MemoryAutoUpgradeConfig
from ..db.errors import storage_errors
from ..db.models.compacted_session import CompactedSession
from ..db.models.enums import MemoryTier
from ..db.repository.compacted_session_repo import CompactedSessionRepository
from ..db.session import DatabaseSessionManager
from ..db.types import utcnow
from ..events import EventBus, PromotionCompletedEvent
from .schemas import PromotionEvent, PromotionReport
from .store import MidTermMemoryStore
from .vector_store import VectorStore

logger = structlog.get_logger()


class PromotionService:
    """Moves frequently used but stale memories from mid-term to long-term.

    The tier only ever moves forward. Each transition is a
    compare-and-swap on ``tier``/``tier_updated_at``, so a record that
    changed since it was read is skipped rather than promoted twice.
    """

    def __init__(
        self,
        session_manager: DatabaseSessionManager,
        config: MemoryAutoUpgradeConfig,
        vector_store: VectorStore | None = None,
        event_bus: EventBus | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        """Initialize promotion service.

        Args:
            session_manager: Database session manager
            config: Promotion thresholds
            vector_store: Receives embeddings of promoted summaries
            event_bus: Receives the run report
            clock: Source of the current time
        """
        self._session_manager = session_manager
        self.config = config
        self._vector_store = vector_store
        self._event_bus = event_bus
        self._clock = clock

    def is_eligible(self, record: CompactedSession, now: datetime) -> bool:
        """Check the usage and recency bars for one record."""
        if not self.config.enabled or record.tier != MemoryTier.MID_TERM.value:
            return False
        if record.access_count < self.config.min_access_count:
            return False
        return now - record.last_accessed_at >= timedelta(days=self.config.days_threshold)

    async def run(self, now: datetime | None = None) -> PromotionReport:
        """Promote eligible candidates.

        Tier transitions are committed before embeddings are requested;
        embedding failures are reported but never undo a promotion.

        Returns:
            Promotion report

        Raises:
            StorageError: If reading candidates or committing fails
        """
        if not self.config.enabled:
            logger.debug("promotion_disabled")
            return PromotionReport(enabled=False)

        now = now or self._clock()
        report = PromotionReport()
        promoted: list[tuple[UUID, str]] = []

        async with self._session_manager.session() as session:
            store = MidTermMemoryStore(session)
            repo = CompactedSessionRepository(session)
            candidates = await store.get_memories_for_promotion(self.config.batch_size)
            report.checked = len(candidates)

            with storage_errors("promote_memories"):
                for record in candidates:
                    if not self.is_eligible(record, now):
                        report.skipped += 1
                        continue

                    event = PromotionEvent(
                        from_tier=MemoryTier.MID_TERM, to_tier=MemoryTier.LONG_TERM, at=now
                    )
                    history = [*record.promotion_history, event.to_history_entry()]
                    swapped = await repo.promote_if_unchanged(record, now, history)
                    if swapped:
                        promoted.append((record.id, record.summary))
                    else:
                        report.conflicts += 1
                        logger.info("promotion_conflict", memory_id=str(record.id))

                await session.commit()

        report.promoted = [memory_id for memory_id, _ in promoted]
        report.embedding_errors = await self._embed(promoted)

        logger.info(
            "promotion_complete",
            checked=report.checked,
            promoted=report.promoted_count,
            skipped=report.skipped,
            conflicts=report.conflicts,
            embedding_errors=len(report.embedding_errors),
        )

        if self._event_bus is not None:
            await self._event_bus.emit(
                PromotionCompletedEvent(
                    promoted=report.promoted_count,
                    checked=report.checked,
                    embedding_errors=report.embedding_errors,
                )
            )
        return report

    async def _embed(self, promoted: list[tuple[UUID, str]]) -> list[str]:
        if self._vector_store is None or not promoted:
            return []

        results = await asyncio.gather(
            *[self._vector_store.upsert_embedding(mid, text) for mid, text in promoted],
            return_exceptions=True,
        )

        errors: list[str] = []
        for (memory_id, _), result in zip(promoted, results, strict=True):
            if isinstance(result, Exception):
                logger.warning(
                    "promotion_embedding_failed",
                    memory_id=str(memory_id),
                    error=str(result),
                )
                errors.append(f"{memory_id}: {result}")
        return errors
