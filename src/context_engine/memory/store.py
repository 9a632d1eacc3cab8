"""Mid-term memory store over compacted session records."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

import structlog
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from ..db.errors import storage_errors
from ..db.models.compacted_session import CompactedSession
from ..db.models.enums import MemoryTier
from ..db.repository.compacted_session_repo import CompactedSessionRepository
from ..exceptions import MemoryNotFoundError, StorageError
from .schemas import AccessInfo, MemoryCreate

logger = structlog.get_logger()


class MidTermMemoryStore:
    """Access layer for compacted session records.

    Wraps the repository and maps storage failures to
    :class:`StorageError`. The caller owns the transaction.
    """

    def __init__(self, session: AsyncSession) -> None:
        """Initialize memory store.

        Args:
            session: Database session
        """
        self._session = session
        self._repo = CompactedSessionRepository(session)

    # === CRUD ===

    async def create(
        self,
        session_id: str,
        summary: str,
        message_start: int,
        message_end: int,
        key_topics: list[str] | None = None,
        decisions: list[str] | None = None,
        condense_id: UUID | None = None,
    ) -> CompactedSession:
        """Store a new mid-term record.

        Raises:
            StorageError: If validation or the insert fails
        """
        try:
            validated = MemoryCreate(
                session_id=session_id,
                summary=summary,
                key_topics=key_topics or [],
                decisions=decisions or [],
                message_start=message_start,
                message_end=message_end,
                condense_id=condense_id,
            )
        except ValidationError as e:
            raise StorageError(f"Invalid memory input: {e}", e) from e

        with storage_errors("create_memory"):
            record = await self._repo.create(
                **validated.model_dump(),
                tier=MemoryTier.MID_TERM.value,
            )

        logger.info("memory_stored", memory_id=str(record.id), session_id=session_id)
        return record

    async def get(self, memory_id: UUID) -> CompactedSession:
        """Get a record by id.

        Raises:
            MemoryNotFoundError: If the record doesn't exist
        """
        with storage_errors("get_memory"):
            record = await self._repo.get_by_id(memory_id)
        if record is None:
            raise MemoryNotFoundError(memory_id)
        return record

    async def list_by_session(self, session_id: str) -> list[CompactedSession]:
        with storage_errors("list_memories"):
            return await self._repo.list_by_session(session_id)

    async def list_all(self, limit: int = 100, offset: int = 0) -> list[CompactedSession]:
        with storage_errors("list_memories"):
            return await self._repo.list_recent(limit=limit, offset=offset)

    async def delete(self, memory_id: UUID) -> bool:
        with storage_errors("delete_memory"):
            deleted = await self._repo.delete(memory_id)
        if deleted:
            logger.info("memory_deleted", memory_id=str(memory_id))
        return deleted

    async def delete_by_session(self, session_id: str) -> int:
        with storage_errors("delete_memories"):
            return await self._repo.delete_by_session(session_id)

    # === Specialized Queries ===

    async def get_memories_for_promotion(self, limit: int = 10) -> list[CompactedSession]:
        """Mid-term records, most accessed first, then least recently accessed."""
        with storage_errors("get_memories_for_promotion"):
            return await self._repo.get_for_promotion(limit)

    async def record_access(self, session_id: str, at: datetime | None = None) -> int:
        """Count one prompt injection of a session's memories.

        Returns:
            Number of records updated
        """
        with storage_errors("record_access"):
            updated = await self._repo.record_access(session_id, at)
        logger.debug("memory_access_recorded", session_id=session_id, updated=updated)
        return updated

    async def get_access_info(self, memory_id: UUID) -> AccessInfo:
        return AccessInfo.model_validate(await self.get(memory_id))

    async def count_by_tier(self) -> dict[str, int]:
        with storage_errors("count_memories"):
            return await self._repo.count_by_tier()
