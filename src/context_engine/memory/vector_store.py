"""Vector store collaborator for long-term memories."""

from __future__ import annotations

from typing import Protocol, cast
from uuid import UUID

import structlog
from sqlalchemy import CursorResult, delete, exists, select
from sqlalchemy.dialects.postgresql import insert as pg_insert

from ..db.models.compacted_session import CompactedSession
from ..db.models.memory_embedding import MemoryEmbedding
from ..db.session import DatabaseSessionManager
from .embedding_service import EmbeddingService

logger = structlog.get_logger()


class VectorStore(Protocol):
    """Embedding storage consumed by promotion and cleanup."""

    async def upsert_embedding(self, memory_id: UUID, text: str) -> None: ...

    async def list_orphaned(self) -> list[UUID]: ...

    async def delete_embedding(self, memory_id: UUID) -> bool: ...


class PgVectorStore:
    """Vector store backed by a pgvector table in the relational store."""

    def __init__(
        self,
        session_manager: DatabaseSessionManager,
        embedding_service: EmbeddingService,
    ) -> None:
        self._session_manager = session_manager
        self._embedding_service = embedding_service

    async def upsert_embedding(self, memory_id: UUID, text: str) -> None:
        """Embed ``text`` and store it under ``memory_id``.

        Raises:
            Exception: Embedding or storage failures propagate to the caller
        """
        vector = await self._embedding_service.embed_text(text)

        async with self._session_manager.session() as session:
            if self._session_manager.dialect == "postgresql":
                stmt = pg_insert(MemoryEmbedding).values(
                    memory_id=memory_id,
                    content=text,
                    embedding=vector,
                    model=self._embedding_service.model,
                )
                stmt = stmt.on_conflict_do_update(
                    index_elements=[MemoryEmbedding.memory_id],
                    set_={
                        "content": stmt.excluded.content,
                        "embedding": stmt.excluded.embedding,
                        "model": stmt.excluded.model,
                    },
                )
                await session.execute(stmt)
            else:
                await session.merge(
                    MemoryEmbedding(
                        memory_id=memory_id,
                        content=text,
                        embedding=vector,
                        model=self._embedding_service.model,
                    )
                )
            await session.commit()

        logger.debug("embedding_upserted", memory_id=str(memory_id))

    async def list_orphaned(self) -> list[UUID]:
        """Embeddings whose memory record no longer exists."""
        has_record = exists().where(CompactedSession.id == MemoryEmbedding.memory_id)
        stmt = select(MemoryEmbedding.memory_id).where(~has_record)
        async with self._session_manager.session() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def delete_embedding(self, memory_id: UUID) -> bool:
        stmt = delete(MemoryEmbedding).where(MemoryEmbedding.memory_id == memory_id)
        async with self._session_manager.session() as session:
            result = await session.execute(stmt)
            await session.commit()
        deleted = bool(cast(CursorResult[tuple[()]], result).rowcount)
        if deleted:
            logger.debug("embedding_deleted", memory_id=str(memory_id))
        return deleted
