"""Vector embedding of a long-term memory."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pgvector.sqlalchemy import Vector
from sqlalchemy import TEXT, VARCHAR
from sqlalchemy.orm import Mapped, mapped_column

from ..types import UTCDateTime, utcnow
from .base import Base

EMBEDDING_DIMENSION = 1536


class MemoryEmbedding(Base):
    """Semantic index entry for a promoted memory.

    Keyed by the memory id without a foreign key, so entries can outlive
    their record. Those orphans are found and removed by cleanup.

    Attributes:
        memory_id: Id of the compacted session record (primary key)
        content: Text that was embedded
        embedding: Vector embedding
        model: Embedding model name
        updated_at: Last upsert time
    """

    __tablename__ = "memory_embeddings"

    memory_id: Mapped[UUID] = mapped_column(primary_key=True)
    content: Mapped[str] = mapped_column(TEXT)
    embedding: Mapped[list[float]] = mapped_column(Vector(EMBEDDING_DIMENSION))
    model: Mapped[str] = mapped_column(VARCHAR(100))
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), default=utcnow, onupdate=utcnow
    )

    def __repr__(self) -> str:
        return f"<MemoryEmbedding(memory_id={self.memory_id}, model={self.model})>"
