"""Base repository for rows that belong to a conversation session."""

from typing import Any, Generic, Protocol, TypeVar, cast
from uuid import UUID

from sqlalchemy import CursorResult, delete, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Mapped


class SessionScoped(Protocol):
    """Columns every session-owned model carries."""

    id: Mapped[UUID]
    session_id: Mapped[str]


ModelType = TypeVar("ModelType", bound=SessionScoped)


def rowcount(result: Any) -> int:
    """Affected rows of a bulk UPDATE/DELETE (drivers may report None)."""
    count = cast(CursorResult[tuple[()]], result).rowcount
    return count if count else 0


class BaseRepository(Generic[ModelType]):
    """Shared lookups for session-owned rows.

    Repositories flush but never commit; the caller owns the transaction.

    Attributes:
        model: SQLAlchemy model class with ``id`` and ``session_id`` columns
    """

    def __init__(self, model: type[ModelType], session: AsyncSession) -> None:
        self.model = model
        self.session = session

    async def create(self, **kwargs: Any) -> ModelType:
        """Insert a row and load server-side defaults.

        Args:
            **kwargs: Model attributes

        Returns:
            The flushed instance
        """
        instance = self.model(**kwargs)
        self.session.add(instance)
        await self.session.flush()
        await self.session.refresh(instance)
        return instance

    async def get_by_id(self, id: UUID) -> ModelType | None:
        stmt = select(self.model).where(self.model.id == id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def delete(self, id: UUID) -> bool:
        """Delete one row.

        Returns:
            True if a row was deleted, False if it did not exist
        """
        stmt = delete(self.model).where(self.model.id == id)
        deleted = rowcount(await self.session.execute(stmt))
        await self.session.flush()
        return deleted > 0

    async def delete_by_session(self, session_id: str) -> int:
        """Delete every row of a session.

        Returns:
            Number of deleted rows
        """
        stmt = delete(self.model).where(self.model.session_id == session_id)
        deleted = rowcount(await self.session.execute(stmt))
        await self.session.flush()
        return deleted
