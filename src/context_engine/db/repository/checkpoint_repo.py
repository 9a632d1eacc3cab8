"""Checkpoint repository."""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.checkpoint import Checkpoint
from .base import BaseRepository


class CheckpointRepository(BaseRepository[Checkpoint]):
    """Repository for transcript checkpoints.

    Checkpoints are immutable, so there is no update method.
    """

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(Checkpoint, session)

    async def list_by_session(self, session_id: str, limit: int = 100) -> list[Checkpoint]:
        """List checkpoints of a session, newest first.

        Args:
            session_id: Conversation identifier
            limit: Maximum checkpoints to return

        Returns:
            Checkpoints ordered by creation time descending
        """
        stmt = (
            select(Checkpoint)
            .where(Checkpoint.session_id == session_id)
            .order_by(Checkpoint.created_at.desc(), Checkpoint.last_sequence.desc())
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_latest(self, session_id: str) -> Checkpoint | None:
        """Get the newest checkpoint of a session."""
        checkpoints = await self.list_by_session(session_id, limit=1)
        return checkpoints[0] if checkpoints else None
