"""FastAPI dependencies for dependency injection."""

from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ..container import EngineContainer, get_container
from ..services.context_engine import ContextEngine


def get_engine_container() -> EngineContainer:
    """Container dependency."""
    return get_container()


def get_engine(
    container: EngineContainer = Depends(get_engine_container),
) -> ContextEngine:
    """Context engine dependency."""
    return container.engine


async def get_db(
    container: EngineContainer = Depends(get_engine_container),
) -> AsyncGenerator[AsyncSession, None]:
    """Database session dependency.

    Yields:
        AsyncSession for database operations
    """
    async for session in container.session_manager.get_session():
        yield session


# Type aliases for cleaner route signatures
Container = Annotated[EngineContainer, Depends(get_engine_container)]
Engine = Annotated[ContextEngine, Depends(get_engine)]
DBSession = Annotated[AsyncSession, Depends(get_db)]
