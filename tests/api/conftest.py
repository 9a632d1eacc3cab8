"""API test fixtures."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from context_engine.api.dependencies import get_db, get_engine_container
from context_engine.api.main import create_app


@pytest.fixture
def mock_engine() -> MagicMock:
    """Context engine with async methods mocked."""
    engine = MagicMock()
    for name in (
        "append_message",
        "list_messages",
        "evaluate",
        "compress",
        "delete_session",
        "create_checkpoint",
        "list_checkpoints",
        "get_checkpoint",
        "restore_checkpoint",
        "messages_since_checkpoint",
        "delete_checkpoint",
        "delete_checkpoints",
    ):
        setattr(engine, name, AsyncMock())
    engine.cancel = MagicMock(return_value=False)
    return engine


@pytest.fixture
def mock_container(mock_engine: MagicMock) -> MagicMock:
    container = MagicMock()
    container.engine = mock_engine
    container.run_promotion = AsyncMock()
    container.run_cleanup = AsyncMock()
    container.cleanup.get_stats = AsyncMock()
    return container


@pytest.fixture
def mock_db() -> AsyncMock:
    """Create mock database session."""
    session = AsyncMock()
    session.commit = AsyncMock()
    session.add = MagicMock()
    session.execute = AsyncMock()
    session.get_bind = MagicMock()
    session.get_bind.return_value.dialect.name = "sqlite"
    return session


@pytest.fixture
def app(mock_container: MagicMock, mock_db: AsyncMock) -> FastAPI:
    application = create_app()

    async def override_db() -> AsyncGenerator[AsyncMock, None]:
        yield mock_db

    application.dependency_overrides[get_engine_container] = lambda: mock_container
    application.dependency_overrides[get_db] = override_db
    return application


@pytest.fixture
def client(app: FastAPI) -> TestClient:
    """Test client without running the lifespan."""
    return TestClient(app, raise_server_exceptions=False)
