"""Alembic environment for the context engine schema.

The database URL comes from ``DATABASE_URL`` (see ``DatabaseSettings``),
never from alembic.ini, so migrations and the app always agree.
"""

import asyncio
from logging.config import fileConfig
from typing import Any

from alembic import context
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import NullPool

from context_engine.config import get_database_settings
from context_engine.db.models import (  # noqa: F401  registers tables on Base.metadata
    ChatMessage,
    Checkpoint,
    CompactedSession,
    MemoryEmbedding,
)
from context_engine.db.models.base import Base

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

DATABASE_URL = get_database_settings().url
target_metadata = Base.metadata


def context_options(dialect_name: str) -> dict[str, Any]:
    """Options shared by offline and online runs for a dialect."""
    return {
        "target_metadata": target_metadata,
        "compare_type": True,
        # SQLite cannot ALTER constraints in place
        "render_as_batch": dialect_name == "sqlite",
    }


def run_migrations_offline() -> None:
    """Emit SQL for the configured dialect without connecting."""
    dialect_name = DATABASE_URL.split(":", 1)[0].split("+", 1)[0]
    context.configure(
        url=DATABASE_URL,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        **context_options(dialect_name),
    )
    with context.begin_transaction():
        context.run_migrations()


def do_run_migrations(connection: Connection) -> None:
    context.configure(connection=connection, **context_options(connection.dialect.name))
    with context.begin_transaction():
        context.run_migrations()


async def run_migrations_online() -> None:
    """Apply migrations over the app's async driver."""
    engine = create_async_engine(DATABASE_URL, poolclass=NullPool)
    try:
        async with engine.connect() as connection:
            await connection.run_sync(do_run_migrations)
    finally:
        await engine.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    asyncio.run(run_migrations_online())
