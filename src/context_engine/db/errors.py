"""Translation of driver errors into domain errors."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

import structlog
from sqlalchemy.exc import SQLAlchemyError

from ..exceptions import StorageError

logger = structlog.get_logger()


@contextmanager
def storage_errors(operation: str) -> Iterator[None]:
    """Re-raise SQLAlchemy failures inside the block as StorageError.

    Example:
        with storage_errors("record_access"):
            await repo.record_access(session_id)
    """
    try:
        yield
    except SQLAlchemyError as e:
        logger.error("storage_operation_failed", operation=operation, error=str(e))
        raise StorageError(f"Storage operation '{operation}' failed: {e}", e) from e
