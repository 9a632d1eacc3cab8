"""HTTP-only errors raised by routers.

Domain failures (missing checkpoint, bad thresholds, storage outages)
are :class:`~context_engine.exceptions.ContextEngineError` subclasses and
mapped in ``handlers``; these cover conditions that only exist at the
HTTP surface.
"""

from fastapi import HTTPException


class APIError(HTTPException):
    """HTTP error carrying a stable machine-readable ``code``."""

    def __init__(
        self,
        message: str,
        code: str,
        status_code: int = 400,
        detail: str | None = None,
    ) -> None:
        super().__init__(
            status_code=status_code,
            detail={"message": message, "code": code, "detail": detail},
        )
        self.message = message
        self.code = code


class NoChangesError(APIError):
    """Settings update carried no fields."""

    def __init__(self) -> None:
        super().__init__(message="No changes supplied", code="NO_CHANGES")


class DatabaseUnavailableError(APIError):
    """Readiness probe could not reach the context store."""

    def __init__(self, detail: str) -> None:
        super().__init__(
            message="Database unavailable",
            code="DATABASE_UNAVAILABLE",
            status_code=503,
            detail=detail,
        )
