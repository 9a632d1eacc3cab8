"""Exception handlers mapping engine errors onto HTTP responses."""

import structlog
from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from ..exceptions import ConfigurationError, ContextEngineError, NotFoundError, StorageError
from .exceptions import APIError
from .schemas import ErrorResponse

logger = structlog.get_logger()

# Checked in order; the first matching class wins
DOMAIN_STATUS: list[tuple[type[ContextEngineError], int, str]] = [
    (NotFoundError, 404, "NOT_FOUND"),
    (ConfigurationError, 422, "CONFIGURATION_ERROR"),
    (StorageError, 503, "STORAGE_ERROR"),
]


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", "unknown")


def _domain_status(exc: ContextEngineError) -> tuple[int, str]:
    for error_type, status_code, code in DOMAIN_STATUS:
        if isinstance(exc, error_type):
            return status_code, code
    return 500, "ENGINE_ERROR"


def _error_response(
    request: Request,
    status_code: int,
    code: str,
    error: str,
    detail: str | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    body = ErrorResponse(error=error, detail=detail, code=code, request_id=_request_id(request))
    return JSONResponse(status_code=status_code, content=body.model_dump(), headers=headers)


def register_exception_handlers(app: FastAPI) -> None:
    """Install handlers so every failure answers with an ``ErrorResponse``.

    Domain errors keep their message; anything unexpected is logged with its
    traceback and answered with a generic 500.
    """

    @app.exception_handler(ContextEngineError)
    async def engine_error_handler(request: Request, exc: ContextEngineError) -> JSONResponse:
        status_code, code = _domain_status(exc)
        logger.warning(
            "engine_error",
            code=code,
            error=exc.message,
            cause=str(exc.cause) if exc.cause else None,
        )
        return _error_response(request, status_code, code, exc.message)

    @app.exception_handler(APIError)
    async def api_error_handler(request: Request, exc: APIError) -> JSONResponse:
        logger.warning("api_error", code=exc.code, error=exc.message)
        detail = exc.detail.get("detail") if isinstance(exc.detail, dict) else None
        return _error_response(request, exc.status_code, exc.code, exc.message, detail)

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
        logger.warning("http_error", status_code=exc.status_code, detail=exc.detail)
        return _error_response(
            request,
            exc.status_code,
            f"HTTP_{exc.status_code}",
            str(exc.detail),
            headers=exc.headers,
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        errors = exc.errors()
        logger.warning("validation_error", errors=errors)
        detail = "; ".join(
            f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}" for error in errors
        )
        return _error_response(request, 422, "VALIDATION_ERROR", "Validation error", detail)

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception(
            "unhandled_error",
            request_id=_request_id(request),
            error_type=type(exc).__name__,
        )
        return _error_response(request, 500, "INTERNAL_ERROR", "Internal server error")
