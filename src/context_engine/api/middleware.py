"""Request-scoped logging context."""

from __future__ import annotations

import re
import time
import uuid

import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

logger = structlog.get_logger()

REQUEST_ID_HEADER = "X-Request-ID"

_SESSION_PATH = re.compile(r"/sessions/([^/]+)")


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Tags each request with an id and binds it to every log line.

    The id is taken from ``X-Request-ID`` when the caller sends one, so a
    chat frontend can correlate its own logs. Requests under
    ``/sessions/{session_id}`` also bind ``session_id``, which lets
    compression and checkpoint logs be traced back to the request that
    triggered them.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        request.state.request_id = request_id

        context: dict[str, str] = {"request_id": request_id}
        if match := _SESSION_PATH.search(request.url.path):
            context["session_id"] = match.group(1)

        started = time.perf_counter()
        with structlog.contextvars.bound_contextvars(**context):
            response = await call_next(request)
            elapsed_ms = (time.perf_counter() - started) * 1000
            logger.info(
                "request_completed",
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                duration_ms=round(elapsed_ms, 2),
            )

        response.headers[REQUEST_ID_HEADER] = request_id
        response.headers["X-Response-Time"] = f"{elapsed_ms:.2f}ms"
        return response
