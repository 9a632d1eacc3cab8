"""FastAPI application factory and configuration."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware

from ..config import get_api_settings
from ..container import get_container
from ..logging_config import configure_logging
from .handlers import register_exception_handlers
from .middleware import RequestContextMiddleware
from .routers import (
    checkpoints_router,
    health_router,
    memories_router,
    messages_router,
    settings_router,
)

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Build the container on startup and release it on shutdown."""
    logger.info("starting_application")
    container = get_container()
    await container.initialize()

    yield

    logger.info("shutting_down_application")
    await container.close()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application
    """
    settings = get_api_settings()
    configure_logging(settings.log_level, json=settings.log_json)

    app = FastAPI(
        title=settings.title,
        description=settings.description,
        version=settings.version,
        lifespan=lifespan,
        openapi_tags=[
            {"name": "health", "description": "Health check endpoints"},
            {"name": "messages", "description": "Transcript and compression"},
            {"name": "checkpoints", "description": "Transcript snapshots"},
            {"name": "memories", "description": "Mid-term and long-term memory"},
            {"name": "settings", "description": "User-editable configuration"},
        ],
    )

    # Last added runs first, so the request context wraps compression
    app.add_middleware(GZipMiddleware, minimum_size=1000)
    app.add_middleware(RequestContextMiddleware)

    if settings.cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.cors_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    register_exception_handlers(app)

    app.include_router(health_router)
    app.include_router(messages_router, prefix=settings.prefix)
    app.include_router(checkpoints_router, prefix=settings.prefix)
    app.include_router(memories_router, prefix=settings.prefix)
    app.include_router(settings_router, prefix=settings.prefix)

    logger.info("application_configured", title=settings.title, version=settings.version)
    return app


if __name__ == "__main__":
    import uvicorn

    api_settings = get_api_settings()
    uvicorn.run(
        "context_engine.api.main:create_app",
        factory=True,
        host=api_settings.host,
        port=api_settings.port,
        reload=api_settings.debug,
        log_config=None,  # Use structlog instead
    )
