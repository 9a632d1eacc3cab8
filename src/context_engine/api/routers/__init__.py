"""API routers."""

from .checkpoints import router as checkpoints_router
from .health import router as health_router
from .memories import router as memories_router
from .messages import router as messages_router
from .settings import router as settings_router

__all__ = [
    "checkpoints_router",
    "health_router",
    "memories_router",
    "messages_router",
    "settings_router",
]
