"""Persistence layer: async SQLAlchemy models, repositories and sessions."""

from .session import DatabaseSessionManager

__all__ = ["DatabaseSessionManager"]
