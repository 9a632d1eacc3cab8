"""Engine services: per-session workers and background scheduling."""

from .context_engine import AppendResult, ContextEngine
from .scheduler import BackgroundScheduler, PeriodicTask

__all__ = ["AppendResult", "BackgroundScheduler", "ContextEngine", "PeriodicTask"]
