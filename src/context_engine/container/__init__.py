"""Dependency container."""

from .container import EngineContainer, get_container

__all__ = ["EngineContainer", "get_container"]
