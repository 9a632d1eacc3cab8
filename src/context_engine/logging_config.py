"""Structured logging setup."""

from __future__ import annotations

import logging
from typing import Any

import structlog
from rich.console import Console
from rich.logging import RichHandler


def configure_logging(level: str = "INFO", json: bool = True) -> None:
    """Configure structlog for the process.

    Args:
        level: Minimum log level name
        json: Emit JSON lines; otherwise render to a Rich console
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if json:
        processors.append(structlog.processors.JSONRenderer())
        logger_factory: Any = structlog.PrintLoggerFactory()
    else:
        # Route through stdlib logging so Rich handles colours and tracebacks
        handler = RichHandler(
            console=Console(stderr=True),
            show_time=False,
            show_path=False,
            rich_tracebacks=True,
        )
        root = logging.getLogger()
        for existing in root.handlers[:]:
            root.removeHandler(existing)
        root.addHandler(handler)
        root.setLevel(log_level)
        processors.append(structlog.dev.ConsoleRenderer(colors=False))
        logger_factory = structlog.stdlib.LoggerFactory()

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=logger_factory,
        cache_logger_on_first_use=True,
    )
