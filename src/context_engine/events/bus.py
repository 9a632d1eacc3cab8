"""In-process event bus for compression, checkpoint and memory reports."""

from __future__ import annotations

import asyncio
from collections import defaultdict
from collections.abc import Awaitable, Callable

import structlog

from .types import Event, EventType

logger = structlog.get_logger()

EventHandler = Callable[[Event], Awaitable[None]]


class EventBus:
    """Routes engine events to async subscribers.

    Handlers of one event run concurrently. A handler that raises is
    logged with the event's session and never reaches the emitter, so a
    broken subscriber cannot fail an append or a maintenance run.
    """

    def __init__(self) -> None:
        self._by_type: dict[EventType, list[EventHandler]] = defaultdict(list)
        self._wildcard: list[EventHandler] = []

    def subscribe(self, event_type: EventType | str, handler: EventHandler) -> None:
        """Call ``handler`` for every event of ``event_type``."""
        self._by_type[EventType(event_type)].append(handler)

    def subscribe_all(self, handler: EventHandler) -> None:
        """Call ``handler`` for every event, e.g. to forward reports to a UI."""
        self._wildcard.append(handler)

    def unsubscribe(self, event_type: EventType | str, handler: EventHandler) -> bool:
        """Remove a typed subscription.

        Returns:
            True if the handler was subscribed
        """
        handlers = self._by_type.get(EventType(event_type))
        if not handlers or handler not in handlers:
            return False
        handlers.remove(handler)
        return True

    def clear(self) -> None:
        self._by_type.clear()
        self._wildcard.clear()

    async def emit(self, event: Event) -> None:
        """Deliver ``event`` to its subscribers and wait for all of them."""
        event_type = EventType(event.type)
        handlers = [*self._by_type.get(event_type, ()), *self._wildcard]
        if not handlers:
            return

        outcomes = await asyncio.gather(
            *(handler(event) for handler in handlers), return_exceptions=True
        )
        for handler, outcome in zip(handlers, outcomes, strict=True):
            if isinstance(outcome, Exception):
                logger.error(
                    "event_handler_failed",
                    event_type=event_type.value,
                    session_id=event.session_id,
                    handler=getattr(handler, "__qualname__", repr(handler)),
                    error=str(outcome),
                    error_type=type(outcome).__name__,
                )
