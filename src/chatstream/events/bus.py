"""Async pub/sub EventBus for delivering chat events to the UI."""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Callable

from chatstream.types import ChatEvent, EventType

_logger = logging.getLogger(__name__)

# Subscribers under this key see every chat event
_WILDCARD = "*"

Handler = Callable[[ChatEvent], Any]


class EventBus:
    """Fans chat events out to the UI.

    Handlers may be sync or async and are registered per ``EventType`` or
    under ``"*"``.  ``emit()`` waits for every handler, so a token is
    rendered before the next one is emitted.
    """

    def __init__(self) -> None:
        self._handlers: dict[str, list[Handler]] = {}

    def subscribe(self, event_type: EventType | str, handler: Handler) -> None:
        key = event_type.value if isinstance(event_type, EventType) else event_type
        self._handlers.setdefault(key, []).append(handler)

    async def emit(self, event: ChatEvent) -> None:
        """Deliver *event*.  A failing handler is logged, never raised."""
        handlers = [
            *self._handlers.get(event.type.value, []),
            *self._handlers.get(_WILDCARD, []),
        ]
        if handlers:
            await asyncio.gather(*(self._deliver(h, event) for h in handlers))

    @staticmethod
    async def _deliver(handler: Handler, event: ChatEvent) -> None:
        try:
            result = handler(event)
            if inspect.isawaitable(result):
                await result
        except Exception:
            _logger.exception("Handler for %s failed", event.type.value)
