"""Publish/subscribe fan-out of typed realtime events."""

from __future__ import annotations

import inspect
from typing import Any, Awaitable, Callable, Dict, Union

from zettelsync.metrics.observability import ClientMetrics, get_logger
from zettelsync.realtime.events import Event, EventType, event_type_of

EventHandler = Callable[[Any], Union[None, Awaitable[None]]]


class EventBus:
    """Registry of handlers per event type.

    Registration has set semantics: adding the same handler twice keeps one
    entry, removing an unknown handler does nothing. Handlers run in
    registration order; a failing handler is logged and skipped.
    """

    def __init__(self) -> None:
        # dict keys double as an insertion-ordered set
        self._handlers: Dict[EventType, Dict[EventHandler, None]] = {}
        self._logger = get_logger("realtime.bus")

    def on(self, event_type: EventType, handler: EventHandler) -> None:
        self._handlers.setdefault(EventType(event_type), {})[handler] = None

    def off(self, event_type: EventType, handler: EventHandler) -> None:
        handlers = self._handlers.get(EventType(event_type))
        if handlers is not None:
            handlers.pop(handler, None)

    def handlers(self, event_type: EventType) -> tuple[EventHandler, ...]:
        return tuple(self._handlers.get(EventType(event_type), {}))

    def clear(self) -> None:
        self._handlers.clear()

    async def dispatch(self, event: Event) -> int:
        """Deliver the event payload to every handler; return how many succeeded."""

        event_type = event_type_of(event)
        delivered = 0
        for handler in self.handlers(event_type):
            try:
                result = handler(event.payload)
                if inspect.isawaitable(result):
                    await result
            except Exception as exc:
                ClientMetrics.handler_errors.labels(event_type=event_type.value).inc()
                self._logger.error(
                    "realtime.handler_error",
                    event_type=event_type.value,
                    handler=getattr(handler, "__qualname__", repr(handler)),
                    detail=str(exc),
                )
                continue
            delivered += 1
        return delivered
