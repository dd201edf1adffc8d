import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List

from concierge.exceptions.bus import EventBusError
from .events import EventTypes

EventHandler = Callable[[Any], Awaitable[None]]


class EventBus:
    """
    Asynchronous publish/subscribe hub between the orchestrator and its observers.

    Handlers for one event type are awaited one after another in the order
    they subscribed. A handler that raises is logged and skipped; the rest
    still receive the event. Handlers unsubscribed mid-emit are not called.
    """

    def __init__(self):
        self._lock = asyncio.Lock()
        self._subscribers: Dict[EventTypes, List[EventHandler]] = {}
        self._logger = logging.getLogger("EventBus")

    async def subscribe(self, event_type: EventTypes, handler: EventHandler) -> None:
        if not isinstance(event_type, EventTypes):
            raise EventBusError(f"Unknown event type: {event_type!r}")
        async with self._lock:
            self._subscribers.setdefault(event_type, []).append(handler)

    async def unsubscribe(self, event_type: EventTypes, handler: EventHandler) -> None:
        async with self._lock:
            handlers = self._subscribers.get(event_type)
            if handlers and handler in handlers:
                handlers.remove(handler)

    async def emit(self, event_type: EventTypes, data: Any = None) -> None:
        async with self._lock:
            pending = list(self._subscribers.get(event_type, ()))

        for handler in pending:
            async with self._lock:
                live = handler in self._subscribers.get(event_type, ())
            if not live:
                continue
            try:
                await handler(data)
            except Exception as e:
                name = getattr(handler, "__qualname__", repr(handler))
                self._logger.error(
                    "Handler %s failed on %s: %s", name, event_type.value, e, exc_info=True
                )
