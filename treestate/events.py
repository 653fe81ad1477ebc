"""
Event transport used to broadcast state changes.

The state container only needs something with ``publish(event_name, payload)``.
``EventBus`` is a minimal synchronous in-process implementation; applications
may pass any object that satisfies ``EventPublisher`` instead.
"""

import logging
from collections import defaultdict
from typing import Any, Callable, Dict, List, Optional, Protocol, runtime_checkable

logger = logging.getLogger(__name__)

STATE_CHANGED = "state:changed"
STATE_BATCH = "state:batch"

Handler = Callable[[Dict[str, Any]], None]


@runtime_checkable
class EventPublisher(Protocol):
    def publish(self, event_name: str, payload: Dict[str, Any]) -> None: ...


class EventBus:
    """
    Synchronous publish/subscribe bus.

    Handlers run in subscription order. A failing handler is logged and the
    remaining handlers still run.
    """

    def __init__(self):
        self._handlers: Dict[str, List[Handler]] = defaultdict(list)

    def subscribe(self, event_name: str, handler: Handler) -> Callable[[], None]:
        """Register ``handler`` for ``event_name``; returns an unsubscribe function."""
        if not callable(handler):
            raise TypeError("Handler must be callable")
        self._handlers[event_name].append(handler)

        def unsubscribe():
            self.unsubscribe(event_name, handler)

        return unsubscribe

    def unsubscribe(self, event_name: str, handler: Handler) -> bool:
        handlers = self._handlers.get(event_name)
        if not handlers or handler not in handlers:
            return False
        handlers.remove(handler)
        if not handlers:
            del self._handlers[event_name]
        return True

    def publish(self, event_name: str, payload: Dict[str, Any]) -> None:
        for handler in list(self._handlers.get(event_name, ())):
            try:
                handler(payload)
            except Exception:
                logger.exception(f"Error in handler for '{event_name}'")

    def handler_count(self, event_name: Optional[str] = None) -> int:
        if event_name is not None:
            return len(self._handlers.get(event_name, ()))
        return sum(len(handlers) for handlers in self._handlers.values())

    def clear(self) -> None:
        self._handlers.clear()
