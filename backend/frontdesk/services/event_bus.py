"""
Event bus - in-process publish/subscribe
Services publish after their transaction commits; handlers (notifications, audit)
run synchronously and can never fail the publishing operation.
"""
from typing import Callable, Dict, List, Any, Optional
from dataclasses import dataclass, field
from datetime import datetime
from collections import deque
import logging
import threading
import uuid

logger = logging.getLogger(__name__)


@dataclass
class Event:
    """Domain event"""
    event_type: str
    timestamp: datetime
    data: Dict[str, Any]
    source: str  # publishing service
    operator_id: Optional[int] = None
    event_id: str = field(default_factory=lambda: uuid.uuid4().hex)


class EventBus:
    """
    Thread-safe in-process event bus

    Usage:
    1. event_bus.subscribe("payment_recorded", handler)
    2. event_bus.publish(Event(...))
    3. event_bus.unsubscribe("payment_recorded", handler)
    """

    def __init__(self, history_size: int = 100):
        self._subscribers: Dict[str, List[Callable[[Event], None]]] = {}
        self._event_history: deque = deque(maxlen=history_size)
        self._lock = threading.Lock()

    def subscribe(self, event_type: str, handler: Callable[[Event], None]) -> None:
        with self._lock:
            handlers = self._subscribers.setdefault(event_type, [])
            if handler not in handlers:
                handlers.append(handler)
                logger.debug(f"Handler {_name(handler)} subscribed to {event_type}")

    def unsubscribe(self, event_type: str, handler: Callable[[Event], None]) -> None:
        with self._lock:
            handlers = self._subscribers.get(event_type, [])
            if handler in handlers:
                handlers.remove(handler)

    def publish(self, event: Event) -> None:
        """
        Deliver an event to every subscriber.

        A failing handler is logged and skipped; it affects neither the other handlers
        nor the caller.
        """
        with self._lock:
            self._event_history.append(event)
            handlers = list(self._subscribers.get(event.event_type, []))

        for handler in handlers:
            try:
                handler(event)
            except Exception as e:
                logger.error(
                    f"Event handler {_name(handler)} error for {event.event_type}: {e}",
                    exc_info=True
                )

    def get_history(self, event_type: Optional[str] = None, limit: int = 50) -> List[Event]:
        """Recent events, newest first"""
        with self._lock:
            history = list(self._event_history)
        if event_type:
            history = [e for e in history if e.event_type == event_type]
        return list(reversed(history))[:limit]

    def get_subscribers(self) -> Dict[str, List[str]]:
        with self._lock:
            return {
                et: [_name(h) for h in handlers]
                for et, handlers in self._subscribers.items()
            }

    def clear_subscribers(self) -> None:
        """Drop every subscription (tests)"""
        with self._lock:
            self._subscribers.clear()

    def clear_history(self) -> None:
        with self._lock:
            self._event_history.clear()


def _name(handler) -> str:
    return getattr(handler, "__name__", type(handler).__name__)


# Global event bus instance
event_bus = EventBus()
