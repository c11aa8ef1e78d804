"""
Synchronous publish/subscribe for domain events.
"""

import logging
import threading
from collections import deque
from typing import Any, Dict, List, Optional

from ..core.entities import Event
from ..core.enums import EventType
from ..core.interfaces import EventHandler


logger = logging.getLogger(__name__)


class EventBus:
    """
    Delivers each published event to every subscribed handler that accepts its
    type, in subscription order, on the publishing thread.

    Events are published after the change they describe is stored, so a
    failing handler is logged and skipped; it never turns a committed
    operation into a reported failure. Later handlers still run.
    """

    def __init__(self, max_history: int = 1000):
        self._subscribers: Dict[str, EventHandler] = {}
        self._events: deque = deque(maxlen=max_history)
        self._lock = threading.RLock()

    def subscribe(self, subscriber_id: str, handler: EventHandler) -> None:
        """Subscribe to events."""
        with self._lock:
            self._subscribers[subscriber_id] = handler

    def publish(self, event: Event) -> None:
        """Publish an event to all subscribers."""
        with self._lock:
            self._events.append(event)
            handlers = list(self._subscribers.items())

        for subscriber_id, handler in handlers:
            if not handler.can_handle(event.event_type):
                continue
            try:
                handler.handle_event(event)
            except Exception:
                logger.exception("Subscriber %s failed on %s event %s",
                                 subscriber_id, event.event_type.value, event.id)

    def emit(self, event_type: EventType, stream_id: str, **event_data: Any) -> Event:
        """Build and publish an event in one step."""
        event = Event(event_type, stream_id, event_data)
        self.publish(event)
        return event

    def get_events(self, event_type: Optional[EventType] = None) -> List[Event]:
        """Get recent events, optionally of one type."""
        with self._lock:
            if event_type is None:
                return list(self._events)
            return [event for event in self._events if event.event_type == event_type]
