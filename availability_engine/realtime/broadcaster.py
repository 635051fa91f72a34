"""
In-process change broadcaster.

Components emit typed events after every committed write; notification and
UI layers subscribe per event type. Delivery is synchronous and isolated:
a handler that raises is logged and skipped, and the remaining handlers
still run. Deliveries are serialized across all event types so subscribers
see events in commit order. A handler may emit further events from inside
its callback; those are delivered re-entrantly on the same thread.

Usage:
    broadcaster = RealtimeChangeBroadcaster()
    token = broadcaster.subscribe(EventType.BOOKING_UPDATED, on_booking)
    broadcaster.emit(EventType.BOOKING_UPDATED, payload, "owner-1")
    broadcaster.unsubscribe(token)
"""

import logging
import threading
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Callable, Union

from pydantic import BaseModel

from availability_engine.schemas.event_schema import EVENT_MODELS, PAYLOAD_MODELS, EventType
from availability_engine.utils import new_id, utc_now

logger = logging.getLogger(__name__)

EventHandler = Callable[[BaseModel], None]


@dataclass(frozen=True)
class SubscriptionToken:
    """Handle returned by ``subscribe``; pass it to ``unsubscribe``."""
    event_type: EventType
    token_id: str = field(default_factory=lambda: new_id("SUB"))


class RealtimeChangeBroadcaster:
    """Fan-out of change events to per-type subscribers."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        # Held for a whole delivery; always taken before _lock.
        self._delivery_lock = threading.RLock()
        self._handlers: dict[EventType, dict[str, EventHandler]] = defaultdict(dict)
        self._connected = False
        self._emitted = 0

    @property
    def is_connected(self) -> bool:
        return self._connected

    @property
    def emitted_count(self) -> int:
        return self._emitted

    def connect(self) -> None:
        """Open the channel. Calling it again is a no-op."""
        with self._lock:
            if self._connected:
                return
            self._connected = True
        logger.info("Broadcaster connected")

    def disconnect(self) -> None:
        """Close the channel and drop every subscription. Safe to call at any time."""
        with self._lock:
            dropped = sum(len(handlers) for handlers in self._handlers.values())
            self._handlers.clear()
            was_connected = self._connected
            self._connected = False
        if was_connected or dropped:
            logger.info("Broadcaster disconnected (%d subscriptions dropped)", dropped)

    def subscribe(self, event_type: Union[EventType, str], handler: EventHandler) -> SubscriptionToken:
        event_type = EventType(event_type)
        token = SubscriptionToken(event_type=event_type)
        with self._lock:
            self._handlers[event_type][token.token_id] = handler
        logger.debug("Subscribed %s to %s", token.token_id, event_type.value)
        return token

    def unsubscribe(self, token: SubscriptionToken) -> bool:
        with self._lock:
            removed = self._handlers[token.event_type].pop(token.token_id, None) is not None
        if removed:
            logger.debug("Unsubscribed %s from %s", token.token_id, token.event_type.value)
        return removed

    def subscriber_count(self, event_type: Union[EventType, str]) -> int:
        with self._lock:
            return len(self._handlers[EventType(event_type)])

    def emit(self, event_type: Union[EventType, str], payload: BaseModel, user_id: str) -> BaseModel:
        """
        Build the event and deliver it to every subscriber of its type.

        Reconnects lazily when the channel was closed. Returns the event.

        Raises:
            TypeError: The payload is not the model for this event type.
        """
        event_type = EventType(event_type)
        expected = PAYLOAD_MODELS[event_type]
        if not isinstance(payload, expected):
            raise TypeError(
                f"{event_type.value} expects {expected.__name__}, got {type(payload).__name__}"
            )
        if not self._connected:
            logger.info("Broadcaster not connected; reconnecting for %s", event_type.value)
            self.connect()

        event = EVENT_MODELS[event_type](user_id=user_id, timestamp=utc_now(), payload=payload)

        with self._delivery_lock:
            with self._lock:
                handlers = list(self._handlers[event_type].items())
                self._emitted += 1
            for token_id, handler in handlers:
                try:
                    handler(event)
                except Exception:
                    logger.exception(
                        "Subscriber %s failed handling %s for %s",
                        token_id, event_type.value, user_id,
                    )
        return event
