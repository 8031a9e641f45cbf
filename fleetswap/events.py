"""
In-process event stream.

Runners publish bot state changes, per-transaction lifecycle events and
per-detected-trade events here. The control API attaches queue listeners to
stream them to clients.
"""

import asyncio
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional
import structlog

from .models import now_ms

logger = structlog.get_logger(__name__)

BOT_STATE_CHANGED = "bot:state-changed"
TX_EVENT = "tx:event"
TRADE_DETECTED = "bot:trade-detected"

TOPICS = (BOT_STATE_CHANGED, TX_EVENT, TRADE_DETECTED)


@dataclass
class Event:
    topic: str
    payload: Dict[str, Any]
    timestamp: int = field(default_factory=now_ms)

    def to_dict(self) -> Dict[str, Any]:
        return {"topic": self.topic, "payload": self.payload, "timestamp": self.timestamp}


Subscriber = Callable[[Event], None]


class EventBus:
    """Fan-out of events to synchronous subscribers and async queue listeners."""

    def __init__(self, listener_queue_size: int = 1000):
        self._subscribers: Dict[Optional[str], List[Subscriber]] = defaultdict(list)
        self._listeners: List[asyncio.Queue] = []
        self._listener_queue_size = listener_queue_size

    def subscribe(self, topic: Optional[str], handler: Subscriber) -> None:
        """Register a handler for one topic, or for every topic with None."""
        if topic is not None and topic not in TOPICS:
            raise ValueError(f"Unknown event topic: {topic}")
        self._subscribers[topic].append(handler)

    def unsubscribe(self, topic: Optional[str], handler: Subscriber) -> None:
        handlers = self._subscribers.get(topic, [])
        if handler in handlers:
            handlers.remove(handler)

    def create_listener(self) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue(maxsize=self._listener_queue_size)
        self._listeners.append(queue)
        return queue

    def remove_listener(self, queue: asyncio.Queue) -> None:
        if queue in self._listeners:
            self._listeners.remove(queue)

    def emit(self, topic: str, payload: Dict[str, Any]) -> Event:
        """Publish an event. Subscriber failures are logged, never raised."""
        event = Event(topic=topic, payload=payload)

        for handler in self._subscribers.get(topic, []) + self._subscribers.get(None, []):
            try:
                handler(event)
            except Exception as e:
                logger.warning("event_subscriber_failed", topic=topic, error=str(e))

        for queue in self._listeners:
            try:
                queue.put_nowait(event)
            except asyncio.QueueFull:
                logger.warning("event_listener_full", topic=topic)

        return event
