"""
Event Streaming - In-memory pub/sub for reconcile events.

Every write the engine performs, and the end of every host pass, is
published so that watchers can follow a cluster's convergence.
"""

import asyncio
import itertools
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, AsyncIterator, Callable, Dict, Iterable, Optional

logger = logging.getLogger(__name__)


class EventType(Enum):
    """Types of reconcile events."""

    CREATED = "CREATED"
    UPDATED = "UPDATED"
    CONVERGED = "CONVERGED"
    FAILED = "FAILED"


@dataclass
class ReconcileEvent:
    """Event emitted when a managed object is written or a pass ends."""

    event_type: EventType
    kind: str
    namespace: str
    name: str
    message: str = ""
    details: Dict[str, Any] = field(default_factory=dict)
    timestamp: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event_type": self.event_type.value,
            "kind": self.kind,
            "namespace": self.namespace,
            "name": self.name,
            "message": self.message,
            "details": self.details,
            "timestamp": self.timestamp,
        }


EventFilter = Callable[[ReconcileEvent], bool]


def event_filter(
    namespace: Optional[str] = None,
    name: Optional[str] = None,
    event_types: Optional[Iterable[EventType]] = None,
) -> EventFilter:
    """Build a filter matching events for one object and/or of some types."""
    types = frozenset(event_types) if event_types is not None else None

    def matches(event: ReconcileEvent) -> bool:
        if namespace is not None and event.namespace != namespace:
            return False
        if name is not None and event.name != name:
            return False
        return types is None or event.event_type in types

    return matches


class EventSubscription:
    """
    One watcher's view of the bus, consumed with ``async for``.

    Events that do not pass the filter are never queued. Iteration ends
    once the subscription is closed and the queue has drained.
    """

    _CLOSED = object()

    def __init__(
        self,
        subscriber_id: int,
        queue_size: int,
        filter_fn: Optional[EventFilter] = None,
    ):
        self.subscriber_id = subscriber_id
        self.dropped = 0
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=queue_size)
        self._filter_fn = filter_fn
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def pending(self) -> int:
        return self._queue.qsize()

    def offer(self, event: ReconcileEvent) -> bool:
        """Queue an event without blocking; False if filtered out or dropped."""
        if self._closed:
            return False
        if self._filter_fn is not None and not self._filter_fn(event):
            return False
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            self.dropped += 1
            logger.warning(
                f"Subscriber {self.subscriber_id} queue full, dropped "
                f"{event.event_type.value} for {event.namespace}/{event.name}"
            )
            return False
        return True

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self._queue.put_nowait(self._CLOSED)
        except asyncio.QueueFull:
            # drop the oldest event so the end marker always fits
            self._queue.get_nowait()
            self.dropped += 1
            self._queue.put_nowait(self._CLOSED)

    def __aiter__(self) -> AsyncIterator[ReconcileEvent]:
        return self

    async def __anext__(self) -> ReconcileEvent:
        item = await self._queue.get()
        if item is self._CLOSED:
            raise StopAsyncIteration
        return item


class EventBus:
    """
    In-memory pub/sub event bus for reconcile events.

    Publishing never blocks: a watcher that falls behind loses events
    (counted in ``EventSubscription.dropped``) rather than stalling a pass.
    """

    def __init__(self, queue_size: int = 256):
        self._queue_size = queue_size
        self._subscriptions: Dict[int, EventSubscription] = {}
        self._ids = itertools.count(1)

    async def publish(self, event: ReconcileEvent) -> int:
        """
        Deliver an event to every matching subscriber.

        Returns:
            The number of subscribers the event was queued for.
        """
        delivered = 0
        for subscription in list(self._subscriptions.values()):
            if subscription.offer(event):
                delivered += 1
        return delivered

    def subscribe(self, filter_fn: Optional[EventFilter] = None) -> EventSubscription:
        """
        Start receiving events.

        Args:
            filter_fn: Optional predicate, see :func:`event_filter`
        """
        subscription = EventSubscription(next(self._ids), self._queue_size, filter_fn)
        self._subscriptions[subscription.subscriber_id] = subscription
        logger.debug(f"New event subscriber: {subscription.subscriber_id}")
        return subscription

    def unsubscribe(self, subscription: EventSubscription) -> None:
        """Stop delivering to a subscription and end its iteration."""
        if self._subscriptions.pop(subscription.subscriber_id, None) is not None:
            logger.debug(f"Unsubscribed: {subscription.subscriber_id}")
        subscription.close()

    def close(self) -> None:
        """End every subscription, e.g. on shutdown."""
        for subscription in list(self._subscriptions.values()):
            self.unsubscribe(subscription)

    def subscriber_count(self) -> int:
        return len(self._subscriptions)
