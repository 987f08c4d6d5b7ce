"""
Sync broadcaster for collection changes and payment notifications.
"""

import logging
import threading
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Set

from ..core.entities import Student, SyncEvent, SyncMessage
from ..core.enums import EventType, StorageKey
from ..core.exceptions import SyncError
from ..core.interfaces import SyncChannel

logger = logging.getLogger(__name__)

EventHandler = Callable[[SyncEvent], None]


@dataclass
class EventSubscription:
    """Event subscription information."""
    subscriber_id: str
    event_types: Set[EventType]
    handler: EventHandler
    created_at: float = field(default_factory=time.time)


class Subscription:
    """Handle returned by ``SyncBroadcaster.subscribe``.

    Use it as a context manager, or call ``unsubscribe()`` on teardown.
    """
    
    def __init__(self, broadcaster: "SyncBroadcaster", subscriber_id: str):
        self._broadcaster = broadcaster
        self._subscriber_id = subscriber_id
        self._active = True
    
    @property
    def subscriber_id(self) -> str:
        return self._subscriber_id
    
    @property
    def active(self) -> bool:
        return self._active
    
    def unsubscribe(self) -> None:
        if self._active:
            self._broadcaster._remove_subscription(self._subscriber_id)
            self._active = False
    
    def __enter__(self) -> "Subscription":
        return self
    
    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.unsubscribe()


class SyncBroadcaster:
    """Publishes collection changes to other contexts and events to local observers.

    Collection changes go out over the channel only; the publishing context
    has already applied them. Changes arriving from other contexts are handed
    to local ``COLLECTION_CHANGED`` subscribers. Payment notifications never
    leave the context.
    """
    
    def __init__(self, channel: SyncChannel, context_id: Optional[str] = None):
        self._channel = channel
        self._context_id = context_id or str(uuid.uuid4())
        self._subscriptions: Dict[str, EventSubscription] = {}
        self._lock = threading.RLock()
        self._attached = False
        self._published = 0
        self._received = 0
        self._delivery_failures = 0
    
    @property
    def context_id(self) -> str:
        return self._context_id
    
    def start(self) -> None:
        """Attach this context to the channel."""
        with self._lock:
            if self._attached:
                return
            self._channel.attach(self._context_id, self._on_channel_message)
            self._attached = True
            logger.info("Context %s listening for collection changes", self._context_id)
    
    def close(self) -> None:
        """Detach from the channel and drop every subscription."""
        with self._lock:
            if self._attached:
                self._channel.detach(self._context_id)
                self._attached = False
            self._subscriptions.clear()
    
    def publish_collection_change(self, snapshot: List[Student]) -> None:
        """Tell other contexts the collection now equals snapshot."""
        message = SyncMessage.for_collection(snapshot, self._context_id)
        try:
            self._channel.publish(message)
        except SyncError:
            # The write is already durable; other contexts catch up on their next change.
            self._delivery_failures += 1
            logger.exception("Could not broadcast collection change from %s", self._context_id)
            return
        self._published += 1
        logger.debug("Context %s published snapshot of %d students", self._context_id, len(snapshot))
    
    def publish_payment_completed(self, student_id: str) -> None:
        """Notify local observers that student_id just paid."""
        self._dispatch(SyncEvent(EventType.PAYMENT_COMPLETED, {"studentId": student_id}))
    
    def subscribe(self, event_types: Iterable[EventType], handler: EventHandler) -> Subscription:
        """Register handler for the given event types."""
        subscriber_id = str(uuid.uuid4())
        with self._lock:
            self._subscriptions[subscriber_id] = EventSubscription(
                subscriber_id=subscriber_id,
                event_types=set(event_types),
                handler=handler,
            )
        return Subscription(self, subscriber_id)
    
    def _remove_subscription(self, subscriber_id: str) -> None:
        with self._lock:
            self._subscriptions.pop(subscriber_id, None)
    
    def _on_channel_message(self, message: SyncMessage) -> None:
        if message.key != StorageKey.STUDENTS.value:
            logger.debug("Ignoring sync message for key %s", message.key)
            return
        self._received += 1
        self._dispatch(SyncEvent(EventType.COLLECTION_CHANGED, {
            "key": message.key,
            "snapshot": message.snapshot,
            "origin": message.origin,
        }))
    
    def _dispatch(self, event: SyncEvent) -> None:
        with self._lock:
            subscriptions = list(self._subscriptions.values())
        for subscription in subscriptions:
            if event.event_type not in subscription.event_types:
                continue
            try:
                subscription.handler(event)
            except Exception:
                logger.exception("Error notifying subscriber %s of %s",
                                 subscription.subscriber_id, event.event_type.value)
    
    def get_statistics(self) -> Dict[str, Any]:
        with self._lock:
            return {
                'context_id': self._context_id,
                'attached': self._attached,
                'published': self._published,
                'received': self._received,
                'delivery_failures': self._delivery_failures,
                'active_subscriptions': len(self._subscriptions),
            }
