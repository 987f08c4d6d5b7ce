"""
Core interfaces and abstract base classes for the Fee Portal.
"""

from abc import ABC, abstractmethod
from typing import Callable, Optional

from .entities import SyncMessage


class PersistentStore(ABC):
    """Durable key/value storage shared by every context in one namespace.

    A ``save`` is atomic: readers see either the old or the new value.
    """
    
    @abstractmethod
    def load(self, key: str) -> Optional[bytes]:
        """Load the value stored under key, or None."""
        pass
    
    @abstractmethod
    def save(self, key: str, value: bytes) -> None:
        """Store value under key."""
        pass
    
    @abstractmethod
    def remove(self, key: str) -> None:
        """Remove key; missing keys are ignored."""
        pass
    
    def close(self) -> None:
        """Release any held resources."""
        pass


MessageHandler = Callable[[SyncMessage], None]


class SyncChannel(ABC):
    """Publish/subscribe channel connecting execution contexts.

    A message published by one context reaches every other attached context
    in publish order. The publisher itself is never notified.
    """
    
    @abstractmethod
    def attach(self, context_id: str, handler: MessageHandler) -> None:
        """Start delivering messages from other contexts to handler."""
        pass
    
    @abstractmethod
    def detach(self, context_id: str) -> None:
        """Stop delivering messages to context_id."""
        pass
    
    @abstractmethod
    def publish(self, message: SyncMessage) -> None:
        """Send a message to every context except its origin."""
        pass
    
    def close(self) -> None:
        """Release any held resources."""
        pass
