"""
Enumerations and constants for the Fee Portal.
"""

from enum import Enum


class StorageKey(Enum):
    """Named durable slots."""
    STUDENTS = "students"
    CURRENT_USER = "currentUser"


class EventType(Enum):
    """Types of sync events."""
    COLLECTION_CHANGED = "collection_changed"
    PAYMENT_COMPLETED = "payment_completed"


class StoreType(Enum):
    """Supported persistent store backends."""
    MEMORY = "memory"
    FILE = "file"
    SQLITE = "sqlite"


class SyncType(Enum):
    """Supported cross-context sync channels."""
    MEMORY = "memory"
    FILE = "file"
