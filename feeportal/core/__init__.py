"""
Core module containing the record model, interfaces and exceptions.
"""

from .entities import *
from .interfaces import *
from .exceptions import *
from .enums import *

__all__ = [
    # Entities
    "Student",
    "SyncMessage",
    "SyncEvent",
    "FeeItem",
    "FeeStatement",
    "PaymentStatistics",
    "STANDARD_FEES",
    "new_student_id",
    
    # Interfaces
    "PersistentStore",
    "SyncChannel",
    "MessageHandler",
    
    # Enums
    "StorageKey",
    "EventType",
    "StoreType",
    "SyncType",
    
    # Exceptions
    "FeePortalException",
    "ValidationError",
    "DuplicateEmailError",
    "NotFoundError",
    "NoSessionError",
    "PersistenceError",
    "SyncError",
    "ConfigurationError",
]
