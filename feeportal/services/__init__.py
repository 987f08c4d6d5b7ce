"""
Services module: session, sync and the portal operations.
"""

from .auth_service import AuthService, DEFAULT_PAYMENT_DELAY
from .session_service import SessionService
from .sync_broadcaster import SyncBroadcaster, Subscription
from .sync_channels import InMemorySyncChannel, FileSyncChannel, SyncChannelFactory

__all__ = [
    "AuthService",
    "DEFAULT_PAYMENT_DELAY",
    "SessionService",
    "SyncBroadcaster",
    "Subscription",
    "InMemorySyncChannel",
    "FileSyncChannel",
    "SyncChannelFactory",
]
