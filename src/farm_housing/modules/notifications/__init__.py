"""
Notification module - best-effort messages to farm administrators.

Handles:
- Routing lifecycle events to the admins of the farms concerned
- Per-recipient delivery with bounded retry
- Optional parallel delivery on a thread pool
"""

from .dispatcher import (
    NOTIFICATIONS,
    NotificationDispatcher,
    NotificationTransport,
    StoreNotificationTransport,
)
from .models import Notification, NotificationType, Priority
from .module import NotificationModule

__all__ = [
    "NOTIFICATIONS",
    "Notification",
    "NotificationDispatcher",
    "NotificationModule",
    "NotificationTransport",
    "NotificationType",
    "Priority",
    "StoreNotificationTransport",
]
