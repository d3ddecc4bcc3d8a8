"""Data models for NotificationModule."""

from dataclasses import dataclass, field
from datetime import datetime, UTC
from enum import Enum
from typing import Any, Dict, Optional


class NotificationType(Enum):
    """Kinds of messages sent to farm administrators."""

    WORKER_DUPLICATE = "worker_duplicate"
    WORKER_EXIT_CONFIRMED = "worker_exit_confirmed"
    WORKER_AVAILABLE = "worker_available"
    WORKER_UPDATED = "worker_updated"
    WORKER_TRANSFERRED = "worker_transferred"


class Priority(Enum):
    """Delivery priority shown to the recipient."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


def _utc_now() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True)
class Notification:
    """
    One message for the administrators of a farm.

    Attributes:
        type: Notification kind
        title: Short headline
        message: Human-readable body
        recipient_farm_id: Farm the recipients administer
        priority: Delivery priority
        action_data: Structured details (worker, national ID, requesting farm...)
        created_at: When the message was composed
    """

    type: NotificationType
    title: str
    message: str
    recipient_farm_id: Optional[str] = None
    priority: Priority = Priority.MEDIUM
    action_data: Dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=_utc_now)

    def to_doc(self, recipient_id: str) -> Dict[str, Any]:
        """Store document for one recipient."""
        return {
            "type": self.type.value,
            "title": self.title,
            "message": self.message,
            "recipient_id": recipient_id,
            "recipient_farm_id": self.recipient_farm_id,
            "priority": self.priority.value,
            "status": "unread",
            "action_data": dict(self.action_data),
            "created_at": self.created_at.isoformat(),
        }
