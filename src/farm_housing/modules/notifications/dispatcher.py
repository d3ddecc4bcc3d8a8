"""Best-effort notification delivery.

One message per recipient, each retried a bounded number of times with a
fixed backoff on transient transport failures, then dropped and logged.
`send` never raises and never waits for delivery when a thread pool is used.
"""

import dataclasses
import logging
import threading
import uuid
from abc import ABC, abstractmethod
from concurrent.futures import Executor, ThreadPoolExecutor
from typing import Iterable, Optional

from farm_housing.core.config import EngineSettings
from farm_housing.core.errors import TransientTransportError
from farm_housing.core.retry import RetryPolicy
from farm_housing.core.store import DocumentStore

from .models import Notification

logger = logging.getLogger(__name__)

NOTIFICATIONS = "notifications"


class NotificationTransport(ABC):
    """The outward messaging channel: at-most-once, best-effort."""

    @abstractmethod
    def send(self, recipient_id: str, message: Notification) -> None:
        """
        Deliver one message.

        Raises:
            TransientTransportError: If the attempt may succeed on retry
        """


class StoreNotificationTransport(NotificationTransport):
    """Delivers by writing one document per recipient to a notifications collection."""

    def __init__(self, store: DocumentStore, collection: str = NOTIFICATIONS) -> None:
        self._store = store
        self._collection = collection

    def send(self, recipient_id: str, message: Notification) -> None:
        notification_id = uuid.uuid4().hex
        doc = message.to_doc(recipient_id)
        doc["id"] = notification_id
        self._store.put(self._collection, notification_id, doc)


class NotificationDispatcher:
    """
    Fire-and-forget sender.

    With an executor deliveries run in the background and `send` returns
    immediately. Without one each message is delivered inline.
    """

    def __init__(
        self,
        transport: NotificationTransport,
        policy: Optional[RetryPolicy] = None,
        executor: Optional[Executor] = None,
    ) -> None:
        self._transport = transport
        self._policy = dataclasses.replace(
            policy or RetryPolicy.fixed(3, 1.0), retry_on=(TransientTransportError,)
        )
        self._executor = executor
        self._owns_executor = False
        self._lock = threading.Lock()
        self.delivered = 0
        self.dropped = 0

    @classmethod
    def from_settings(
        cls, transport: NotificationTransport, settings: EngineSettings
    ) -> "NotificationDispatcher":
        """Build a dispatcher that delivers on its own thread pool."""
        executor = ThreadPoolExecutor(
            max_workers=settings.notification_workers,
            thread_name_prefix="notify",
        )
        dispatcher = cls(
            transport,
            RetryPolicy.from_settings(settings, "notification"),
            executor,
        )
        dispatcher._owns_executor = True
        return dispatcher

    def send(self, recipient_ids: Iterable[str], payload: Notification) -> int:
        """
        Enqueue one message per recipient.

        Args:
            recipient_ids: Principal IDs (duplicates are sent once)
            payload: The message

        Returns:
            Number of messages enqueued
        """
        recipients = list(dict.fromkeys(r for r in recipient_ids if r))
        for recipient_id in recipients:
            if self._executor is not None:
                self._executor.submit(self._deliver, recipient_id, payload)
            else:
                self._deliver(recipient_id, payload)

        logger.debug(f"Enqueued {payload.type.value} for {len(recipients)} recipient(s)")
        return len(recipients)

    def close(self, wait: bool = True) -> None:
        """Shut down the thread pool if this dispatcher created it."""
        if self._executor is not None and self._owns_executor:
            self._executor.shutdown(wait=wait)

    def _deliver(self, recipient_id: str, payload: Notification) -> None:
        try:
            self._policy.call(
                lambda: self._transport.send(recipient_id, payload),
                f"notification {payload.type.value} to {recipient_id}",
            )
        except TransientTransportError as e:
            self._count(dropped=True)
            logger.warning(
                f"Dropped {payload.type.value} for {recipient_id} after "
                f"{self._policy.max_attempts} attempt(s): {e}"
            )
            return
        except Exception as e:
            self._count(dropped=True)
            logger.error(
                f"Dropped {payload.type.value} for {recipient_id}: {e}", exc_info=True
            )
            return

        self._count(dropped=False)

    def _count(self, dropped: bool) -> None:
        with self._lock:
            if dropped:
                self.dropped += 1
            else:
                self.delivered += 1
