"""NotificationModule - turns lifecycle events into messages for farm admins.

Routing:
- worker.conflict_blocked: the holder farm's admins (urgent)
- worker.exit_recorded: the worker's own farm admins; then either the farm
  whose registration was blocked, or every other farm
- worker.entry_date_changed: the owning farm's admins
- worker.transferred: the previous farm's admins
"""

import logging
from typing import Any, Dict, List, Optional

from farm_housing.modules.base import EngineModule
from farm_housing.core.bus import Event, EventBus, EventFilter
from farm_housing.core.models import FARMS, Farm
from farm_housing.core.store import DocumentStore

from .dispatcher import NotificationDispatcher
from .models import Notification, NotificationType, Priority

logger = logging.getLogger(__name__)


class NotificationModule(EngineModule):
    """
    Notification routing module.

    Farm admin lists are read from the store when an event arrives. Delivery
    goes through the dispatcher and never affects the publishing operation.
    """

    def __init__(self, dispatcher: NotificationDispatcher) -> None:
        self._dispatcher = dispatcher
        self._bus: Optional[EventBus] = None
        self._store: Optional[DocumentStore] = None
        self._handlers = {
            "worker.conflict_blocked": self._on_conflict_blocked,
            "worker.exit_recorded": self._on_exit_recorded,
            "worker.entry_date_changed": self._on_entry_date_changed,
            "worker.transferred": self._on_transferred,
        }

    @property
    def id(self) -> str:
        return "notifications"

    @property
    def dispatcher(self) -> NotificationDispatcher:
        return self._dispatcher

    def attach(self, bus: EventBus, store: DocumentStore) -> None:
        logger.info("Attaching NotificationModule")
        self._bus = bus
        self._store = store
        for event_type, handler in self._handlers.items():
            bus.subscribe(handler, EventFilter(event_type=event_type))

    def detach(self) -> None:
        if self._bus is not None:
            for handler in self._handlers.values():
                self._bus.unsubscribe(handler)
        self._dispatcher.close()

    # Event handlers

    def _on_conflict_blocked(self, event: Event) -> None:
        data = event.payload
        holder = self._farm(event.farm_id)
        if holder is None:
            return

        requester = self._farm_name(data.get("requester_farm_id"))
        self._notify(
            holder,
            Notification(
                type=NotificationType.WORKER_DUPLICATE,
                title="Registration blocked by an active worker",
                message=(
                    f"{data.get('worker_name')} ({data.get('national_id')}) is still active "
                    f"at {holder.name}. {requester} tried to register this worker from "
                    f"{data.get('requested_entry_date')}. Record an exit date to release "
                    f"the worker."
                ),
                recipient_farm_id=holder.id,
                priority=Priority.URGENT,
                action_data=dict(data),
            ),
        )

    def _on_exit_recorded(self, event: Event) -> None:
        data = event.payload
        own = self._farm(event.farm_id)
        worker = f"{data.get('worker_name')} ({data.get('national_id')})"

        if own is not None:
            self._notify(
                own,
                Notification(
                    type=NotificationType.WORKER_EXIT_CONFIRMED,
                    title="Exit recorded",
                    message=(
                        f"{worker} left {own.name} on {data.get('exit_date')} "
                        f"(reason: {data.get('exit_reason')})."
                    ),
                    recipient_farm_id=own.id,
                    action_data=dict(data),
                ),
            )

        blocked_farm_id = data.get("resolves_conflict_for")
        if blocked_farm_id and blocked_farm_id != event.farm_id:
            blocked = self._farm(blocked_farm_id)
            if blocked is not None:
                self._notify(
                    blocked,
                    Notification(
                        type=NotificationType.WORKER_AVAILABLE,
                        title="Conflict resolved",
                        message=(
                            f"{worker} has left {self._farm_name(event.farm_id)} and can "
                            f"now be registered at {blocked.name}."
                        ),
                        recipient_farm_id=blocked.id,
                        priority=Priority.HIGH,
                        action_data=dict(data),
                    ),
                )
            return

        for farm in self._other_farms(event.farm_id):
            self._notify(
                farm,
                Notification(
                    type=NotificationType.WORKER_AVAILABLE,
                    title="Worker available",
                    message=(
                        f"{worker} left {self._farm_name(event.farm_id)} on "
                        f"{data.get('exit_date')}."
                    ),
                    recipient_farm_id=farm.id,
                    priority=Priority.LOW,
                    action_data=dict(data),
                ),
            )

    def _on_entry_date_changed(self, event: Event) -> None:
        data = event.payload
        farm = self._farm(event.farm_id)
        if farm is None:
            return

        self._notify(
            farm,
            Notification(
                type=NotificationType.WORKER_UPDATED,
                title="Entry date changed",
                message=(
                    f"Entry date of {data.get('worker_name')} ({data.get('national_id')}) "
                    f"changed from {data.get('old_entry_date')} to {data.get('new_entry_date')}."
                ),
                recipient_farm_id=farm.id,
                priority=Priority.LOW,
                action_data=dict(data),
            ),
        )

    def _on_transferred(self, event: Event) -> None:
        data = event.payload
        previous = self._farm(data.get("from_farm_id"))
        if previous is None or previous.id == event.farm_id:
            return

        self._notify(
            previous,
            Notification(
                type=NotificationType.WORKER_TRANSFERRED,
                title="Worker transferred",
                message=(
                    f"{data.get('worker_name')} ({data.get('national_id')}) was registered at "
                    f"{self._farm_name(event.farm_id)} from {data.get('entry_date')}."
                ),
                recipient_farm_id=previous.id,
                action_data=dict(data),
            ),
        )

    # Lookups

    def _notify(self, farm: Farm, notification: Notification) -> None:
        if not farm.admins:
            logger.info(f"Farm {farm.id} has no admins; {notification.type.value} not sent")
            return
        self._dispatcher.send(sorted(farm.admins), notification)

    def _farm(self, farm_id: Optional[str]) -> Optional[Farm]:
        if not farm_id or self._store is None:
            return None
        doc = self._store.get(FARMS, farm_id)
        if doc is None:
            logger.warning(f"Farm {farm_id} not found; notification not routed")
            return None
        return Farm.from_doc(doc)

    def _farm_name(self, farm_id: Optional[str]) -> str:
        farm = self._farm(farm_id)
        return farm.name if farm is not None else str(farm_id)

    def _other_farms(self, farm_id: Optional[str]) -> List[Farm]:
        assert self._store is not None
        docs: List[Dict[str, Any]] = self._store.scan(FARMS)
        return [Farm.from_doc(d) for d in docs if d.get("id") != farm_id]
