"""OccupancyModule - store-backed room reconciliation.

This module wraps the pure occupancy reconciler and connects it to the
document store and the event bus.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional, Set

from farm_housing.modules.base import EngineModule
from farm_housing.core.bus import Event, EventBus
from farm_housing.core.models import ROOMS, WORKERS, Room, Worker, WorkerStatus
from farm_housing.core.store import DocumentStore, Unsubscribe, WriteOp

from .engine import OccupancyReconciler
from .models import ReconciliationReport

logger = logging.getLogger(__name__)


def load_workers(docs: Iterable[Dict[str, Any]]) -> List[Worker]:
    """Parse worker documents, skipping (and logging) unreadable ones."""
    workers = []
    for doc in docs:
        try:
            workers.append(Worker.from_doc(doc))
        except (KeyError, ValueError) as e:
            logger.warning(f"Skipping unreadable worker document {doc.get('id')!r}: {e}")
    return workers


def load_rooms(docs: Iterable[Dict[str, Any]]) -> List[Room]:
    """Parse room documents, skipping (and logging) unreadable ones."""
    rooms = []
    for doc in docs:
        try:
            rooms.append(Room.from_doc(doc))
        except (KeyError, ValueError) as e:
            logger.warning(f"Skipping unreadable room document {doc.get('id')!r}: {e}")
    return rooms


def changed_farms(
    before: Dict[str, Dict[str, Any]], after: Dict[str, Dict[str, Any]]
) -> Set[str]:
    """Farms touched by any worker document that differs between two snapshots."""
    farms = set()
    for worker_id in before.keys() | after.keys():
        old, new = before.get(worker_id), after.get(worker_id)
        if old == new:
            continue
        for doc in (old, new):
            if doc is not None and doc.get("farm_id"):
                farms.add(doc["farm_id"])
    return farms


class OccupancyModule(EngineModule):
    """
    Room occupancy module.

    Features:
    - Network-wide repair pass from current worker state
    - Optional auto-heal: reconciles the rooms of farms whose workers changed
    - Publishes occupancy.repaired when a pass changed anything

    Repair always recomputes from the workers, never from a remembered
    baseline, so it is safe to run alongside live traffic.
    """

    def __init__(
        self,
        reconciler: Optional[OccupancyReconciler] = None,
        auto_heal: bool = False,
    ) -> None:
        self._reconciler = reconciler or OccupancyReconciler()
        self._auto_heal = auto_heal
        self._bus: Optional[EventBus] = None
        self._store: Optional[DocumentStore] = None
        self._unsubscribe: Optional[Unsubscribe] = None
        self._last_seen: Optional[Dict[str, Dict[str, Any]]] = None

    @property
    def id(self) -> str:
        return "occupancy"

    @property
    def reconciler(self) -> OccupancyReconciler:
        return self._reconciler

    def attach(self, bus: EventBus, store: DocumentStore) -> None:
        """Attach to the engine; subscribe to the worker feed when auto-healing."""
        logger.info("Attaching OccupancyModule")
        self._bus = bus
        self._store = store

        if self._auto_heal:
            self._unsubscribe = store.subscribe(
                WORKERS,
                lambda doc: doc.get("status") == WorkerStatus.ACTIVE.value,
                self._on_active_workers,
            )
            logger.info("Occupancy auto-heal enabled")

    def detach(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self._last_seen = None

    def reconcile_network(
        self,
        workers: Optional[List[Worker]] = None,
        farm_ids: Optional[Set[str]] = None,
    ) -> ReconciliationReport:
        """
        Reconcile rooms in the store and write the corrected ones.

        Args:
            workers: Workers to reconcile against (None = read from store)
            farm_ids: Only check rooms of these farms (None = every room)

        Returns:
            Change report
        """
        assert self._store is not None
        if workers is None:
            workers = load_workers(self._store.scan(WORKERS))
        rooms = load_rooms(self._store.scan(ROOMS))
        if farm_ids is not None:
            rooms = [r for r in rooms if r.farm_id in farm_ids]

        updated, report = self._reconciler.reconcile_all(rooms, workers)
        if updated:
            self._store.batch_write([WriteOp(ROOMS, r.id, r.to_doc()) for r in updated])
            self._emit_repaired(report)

        return report

    def _on_active_workers(self, snapshot: List[Dict[str, Any]]) -> None:
        """Change-feed handler: the snapshot is every active worker.

        Only farms with a worker that appeared, left or changed are
        reconciled. The first snapshot reconciles every farm.
        """
        current = {doc.get("id"): doc for doc in snapshot}
        farm_ids = None
        if self._last_seen is not None:
            farm_ids = changed_farms(self._last_seen, current)
        self._last_seen = current

        if farm_ids is not None and not farm_ids:
            return

        report = self.reconcile_network(load_workers(snapshot), farm_ids)
        if report.rooms_updated:
            logger.info(f"Auto-heal corrected {report.rooms_updated} room(s)")

    def _emit_repaired(self, report: ReconciliationReport) -> None:
        if self._bus is None:
            return
        self._bus.publish(
            Event(
                type="occupancy.repaired",
                source="occupancy",
                payload={
                    "rooms_checked": report.rooms_checked,
                    "rooms_updated": report.rooms_updated,
                    "rooms": [
                        {
                            "room_id": c.room_id,
                            "room_number": c.room_number,
                            "farm_id": c.farm_id,
                            "old_count": c.old_count,
                            "new_count": c.new_count,
                        }
                        for c in report.details
                    ],
                },
            )
        )
