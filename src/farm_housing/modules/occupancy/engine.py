"""The Occupancy Reconciler.

Pure logic for the room-side invariant: a room's occupant set equals the set
of active workers assigned to that farm and room number whose gender matches
the room's category. Callers persist the rooms handed back.

Licensed under MIT License
"""

import dataclasses
import logging
from typing import Iterable

from farm_housing.core.errors import CapacityExceededError, GenderMismatchError
from farm_housing.core.models import Room, RoomGender, Worker

from .models import DeltaOp, ReconciliationReport, RoomChange

_LOGGER = logging.getLogger(__name__)

RoomKey = tuple[str, str, RoomGender]


def _key_for_worker(worker: Worker) -> RoomKey | None:
    if not worker.is_active or not worker.room or not worker.farm_id:
        return None
    return (worker.farm_id, worker.room, RoomGender.for_gender(worker.gender))


def _key_for_room(room: Room) -> RoomKey:
    return (room.farm_id, room.number, room.gender_category)


class OccupancyReconciler:
    """The functional core of room occupancy."""

    def belongs(self, room: Room, worker: Worker) -> bool:
        """Whether the worker is part of the room's true occupant set."""
        return _key_for_worker(worker) == _key_for_room(room)

    def apply_delta(self, room: Room, worker: Worker, op: DeltaOp) -> Room:
        """Add or remove one worker.

        Args:
            room: The room snapshot.
            worker: The worker entering or leaving.
            op: ADD or REMOVE.

        Returns:
            Room with the updated occupant set (the same object if unchanged).

        Raises:
            GenderMismatchError: ADD of a worker whose gender does not match.
            CapacityExceededError: ADD to a full room.
            ValueError: ADD of a worker assigned to another farm.
        """
        if op == DeltaOp.REMOVE:
            if worker.id not in room.occupants:
                return room
            occupants = room.occupants - {worker.id}
            _LOGGER.debug(f"Room {room.number}@{room.farm_id}: removed {worker.id}")
            return dataclasses.replace(room, occupants=occupants, recorded_count=len(occupants))

        if worker.farm_id != room.farm_id:
            raise ValueError(
                f"Worker {worker.id} belongs to farm {worker.farm_id}, "
                f"room {room.number} to farm {room.farm_id}"
            )

        if RoomGender.for_gender(worker.gender) != room.gender_category:
            raise GenderMismatchError(
                f"Room {room.number} is reserved for {room.gender_category.value} workers; "
                f"{worker.name} is {worker.gender.value}"
            )

        if worker.id in room.occupants:
            return room

        if room.is_full:
            raise CapacityExceededError(
                f"Room {room.number} is full ({room.occupant_count}/{room.capacity})"
            )

        occupants = room.occupants | {worker.id}
        _LOGGER.debug(f"Room {room.number}@{room.farm_id}: added {worker.id}")
        return dataclasses.replace(room, occupants=occupants, recorded_count=len(occupants))

    def true_occupants(self, room: Room, workers: Iterable[Worker]) -> list[Worker]:
        """Workers that belong in the room, in input order."""
        return [w for w in workers if self.belongs(room, w)]

    def reconcile_room(self, room: Room, workers: Iterable[Worker]) -> tuple[Room, RoomChange | None]:
        """Recompute one room from the workers.

        Args:
            room: The room snapshot.
            workers: Workers to consider (at least every active worker of the farm).

        Returns:
            (room to store, change record), or (room, None) when already consistent.
        """
        occupants = self.true_occupants(room, workers)
        return self._reconcile(room, occupants)

    def reconcile_all(
        self, rooms: Iterable[Room], workers: Iterable[Worker]
    ) -> tuple[list[Room], ReconciliationReport]:
        """Recompute every room.

        Args:
            rooms: All rooms to check.
            workers: All workers of the network.

        Returns:
            (rooms that changed, report)
        """
        by_key: dict[RoomKey, list[Worker]] = {}
        for worker in workers:
            key = _key_for_worker(worker)
            if key is not None:
                by_key.setdefault(key, []).append(worker)

        report = ReconciliationReport()
        updated: list[Room] = []

        for room in rooms:
            report.rooms_checked += 1
            new_room, change = self._reconcile(room, by_key.get(_key_for_room(room), []))
            if change is not None:
                updated.append(new_room)
                report.details.append(change)

        report.rooms_updated = len(updated)
        _LOGGER.info(
            f"Reconciled {report.rooms_checked} rooms, {report.rooms_updated} updated"
        )
        return updated, report

    def _reconcile(self, room: Room, occupants: list[Worker]) -> tuple[Room, RoomChange | None]:
        true_ids = frozenset(w.id for w in occupants)
        stored_count = room.recorded_count if room.recorded_count is not None else room.occupant_count

        if true_ids == room.occupants and stored_count == len(true_ids):
            return room, None

        change = RoomChange(
            room_id=room.id,
            room_number=room.number,
            farm_id=room.farm_id,
            old_count=stored_count,
            new_count=len(true_ids),
            added=true_ids - room.occupants,
            removed=room.occupants - true_ids,
            worker_names=tuple(w.name for w in occupants),
            over_capacity=len(true_ids) > room.capacity,
        )

        _LOGGER.info(
            f"Room {room.number}@{room.farm_id}: {stored_count} -> {len(true_ids)} occupants"
        )
        if change.over_capacity:
            _LOGGER.warning(
                f"Room {room.number}@{room.farm_id} holds {len(true_ids)} workers "
                f"for {room.capacity} places"
            )

        return dataclasses.replace(room, occupants=true_ids, recorded_count=len(true_ids)), change
