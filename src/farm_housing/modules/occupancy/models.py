"""Data models for the occupancy reconciler.

Licensed under MIT License
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import FrozenSet


class DeltaOp(Enum):
    """A single-worker change to a room's occupant set."""

    ADD = "add"
    REMOVE = "remove"


@dataclass(frozen=True)
class RoomChange:
    """One room whose stored occupancy disagreed with the workers.

    Attributes:
        room_id: Room store key.
        room_number: Room number within its farm.
        farm_id: Owning farm.
        old_count: Occupant count as stored before the repair.
        new_count: True occupant count.
        added: Worker IDs missing from the stored set.
        removed: Stored worker IDs that do not belong in the room.
        worker_names: Names of the true occupants.
        over_capacity: True occupants exceed the room's capacity.
    """

    room_id: str
    room_number: str
    farm_id: str
    old_count: int
    new_count: int
    added: FrozenSet[str] = field(default_factory=frozenset)
    removed: FrozenSet[str] = field(default_factory=frozenset)
    worker_names: tuple[str, ...] = ()
    over_capacity: bool = False


@dataclass(frozen=True)
class FarmCountChange:
    """A farm whose stored worker counter was stale."""

    farm_id: str
    old_count: int
    new_count: int


@dataclass
class ReconciliationReport:
    """Result of a repair pass.

    Attributes:
        rooms_checked: Number of rooms examined.
        rooms_updated: Number of rooms rewritten.
        details: One entry per rewritten room.
        farm_counts: Farms whose active-worker counter was corrected.
        duplicate_national_ids: National IDs held by more than one worker
            record, mapped to the worker IDs.
    """

    rooms_checked: int = 0
    rooms_updated: int = 0
    details: list[RoomChange] = field(default_factory=list)
    farm_counts: list[FarmCountChange] = field(default_factory=list)
    duplicate_national_ids: dict[str, list[str]] = field(default_factory=dict)

    @property
    def changed(self) -> bool:
        return bool(self.rooms_updated or self.farm_counts)
