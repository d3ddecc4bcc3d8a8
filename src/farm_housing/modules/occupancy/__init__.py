"""
Occupancy module for farm-housing.

Keeps each room's recorded occupant set equal to the active workers assigned
to it.

Features:
- Single-worker deltas with capacity and gender checks
- Full recomputation per room, idempotent
- Network-wide repair pass with a change report
- Optional auto-heal of the farms whose workers changed
"""

from .module import OccupancyModule, changed_farms, load_rooms, load_workers
from .models import (
    DeltaOp,
    FarmCountChange,
    ReconciliationReport,
    RoomChange,
)
from .engine import OccupancyReconciler

__all__ = [
    "OccupancyModule",
    "OccupancyReconciler",
    "DeltaOp",
    "FarmCountChange",
    "ReconciliationReport",
    "RoomChange",
    "changed_farms",
    "load_rooms",
    "load_workers",
]
