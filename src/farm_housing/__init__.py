"""
farm-housing: worker residency engine for a multi-tenant dormitory network.

This library keeps farm rooms, workers and their stay history consistent:
- Append-only stay-period history per worker
- Room occupancy derived from active workers, with an idempotent repair pass
- Network-wide national-ID conflict resolution
- Best-effort notifications to farm administrators
"""

from farm_housing.core.models import Farm, Principal, Room, StayPeriod, Worker
from farm_housing.core.bus import Event, EventBus, EventFilter
from farm_housing.core.store import InMemoryDocumentStore
from farm_housing.core.config import EngineSettings
from farm_housing.core.coordinator import ImportResult, LifecycleCoordinator

__version__ = "0.1.0"

__all__ = [
    "EngineSettings",
    "Event",
    "EventBus",
    "EventFilter",
    "Farm",
    "ImportResult",
    "InMemoryDocumentStore",
    "LifecycleCoordinator",
    "Principal",
    "Room",
    "StayPeriod",
    "Worker",
]
