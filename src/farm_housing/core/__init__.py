"""
Core components of the residency engine.

This package contains:
- models: Worker, StayPeriod, Room, Farm and their document form
- errors: Error taxonomy
- bus: Event Bus implementation
- store: Document store client, in-memory store and retrying wrapper
- retry: Retry policy
- config: Engine settings
- commands: Validated command structs
- coordinator: LifecycleCoordinator, the public entry point
"""

from farm_housing.core.models import Farm, Principal, Room, StayPeriod, Worker
from farm_housing.core.bus import Event, EventBus, EventFilter
from farm_housing.core.store import DocumentStore, InMemoryDocumentStore, RetryingDocumentStore
from farm_housing.core.config import EngineSettings
from farm_housing.core.coordinator import ImportResult, LifecycleCoordinator

__all__ = [
    "DocumentStore",
    "EngineSettings",
    "Event",
    "EventBus",
    "EventFilter",
    "Farm",
    "ImportResult",
    "InMemoryDocumentStore",
    "LifecycleCoordinator",
    "Principal",
    "RetryingDocumentStore",
    "Room",
    "StayPeriod",
    "Worker",
]
