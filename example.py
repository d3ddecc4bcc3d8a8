#!/usr/bin/env python3
"""
Quick example demonstrating farm-housing basic usage.

Run with: PYTHONPATH=src python3 example.py
"""

import logging
from datetime import date

from farm_housing import EngineSettings, Farm, InMemoryDocumentStore, LifecycleCoordinator, Room
from farm_housing.core.commands import RecordExitCommand, RegisterCommand, parse_command
from farm_housing.core.errors import ConflictBlockedError
from farm_housing.core.models import FARMS, ROOMS, RoomGender
from farm_housing.modules.notifications import NOTIFICATIONS

logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

print("=" * 60)
print("farm-housing Example")
print("=" * 60)

# 1. Store with two farms
print("\n1. Seeding the store...")
store = InMemoryDocumentStore()
for farm in (
    Farm(id="farm-a", name="Farm A", admins=frozenset({"admin-a"})),
    Farm(id="farm-b", name="Farm B", admins=frozenset({"admin-b"})),
):
    store.put(FARMS, farm.id, farm.to_doc())
    print(f"   ✓ Farm: {farm.name}")

for room in (
    Room(id="a-1", farm_id="farm-a", number="1", gender_category=RoomGender.MALE, capacity=4),
    Room(id="b-1", farm_id="farm-b", number="1", gender_category=RoomGender.MALE, capacity=4),
):
    store.put(ROOMS, room.id, room.to_doc())
    print(f"   ✓ Room {room.number} at {room.farm_id} ({room.gender_category.value}, {room.capacity} places)")

# 2. Engine
print("\n2. Creating the coordinator...")
coordinator = LifecycleCoordinator.from_settings(store, EngineSettings(_env_file=None))
print("   ✓ LifecycleCoordinator wired with occupancy and notification modules")

# 3. Register from raw form data
print("\n3. Registering a worker at Farm A...")
command = parse_command(
    RegisterCommand,
    {
        "national_id": "ab123",
        "name": "Youssef Amrani",
        "gender": "male",
        "farm_id": "farm-a",
        "entry_date": "2024-01-10",
        "room": "1",
    },
)
worker_id = coordinator.register(command)
print(f"   ✓ Worker {worker_id} registered; room a-1 holds {store.get(ROOMS, 'a-1')['occupants']}")

# 4. Farm B tries to register the same national ID
print("\n4. Registering the same worker at Farm B...")
try:
    coordinator.register(command.model_copy(update={"farm_id": "farm-b"}))
except ConflictBlockedError as e:
    print(f"   ✓ Blocked: {e}")

# 5. Farm A records the exit, Farm B confirms the transfer
print("\n5. Exit at Farm A, transfer to Farm B...")
coordinator.record_exit(
    RecordExitCommand(
        worker_id=worker_id,
        exit_date=date(2024, 3, 1),
        exit_reason="end of season",
        resolves_conflict_for="farm-b",
    )
)
case = coordinator.register(
    command.model_copy(update={"farm_id": "farm-b", "entry_date": date(2024, 3, 5)})
)
print(f"   ✓ Registration returned a {case.action.value} case")
worker = coordinator.confirm(case)
for period in worker.history:
    print(f"     - {period.farm_id}: {period.entry_date} -> {period.exit_date or 'open'}")

# 6. Repair pass and notifications
print("\n6. Repair and notifications...")
report = coordinator.repair()
print(f"   ✓ Repair: {report.rooms_updated}/{report.rooms_checked} rooms corrected")
coordinator.close()  # waits for background deliveries
for doc in store.scan(NOTIFICATIONS):
    print(f"   ✓ {doc['recipient_id']}: {doc['title']}")

print("\n" + "=" * 60)
print("Example complete!")
print("=" * 60)
