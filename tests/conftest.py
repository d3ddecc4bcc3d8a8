"""Shared fixtures: a seeded in-memory network and a recording notification channel."""

import itertools
from datetime import date

import pytest

from farm_housing import InMemoryDocumentStore, LifecycleCoordinator
from farm_housing.core.commands import RegisterCommand
from farm_housing.core.errors import TransientTransportError
from farm_housing.core.models import FARMS, ROOMS, Farm, Gender, Room, RoomGender
from farm_housing.core.retry import RetryPolicy
from farm_housing.modules.notifications import (
    NotificationDispatcher,
    NotificationModule,
    NotificationTransport,
)


def no_sleep(seconds: float) -> None:
    """Sleeper for retry policies under test."""


class RecordingTransport(NotificationTransport):
    """Keeps every message; can fail the first N attempts per recipient."""

    def __init__(self, fail_times: int = 0, error: type = TransientTransportError):
        self.sent = []
        self.attempts = {}
        self.fail_times = fail_times
        self.error = error

    def send(self, recipient_id, message):
        self.attempts[recipient_id] = self.attempts.get(recipient_id, 0) + 1
        if self.attempts[recipient_id] <= self.fail_times:
            raise self.error(f"channel down for {recipient_id}")
        self.sent.append((recipient_id, message))

    def recipients(self, notification_type=None):
        return [
            r for r, m in self.sent if notification_type is None or m.type == notification_type
        ]


def seed_network(store) -> None:
    """Three farms; farm-a has a male and a female room, farm-b one male room."""
    for farm in (
        Farm(id="farm-a", name="Farm A", admins=frozenset({"admin-a1", "admin-a2"})),
        Farm(id="farm-b", name="Farm B", admins=frozenset({"admin-b1"})),
        Farm(id="farm-c", name="Farm C", admins=frozenset({"admin-c1"})),
    ):
        store.put(FARMS, farm.id, farm.to_doc())

    for room in (
        Room(id="a-101", farm_id="farm-a", number="101", gender_category=RoomGender.MALE, capacity=2),
        Room(id="a-102", farm_id="farm-a", number="102", gender_category=RoomGender.FEMALE, capacity=2),
        Room(id="b-201", farm_id="farm-b", number="201", gender_category=RoomGender.MALE, capacity=4),
    ):
        store.put(ROOMS, room.id, room.to_doc())


def make_register(**overrides) -> RegisterCommand:
    """RegisterCommand for a male worker at farm-a, room 101."""
    data = {
        "national_id": "X1",
        "name": "Youssef Amrani",
        "gender": Gender.MALE,
        "farm_id": "farm-a",
        "entry_date": date(2024, 1, 10),
        "room": "101",
        "sector": "greenhouse",
    }
    data.update(overrides)
    return RegisterCommand(**data)


@pytest.fixture
def store():
    """In-memory store seeded with farms and rooms."""
    store = InMemoryDocumentStore()
    seed_network(store)
    return store


@pytest.fixture
def transport():
    return RecordingTransport()


@pytest.fixture
def coordinator(store, transport):
    """Coordinator with inline notification delivery and sequential worker IDs."""
    counter = itertools.count(1)
    coordinator = LifecycleCoordinator(store, id_factory=lambda: f"w{next(counter)}")
    dispatcher = NotificationDispatcher(transport, RetryPolicy.fixed(3, 0.0, sleep=no_sleep))
    coordinator.attach_module(NotificationModule(dispatcher))
    yield coordinator
    coordinator.close()


@pytest.fixture
def register_command():
    """Factory for RegisterCommand with per-test overrides."""
    return make_register


@pytest.fixture
def recording_transport():
    """The RecordingTransport class, for tests that need a failing channel."""
    return RecordingTransport


@pytest.fixture
def sleeper():
    return no_sleep
