"""
Basic smoke tests for farm-housing core components.
"""

from datetime import date

import pytest

from farm_housing import Event, EventBus, EventFilter, Farm, Room, StayPeriod, Worker
from farm_housing.core.models import Gender, RoomGender, WorkerStatus, name_key


def test_worker_document_round_trip():
    """Test Worker conversion to and from the store's document format."""
    worker = Worker(
        id="w1",
        national_id="AB123",
        name="Fatima  Zahra",
        gender=Gender.FEMALE,
        farm_id="farm-a",
        current_entry_date=date(2024, 3, 1),
        room="102",
        history=(StayPeriod(entry_date=date(2024, 3, 1), farm_id="farm-a", room="102"),),
    )

    doc = worker.to_doc()
    assert doc["current_entry_date"] == "2024-03-01"
    assert doc["status"] == "active"
    assert doc["name_key"] == "fatima zahra"
    assert doc["history"][0]["exit_date"] is None
    assert "anomalous" not in doc["history"][0]

    assert Worker.from_doc(doc) == worker


def test_worker_from_legacy_document():
    """Test that missing optional fields get defaults."""
    worker = Worker.from_doc(
        {
            "id": "w9",
            "national_id": "CD9",
            "name": "Omar",
            "gender": "male",
            "farm_id": "farm-b",
            "current_entry_date": "2023-05-02T00:00:00",
            "room": "",
        }
    )

    assert worker.status == WorkerStatus.ACTIVE
    assert worker.current_entry_date == date(2023, 5, 2)
    assert worker.room is None
    assert worker.history == ()
    assert worker.return_count == 0


def test_worker_without_entry_date_is_rejected():
    """Test that a worker document must carry an entry date."""
    with pytest.raises(ValueError, match="no valid entry date"):
        Worker.from_doc(
            {"id": "w1", "national_id": "X", "gender": "male", "farm_id": "farm-a"}
        )


def test_period_with_unreadable_exit_date_is_rejected(caplog):
    """Test that a garbled exit date never reads back as an open period."""
    doc = {"entry_date": "2024-01-10", "farm_id": "farm-a", "exit_date": "31/02/2024"}

    with pytest.raises(ValueError, match="unreadable exit date"):
        StayPeriod.from_doc(doc)
    assert "Unreadable date '31/02/2024'" in caplog.text


def test_anomalous_period_round_trip():
    """Test that the anomalous flag is written only when set."""
    period = StayPeriod(
        entry_date=date(2024, 1, 1),
        farm_id="farm-a",
        exit_date=date(2024, 1, 1),
        exit_reason="none",
        anomalous=True,
    )

    doc = period.to_doc()
    assert doc["anomalous"] is True
    assert StayPeriod.from_doc(doc) == period


def test_room_occupancy_fields():
    """Test derived occupancy fields of a Room."""
    room = Room(
        id="a-101",
        farm_id="farm-a",
        number="101",
        gender_category=RoomGender.MALE,
        capacity=2,
        occupants=frozenset({"w2", "w1"}),
    )

    assert room.occupant_count == 2
    assert room.is_full is True
    doc = room.to_doc()
    assert doc["occupants"] == ["w1", "w2"]
    assert doc["occupant_count"] == 2
    assert Room.from_doc(doc).recorded_count == 2


def test_farm_document_round_trip():
    """Test Farm conversion."""
    farm = Farm(id="farm-a", name="Farm A", admins=frozenset({"u1"}), worker_count=3)
    assert Farm.from_doc(farm.to_doc()) == farm


def test_name_key_ignores_case_and_spacing():
    """Test the normalized name used for same-name lookups."""
    assert name_key("  Youssef   AMRANI ") == "youssef amrani"


def test_room_gender_for_worker_gender():
    """Test room category selection from worker gender."""
    assert RoomGender.for_gender(Gender.MALE) == RoomGender.MALE
    assert RoomGender.for_gender(Gender.FEMALE) == RoomGender.FEMALE


def test_event_bus_publish_subscribe():
    """Test basic event bus functionality."""
    bus = EventBus()
    received = []

    def handler(event: Event):
        received.append(event)

    bus.subscribe(handler)

    event = Event(type="worker.registered", source="test", farm_id="farm-a", worker_id="w1")
    bus.publish(event)

    assert len(received) == 1
    assert received[0].type == "worker.registered"
    assert received[0].worker_id == "w1"


def test_event_bus_filter_by_prefix_and_farm():
    """Test event filtering by type prefix and farm."""
    bus = EventBus()
    received = []

    bus.subscribe(received.append, EventFilter(event_type="worker.*", farm_id="farm-a"))

    bus.publish(Event(type="worker.exit_recorded", source="test", farm_id="farm-a"))
    bus.publish(Event(type="worker.exit_recorded", source="test", farm_id="farm-b"))
    bus.publish(Event(type="occupancy.repaired", source="test", farm_id="farm-a"))

    assert [e.type for e in received] == ["worker.exit_recorded"]


def test_event_bus_handler_error_isolation():
    """Test that handler errors don't crash the bus."""
    bus = EventBus()
    received = []

    def bad_handler(event: Event):
        raise RuntimeError("Handler error")

    def good_handler(event: Event):
        received.append(event)

    bus.subscribe(bad_handler)
    bus.subscribe(good_handler)

    bus.publish(Event(type="test", source="test"))

    assert len(received) == 1


def test_event_bus_unsubscribe():
    """Test that an unsubscribed handler no longer receives events."""
    bus = EventBus()
    received = []

    def handler(event: Event):
        received.append(event)

    bus.subscribe(handler)
    bus.unsubscribe(handler)
    bus.publish(Event(type="test", source="test"))

    assert received == []
