"""Tests for the notification dispatcher and NotificationModule."""

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from farm_housing import Event, EventBus
from farm_housing.core.config import EngineSettings
from farm_housing.core.retry import RetryPolicy
from farm_housing.modules.notifications import (
    NOTIFICATIONS,
    Notification,
    NotificationDispatcher,
    NotificationModule,
    NotificationType,
    Priority,
    StoreNotificationTransport,
)


@pytest.fixture
def message():
    return Notification(
        type=NotificationType.WORKER_UPDATED,
        title="Entry date changed",
        message="Entry date changed",
        recipient_farm_id="farm-a",
    )


class TestNotificationDispatcher:
    """Test best-effort delivery."""

    def test_one_message_per_unique_recipient(self, transport, message, sleeper):
        dispatcher = NotificationDispatcher(transport, RetryPolicy.fixed(3, 0.0, sleep=sleeper))

        count = dispatcher.send(["u1", "u2", "u1", ""], message)

        assert count == 2
        assert transport.recipients() == ["u1", "u2"]
        assert dispatcher.delivered == 2

    def test_transient_failures_are_retried(self, recording_transport, message):
        """Test that a send succeeds on the third attempt with fixed backoff."""
        transport = recording_transport(fail_times=2)
        delays = []
        dispatcher = NotificationDispatcher(transport, RetryPolicy.fixed(3, 1.5, sleep=delays.append))

        dispatcher.send(["u1"], message)

        assert transport.attempts["u1"] == 3
        assert transport.recipients() == ["u1"]
        assert delays == [1.5, 1.5]

    def test_exhausted_retries_drop_the_message(self, recording_transport, message, sleeper):
        """Test that a failing channel never raises to the caller."""
        transport = recording_transport(fail_times=10)
        dispatcher = NotificationDispatcher(transport, RetryPolicy.fixed(3, 0.0, sleep=sleeper))

        dispatcher.send(["u1", "u2"], message)

        assert transport.sent == []
        assert transport.attempts == {"u1": 3, "u2": 3}
        assert dispatcher.dropped == 2

    def test_unexpected_errors_are_not_retried(self, recording_transport, message, sleeper):
        """Test that non-transient errors drop the message after one attempt."""
        transport = recording_transport(fail_times=1, error=RuntimeError)
        dispatcher = NotificationDispatcher(transport, RetryPolicy.fixed(3, 0.0, sleep=sleeper))

        dispatcher.send(["u1"], message)

        assert transport.attempts["u1"] == 1
        assert dispatcher.dropped == 1

    def test_thread_pool_delivery(self, transport, message, sleeper):
        """Test parallel delivery on an executor."""
        executor = ThreadPoolExecutor(max_workers=2)
        dispatcher = NotificationDispatcher(
            transport, RetryPolicy.fixed(3, 0.0, sleep=sleeper), executor
        )

        dispatcher.send([f"u{i}" for i in range(10)], message)
        executor.shutdown(wait=True)

        assert sorted(transport.recipients()) == sorted(f"u{i}" for i in range(10))
        assert dispatcher.delivered == 10

    def test_from_settings_owns_its_pool(self, transport, message):
        """Test that a configured pool is created and shut down by the dispatcher."""
        settings = EngineSettings(_env_file=None, notification_workers=2)
        dispatcher = NotificationDispatcher.from_settings(transport, settings)

        dispatcher.send(["u1"], message)
        dispatcher.close()

        assert transport.recipients() == ["u1"]

    def test_store_transport_writes_documents(self, store, message):
        """Test the store-backed channel."""
        StoreNotificationTransport(store).send("admin-a1", message)

        docs = store.scan(NOTIFICATIONS)
        assert len(docs) == 1
        assert docs[0]["recipient_id"] == "admin-a1"
        assert docs[0]["type"] == "worker_updated"
        assert docs[0]["status"] == "unread"


class TestNotificationModule:
    """Test routing of lifecycle events to farm admins."""

    @pytest.fixture
    def bus(self, store, transport, sleeper):
        bus = EventBus()
        dispatcher = NotificationDispatcher(transport, RetryPolicy.fixed(3, 0.0, sleep=sleeper))
        NotificationModule(dispatcher).attach(bus, store)
        return bus

    def test_module_properties(self, transport):
        module = NotificationModule(NotificationDispatcher(transport))
        assert module.id == "notifications"

    def test_conflict_blocked_notifies_holder_admins(self, bus, transport):
        bus.publish(
            Event(
                type="worker.conflict_blocked",
                source="lifecycle",
                farm_id="farm-a",
                worker_id="w1",
                payload={
                    "worker_name": "Youssef Amrani",
                    "national_id": "X1",
                    "requester_farm_id": "farm-b",
                    "requested_entry_date": "2024-06-01",
                },
            )
        )

        assert sorted(transport.recipients()) == ["admin-a1", "admin-a2"]
        message = transport.sent[0][1]
        assert message.type == NotificationType.WORKER_DUPLICATE
        assert message.priority == Priority.URGENT
        assert "Farm B" in message.message
        assert message.action_data["national_id"] == "X1"

    def test_exit_notifies_own_and_other_farms(self, bus, transport):
        bus.publish(
            Event(
                type="worker.exit_recorded",
                source="lifecycle",
                farm_id="farm-a",
                worker_id="w1",
                payload={"worker_name": "Y", "national_id": "X1", "exit_date": "2024-03-01"},
            )
        )

        assert sorted(transport.recipients(NotificationType.WORKER_EXIT_CONFIRMED)) == [
            "admin-a1",
            "admin-a2",
        ]
        assert sorted(transport.recipients(NotificationType.WORKER_AVAILABLE)) == [
            "admin-b1",
            "admin-c1",
        ]

    def test_exit_resolving_conflict_notifies_only_blocked_farm(self, bus, transport):
        bus.publish(
            Event(
                type="worker.exit_recorded",
                source="lifecycle",
                farm_id="farm-a",
                worker_id="w1",
                payload={
                    "worker_name": "Y",
                    "national_id": "X1",
                    "exit_date": "2024-03-01",
                    "resolves_conflict_for": "farm-b",
                },
            )
        )

        available = [m for _, m in transport.sent if m.type == NotificationType.WORKER_AVAILABLE]
        assert transport.recipients(NotificationType.WORKER_AVAILABLE) == ["admin-b1"]
        assert available[0].priority == Priority.HIGH

    def test_transfer_notifies_previous_farm(self, bus, transport):
        bus.publish(
            Event(
                type="worker.transferred",
                source="lifecycle",
                farm_id="farm-b",
                worker_id="w1",
                payload={"worker_name": "Y", "national_id": "X2", "from_farm_id": "farm-a"},
            )
        )

        assert sorted(transport.recipients(NotificationType.WORKER_TRANSFERRED)) == [
            "admin-a1",
            "admin-a2",
        ]

    def test_unknown_farm_sends_nothing(self, bus, transport):
        bus.publish(
            Event(type="worker.entry_date_changed", source="lifecycle", farm_id="farm-x", payload={})
        )
        assert transport.sent == []

    def test_detach_stops_routing(self, store, transport):
        bus = EventBus()
        module = NotificationModule(NotificationDispatcher(transport))
        module.attach(bus, store)
        module.detach()

        bus.publish(Event(type="worker.entry_date_changed", source="lifecycle", farm_id="farm-a"))

        assert transport.sent == []


def test_dispatcher_counters_are_thread_safe(transport, message, sleeper):
    """Test counters under concurrent sends."""
    dispatcher = NotificationDispatcher(transport, RetryPolicy.fixed(1, 0.0, sleep=sleeper))
    threads = [
        threading.Thread(target=dispatcher.send, args=([f"u{i}"], message)) for i in range(20)
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert dispatcher.delivered == 20
