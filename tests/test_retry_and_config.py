"""Tests for RetryPolicy, EngineSettings and command validation."""

from datetime import date

import pytest
from pydantic import ValidationError

from farm_housing.core.commands import (
    EditRoomCommand,
    RecordExitCommand,
    RegisterCommand,
    parse_command,
)
from farm_housing.core.config import EngineSettings
from farm_housing.core.errors import InvalidCommandError, ValidationFailure
from farm_housing.core.models import Gender
from farm_housing.core.retry import RetryPolicy


class TestRetryPolicy:
    """Test the shared retry policy."""

    def test_fixed_schedule(self):
        """Test a fixed backoff schedule."""
        policy = RetryPolicy.fixed(3, 1.0)
        assert policy.schedule() == [1.0, 1.0]

    def test_exponential_schedule_is_capped(self):
        """Test exponential backoff with an upper bound."""
        policy = RetryPolicy(
            max_attempts=5, backoff_seconds=1.0, backoff_multiplier=3.0, max_backoff_seconds=5.0
        )
        assert policy.schedule() == [1.0, 3.0, 5.0, 5.0]

    def test_invalid_policy_rejected(self):
        """Test field validation."""
        with pytest.raises(ValueError, match="max_attempts"):
            RetryPolicy(max_attempts=0)
        with pytest.raises(ValueError, match="backoff_seconds"):
            RetryPolicy(backoff_seconds=-1)

    def test_call_retries_then_succeeds(self, sleeper):
        """Test that transient errors are retried."""
        attempts = []

        def flaky():
            attempts.append(1)
            if len(attempts) < 3:
                raise ConnectionError("reset")
            return "ok"

        policy = RetryPolicy(max_attempts=3, retry_on=(ConnectionError,), sleep=sleeper)
        assert policy.call(flaky) == "ok"
        assert len(attempts) == 3

    def test_call_reraises_last_error(self, sleeper):
        """Test that the last error escapes once attempts run out."""
        policy = RetryPolicy(max_attempts=2, retry_on=(ConnectionError,), sleep=sleeper)

        def always_fails():
            raise ConnectionError("down")

        with pytest.raises(ConnectionError, match="down"):
            policy.call(always_fails)

    def test_call_does_not_retry_other_errors(self, sleeper):
        """Test that errors outside retry_on propagate at once."""
        attempts = []

        def wrong():
            attempts.append(1)
            raise ValueError("bad input")

        policy = RetryPolicy(max_attempts=3, retry_on=(ConnectionError,), sleep=sleeper)
        with pytest.raises(ValueError):
            policy.call(wrong)
        assert len(attempts) == 1

    def test_from_settings(self):
        """Test building store and notification policies from settings."""
        settings = EngineSettings(
            store_max_attempts=4,
            store_backoff_seconds=0.25,
            store_backoff_multiplier=2.0,
            notification_max_attempts=3,
            notification_backoff_seconds=2.0,
        )

        store_policy = RetryPolicy.from_settings(settings, "store")
        assert store_policy.schedule() == [0.25, 0.5, 1.0]

        notify_policy = RetryPolicy.from_settings(settings, "notification")
        assert notify_policy.schedule() == [2.0, 2.0]

        with pytest.raises(ValueError, match="Unknown retry policy kind"):
            RetryPolicy.from_settings(settings, "metrics")


class TestEngineSettings:
    """Test environment-driven configuration."""

    def test_defaults(self, monkeypatch):
        """Test default values."""
        for name in (
            "FARM_HOUSING_STORE_MAX_ATTEMPTS",
            "FARM_HOUSING_NOTIFICATION_WORKERS",
            "FARM_HOUSING_AUTO_REPAIR_ON_CHANGE",
        ):
            monkeypatch.delenv(name, raising=False)

        settings = EngineSettings(_env_file=None)
        assert settings.store_max_attempts == 3
        assert settings.notification_max_attempts == 3
        assert settings.notification_backoff_seconds == 1.0
        assert settings.notification_workers == 4
        assert settings.auto_repair_on_change is False

    def test_environment_overrides(self, monkeypatch):
        """Test FARM_HOUSING_ prefixed environment variables."""
        monkeypatch.setenv("FARM_HOUSING_STORE_MAX_ATTEMPTS", "5")
        monkeypatch.setenv("FARM_HOUSING_NOTIFICATION_WORKERS", "8")
        monkeypatch.setenv("FARM_HOUSING_AUTO_REPAIR_ON_CHANGE", "true")

        settings = EngineSettings(_env_file=None)
        assert settings.store_max_attempts == 5
        assert settings.notification_workers == 8
        assert settings.auto_repair_on_change is True

    def test_notification_pool_cannot_be_empty(self):
        """Test that delivery always has at least one background thread."""
        with pytest.raises(ValidationError):
            EngineSettings(_env_file=None, notification_workers=0)


class TestCommands:
    """Test command validation at the boundary."""

    def test_parse_register_command(self):
        """Test that raw form data becomes a normalized command."""
        command = parse_command(
            RegisterCommand,
            {
                "national_id": " ab123 ",
                "name": "Youssef Amrani",
                "gender": "male",
                "farm_id": "farm-a",
                "entry_date": "2024-01-10",
                "room": "  ",
            },
        )

        assert command.national_id == "AB123"
        assert command.gender == Gender.MALE
        assert command.entry_date == date(2024, 1, 10)
        assert command.room is None

    def test_missing_fields_raise_invalid_command(self):
        """Test that validation errors name the failing fields."""
        with pytest.raises(InvalidCommandError, match="national_id") as exc_info:
            parse_command(
                RegisterCommand,
                {"name": "A", "gender": "male", "farm_id": "farm-a", "entry_date": "2024-01-10"},
            )

        assert isinstance(exc_info.value, ValidationFailure)
        assert isinstance(exc_info.value, ValueError)

    def test_unknown_fields_are_rejected(self):
        """Test that commands are closed structs."""
        with pytest.raises(InvalidCommandError, match="salary"):
            parse_command(
                RecordExitCommand,
                {"worker_id": "w1", "exit_date": "2024-02-01", "salary": 100},
            )

    def test_exit_reason_defaults_to_none(self):
        """Test the default exit reason."""
        command = RecordExitCommand(worker_id="w1", exit_date=date(2024, 2, 1))
        assert command.exit_reason == "none"
        assert command.resolves_conflict_for is None

    def test_room_capacity_must_be_positive(self):
        """Test EditRoomCommand bounds."""
        with pytest.raises(InvalidCommandError, match="capacity"):
            parse_command(EditRoomCommand, {"room_id": "a-101", "capacity": 0})

    def test_commands_are_immutable(self, register_command):
        """Test that a validated command cannot be changed."""
        command = register_command()
        with pytest.raises(ValidationError):
            command.farm_id = "farm-b"
