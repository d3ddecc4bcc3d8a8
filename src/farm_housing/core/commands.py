"""Command structs accepted by the lifecycle coordinator.

Each operation takes one closed, validated command instead of a free-form
form payload. `parse_command` builds a command from raw form data and turns
validation failures into InvalidCommandError.
"""

from datetime import date
from typing import Any, Mapping, Optional, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from farm_housing.core.errors import InvalidCommandError
from farm_housing.core.models import Gender, RoomGender

C = TypeVar("C", bound=BaseModel)


class _Command(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid", str_strip_whitespace=True)


class _Placement(_Command):
    """Where and when a stay period starts."""

    farm_id: str = Field(min_length=1)
    entry_date: date
    room: Optional[str] = None
    sector: str = ""

    @field_validator("room", mode="before")
    @classmethod
    def _blank_room_is_none(cls, value: Any) -> Any:
        if value is None or (isinstance(value, str) and not value.strip()):
            return None
        return str(value)


class RegisterCommand(_Placement):
    """Register a worker at a farm."""

    national_id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    gender: Gender
    phone: str = ""
    year_of_birth: Optional[int] = Field(default=None, ge=1900, le=2100)

    @field_validator("national_id")
    @classmethod
    def _normalize_national_id(cls, value: str) -> str:
        return value.upper()


class ReactivateCommand(_Placement):
    """Start a new period for an inactive worker at the same farm."""

    worker_id: str = Field(min_length=1)
    phone: Optional[str] = None


class TransferCommand(_Placement):
    """Move an inactive worker to another farm, keeping its identity."""

    worker_id: str = Field(min_length=1)
    phone: Optional[str] = None


class RecordExitCommand(_Command):
    """Close the worker's current period.

    Attributes:
        resolves_conflict_for: Farm whose registration attempt was blocked by
            this worker; when set, only that farm is told the worker is free.
    """

    worker_id: str = Field(min_length=1)
    exit_date: date
    exit_reason: str = "none"
    resolves_conflict_for: Optional[str] = None


class EditEntryDateCommand(_Command):
    """Move the start of the worker's open period."""

    worker_id: str = Field(min_length=1)
    new_entry_date: date


class EditRoomCommand(_Command):
    """Change a room's capacity or gender category."""

    room_id: str = Field(min_length=1)
    capacity: Optional[int] = Field(default=None, ge=1)
    gender_category: Optional[RoomGender] = None


def parse_command(command_type: Type[C], data: Mapping[str, Any]) -> C:
    """
    Validate raw form data into a command.

    Args:
        command_type: Command class to build
        data: Raw payload

    Returns:
        The validated command

    Raises:
        InvalidCommandError: If any field is missing or invalid
    """
    try:
        return command_type.model_validate(dict(data))
    except ValidationError as e:
        fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in e.errors())
        raise InvalidCommandError(f"Invalid {command_type.__name__}: {fields}") from e
