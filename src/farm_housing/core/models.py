"""Data models for the residency network.

Workers, rooms and farms are frozen dataclasses so that the ledger and the
reconciler can operate on snapshots and hand back new ones. Conversion to and
from the store's native document format lives here too.

Licensed under MIT License
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any, FrozenSet

logger = logging.getLogger(__name__)

WORKERS = "workers"
ROOMS = "rooms"
FARMS = "farms"


class WorkerStatus(Enum):
    """Residency status of a worker."""

    ACTIVE = "active"
    INACTIVE = "inactive"


class Gender(Enum):
    """Worker gender."""

    MALE = "male"
    FEMALE = "female"


class RoomGender(Enum):
    """Occupancy rule of a room."""

    MALE = "male"
    FEMALE = "female"

    @classmethod
    def for_gender(cls, gender: Gender) -> "RoomGender":
        """Room category a worker of this gender may occupy."""
        return cls.MALE if gender == Gender.MALE else cls.FEMALE


class Role(Enum):
    """Caller role as supplied by the identity provider."""

    SUPERADMIN = "superadmin"
    ADMIN = "admin"
    USER = "user"


def _parse_date(value: Any) -> date | None:
    if value is None or value == "":
        return None
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except (ValueError, TypeError):
        logger.warning(f"Unreadable date {value!r}")
        return None


def name_key(name: str) -> str:
    """Case- and spacing-insensitive form of a full name, used for lookups."""
    return " ".join(name.lower().split())


def _format_date(value: date | None) -> str | None:
    return value.isoformat() if value else None


@dataclass(frozen=True)
class Principal:
    """The caller of a lifecycle operation.

    Attributes:
        user_id: Opaque principal ID from the identity provider.
        farm_id: Farm the principal administers (None for superadmins).
        role: Caller role.
        name: Display name, used in notification text.
    """

    user_id: str
    farm_id: str | None = None
    role: Role = Role.ADMIN
    name: str = ""

    @property
    def is_superadmin(self) -> bool:
        return self.role == Role.SUPERADMIN


@dataclass(frozen=True)
class StayPeriod:
    """One closed or open residency interval.

    Attributes:
        entry_date: First day of the stay.
        farm_id: Farm the worker stayed at.
        room: Room number (None if unassigned).
        sector: Work sector.
        exit_date: Last day of the stay (None while open).
        exit_reason: Reason recorded at exit.
        anomalous: True if the exit date was synthesized rather than recorded.
    """

    entry_date: date
    farm_id: str
    room: str | None = None
    sector: str = ""
    exit_date: date | None = None
    exit_reason: str | None = None
    anomalous: bool = False

    @property
    def is_open(self) -> bool:
        return self.exit_date is None

    def to_doc(self) -> dict[str, Any]:
        doc: dict[str, Any] = {
            "entry_date": _format_date(self.entry_date),
            "farm_id": self.farm_id,
            "room": self.room,
            "sector": self.sector,
            "exit_date": _format_date(self.exit_date),
            "exit_reason": self.exit_reason,
        }
        if self.anomalous:
            doc["anomalous"] = True
        return doc

    @classmethod
    def from_doc(cls, doc: dict[str, Any]) -> "StayPeriod":
        entry_date = _parse_date(doc.get("entry_date"))
        if entry_date is None:
            raise ValueError(f"Stay period without a valid entry date: {doc!r}")
        exit_date = _parse_date(doc.get("exit_date"))
        if exit_date is None and doc.get("exit_date") not in (None, ""):
            raise ValueError(f"Stay period with an unreadable exit date: {doc!r}")
        return cls(
            entry_date=entry_date,
            farm_id=doc.get("farm_id", ""),
            room=doc.get("room") or None,
            sector=doc.get("sector") or "",
            exit_date=exit_date,
            exit_reason=doc.get("exit_reason"),
            anomalous=bool(doc.get("anomalous", False)),
        )


@dataclass(frozen=True)
class Worker:
    """One network-wide identity, keyed by national ID.

    Attributes:
        id: System-assigned ID, stable across transfers.
        national_id: Network-unique business key.
        name: Full name.
        gender: Worker gender.
        farm_id: Current farm, or last farm while inactive.
        room: Current room number (None if unassigned).
        sector: Current sector.
        status: Active or inactive.
        current_entry_date: Entry date of the current or last period.
        current_exit_date: Exit date of the last period while inactive.
        current_exit_reason: Exit reason of the last period while inactive.
        history: Chronological stay periods.
        return_count: Reactivations and transfers after the first period.
        phone: Contact phone number.
        year_of_birth: Optional year of birth.
    """

    id: str
    national_id: str
    name: str
    gender: Gender
    farm_id: str
    current_entry_date: date
    room: str | None = None
    sector: str = ""
    status: WorkerStatus = WorkerStatus.ACTIVE
    current_exit_date: date | None = None
    current_exit_reason: str | None = None
    history: tuple[StayPeriod, ...] = ()
    return_count: int = 0
    phone: str = ""
    year_of_birth: int | None = None

    @property
    def is_active(self) -> bool:
        return self.status == WorkerStatus.ACTIVE

    @property
    def open_period(self) -> StayPeriod | None:
        """The single period without an exit date, if any."""
        for period in reversed(self.history):
            if period.is_open:
                return period
        return None

    def to_doc(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "national_id": self.national_id,
            "name": self.name,
            "name_key": name_key(self.name),
            "gender": self.gender.value,
            "farm_id": self.farm_id,
            "room": self.room,
            "sector": self.sector,
            "status": self.status.value,
            "current_entry_date": _format_date(self.current_entry_date),
            "current_exit_date": _format_date(self.current_exit_date),
            "current_exit_reason": self.current_exit_reason,
            "history": [p.to_doc() for p in self.history],
            "return_count": self.return_count,
            "phone": self.phone,
            "year_of_birth": self.year_of_birth,
        }

    @classmethod
    def from_doc(cls, doc: dict[str, Any]) -> "Worker":
        entry_date = _parse_date(doc.get("current_entry_date"))
        if entry_date is None:
            raise ValueError(f"Worker {doc.get('id')!r} has no valid entry date")
        return cls(
            id=doc["id"],
            national_id=doc["national_id"],
            name=doc.get("name", ""),
            gender=Gender(doc["gender"]),
            farm_id=doc["farm_id"],
            current_entry_date=entry_date,
            room=doc.get("room") or None,
            sector=doc.get("sector") or "",
            status=WorkerStatus(doc.get("status", WorkerStatus.ACTIVE.value)),
            current_exit_date=_parse_date(doc.get("current_exit_date")),
            current_exit_reason=doc.get("current_exit_reason"),
            history=tuple(StayPeriod.from_doc(p) for p in doc.get("history") or []),
            return_count=int(doc.get("return_count") or 0),
            phone=doc.get("phone") or "",
            year_of_birth=doc.get("year_of_birth"),
        )


@dataclass(frozen=True)
class Room:
    """A room belonging to exactly one farm.

    Occupancy fields are derived; only the occupancy reconciler writes them.

    Attributes:
        id: Store key.
        farm_id: Owning farm.
        number: Room number, unique within the farm.
        gender_category: Which workers may occupy the room.
        capacity: Maximum number of occupants.
        occupants: IDs of the workers currently recorded in the room.
        recorded_count: Occupant count as stored, which may drift from occupants.
    """

    id: str
    farm_id: str
    number: str
    gender_category: RoomGender
    capacity: int
    occupants: FrozenSet[str] = field(default_factory=frozenset)
    recorded_count: int | None = None

    @property
    def occupant_count(self) -> int:
        return len(self.occupants)

    @property
    def is_full(self) -> bool:
        return self.occupant_count >= self.capacity

    def to_doc(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "farm_id": self.farm_id,
            "number": self.number,
            "gender_category": self.gender_category.value,
            "capacity": self.capacity,
            "occupants": sorted(self.occupants),
            "occupant_count": self.occupant_count,
        }

    @classmethod
    def from_doc(cls, doc: dict[str, Any]) -> "Room":
        return cls(
            id=doc["id"],
            farm_id=doc["farm_id"],
            number=str(doc["number"]),
            gender_category=RoomGender(doc["gender_category"]),
            capacity=int(doc.get("capacity") or 0),
            occupants=frozenset(doc.get("occupants") or []),
            recorded_count=doc.get("occupant_count"),
        )


@dataclass(frozen=True)
class Farm:
    """Tenant boundary.

    Attributes:
        id: Store key.
        name: Display name.
        admins: Principal IDs that receive this farm's notifications.
        worker_count: Aggregate count of active workers.
    """

    id: str
    name: str
    admins: FrozenSet[str] = field(default_factory=frozenset)
    worker_count: int = 0

    def to_doc(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "admins": sorted(self.admins),
            "worker_count": self.worker_count,
        }

    @classmethod
    def from_doc(cls, doc: dict[str, Any]) -> "Farm":
        return cls(
            id=doc["id"],
            name=doc.get("name", doc["id"]),
            admins=frozenset(doc.get("admins") or []),
            worker_count=int(doc.get("worker_count") or 0),
        )
