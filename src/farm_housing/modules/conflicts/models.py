"""Data models for national-ID conflict resolution."""

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from farm_housing.core.commands import RegisterCommand
from farm_housing.core.models import Worker


class ConflictAction(Enum):
    """
    What a registration attempt turns into.

    CREATE: No worker holds the national ID; register normally
    REJECT_DUPLICATE_LOCAL: Already active at the requesting farm
    BLOCK_AND_NOTIFY: Active at another farm; refuse and tell its admins
    REACTIVATE: Inactive at the requesting farm; start a new period after confirmation
    TRANSFER: Inactive at another farm; move it after confirmation
    """

    CREATE = "create"
    REJECT_DUPLICATE_LOCAL = "reject_duplicate_local"
    BLOCK_AND_NOTIFY = "block_and_notify"
    REACTIVATE = "reactivate"
    TRANSFER = "transfer"


@dataclass(frozen=True)
class NameWarning:
    """
    Advisory: an active worker with the same full name but another national ID.

    Never blocks a registration.
    """

    worker_id: str
    name: str
    national_id: str
    farm_id: str


@dataclass(frozen=True)
class ConflictCase:
    """
    Decision record for a registration that collided with an existing worker.

    Not persisted. Attributes:
        existing: Snapshot of the worker holding the national ID
        requester_farm_id: Farm that attempted the registration
        attempted: The registration command as submitted
        action: Resolved action
        requested_by: Principal ID of the caller, if known
    """

    existing: Worker
    requester_farm_id: str
    attempted: RegisterCommand
    action: ConflictAction
    requested_by: Optional[str] = None

    @property
    def requires_confirmation(self) -> bool:
        return self.action in (ConflictAction.REACTIVATE, ConflictAction.TRANSFER)

    @property
    def is_blocking(self) -> bool:
        return self.action in (
            ConflictAction.BLOCK_AND_NOTIFY,
            ConflictAction.REJECT_DUPLICATE_LOCAL,
        )

    @property
    def requested_entry_date(self) -> date:
        return self.attempted.entry_date

    def action_data(self) -> Dict[str, Any]:
        """Details the holder's admins need to close the conflict."""
        return {
            "worker_id": self.existing.id,
            "worker_name": self.existing.name,
            "national_id": self.existing.national_id,
            "holder_farm_id": self.existing.farm_id,
            "requester_farm_id": self.requester_farm_id,
            "requested_entry_date": self.attempted.entry_date.isoformat(),
            "requested_room": self.attempted.room,
            "requested_by": self.requested_by,
        }


@dataclass(frozen=True)
class ConflictDecision:
    """Resolver output: the action, its case (if any) and advisory warnings."""

    action: ConflictAction
    case: Optional[ConflictCase] = None
    warnings: Tuple[NameWarning, ...] = field(default_factory=tuple)
