"""
Error taxonomy for the residency engine.

Validation failures are also ValueErrors and lookups are also LookupErrors,
so callers that only know the builtin types still catch them.
"""

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from farm_housing.modules.conflicts.models import ConflictCase


class HousingError(Exception):
    """Base class for every error raised by the engine."""


# Validation


class ValidationFailure(HousingError, ValueError):
    """A request was rejected before any mutation."""


class InvalidCommandError(ValidationFailure):
    """A command struct failed boundary validation."""


class OverlapError(ValidationFailure):
    """A stay period would overlap an existing one."""


class CapacityExceededError(ValidationFailure):
    """A room has no free place left."""


class GenderMismatchError(ValidationFailure):
    """A worker's gender does not match the room's category."""


class WorkerStateError(ValidationFailure):
    """The operation is not valid for the worker's current status."""


class AccessDeniedError(HousingError, PermissionError):
    """The principal may not act on the requested farm."""


class NotFoundError(HousingError, LookupError):
    """A worker, room, farm or open period does not exist."""


# Conflicts


class ConflictError(HousingError):
    """A national-ID collision prevented the operation."""

    def __init__(self, message: str, case: Optional["ConflictCase"] = None) -> None:
        super().__init__(message)
        self.case = case


class DuplicateActiveError(ConflictError):
    """The worker is already active at the requesting farm."""


class ConflictBlockedError(ConflictError):
    """The worker is active at another farm; its admins were notified."""


# Transport


class TransportError(HousingError):
    """Store or notification channel failure."""


class TransientStoreError(TransportError):
    """A store call failed in a way that may succeed on retry."""


class StoreUnavailableError(TransportError):
    """A store call kept failing after every retry."""


class TransientTransportError(TransportError):
    """A notification send failed in a way that may succeed on retry."""
