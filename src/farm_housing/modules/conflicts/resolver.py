"""Conflict resolver for registrations that reuse a national ID.

Evaluated in order on (existing worker, its status, same farm as requester):

1. no existing worker       -> CREATE
2. active, same farm        -> REJECT_DUPLICATE_LOCAL
3. active, other farm       -> BLOCK_AND_NOTIFY
4. inactive, same farm      -> REACTIVATE (after confirmation)
5. inactive, other farm     -> TRANSFER (after confirmation)

Same-name workers with a different national ID only produce warnings.
"""

import logging
from typing import Iterable, List, Optional

from farm_housing.core.commands import RegisterCommand
from farm_housing.core.models import Worker, name_key

from .models import ConflictAction, ConflictCase, ConflictDecision, NameWarning

logger = logging.getLogger(__name__)


class ConflictResolver:
    """Classifies a registration attempt against the network's workers."""

    def resolve(
        self,
        command: RegisterCommand,
        holders: Iterable[Worker],
        same_name: Iterable[Worker] = (),
        requested_by: Optional[str] = None,
    ) -> ConflictDecision:
        """
        Pick the action for a registration attempt.

        Args:
            command: The registration as submitted
            holders: Workers whose national ID matches (normally zero or one)
            same_name: Workers sharing the normalized full name
            requested_by: Principal ID of the caller

        Returns:
            ConflictDecision with the action and, unless CREATE, its ConflictCase
        """
        warnings = tuple(self._name_warnings(command, same_name))
        for warning in warnings:
            logger.warning(
                f"Registration of {command.name} ({command.national_id}): active worker "
                f"{warning.name} ({warning.national_id}) at {warning.farm_id} has the same name"
            )

        existing = self._pick_holder(command, list(holders))
        if existing is None:
            return ConflictDecision(action=ConflictAction.CREATE, warnings=warnings)

        same_farm = existing.farm_id == command.farm_id
        if existing.is_active:
            action = (
                ConflictAction.REJECT_DUPLICATE_LOCAL if same_farm else ConflictAction.BLOCK_AND_NOTIFY
            )
        else:
            action = ConflictAction.REACTIVATE if same_farm else ConflictAction.TRANSFER

        logger.info(
            f"National ID {command.national_id} held by worker {existing.id} "
            f"({existing.status.value} at {existing.farm_id}): {action.value}"
        )

        case = ConflictCase(
            existing=existing,
            requester_farm_id=command.farm_id,
            attempted=command,
            action=action,
            requested_by=requested_by,
        )
        return ConflictDecision(action=action, case=case, warnings=warnings)

    def _pick_holder(self, command: RegisterCommand, holders: List[Worker]) -> Optional[Worker]:
        """
        Choose the record that represents the national ID.

        More than one record means two registrations raced; the active one
        wins, then the one at the requesting farm.
        """
        holders = [w for w in holders if w.national_id.upper() == command.national_id]
        if not holders:
            return None
        if len(holders) > 1:
            logger.warning(
                f"National ID {command.national_id} is held by {len(holders)} workers: "
                f"{', '.join(w.id for w in holders)}"
            )

        def rank(worker: Worker) -> tuple[int, int]:
            return (0 if worker.is_active else 1, 0 if worker.farm_id == command.farm_id else 1)

        return sorted(holders, key=rank)[0]

    def _name_warnings(self, command: RegisterCommand, workers: Iterable[Worker]) -> List[NameWarning]:
        key = name_key(command.name)
        return [
            NameWarning(
                worker_id=w.id,
                name=w.name,
                national_id=w.national_id,
                farm_id=w.farm_id,
            )
            for w in workers
            if w.is_active and name_key(w.name) == key and w.national_id.upper() != command.national_id
        ]
