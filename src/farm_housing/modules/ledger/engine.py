"""The Stay-Period Ledger.

Pure functions over Worker snapshots. Each operation takes a worker, applies
one history mutation and returns a new worker; nothing here touches the store.

History invariants kept by every operation:
- periods are sorted by entry date and never overlap
- at most one period is open, and it is the last one
- an open period matches the worker's current farm, room and entry date

Licensed under MIT License
"""

import dataclasses
import logging
from datetime import date

from farm_housing.core.errors import InvalidCommandError, NotFoundError, OverlapError
from farm_housing.core.models import StayPeriod, Worker

_LOGGER = logging.getLogger(__name__)


def _sorted(periods) -> tuple[StayPeriod, ...]:
    return tuple(sorted(periods, key=lambda p: p.entry_date))


class StayPeriodLedger:
    """Maintains the ordered stay-period history of one worker."""

    def normalize(self, worker: Worker) -> Worker:
        """Bring history in line with the worker's current state.

        Older records may lack the period that the current fields describe;
        it is synthesized from current state. History is re-sorted.

        Args:
            worker: The worker snapshot.

        Returns:
            Worker whose history contains the current period.
        """
        history = list(worker.history)
        if not any(p.entry_date == worker.current_entry_date for p in history):
            closed = not worker.is_active and worker.current_exit_date is not None
            history.append(
                StayPeriod(
                    entry_date=worker.current_entry_date,
                    farm_id=worker.farm_id,
                    room=worker.room,
                    sector=worker.sector,
                    exit_date=worker.current_exit_date if closed else None,
                    exit_reason=worker.current_exit_reason if closed else None,
                )
            )
            _LOGGER.info(
                f"Worker {worker.id}: synthesized missing current period "
                f"starting {worker.current_entry_date}"
            )

        history = _sorted(history)
        if history == worker.history:
            return worker
        return dataclasses.replace(worker, history=history)

    def open_period(
        self,
        worker: Worker,
        farm_id: str,
        room: str | None,
        sector: str,
        entry_date: date,
    ) -> Worker:
        """Append a new open period and point current state at it.

        Args:
            worker: The worker snapshot.
            farm_id: Farm of the new period.
            room: Room number (None if unassigned).
            sector: Work sector.
            entry_date: First day of the new period.

        Returns:
            Worker with the new open period.

        Raises:
            OverlapError: If a period is still open or the new one starts
                before the last period ended.
        """
        worker = self.normalize(worker)
        current = worker.open_period
        if current is not None:
            raise OverlapError(
                f"Worker {worker.id} already has an open period since {current.entry_date}"
            )

        if worker.history:
            last = worker.history[-1]
            last_end = last.exit_date or last.entry_date
            if entry_date < last_end:
                raise OverlapError(
                    f"Entry date {entry_date} overlaps the period ending {last_end}"
                )

        period = StayPeriod(entry_date=entry_date, farm_id=farm_id, room=room, sector=sector)
        _LOGGER.debug(f"Worker {worker.id}: opened period at {farm_id} from {entry_date}")

        return dataclasses.replace(
            worker,
            history=_sorted([*worker.history, period]),
            farm_id=farm_id,
            room=room,
            sector=sector,
            current_entry_date=entry_date,
            current_exit_date=None,
            current_exit_reason=None,
        )

    def close_period(self, worker: Worker, exit_date: date, exit_reason: str | None) -> Worker:
        """Set the exit date and reason on the open period.

        If history has no open period although the worker is active, the
        period matching the current entry date is taken instead.

        Args:
            worker: The worker snapshot.
            exit_date: Last day of the stay.
            exit_reason: Reason for leaving.

        Returns:
            Worker with the period closed and current exit fields set.

        Raises:
            NotFoundError: If there is no period to close.
            InvalidCommandError: If exit_date is before the period's entry date.
        """
        worker = self.normalize(worker)
        history = list(worker.history)

        index = next((i for i in range(len(history) - 1, -1, -1) if history[i].is_open), None)
        if index is None and worker.is_active:
            index = next(
                (i for i, p in enumerate(history) if p.entry_date == worker.current_entry_date),
                None,
            )
            if index is not None:
                _LOGGER.warning(
                    f"Worker {worker.id}: history out of sync, closing the period "
                    f"starting {worker.current_entry_date}"
                )

        if index is None:
            raise NotFoundError(f"Worker {worker.id} has no open stay period")

        period = history[index]
        if exit_date < period.entry_date:
            raise InvalidCommandError(
                f"Exit date {exit_date} is before entry date {period.entry_date}"
            )

        history[index] = dataclasses.replace(
            period, exit_date=exit_date, exit_reason=exit_reason, anomalous=False
        )

        return dataclasses.replace(
            worker,
            history=_sorted(history),
            current_exit_date=exit_date,
            current_exit_reason=exit_reason,
        )

    def edit_open_period_start(self, worker: Worker, new_entry_date: date) -> Worker:
        """Rewrite the open period's entry date.

        Raises:
            NotFoundError: If no period is open.
            OverlapError: If the new date falls inside the previous period.
        """
        worker = self.normalize(worker)
        history = list(worker.history)

        index = next((i for i, p in enumerate(history) if p.is_open), None)
        if index is None:
            raise NotFoundError(f"Worker {worker.id} has no open stay period")

        for i, period in enumerate(history):
            if i == index:
                continue
            end = period.exit_date or period.entry_date
            if new_entry_date < end:
                raise OverlapError(
                    f"Entry date {new_entry_date} overlaps the period "
                    f"{period.entry_date} - {end}"
                )

        history[index] = dataclasses.replace(history[index], entry_date=new_entry_date)

        return dataclasses.replace(
            worker,
            history=_sorted(history),
            current_entry_date=new_entry_date,
        )

    def reassign_open_period(self, worker: Worker, room: str | None) -> Worker:
        """Point the open period and the worker at another room (or none)."""
        history = list(worker.history)
        index = next((i for i, p in enumerate(history) if p.is_open), None)
        if index is not None:
            history[index] = dataclasses.replace(history[index], room=room)
        return dataclasses.replace(worker, history=tuple(history), room=room)

    def close_stale_periods(self, worker: Worker, exit_reason: str) -> tuple[Worker, list[StayPeriod]]:
        """Close periods left open on an inactive worker.

        The exit date on record belongs to the period starting on the
        current entry date and closes it when valid. Any other open period,
        or one whose recorded exit is invalid, is closed on its own entry
        date and flagged anomalous.

        Args:
            worker: The (inactive) worker snapshot.
            exit_reason: Reason used when the period carries none.

        Returns:
            (updated worker, periods that had to be closed anomalously)
        """
        worker = self.normalize(worker)
        anomalies: list[StayPeriod] = []
        history = []

        for period in worker.history:
            if not period.is_open:
                history.append(period)
                continue

            recorded = None
            if period.entry_date == worker.current_entry_date:
                recorded = worker.current_exit_date
            if recorded is not None and recorded >= period.entry_date:
                closed = dataclasses.replace(
                    period,
                    exit_date=recorded,
                    exit_reason=period.exit_reason or worker.current_exit_reason or exit_reason,
                )
            else:
                closed = dataclasses.replace(
                    period,
                    exit_date=period.entry_date,
                    exit_reason=period.exit_reason or exit_reason,
                    anomalous=True,
                )
                anomalies.append(closed)
                _LOGGER.warning(
                    f"Worker {worker.id}: no exit date on record for the period "
                    f"starting {period.entry_date}; closed anomalously"
                )
            history.append(closed)

        history_tuple = _sorted(history)
        if history_tuple == worker.history:
            return worker, anomalies
        return dataclasses.replace(worker, history=history_tuple), anomalies

    def worked_days(self, worker: Worker, as_of: date) -> int:
        """Total days of residency across all periods.

        Open periods count up to as_of. Anomalous closures count as zero.
        """
        total = 0
        for period in worker.history:
            if period.anomalous:
                continue
            end = period.exit_date or as_of
            if end >= period.entry_date:
                total += (end - period.entry_date).days + 1
        return total

    def check_invariants(self, worker: Worker) -> list[str]:
        """List every history invariant the worker violates (empty = consistent)."""
        problems = []
        history = worker.history

        if list(history) != sorted(history, key=lambda p: p.entry_date):
            problems.append("history is not sorted by entry date")

        open_periods = [i for i, p in enumerate(history) if p.is_open]
        if len(open_periods) > 1:
            problems.append(f"{len(open_periods)} open periods")
        if open_periods and open_periods[-1] != len(history) - 1:
            problems.append("open period is not the last one")

        for period in history:
            if period.exit_date is not None and period.exit_date < period.entry_date:
                problems.append(f"period {period.entry_date} ends before it starts")

        for previous, following in zip(history, history[1:]):
            previous_end = previous.exit_date or previous.entry_date
            if following.entry_date < previous_end:
                problems.append(f"periods {previous.entry_date} and {following.entry_date} overlap")

        if worker.is_active:
            current = worker.open_period
            if current is None:
                problems.append("active worker without an open period")
            elif (current.farm_id, current.room, current.entry_date) != (
                worker.farm_id,
                worker.room,
                worker.current_entry_date,
            ):
                problems.append("open period does not match current assignment")

        return problems
