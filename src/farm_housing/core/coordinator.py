"""
LifecycleCoordinator - the public entry point of the residency engine.

Orchestrates the stay-period ledger, the occupancy reconciler and the conflict
resolver for worker registration, exit, reactivation, transfer, entry-date
edits, removal and the network repair pass. Every operation reads a snapshot,
computes the new state and commits the worker and room documents it touched
in one batch write. Notifications are published as events and delivered by
NotificationModule.
"""

import dataclasses
import logging
import uuid
from collections import Counter, defaultdict
from dataclasses import dataclass, field
from datetime import date
from typing import Callable, Dict, Iterable, List, Optional, Tuple, Union

from farm_housing.core.bus import Event, EventBus
from farm_housing.core.commands import (
    EditEntryDateCommand,
    EditRoomCommand,
    ReactivateCommand,
    RecordExitCommand,
    RegisterCommand,
    TransferCommand,
)
from farm_housing.core.config import EngineSettings
from farm_housing.core.errors import (
    AccessDeniedError,
    CapacityExceededError,
    ConflictBlockedError,
    DuplicateActiveError,
    GenderMismatchError,
    NotFoundError,
    WorkerStateError,
)
from farm_housing.core.models import (
    FARMS,
    ROOMS,
    WORKERS,
    Farm,
    Principal,
    Room,
    StayPeriod,
    Worker,
    WorkerStatus,
    name_key,
)
from farm_housing.core.retry import RetryPolicy
from farm_housing.core.store import DELETE, DocumentStore, RetryingDocumentStore, WriteOp
from farm_housing.modules.base import EngineModule
from farm_housing.modules.conflicts import (
    ConflictAction,
    ConflictCase,
    ConflictDecision,
    ConflictResolver,
)
from farm_housing.modules.ledger import StayPeriodLedger
from farm_housing.modules.notifications import (
    NotificationDispatcher,
    NotificationModule,
    NotificationTransport,
    StoreNotificationTransport,
)
from farm_housing.modules.occupancy import (
    DeltaOp,
    FarmCountChange,
    OccupancyModule,
    ReconciliationReport,
    load_rooms,
    load_workers,
)

logger = logging.getLogger(__name__)

RoomCache = Dict[Tuple[str, str], Optional[Room]]


@dataclass
class ImportResult:
    """
    Outcome of a bulk import.

    Attributes:
        created: IDs of the workers created, in input order
        skipped: National IDs that were not imported, mapped to the reason
        report: Repair pass run after the import
    """

    created: List[str] = field(default_factory=list)
    skipped: Dict[str, str] = field(default_factory=dict)
    report: Optional[ReconciliationReport] = None


def _new_id() -> str:
    return uuid.uuid4().hex


class LifecycleCoordinator:
    """
    Worker lifecycle operations over a document store.

    Every operation takes the caller's Principal. A non-superadmin may only act
    on its own farm; None stands for a trusted system caller (import jobs,
    scheduled repair).
    """

    def __init__(
        self,
        store: DocumentStore,
        bus: Optional[EventBus] = None,
        ledger: Optional[StayPeriodLedger] = None,
        resolver: Optional[ConflictResolver] = None,
        occupancy: Optional[OccupancyModule] = None,
        id_factory: Callable[[], str] = _new_id,
    ) -> None:
        """
        Initialize the coordinator and attach the occupancy module.

        Args:
            store: Document store client
            bus: Event bus (a private one is created if None)
            ledger: Stay-period ledger
            resolver: Conflict resolver
            occupancy: Occupancy module (attached here)
            id_factory: Produces IDs for new workers
        """
        self._store = store
        self._bus = bus or EventBus()
        self._ledger = ledger or StayPeriodLedger()
        self._resolver = resolver or ConflictResolver()
        self._occupancy = occupancy or OccupancyModule()
        self._reconciler = self._occupancy.reconciler
        self._id_factory = id_factory
        self._modules: Dict[str, EngineModule] = {}

        self.attach_module(self._occupancy)

    @classmethod
    def from_settings(
        cls,
        store: DocumentStore,
        settings: Optional[EngineSettings] = None,
        transport: Optional[NotificationTransport] = None,
        bus: Optional[EventBus] = None,
    ) -> "LifecycleCoordinator":
        """
        Build a fully wired coordinator.

        The store is wrapped with the configured retry policy. Notifications go
        to transport, or to a notifications collection in the store if None.
        """
        settings = settings or EngineSettings()
        store = RetryingDocumentStore(store, RetryPolicy.from_settings(settings, "store"))
        coordinator = cls(
            store,
            bus=bus,
            occupancy=OccupancyModule(auto_heal=settings.auto_repair_on_change),
        )
        dispatcher = NotificationDispatcher.from_settings(
            transport or StoreNotificationTransport(store), settings
        )
        coordinator.attach_module(NotificationModule(dispatcher))
        return coordinator

    @property
    def bus(self) -> EventBus:
        return self._bus

    @property
    def store(self) -> DocumentStore:
        return self._store

    @property
    def ledger(self) -> StayPeriodLedger:
        return self._ledger

    def attach_module(self, module: EngineModule) -> None:
        """Attach a module to this coordinator's bus and store."""
        if module.id in self._modules:
            raise ValueError(f"Module '{module.id}' is already attached")
        module.attach(self._bus, self._store)
        self._modules[module.id] = module
        logger.debug(f"Attached module '{module.id}'")

    def get_module(self, module_id: str) -> Optional[EngineModule]:
        return self._modules.get(module_id)

    def close(self) -> None:
        """Detach every module (stops change-feed subscriptions and delivery threads)."""
        for module in reversed(list(self._modules.values())):
            module.detach()
        self._modules.clear()

    # Queries

    def get_worker(self, worker_id: str) -> Worker:
        """
        Load one worker.

        Raises:
            NotFoundError: If no such worker exists
        """
        doc = self._store.get(WORKERS, worker_id)
        if doc is None:
            raise NotFoundError(f"Worker {worker_id} not found")
        return Worker.from_doc(doc)

    def worked_days(self, worker_id: str, as_of: Optional[date] = None) -> int:
        """Days of residency across every stay, counting open stays up to as_of (default today)."""
        return self._ledger.worked_days(self.get_worker(worker_id), as_of or date.today())

    def check(self, command: RegisterCommand, principal: Optional[Principal] = None) -> ConflictDecision:
        """
        Classify a registration attempt without changing anything.

        Returns:
            The resolver's decision, including same-name warnings
        """
        holders = load_workers(self._store.query_by_field(WORKERS, "national_id", command.national_id))
        same_name = load_workers(self._store.query_by_field(WORKERS, "name_key", name_key(command.name)))
        return self._resolver.resolve(
            command,
            holders,
            same_name,
            requested_by=principal.user_id if principal else None,
        )

    # Lifecycle operations

    def register(
        self, command: RegisterCommand, principal: Optional[Principal] = None
    ) -> Union[str, ConflictCase]:
        """
        Register a worker at a farm.

        Args:
            command: Validated registration
            principal: Caller

        Returns:
            The new worker's ID, or a ConflictCase that needs confirm()
            (the national ID belongs to an inactive worker)

        Raises:
            DuplicateActiveError: Already active at this farm
            ConflictBlockedError: Active at another farm; its admins are notified
            AccessDeniedError: The caller may not act on the farm
        """
        self._authorize(principal, command.farm_id)
        decision = self.check(command, principal)
        case = decision.case

        if case is None:
            return self._create(command)

        existing = case.existing

        if decision.action == ConflictAction.REJECT_DUPLICATE_LOCAL:
            raise DuplicateActiveError(
                f"{existing.name} ({existing.national_id}) is already active at this farm",
                case,
            )

        if decision.action == ConflictAction.BLOCK_AND_NOTIFY:
            self._emit("worker.conflict_blocked", existing.farm_id, existing.id, case.action_data())
            raise ConflictBlockedError(
                f"{existing.name} ({existing.national_id}) is active at farm {existing.farm_id}; "
                f"an exit must be recorded there first",
                case,
            )

        logger.info(
            f"Registration of {command.national_id} at {command.farm_id} "
            f"needs confirmation: {decision.action.value}"
        )
        return case

    def confirm(self, case: ConflictCase, principal: Optional[Principal] = None) -> Worker:
        """
        Carry out the reactivation or transfer a registration returned.

        Raises:
            WorkerStateError: If the case does not call for confirmation
        """
        if not case.requires_confirmation:
            raise WorkerStateError(f"Conflict action {case.action.value} cannot be confirmed")

        attempted = case.attempted
        fields = dict(
            worker_id=case.existing.id,
            farm_id=attempted.farm_id,
            entry_date=attempted.entry_date,
            room=attempted.room,
            sector=attempted.sector,
            phone=attempted.phone or None,
        )
        if case.action == ConflictAction.REACTIVATE:
            return self.reactivate(ReactivateCommand(**fields), principal)
        return self.transfer(TransferCommand(**fields), principal)

    def reactivate(self, command: ReactivateCommand, principal: Optional[Principal] = None) -> Worker:
        """
        Start a new stay period for an inactive worker at the same farm.

        Raises:
            NotFoundError: Unknown worker
            WorkerStateError: The worker's last farm is another farm
            DuplicateActiveError / ConflictBlockedError: The worker is active again
            OverlapError: The entry date falls inside an earlier period
        """
        self._authorize(principal, command.farm_id)
        worker = self.get_worker(command.worker_id)
        self._ensure_inactive(worker, command.farm_id)
        if worker.farm_id != command.farm_id:
            raise WorkerStateError(
                f"Worker {worker.id} last stayed at farm {worker.farm_id}; use transfer"
            )

        updated = self._start_new_period(worker, command)
        self._emit(
            "worker.reactivated",
            updated.farm_id,
            updated.id,
            {
                "worker_name": updated.name,
                "national_id": updated.national_id,
                "entry_date": command.entry_date.isoformat(),
                "return_count": updated.return_count,
            },
        )
        return updated

    def transfer(self, command: TransferCommand, principal: Optional[Principal] = None) -> Worker:
        """
        Move an inactive worker to another farm, keeping its ID.

        Any period still open at the previous farm is closed first.

        Raises:
            NotFoundError: Unknown worker
            WorkerStateError: The worker's last farm is the destination
            DuplicateActiveError / ConflictBlockedError: The worker is active again
            OverlapError: The entry date falls inside an earlier period
        """
        self._authorize(principal, command.farm_id)
        worker = self.get_worker(command.worker_id)
        self._ensure_inactive(worker, command.farm_id)
        if worker.farm_id == command.farm_id:
            raise WorkerStateError(
                f"Worker {worker.id} last stayed at farm {worker.farm_id}; use reactivate"
            )

        previous_farm = worker.farm_id
        updated = self._start_new_period(worker, command)
        self._emit(
            "worker.transferred",
            updated.farm_id,
            updated.id,
            {
                "worker_name": updated.name,
                "national_id": updated.national_id,
                "from_farm_id": previous_farm,
                "entry_date": command.entry_date.isoformat(),
                "return_count": updated.return_count,
            },
        )
        return updated

    def record_exit(self, command: RecordExitCommand, principal: Optional[Principal] = None) -> Worker:
        """
        Close the worker's current stay and free its room.

        Raises:
            NotFoundError: Unknown worker or no period to close
            WorkerStateError: The worker is not active
            InvalidCommandError: Exit date before entry date
        """
        worker = self.get_worker(command.worker_id)
        self._authorize(principal, worker.farm_id)
        if not worker.is_active:
            raise WorkerStateError(f"Worker {worker.id} is not active")

        updated = self._ledger.close_period(worker, command.exit_date, command.exit_reason)
        updated = dataclasses.replace(updated, status=WorkerStatus.INACTIVE)

        ops = [WriteOp(WORKERS, updated.id, updated.to_doc())]
        ops.extend(self._release_room(worker))
        self._store.batch_write(ops)

        logger.info(
            f"Worker {worker.id} left farm {worker.farm_id} on {command.exit_date} "
            f"({command.exit_reason})"
        )
        self._emit(
            "worker.exit_recorded",
            updated.farm_id,
            updated.id,
            {
                "worker_name": updated.name,
                "national_id": updated.national_id,
                "exit_date": command.exit_date.isoformat(),
                "exit_reason": command.exit_reason,
                "resolves_conflict_for": command.resolves_conflict_for,
            },
        )
        return updated

    def edit_entry_date(
        self, command: EditEntryDateCommand, principal: Optional[Principal] = None
    ) -> Worker:
        """
        Move the start of the active worker's open period.

        Raises:
            WorkerStateError: The worker is not active
            OverlapError: The new date falls inside an earlier period
        """
        worker = self.get_worker(command.worker_id)
        self._authorize(principal, worker.farm_id)
        if not worker.is_active:
            raise WorkerStateError(f"Worker {worker.id} is not active")

        old_entry_date = worker.current_entry_date
        updated = self._ledger.edit_open_period_start(worker, command.new_entry_date)
        self._store.put(WORKERS, updated.id, updated.to_doc())

        self._emit(
            "worker.entry_date_changed",
            updated.farm_id,
            updated.id,
            {
                "worker_name": updated.name,
                "national_id": updated.national_id,
                "old_entry_date": old_entry_date.isoformat(),
                "new_entry_date": command.new_entry_date.isoformat(),
                "changed_by": principal.user_id if principal else None,
            },
        )
        return updated

    def remove(self, worker_id: str, principal: Optional[Principal] = None) -> None:
        """
        Delete a worker record, free its room and recount its farm.

        Raises:
            NotFoundError: Unknown worker
        """
        worker = self.get_worker(worker_id)
        self._authorize(principal, worker.farm_id)

        ops: List[WriteOp] = []
        if worker.is_active:
            ops.extend(self._release_room(worker))
        ops.append(WriteOp(WORKERS, worker.id, op=DELETE))

        farm_doc = self._store.get(FARMS, worker.farm_id)
        if farm_doc is not None:
            farm = Farm.from_doc(farm_doc)
            remaining = [
                d
                for d in self._store.query_by_field(WORKERS, "farm_id", worker.farm_id)
                if d.get("id") != worker.id and d.get("status") == WorkerStatus.ACTIVE.value
            ]
            if farm.worker_count != len(remaining):
                farm = dataclasses.replace(farm, worker_count=len(remaining))
                ops.append(WriteOp(FARMS, farm.id, farm.to_doc()))

        self._store.batch_write(ops)
        logger.info(f"Removed worker {worker.id} ({worker.national_id}) from farm {worker.farm_id}")
        self._emit(
            "worker.removed",
            worker.farm_id,
            worker.id,
            {"worker_name": worker.name, "national_id": worker.national_id},
        )

    def repair(self) -> ReconciliationReport:
        """
        Recompute room occupancy and farm counters from the workers.

        Idempotent; safe to run on a timer or alongside live traffic.

        Returns:
            Report of the rooms and farms corrected and the national IDs held
            by more than one worker record
        """
        workers = load_workers(self._store.scan(WORKERS))
        report = self._occupancy.reconcile_network(workers)

        active = Counter(w.farm_id for w in workers if w.is_active)
        farm_ops = []
        for doc in self._store.scan(FARMS):
            farm = Farm.from_doc(doc)
            count = active.get(farm.id, 0)
            if farm.worker_count != count:
                report.farm_counts.append(FarmCountChange(farm.id, farm.worker_count, count))
                farm = dataclasses.replace(farm, worker_count=count)
                farm_ops.append(WriteOp(FARMS, farm.id, farm.to_doc()))
        self._store.batch_write(farm_ops)

        holders: Dict[str, List[str]] = defaultdict(list)
        for worker in workers:
            holders[worker.national_id.upper()].append(worker.id)
        for national_id, ids in holders.items():
            if len(ids) > 1:
                report.duplicate_national_ids[national_id] = sorted(ids)
                logger.warning(f"National ID {national_id} is held by {len(ids)} workers: {sorted(ids)}")

        logger.info(
            f"Repair: {report.rooms_updated}/{report.rooms_checked} rooms and "
            f"{len(report.farm_counts)} farm counter(s) corrected"
        )
        return report

    def import_workers(
        self, commands: Iterable[RegisterCommand], principal: Optional[Principal] = None
    ) -> ImportResult:
        """
        Create many new workers in one batch, then run the repair pass.

        Rows whose national ID is already on record (or repeated in the import)
        are skipped, never merged.
        """
        result = ImportResult()
        rooms: RoomCache = {}
        workers: List[Worker] = []
        seen = set()

        for command in commands:
            self._authorize(principal, command.farm_id)
            national_id = command.national_id
            if national_id in seen:
                result.skipped[national_id] = "repeated in import"
                continue
            seen.add(national_id)

            holders = load_workers(self._store.query_by_field(WORKERS, "national_id", national_id))
            if holders:
                holder = holders[0]
                result.skipped[national_id] = (
                    f"already registered ({holder.status.value} at {holder.farm_id})"
                )
                continue

            worker, _ = self._assign_room(self._new_worker(command), rooms)
            workers.append(worker)
            result.created.append(worker.id)

        ops = [WriteOp(WORKERS, w.id, w.to_doc()) for w in workers]
        ops.extend(WriteOp(ROOMS, r.id, r.to_doc()) for r in rooms.values() if r is not None)
        self._store.batch_write(ops)

        if result.skipped:
            logger.warning(f"Import skipped {len(result.skipped)} row(s): {sorted(result.skipped)}")
        logger.info(f"Imported {len(result.created)} worker(s)")

        result.report = self.repair()
        return result

    def edit_room(self, command: EditRoomCommand, principal: Optional[Principal] = None) -> Room:
        """
        Change a room's capacity or gender category and re-derive its occupancy.

        Raises:
            NotFoundError: Unknown room
            CapacityExceededError: Capacity below the current occupant count
            GenderMismatchError: Occupants do not match the new category
        """
        doc = self._store.get(ROOMS, command.room_id)
        if doc is None:
            raise NotFoundError(f"Room {command.room_id} not found")
        room = Room.from_doc(doc)
        self._authorize(principal, room.farm_id)

        workers = load_workers(self._store.query_by_field(WORKERS, "farm_id", room.farm_id))
        current = self._reconciler.true_occupants(room, workers)

        edited = dataclasses.replace(
            room,
            capacity=command.capacity if command.capacity is not None else room.capacity,
            gender_category=command.gender_category or room.gender_category,
        )
        if edited.gender_category != room.gender_category and current:
            raise GenderMismatchError(
                f"Room {room.number} has {len(current)} {room.gender_category.value} occupant(s)"
            )
        if len(current) > edited.capacity:
            raise CapacityExceededError(
                f"Room {room.number} has {len(current)} occupants; capacity {edited.capacity} is too low"
            )

        edited, _ = self._reconciler.reconcile_room(edited, workers)
        self._store.put(ROOMS, edited.id, edited.to_doc())
        logger.info(
            f"Room {edited.number}@{edited.farm_id}: capacity {edited.capacity}, "
            f"{edited.gender_category.value}"
        )
        return edited

    # Internals

    def _authorize(self, principal: Optional[Principal], farm_id: str) -> None:
        if principal is None or principal.is_superadmin:
            return
        if principal.farm_id != farm_id:
            raise AccessDeniedError(
                f"Principal {principal.user_id} may not act on farm {farm_id}"
            )

    def _ensure_inactive(self, worker: Worker, farm_id: str) -> None:
        if not worker.is_active:
            return
        if worker.farm_id == farm_id:
            raise DuplicateActiveError(f"Worker {worker.id} is already active at this farm")
        raise ConflictBlockedError(f"Worker {worker.id} is active at farm {worker.farm_id}")

    def _new_worker(self, command: RegisterCommand) -> Worker:
        period = StayPeriod(
            entry_date=command.entry_date,
            farm_id=command.farm_id,
            room=command.room,
            sector=command.sector,
        )
        return Worker(
            id=self._id_factory(),
            national_id=command.national_id,
            name=command.name,
            gender=command.gender,
            farm_id=command.farm_id,
            current_entry_date=command.entry_date,
            room=command.room,
            sector=command.sector,
            history=(period,),
            phone=command.phone,
            year_of_birth=command.year_of_birth,
        )

    def _create(self, command: RegisterCommand) -> str:
        worker, room_ops = self._assign_room(self._new_worker(command))
        self._store.batch_write([WriteOp(WORKERS, worker.id, worker.to_doc()), *room_ops])

        logger.info(f"Registered worker {worker.id} ({worker.national_id}) at farm {worker.farm_id}")
        self._emit(
            "worker.registered",
            worker.farm_id,
            worker.id,
            {
                "worker_name": worker.name,
                "national_id": worker.national_id,
                "entry_date": worker.current_entry_date.isoformat(),
                "room": worker.room,
            },
        )
        return worker.id

    def _start_new_period(
        self, worker: Worker, command: Union[ReactivateCommand, TransferCommand]
    ) -> Worker:
        """Close stale periods, open the new one, activate and place the worker."""
        updated, anomalies = self._ledger.close_stale_periods(worker, exit_reason="none")
        if anomalies:
            logger.warning(
                f"Worker {worker.id}: {len(anomalies)} open period(s) closed without an exit date"
            )

        updated = self._ledger.open_period(
            updated, command.farm_id, command.room, command.sector, command.entry_date
        )
        updated = dataclasses.replace(
            updated,
            status=WorkerStatus.ACTIVE,
            return_count=worker.return_count + 1,
            phone=command.phone if command.phone is not None else worker.phone,
        )
        updated, room_ops = self._assign_room(updated)
        self._store.batch_write([WriteOp(WORKERS, updated.id, updated.to_doc()), *room_ops])

        logger.info(
            f"Worker {updated.id} active at farm {updated.farm_id} from {command.entry_date} "
            f"(return #{updated.return_count})"
        )
        return updated

    def _find_room(self, farm_id: str, number: str) -> Optional[Room]:
        for room in load_rooms(self._store.query_by_field(ROOMS, "farm_id", farm_id)):
            if room.number == number:
                return room
        return None

    def _assign_room(
        self, worker: Worker, cache: Optional[RoomCache] = None
    ) -> Tuple[Worker, List[WriteOp]]:
        """
        Add the worker to its chosen room.

        A missing room, a gender mismatch or a full room clears the worker's
        room instead of failing. With a cache, rooms are looked up and updated
        there and no write ops are returned.
        """
        if worker.room is None:
            return worker, []

        key = (worker.farm_id, worker.room)
        if cache is not None and key in cache:
            room = cache[key]
        else:
            room = self._find_room(worker.farm_id, worker.room)
            if cache is not None:
                cache[key] = room

        if room is None:
            logger.warning(
                f"Room {worker.room} not found at farm {worker.farm_id}; "
                f"worker {worker.id} left unassigned"
            )
            return self._ledger.reassign_open_period(worker, None), []

        try:
            updated = self._reconciler.apply_delta(room, worker, DeltaOp.ADD)
        except (GenderMismatchError, CapacityExceededError) as e:
            logger.warning(f"Room assignment dropped for worker {worker.id}: {e}")
            return self._ledger.reassign_open_period(worker, None), []

        if cache is not None:
            cache[key] = updated
            return worker, []
        if updated is room:
            return worker, []
        return worker, [WriteOp(ROOMS, updated.id, updated.to_doc())]

    def _release_room(self, worker: Worker) -> List[WriteOp]:
        if worker.room is None:
            return []
        room = self._find_room(worker.farm_id, worker.room)
        if room is None:
            return []
        updated = self._reconciler.apply_delta(room, worker, DeltaOp.REMOVE)
        if updated is room:
            return []
        return [WriteOp(ROOMS, updated.id, updated.to_doc())]

    def _emit(self, event_type: str, farm_id: Optional[str], worker_id: Optional[str], payload: dict) -> None:
        self._bus.publish(
            Event(
                type=event_type,
                source="lifecycle",
                farm_id=farm_id,
                worker_id=worker_id,
                payload=payload,
            )
        )

