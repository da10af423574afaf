"""Assignment ledger: containers, their occupants and the inverse lookup.

The ledger keeps an in-memory copy of every container and seat record and
writes through to the repository on each mutation. The cache is mutated
first; the store write follows without a lock or version check, so a failed
write leaves the cache ahead of the store until the next `reload()`. With
`strict_remote_writes` enabled, completed store writes are compensated and
the cache is restored instead.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Callable, Iterable, Optional

from backend.domain.constraints import can_assign, capacity_message, validate_capacity
from backend.domain.models import (
    AssignmentError,
    AssignmentResult,
    CapacityEditResult,
    Container,
    ResourceCategory,
    TableAssignment,
    WritePhase,
)
from backend.repository.data_repository import (
    DataRepository,
    PersistenceError,
    new_id,
    utc_now,
)
from backend.services.directory_service import GuestDirectory
from backend.utils.config import Settings, get_settings
from backend.utils.logger import get_logger


logger = get_logger(__name__)


class ContainerNotFoundError(LookupError):
    """Raised when an operation that cannot be a no-op targets a missing container."""


@dataclass(frozen=True)
class StoreWrite:
    """One remote write plus the write that reverses it."""

    description: str
    apply: Callable[[], bool]
    revert: Callable[[], bool]


@dataclass(frozen=True)
class _Snapshot:
    containers: dict[str, Container]
    table_assignments: dict[str, TableAssignment]


class AssignmentLedger:
    """Maintains the guest <-> container mapping for all resource categories."""

    def __init__(
        self,
        repository: Optional[DataRepository] = None,
        directory: Optional[GuestDirectory] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or DataRepository(self._settings)
        self._directory = directory or GuestDirectory(
            repository=self._repository,
            settings=self._settings,
        )
        self._containers: dict[str, Container] = {}
        self._table_assignments: dict[str, TableAssignment] = {}
        self._loaded = False

    @property
    def strict(self) -> bool:
        return self._settings.strict_remote_writes

    # Cache lifecycle -------------------------------------------------------

    def reload(self) -> None:
        """Replace the cache with the store's current state."""
        containers = {
            container.container_id: container
            for container in self._repository.list_containers()
        }
        table_assignments = {
            record.assignment_id: record
            for record in self._repository.list_table_assignments()
        }
        seated: dict[str, list[str]] = {}
        for record in table_assignments.values():
            seated.setdefault(record.table_id, []).append(record.guest_id)
        for container_id, container in containers.items():
            if container.category is ResourceCategory.TABLE:
                containers[container_id] = replace(
                    container,
                    assigned_guest_ids=tuple(seated.get(container_id, [])),
                )
        self._containers = containers
        self._table_assignments = table_assignments
        self._loaded = True
        logger.info(
            "Ledger loaded %s containers and %s seat records",
            len(containers),
            len(table_assignments),
        )

    def _ensure_loaded(self) -> None:
        if not self._loaded:
            self.reload()

    def track(self, container: Container) -> None:
        """Register a container created elsewhere (always starts empty)."""
        self._ensure_loaded()
        self._containers[container.container_id] = replace(container, assigned_guest_ids=())

    def forget(self, container_id: str) -> None:
        self._containers.pop(container_id, None)

    # Reads -----------------------------------------------------------------

    def get_container(self, container_id: str) -> Optional[Container]:
        self._ensure_loaded()
        return self._containers.get(container_id)

    def containers(
        self,
        category: Optional[ResourceCategory] = None,
        parent_id: Optional[str] = None,
    ) -> list[Container]:
        self._ensure_loaded()
        return [
            container
            for container in self._containers.values()
            if (category is None or container.category is category)
            and (parent_id is None or container.parent_id == parent_id)
        ]

    def table_assignments(self, table_id: Optional[str] = None) -> list[TableAssignment]:
        self._ensure_loaded()
        return [
            record
            for record in self._table_assignments.values()
            if table_id is None or record.table_id == table_id
        ]

    def container_for(
        self,
        guest_id: str,
        category: ResourceCategory,
        parent_id: Optional[str] = None,
    ) -> Optional[Container]:
        """Inverse lookup: the container holding `guest_id` in a scope.

        Rooms and vehicles are wedding-wide; tables are scoped per event, so
        `parent_id` is required to get a single answer for that category.
        """
        for container in self.containers(category=category, parent_id=parent_id):
            if container.holds(guest_id):
                return container
        return None

    def can_assign(self, container_id: str) -> bool:
        container = self.get_container(container_id)
        if container is None:
            return False
        return can_assign(container, self._settings.fallback_capacity)

    # Mutations -------------------------------------------------------------

    def assign(
        self,
        guest_id: str,
        container_id: str,
        assigned_by_user_id: Optional[str] = None,
        seat_number: Optional[int] = None,
    ) -> AssignmentResult:
        container = self.get_container(container_id)
        if container is None:
            return self._rejected(
                guest_id, container_id, AssignmentError.NOT_FOUND,
                f"Container {container_id} not found",
            )
        try:
            guest = self._directory.get(guest_id)
        except PersistenceError as exc:
            return self._read_failed(guest_id, container_id, exc)
        if guest is None:
            return self._rejected(
                guest_id, container_id, AssignmentError.NOT_FOUND,
                f"Guest {guest_id} not found",
            )
        if container.holds(guest_id):
            logger.debug("Guest %s already in %s", guest_id, container_id)
            return AssignmentResult(
                phase=WritePhase.APPLIED,
                guest_id=guest_id,
                container_id=container_id,
            )
        if not can_assign(container, self._settings.fallback_capacity):
            message = capacity_message(container, self._settings.fallback_capacity)
            logger.warning("Assignment rejected: %s", message)
            return self._rejected(
                guest_id, container_id, AssignmentError.CAPACITY_EXCEEDED, message,
            )

        snapshot = self._snapshot()
        writes: list[StoreWrite] = []
        scope = container.parent_id if container.category is ResourceCategory.TABLE else None
        prior = self.container_for(guest_id, container.category, parent_id=scope)
        if prior is not None:
            writes.extend(self._remove_locally(guest_id, prior, clear_backref=False))
        writes.extend(
            self._add_locally(
                guest_id,
                self._containers[container_id],
                assigned_by_user_id or self._settings.default_assigned_by_user_id,
                seat_number,
            )
        )
        return self._commit(
            snapshot,
            writes,
            guest_id,
            container_id,
            f"Assigned guest {guest_id} to {container.category.value} {container.label}",
        )

    def unassign(self, guest_id: str, container_id: str) -> AssignmentResult:
        container = self.get_container(container_id)
        if container is None or not container.holds(guest_id):
            logger.debug("Unassign no-op for guest %s in %s", guest_id, container_id)
            return AssignmentResult(
                phase=WritePhase.APPLIED,
                guest_id=guest_id,
                container_id=container_id,
            )
        snapshot = self._snapshot()
        try:
            writes = self._remove_locally(guest_id, container, clear_backref=True)
        except PersistenceError as exc:
            self._restore(snapshot)
            return self._read_failed(guest_id, container_id, exc)
        return self._commit(
            snapshot,
            writes,
            guest_id,
            container_id,
            f"Unassigned guest {guest_id} from {container.category.value} {container.label}",
        )

    def reassign(
        self,
        guest_id: str,
        from_container_id: str,
        to_container_id: str,
        assigned_by_user_id: Optional[str] = None,
    ) -> AssignmentResult:
        """Unassign first, then assign.

        A full destination leaves the guest without any container; callers
        see the destination's `CapacityExceeded` result.
        """
        removal = self.unassign(guest_id, from_container_id)
        if removal.phase is WritePhase.REJECTED:
            return removal
        result = self.assign(guest_id, to_container_id, assigned_by_user_id)
        if result.phase is WritePhase.REJECTED and removal.changed:
            logger.warning(
                "Guest %s left unassigned after failed move %s -> %s",
                guest_id,
                from_container_id,
                to_container_id,
            )
        if removal.phase is WritePhase.LOCAL_ONLY and result.phase is WritePhase.APPLIED:
            return replace(result, phase=WritePhase.LOCAL_ONLY, message=removal.message)
        return result

    def bulk_assign(
        self,
        guest_ids: Iterable[str],
        container_id: str,
        assigned_by_user_id: Optional[str] = None,
    ) -> list[AssignmentResult]:
        return [
            self.assign(guest_id, container_id, assigned_by_user_id)
            for guest_id in guest_ids
        ]

    def edit_capacity(self, container_id: str, capacity: int) -> CapacityEditResult:
        """Change declared capacity without evicting anyone."""
        validate_capacity(capacity)
        container = self.get_container(container_id)
        if container is None:
            raise ContainerNotFoundError(f"Container {container_id} not found")
        snapshot = self._snapshot()
        now = utc_now()
        updated = replace(container, capacity=capacity, updated_at=now)
        self._containers[container_id] = updated
        write = StoreWrite(
            description=f"capacity of {container_id}",
            apply=lambda: self._repository.update_container(
                container_id, {"capacity": capacity, "updated_at": now}
            ),
            revert=lambda: self._repository.update_container(
                container_id,
                {"capacity": container.capacity, "updated_at": container.updated_at},
            ),
        )
        phase, failure = self._persist(snapshot, [write])

        warning: Optional[AssignmentError] = None
        message = ""
        if phase is WritePhase.REJECTED:
            warning = AssignmentError.REMOTE_WRITE_FAILED
            message = failure
        elif updated.occupancy > capacity:
            warning = AssignmentError.OVER_CAPACITY_AFTER_EDIT
            message = (
                f"{container.label} now holds {updated.occupancy} guests "
                f"but capacity is {capacity}"
            )
            logger.warning("Capacity edit left container over capacity: %s", message)
        elif phase is WritePhase.LOCAL_ONLY:
            warning = AssignmentError.REMOTE_WRITE_FAILED
            message = failure
        final = self._containers.get(container_id, container)
        return CapacityEditResult(
            phase=phase,
            container_id=container_id,
            previous_capacity=container.capacity,
            capacity=final.capacity,
            occupancy=final.occupancy,
            warning=warning,
            message=message,
        )

    # Internals -------------------------------------------------------------

    def _add_locally(
        self,
        guest_id: str,
        container: Container,
        assigned_by_user_id: str,
        seat_number: Optional[int],
    ) -> list[StoreWrite]:
        now = utc_now()
        updated = replace(
            container,
            assigned_guest_ids=container.assigned_guest_ids + (guest_id,),
            updated_at=now,
        )
        self._containers[container.container_id] = updated

        if container.category is ResourceCategory.TABLE:
            record = TableAssignment(
                assignment_id=new_id(),
                guest_id=guest_id,
                table_id=container.container_id,
                assigned_at=now,
                assigned_by_user_id=assigned_by_user_id,
                seat_number=seat_number,
            )
            self._table_assignments[record.assignment_id] = record
            return [
                self._seat_created(record),
                self._touch(container, now),
            ]
        return [
            self._container_write(container, updated),
            StoreWrite(
                description=f"backref of guest {guest_id}",
                apply=lambda: self._directory.update_backref(
                    guest_id, container.category, container.container_id, container.parent_id
                ),
                revert=lambda: self._directory.update_backref(guest_id, container.category, None),
            ),
        ]

    def _remove_locally(
        self,
        guest_id: str,
        container: Container,
        clear_backref: bool,
    ) -> list[StoreWrite]:
        # The backref read can fail; it must happen before the cache changes.
        owns_backref = False
        if clear_backref and container.category is not ResourceCategory.TABLE:
            guest = self._directory.get(guest_id)
            owns_backref = (
                guest is not None
                and guest.backref(container.category) == container.container_id
            )

        now = utc_now()
        updated = replace(
            container,
            assigned_guest_ids=tuple(
                member for member in container.assigned_guest_ids if member != guest_id
            ),
            updated_at=now,
        )
        self._containers[container.container_id] = updated

        if container.category is ResourceCategory.TABLE:
            writes: list[StoreWrite] = []
            for record in list(self._table_assignments.values()):
                if record.table_id == container.container_id and record.guest_id == guest_id:
                    del self._table_assignments[record.assignment_id]
                    writes.append(self._seat_deleted(record))
            writes.append(self._touch(container, now))
            return writes

        writes = [self._container_write(container, updated)]
        if owns_backref:
            writes.append(
                StoreWrite(
                    description=f"backref of guest {guest_id}",
                    apply=lambda: self._directory.update_backref(
                        guest_id, container.category, None
                    ),
                    revert=lambda: self._directory.update_backref(
                        guest_id,
                        container.category,
                        container.container_id,
                        container.parent_id,
                    ),
                )
            )
        return writes

    def _container_write(self, before: Container, after: Container) -> StoreWrite:
        return StoreWrite(
            description=f"occupants of {before.container_id}",
            apply=lambda: self._repository.update_container(
                after.container_id,
                {"assigned_guest_ids": after.assigned_guest_ids, "updated_at": after.updated_at},
            ),
            revert=lambda: self._repository.update_container(
                before.container_id,
                {"assigned_guest_ids": before.assigned_guest_ids, "updated_at": before.updated_at},
            ),
        )

    def _touch(self, container: Container, now: str) -> StoreWrite:
        return StoreWrite(
            description=f"timestamp of {container.container_id}",
            apply=lambda: self._repository.update_container(
                container.container_id, {"updated_at": now}
            ),
            revert=lambda: self._repository.update_container(
                container.container_id, {"updated_at": container.updated_at}
            ),
        )

    def _seat_created(self, record: TableAssignment) -> StoreWrite:
        def apply() -> bool:
            self._repository.create_table_assignment(record)
            return True

        return StoreWrite(
            description=f"seat record {record.assignment_id}",
            apply=apply,
            revert=lambda: self._repository.delete_table_assignment(record.assignment_id),
        )

    def _seat_deleted(self, record: TableAssignment) -> StoreWrite:
        def revert() -> bool:
            self._repository.create_table_assignment(record)
            return True

        return StoreWrite(
            description=f"seat record {record.assignment_id}",
            apply=lambda: self._repository.delete_table_assignment(record.assignment_id),
            revert=revert,
        )

    def _snapshot(self) -> _Snapshot:
        return _Snapshot(
            containers=dict(self._containers),
            table_assignments=dict(self._table_assignments),
        )

    def _restore(self, snapshot: _Snapshot) -> None:
        self._containers = snapshot.containers
        self._table_assignments = snapshot.table_assignments

    def _persist(
        self,
        snapshot: _Snapshot,
        writes: list[StoreWrite],
    ) -> tuple[WritePhase, str]:
        completed: list[StoreWrite] = []
        for write in writes:
            try:
                if not write.apply():
                    raise PersistenceError(f"Store has no row for {write.description}")
            except PersistenceError as exc:
                message = f"Remote write failed for {write.description}: {exc}"
                logger.error(message)
                if not self.strict:
                    return WritePhase.LOCAL_ONLY, message
                self._compensate(completed)
                self._restore(snapshot)
                return WritePhase.REJECTED, message
            completed.append(write)
        return WritePhase.APPLIED, ""

    def _compensate(self, completed: list[StoreWrite]) -> None:
        for write in reversed(completed):
            try:
                write.revert()
            except PersistenceError:
                logger.exception("Compensation failed for %s", write.description)

    def _commit(
        self,
        snapshot: _Snapshot,
        writes: list[StoreWrite],
        guest_id: str,
        container_id: str,
        success_message: str,
    ) -> AssignmentResult:
        phase, failure = self._persist(snapshot, writes)
        if phase is WritePhase.APPLIED:
            logger.info(success_message)
            return AssignmentResult(
                phase=phase,
                guest_id=guest_id,
                container_id=container_id,
                changed=True,
                message=success_message,
            )
        return AssignmentResult(
            phase=phase,
            guest_id=guest_id,
            container_id=container_id,
            changed=phase is WritePhase.LOCAL_ONLY,
            error=AssignmentError.REMOTE_WRITE_FAILED,
            message=failure,
        )

    @staticmethod
    def _rejected(
        guest_id: str,
        container_id: str,
        error: AssignmentError,
        message: str,
    ) -> AssignmentResult:
        return AssignmentResult(
            phase=WritePhase.REJECTED,
            guest_id=guest_id,
            container_id=container_id,
            error=error,
            message=message,
        )

    def _read_failed(
        self,
        guest_id: str,
        container_id: str,
        exc: PersistenceError,
    ) -> AssignmentResult:
        message = f"Guest lookup failed for {guest_id}: {exc}"
        logger.error(message)
        return self._rejected(
            guest_id, container_id, AssignmentError.REMOTE_WRITE_FAILED, message,
        )
