"""Container and parent lifecycle: creation, capacity edits, cascade deletes."""

from __future__ import annotations

from typing import Optional

from backend.domain.constraints import validate_capacity
from backend.domain.models import (
    CapacityEditResult,
    Container,
    DeletionResult,
    Parent,
    ResourceCategory,
    WritePhase,
)
from backend.repository.data_repository import DataRepository, PersistenceError
from backend.services.ledger_service import AssignmentLedger, ContainerNotFoundError
from backend.utils.config import Settings, get_settings
from backend.utils.logger import get_logger


logger = get_logger(__name__)


class ResourceValidationError(Exception):
    """Raised when container or parent inputs are invalid."""


class ResourceNotFoundError(Exception):
    """Raised when a referenced parent or container does not exist."""


class ResourcePoolService:
    """Creates and removes hotels/routes/events and their containers.

    The store has no cascading foreign keys, so deletions drain occupants
    through the ledger before any record is removed.
    """

    def __init__(
        self,
        repository: Optional[DataRepository] = None,
        ledger: Optional[AssignmentLedger] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or DataRepository(self._settings)
        self._ledger = ledger or AssignmentLedger(
            repository=self._repository,
            settings=self._settings,
        )

    def default_capacity(self, category: ResourceCategory) -> int:
        return {
            ResourceCategory.ROOM: self._settings.default_room_capacity,
            ResourceCategory.VEHICLE: self._settings.default_vehicle_capacity,
            ResourceCategory.TABLE: self._settings.default_table_capacity,
        }[category]

    def create_parent(self, category: ResourceCategory | str, name: str) -> Parent:
        resolved = _resolve_category(category)
        if not name or not name.strip():
            raise ResourceValidationError("name must be non-empty")
        parent = self._repository.create_parent(resolved, name.strip())
        logger.info("Created %s %s (%s)", parent.kind, parent.name, parent.parent_id)
        return parent

    def list_parents(self, category: ResourceCategory | str | None = None) -> list[Parent]:
        resolved = _resolve_category(category) if category is not None else None
        return self._repository.list_parents(resolved)

    def create_container(
        self,
        category: ResourceCategory | str,
        parent_id: str,
        label: str,
        container_type: Optional[str] = None,
        capacity: Optional[int] = None,
    ) -> Container:
        resolved = _resolve_category(category)
        if not label or not label.strip():
            raise ResourceValidationError("label must be non-empty")
        parent = self._repository.get_parent(parent_id)
        if parent is None:
            raise ResourceNotFoundError(f"Parent {parent_id} not found")
        if parent.category is not resolved:
            raise ResourceValidationError(
                f"{parent.kind} {parent.name} cannot hold {resolved.value} containers"
            )
        effective = self.default_capacity(resolved) if capacity is None else capacity
        try:
            validate_capacity(effective)
        except ValueError as exc:
            raise ResourceValidationError(str(exc)) from exc

        container = self._repository.create_container(
            category=resolved,
            parent_id=parent_id,
            label=label.strip(),
            container_type=container_type or _default_type(resolved),
            capacity=effective,
        )
        self._ledger.track(container)
        logger.info(
            "Created %s %s with capacity %s under %s",
            resolved.value,
            container.label,
            effective,
            parent.name,
        )
        return container

    def edit_capacity(self, container_id: str, capacity: int) -> CapacityEditResult:
        try:
            return self._ledger.edit_capacity(container_id, capacity)
        except ValueError as exc:
            raise ResourceValidationError(str(exc)) from exc
        except ContainerNotFoundError as exc:
            raise ResourceNotFoundError(str(exc)) from exc

    def delete_container(self, container_id: str) -> DeletionResult:
        """Drain every occupant through the ledger, then drop the record.

        The record is kept if any occupant could not be released in the
        store, so no guest is left pointing at a deleted container.
        """
        container = self._ledger.get_container(container_id)
        if container is None:
            raise ResourceNotFoundError(f"Container {container_id} not found")

        unassigned: list[str] = []
        for guest_id in container.assigned_guest_ids:
            result = self._ledger.unassign(guest_id, container_id)
            if result.phase is not WritePhase.APPLIED:
                logger.error(
                    "Keeping %s %s: guest %s was not released (%s)",
                    container.category.value,
                    container.label,
                    guest_id,
                    result.message,
                )
                raise PersistenceError(
                    f"Could not release guest {guest_id} from {container.label}: "
                    f"{result.message}"
                )
            if result.changed:
                unassigned.append(guest_id)

        self._repository.delete_container(container_id)
        self._ledger.forget(container_id)
        logger.info(
            "Deleted %s %s after draining %s guests",
            container.category.value,
            container.label,
            len(unassigned),
        )
        return DeletionResult(
            deleted_container_ids=[container_id],
            unassigned_guest_ids=unassigned,
        )

    def delete_parent(self, parent_id: str) -> DeletionResult:
        parent = self._repository.get_parent(parent_id)
        if parent is None:
            raise ResourceNotFoundError(f"Parent {parent_id} not found")

        deleted: list[str] = []
        unassigned: list[str] = []
        for container in self._repository.list_containers(parent_id=parent_id):
            if self._ledger.get_container(container.container_id) is None:
                self._ledger.reload()
            result = self.delete_container(container.container_id)
            deleted.extend(result.deleted_container_ids)
            unassigned.extend(result.unassigned_guest_ids)

        self._repository.delete_parent(parent_id)
        logger.info(
            "Deleted %s %s with %s containers", parent.kind, parent.name, len(deleted)
        )
        return DeletionResult(
            deleted_container_ids=deleted,
            unassigned_guest_ids=unassigned,
            deleted_parent_id=parent_id,
        )


def _resolve_category(category: ResourceCategory | str) -> ResourceCategory:
    try:
        return ResourceCategory(category)
    except ValueError as exc:
        raise ResourceValidationError(f"Unknown resource category: {category}") from exc


def _default_type(category: ResourceCategory) -> str:
    return {
        ResourceCategory.ROOM: "standard",
        ResourceCategory.VEHICLE: "shuttle",
        ResourceCategory.TABLE: "round",
    }[category]
