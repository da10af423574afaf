"""Derived read models: unassigned guests, occupancy stats, container filters."""

from __future__ import annotations

from typing import Iterable, Optional, Sequence

from backend.domain.constraints import (
    EligibilityPredicate,
    effective_capacity,
    is_assignable,
    is_confirmed,
)
from backend.domain.models import Container, Guest, OccupancyStats, ResourceCategory
from backend.services.directory_service import GuestDirectory
from backend.services.ledger_service import AssignmentLedger
from backend.utils.config import Settings, get_settings


CONTAINER_FILTER_MODES = ("all", "available", "occupied")


class ViewValidationError(Exception):
    """Raised when a view is requested with unusable parameters."""


def compute_unassigned(
    all_guests: Sequence[Guest],
    all_containers: Iterable[Container],
    eligibility_predicate: EligibilityPredicate,
) -> list[Guest]:
    """Eligible guests absent from every container, in input order."""
    assigned = {
        guest_id
        for container in all_containers
        for guest_id in container.assigned_guest_ids
    }
    return [
        guest
        for guest in all_guests
        if eligibility_predicate(guest) and guest.guest_id not in assigned
    ]


def compute_occupancy_stats(
    containers: Sequence[Container],
    fallback_capacity: int,
) -> OccupancyStats:
    occupied = sum(1 for container in containers if container.occupancy > 0)
    return OccupancyStats(
        total_containers=len(containers),
        occupied_containers=occupied,
        available_containers=len(containers) - occupied,
        total_capacity=sum(
            effective_capacity(container, fallback_capacity) for container in containers
        ),
        assigned_guests=sum(container.occupancy for container in containers),
    )


class OccupancyViewService:
    """Recomputes every view from the ledger on each call; nothing is cached."""

    def __init__(
        self,
        ledger: AssignmentLedger,
        directory: GuestDirectory,
        settings: Optional[Settings] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._ledger = ledger
        self._directory = directory

    def _uniqueness_scope(
        self,
        category: ResourceCategory,
        parent_id: Optional[str],
    ) -> list[Container]:
        """Containers a guest can hold at most one of.

        Rooms and vehicles are wedding-wide, so `parent_id` is ignored there;
        a seat only counts for the event it belongs to.
        """
        if category is not ResourceCategory.TABLE:
            return self._ledger.containers(category=category)
        if parent_id is None:
            raise ViewValidationError("parent_id (event) is required for table views")
        return self._ledger.containers(category=category, parent_id=parent_id)

    def unassigned(
        self,
        category: ResourceCategory,
        parent_id: Optional[str] = None,
        search: Optional[str] = None,
    ) -> list[Guest]:
        """Candidates for assignment, optionally narrowed by a name search."""
        containers = self._uniqueness_scope(category, parent_id)
        candidates = compute_unassigned(
            self._directory.list_guests(),
            containers,
            is_assignable(category),
        )
        if search:
            term = search.strip().lower()
            candidates = [guest for guest in candidates if term in guest.full_name.lower()]
        return candidates

    def needs_attention(
        self,
        category: ResourceCategory,
        parent_id: Optional[str] = None,
    ) -> list[Guest]:
        """Confirmed guests still lacking a container in this category."""
        containers = self._uniqueness_scope(category, parent_id)
        return compute_unassigned(self._directory.list_guests(), containers, is_confirmed)

    def occupancy_stats(
        self,
        category: ResourceCategory,
        parent_id: Optional[str] = None,
    ) -> OccupancyStats:
        containers = self._ledger.containers(category=category, parent_id=parent_id)
        return compute_occupancy_stats(containers, self._settings.fallback_capacity)

    def filter_containers(
        self,
        category: ResourceCategory,
        parent_id: Optional[str] = None,
        mode: str = "all",
    ) -> list[Container]:
        if mode not in CONTAINER_FILTER_MODES:
            raise ViewValidationError(
                f"mode must be one of {', '.join(CONTAINER_FILTER_MODES)}"
            )
        containers = self._ledger.containers(category=category, parent_id=parent_id)
        if mode == "available":
            return [container for container in containers if container.occupancy == 0]
        if mode == "occupied":
            return [container for container in containers if container.occupancy > 0]
        return containers
