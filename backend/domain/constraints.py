"""Domain-level capacity and eligibility rules."""

from __future__ import annotations

from typing import Callable

from backend.domain.models import (
    Container,
    Guest,
    OccupancyStatus,
    ResourceCategory,
    RsvpStatus,
)


FALLBACK_CAPACITY = 2

_ASSIGNABLE_STATUSES = {
    ResourceCategory.ROOM: frozenset({RsvpStatus.YES, RsvpStatus.PENDING}),
    ResourceCategory.VEHICLE: frozenset({RsvpStatus.YES, RsvpStatus.PENDING}),
    ResourceCategory.TABLE: frozenset({RsvpStatus.YES}),
}

EligibilityPredicate = Callable[[Guest], bool]


def effective_capacity(container: Container, fallback: int = FALLBACK_CAPACITY) -> int:
    """Declared capacity, or the fallback when it was never set."""
    if container.capacity and container.capacity > 0:
        return container.capacity
    return fallback


def can_assign(container: Container, fallback: int = FALLBACK_CAPACITY) -> bool:
    # Over-capacity containers simply stay closed; nothing is evicted here.
    return container.occupancy < effective_capacity(container, fallback)


def occupancy_status(
    container: Container,
    fallback: int = FALLBACK_CAPACITY,
) -> OccupancyStatus:
    if container.occupancy == 0:
        return OccupancyStatus.EMPTY
    if container.occupancy >= effective_capacity(container, fallback):
        return OccupancyStatus.FULL
    return OccupancyStatus.PARTIAL


def validate_capacity(capacity: int) -> None:
    if isinstance(capacity, bool) or not isinstance(capacity, int):
        raise ValueError("capacity must be an integer")
    if capacity <= 0:
        raise ValueError("capacity must be > 0")


def is_assignable(category: ResourceCategory) -> EligibilityPredicate:
    """Guests that may be offered as candidates for a container."""
    statuses = _ASSIGNABLE_STATUSES[category]
    return lambda guest: guest.rsvp_status in statuses


def is_confirmed(guest: Guest) -> bool:
    return guest.rsvp_status is RsvpStatus.YES


def capacity_message(container: Container, fallback: int = FALLBACK_CAPACITY) -> str:
    # Rooms are labelled by bare number ("101"); vehicles and tables by name.
    if container.category is ResourceCategory.ROOM:
        name = f"Room {container.label}"
    else:
        name = container.label
    limit = effective_capacity(container, fallback)
    return f"{name} is at full capacity ({limit} guests)"
