"""Domain models for guest-to-resource assignment."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class ResourceCategory(str, Enum):
    ROOM = "room"
    VEHICLE = "vehicle"
    TABLE = "table"


class RsvpStatus(str, Enum):
    PENDING = "pending"
    YES = "yes"
    NO = "no"
    MAYBE = "maybe"


class OccupancyStatus(str, Enum):
    EMPTY = "empty"
    PARTIAL = "partial"
    FULL = "full"


class WritePhase(str, Enum):
    """How far a ledger mutation got.

    `applied` means both the cache and the store hold the change,
    `local_only` means the cache was mutated but the store write failed,
    `rejected` means neither side changed.
    """

    APPLIED = "applied"
    LOCAL_ONLY = "local_only"
    REJECTED = "rejected"


class AssignmentError(str, Enum):
    CAPACITY_EXCEEDED = "CapacityExceeded"
    NOT_FOUND = "NotFound"
    REMOTE_WRITE_FAILED = "RemoteWriteFailed"
    OVER_CAPACITY_AFTER_EDIT = "OverCapacityAfterEdit"


PARENT_KIND_BY_CATEGORY = {
    ResourceCategory.ROOM: "hotel",
    ResourceCategory.VEHICLE: "route",
    ResourceCategory.TABLE: "event",
}


@dataclass(frozen=True)
class Parent:
    """Hotel, transport route or event owning a set of containers."""

    parent_id: str
    category: ResourceCategory
    name: str
    created_at: str
    updated_at: str

    @property
    def kind(self) -> str:
        return PARENT_KIND_BY_CATEGORY[self.category]


@dataclass(frozen=True)
class Container:
    """Capacity-bounded holder of guests (room, vehicle or table)."""

    container_id: str
    category: ResourceCategory
    parent_id: str
    label: str
    container_type: str
    capacity: int
    assigned_guest_ids: tuple[str, ...] = ()
    created_at: str = ""
    updated_at: str = ""

    @property
    def occupancy(self) -> int:
        return len(self.assigned_guest_ids)

    def holds(self, guest_id: str) -> bool:
        return guest_id in self.assigned_guest_ids


@dataclass(frozen=True)
class Guest:
    guest_id: str
    first_name: str
    last_name: str
    rsvp_status: RsvpStatus = RsvpStatus.PENDING
    is_vip: bool = False
    assigned_hotel_id: Optional[str] = None
    assigned_room_id: Optional[str] = None
    assigned_vehicle_id: Optional[str] = None
    created_at: str = ""
    updated_at: str = ""

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    def backref(self, category: ResourceCategory) -> Optional[str]:
        if category is ResourceCategory.ROOM:
            return self.assigned_room_id
        if category is ResourceCategory.VEHICLE:
            return self.assigned_vehicle_id
        return None


@dataclass(frozen=True)
class TableAssignment:
    """Seat record; a guest may hold one per event."""

    assignment_id: str
    guest_id: str
    table_id: str
    assigned_at: str
    assigned_by_user_id: str
    seat_number: Optional[int] = None


@dataclass(frozen=True)
class AssignmentResult:
    phase: WritePhase
    guest_id: str
    container_id: str
    changed: bool = False
    error: Optional[AssignmentError] = None
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.phase is not WritePhase.REJECTED


@dataclass(frozen=True)
class CapacityEditResult:
    phase: WritePhase
    container_id: str
    previous_capacity: int
    capacity: int
    occupancy: int
    warning: Optional[AssignmentError] = None
    message: str = ""


@dataclass(frozen=True)
class DeletionResult:
    """Outcome of a drain-then-delete cascade."""

    deleted_container_ids: list[str] = field(default_factory=list)
    unassigned_guest_ids: list[str] = field(default_factory=list)
    deleted_parent_id: Optional[str] = None


@dataclass(frozen=True)
class OccupancyStats:
    total_containers: int
    occupied_containers: int
    available_containers: int
    total_capacity: int
    assigned_guests: int
