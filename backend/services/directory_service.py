"""Guest directory collaborator used by the assignment core."""

from __future__ import annotations

from typing import Optional

from backend.domain.constraints import is_assignable
from backend.domain.models import Guest, ResourceCategory, RsvpStatus
from backend.repository.data_repository import DataRepository, utc_now
from backend.utils.config import Settings, get_settings
from backend.utils.logger import get_logger


logger = get_logger(__name__)


class GuestValidationError(Exception):
    """Raised when guest fields are malformed."""


class GuestDirectory:
    """Owns guest lifecycle; the ledger only reads guests and writes backrefs."""

    def __init__(
        self,
        repository: Optional[DataRepository] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or DataRepository(self._settings)

    def get(self, guest_id: str) -> Optional[Guest]:
        return self._repository.get_guest(guest_id)

    def list_guests(self) -> list[Guest]:
        return self._repository.list_guests()

    def list_eligible(self, category: ResourceCategory) -> list[Guest]:
        predicate = is_assignable(category)
        return [guest for guest in self._repository.list_guests() if predicate(guest)]

    def update_backref(
        self,
        guest_id: str,
        category: ResourceCategory,
        container_id: Optional[str],
        parent_id: Optional[str] = None,
    ) -> bool:
        """Point the guest at its container for `category`, or clear it.

        Tables keep their backward reference in the seat record itself, so
        this is a no-op for that category.
        """
        if category is ResourceCategory.ROOM:
            fields = {
                "assigned_room_id": container_id,
                "assigned_hotel_id": parent_id if container_id is not None else None,
            }
        elif category is ResourceCategory.VEHICLE:
            fields = {"assigned_vehicle_id": container_id}
        else:
            return True
        fields["updated_at"] = utc_now()
        return self._repository.update_guest(guest_id, fields)

    def create_guest(
        self,
        first_name: str,
        last_name: str,
        rsvp_status: RsvpStatus | str = RsvpStatus.PENDING,
        is_vip: bool = False,
    ) -> Guest:
        if not first_name.strip() or not last_name.strip():
            raise GuestValidationError("first_name and last_name are required")
        try:
            status = RsvpStatus(rsvp_status)
        except ValueError as exc:
            raise GuestValidationError(f"Unknown rsvp_status: {rsvp_status}") from exc
        guest = self._repository.create_guest(
            first_name=first_name.strip(),
            last_name=last_name.strip(),
            rsvp_status=status,
            is_vip=is_vip,
        )
        logger.info("Guest %s created", guest.guest_id)
        return guest

    def set_rsvp_status(self, guest_id: str, rsvp_status: RsvpStatus | str) -> Optional[Guest]:
        try:
            status = RsvpStatus(rsvp_status)
        except ValueError as exc:
            raise GuestValidationError(f"Unknown rsvp_status: {rsvp_status}") from exc
        if not self._repository.update_guest(guest_id, {"rsvp_status": status}):
            return None
        return self._repository.get_guest(guest_id)

    def delete_guest(self, guest_id: str) -> bool:
        """Remove the guest row only.

        Containers and seat records that hold the id keep it, and it still
        counts toward capacity until the ledger unassigns it.
        """
        return self._repository.delete_guest(guest_id)
