"""Rooming list / transport manifest / seating chart CSV export."""

from __future__ import annotations

import csv
from datetime import date
from typing import Optional

import pandas as pd

from backend.domain.constraints import effective_capacity, occupancy_status
from backend.domain.models import ResourceCategory
from backend.repository.data_repository import DataRepository
from backend.services.directory_service import GuestDirectory
from backend.services.ledger_service import AssignmentLedger
from backend.utils.config import Settings, get_settings


EXPORT_HEADERS = {
    ResourceCategory.ROOM: ("Hotel", "Room Number", "Room Type"),
    ResourceCategory.VEHICLE: ("Route", "Vehicle", "Vehicle Type"),
    ResourceCategory.TABLE: ("Event", "Table", "Table Type"),
}

EXPORT_FILE_PREFIX = {
    ResourceCategory.ROOM: "rooming_list",
    ResourceCategory.VEHICLE: "transport_manifest",
    ResourceCategory.TABLE: "seating_chart",
}

OCCUPANCY_HEADERS = ("Capacity", "Guests Assigned", "Guest Names", "Status")


class ExportService:
    def __init__(
        self,
        repository: DataRepository,
        ledger: AssignmentLedger,
        directory: GuestDirectory,
        settings: Optional[Settings] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository
        self._ledger = ledger
        self._directory = directory

    def container_frame(
        self,
        category: ResourceCategory,
        parent_id: Optional[str] = None,
    ) -> pd.DataFrame:
        """One row per container; guests no longer in the directory are skipped."""
        parent_names = {
            parent.parent_id: parent.name
            for parent in self._repository.list_parents(category)
        }
        guests = {guest.guest_id: guest for guest in self._directory.list_guests()}
        fallback = self._settings.fallback_capacity

        rows = []
        for container in self._ledger.containers(category=category, parent_id=parent_id):
            occupants = [
                guests[guest_id]
                for guest_id in container.assigned_guest_ids
                if guest_id in guests
            ]
            rows.append(
                (
                    parent_names.get(container.parent_id, ""),
                    container.label,
                    container.container_type,
                    effective_capacity(container, fallback),
                    len(occupants),
                    self._settings.guest_name_delimiter.join(
                        guest.full_name for guest in occupants
                    ),
                    occupancy_status(container, fallback).value,
                )
            )
        columns = list(EXPORT_HEADERS[category] + OCCUPANCY_HEADERS)
        return pd.DataFrame(rows, columns=columns)

    def export_csv(
        self,
        category: ResourceCategory,
        parent_id: Optional[str] = None,
    ) -> str:
        frame = self.container_frame(category, parent_id)
        return frame.to_csv(index=False, quoting=csv.QUOTE_ALL, lineterminator="\n")

    @staticmethod
    def export_filename(category: ResourceCategory, today: Optional[date] = None) -> str:
        stamp = (today or date.today()).isoformat()
        return f"{EXPORT_FILE_PREFIX[category]}_{stamp}.csv"
