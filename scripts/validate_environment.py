#!/usr/bin/env python3
"""Validate local Wedding Ops environment readiness."""

from __future__ import annotations

import importlib
import shutil
import sys
import tempfile
from dataclasses import replace
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path
from typing import Callable

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from backend.domain.models import AssignmentError, ResourceCategory, RsvpStatus
from backend.repository.data_repository import DataRepository
from backend.services.directory_service import GuestDirectory
from backend.services.export_service import ExportService
from backend.services.ledger_service import AssignmentLedger
from backend.services.lifecycle_service import ResourcePoolService
from backend.utils.config import Settings, get_settings

SEPARATOR_LINE = "=" * 44
REQUIRED_PACKAGES = ("fastapi", "uvicorn", "pydantic", "pandas", "httpx", "pytest")


class _Workspace:
    """Services bound to a throwaway database."""

    def __init__(self, settings: Settings) -> None:
        self.repository = DataRepository(settings)
        self.directory = GuestDirectory(repository=self.repository, settings=settings)
        self.ledger = AssignmentLedger(
            repository=self.repository,
            directory=self.directory,
            settings=settings,
        )
        self.pool = ResourcePoolService(
            repository=self.repository,
            ledger=self.ledger,
            settings=settings,
        )
        self.export = ExportService(
            repository=self.repository,
            ledger=self.ledger,
            directory=self.directory,
            settings=settings,
        )


def _check_python(_: _Workspace) -> str:
    found = sys.version.split()[0]
    if sys.version_info < (3, 11):
        raise RuntimeError(f"Python >= 3.11 required, found {found}")
    return f"Python {found}"


def _check_packages(_: _Workspace) -> str:
    missing = []
    for name in REQUIRED_PACKAGES:
        try:
            importlib.import_module(name)
            version(name)
        except (ImportError, PackageNotFoundError) as exc:
            missing.append(f"{name} ({exc})")
    if missing:
        raise RuntimeError("missing/unimportable -> " + "; ".join(missing))
    return "Required packages: all importable"


def _check_database(workspace: _Workspace) -> str:
    workspace.repository.initialize_database()
    return "Database initialization"


def _check_demo_seed(workspace: _Workspace) -> str:
    workspace.repository.seed_demo_data()
    guests = len(workspace.repository.list_guests())
    rooms = len(workspace.repository.list_containers(category=ResourceCategory.ROOM))
    if (guests, rooms) != (40, 12):
        raise RuntimeError(f"expected 40 guests and 12 rooms, got {guests} and {rooms}")
    return "Demo wedding: 40 guests, 12 rooms"


def _check_ledger(workspace: _Workspace) -> str:
    hotel = workspace.pool.create_parent(ResourceCategory.ROOM, "Validation Hotel")
    room = workspace.pool.create_container(
        ResourceCategory.ROOM, hotel.parent_id, "900", capacity=1
    )
    first = workspace.directory.create_guest("Check", "One", RsvpStatus.YES)
    second = workspace.directory.create_guest("Check", "Two", RsvpStatus.YES)
    if not workspace.ledger.assign(first.guest_id, room.container_id).changed:
        raise RuntimeError("first assignment was not applied")
    rejected = workspace.ledger.assign(second.guest_id, room.container_id)
    if rejected.error is not AssignmentError.CAPACITY_EXCEEDED:
        raise RuntimeError(f"expected CapacityExceeded, got {rejected.error}")
    return "Assignment ledger round trip"


def _check_export(workspace: _Workspace) -> str:
    if "Check One" not in workspace.export.export_csv(ResourceCategory.ROOM):
        raise RuntimeError("assigned guest missing from rooming list")
    return "Rooming list export"


CHECKS: tuple[tuple[str, Callable[[_Workspace], str]], ...] = (
    ("Python version", _check_python),
    ("Required packages", _check_packages),
    ("Database initialization", _check_database),
    ("Demo wedding", _check_demo_seed),
    ("Assignment ledger round trip", _check_ledger),
    ("Rooming list export", _check_export),
)


def main() -> int:
    temp_dir = tempfile.mkdtemp(prefix="wedding-ops-env-")
    lines: list[str] = []
    all_passed = True
    try:
        workspace = _Workspace(
            replace(get_settings(), database_path=Path(temp_dir) / "validation.db")
        )
        for name, check in CHECKS:
            try:
                lines.append(f"[PASS] {check(workspace)}")
            except Exception as exc:
                lines.append(f"[FAIL] {name}: {exc}")
                all_passed = False
    finally:
        shutil.rmtree(temp_dir, ignore_errors=True)

    print(SEPARATOR_LINE)
    print(" Wedding Ops Environment Validation")
    print(SEPARATOR_LINE)
    for line in lines:
        print(f" {line}")
    print(SEPARATOR_LINE)
    print(" All checks passed. Environment is ready." if all_passed else " One or more checks failed.")
    print(SEPARATOR_LINE)
    return 0 if all_passed else 1


if __name__ == "__main__":
    raise SystemExit(main())
