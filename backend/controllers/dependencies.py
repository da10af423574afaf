"""Shared FastAPI dependency providers for controller layer."""

from __future__ import annotations

from typing import Any

from fastapi import HTTPException, Request, status

from backend.services.directory_service import GuestDirectory
from backend.services.export_service import ExportService
from backend.services.ledger_service import AssignmentLedger
from backend.services.lifecycle_service import ResourcePoolService
from backend.services.view_service import OccupancyViewService
from backend.utils.config import Settings, get_settings


def _service_from_state(request: Request, name: str, label: str) -> Any:
    service = getattr(request.app.state, name, None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"{label} is not initialized",
        )
    return service


def get_directory(request: Request) -> GuestDirectory:
    return _service_from_state(request, "directory", "Guest directory")


def get_ledger(request: Request) -> AssignmentLedger:
    return _service_from_state(request, "ledger", "Assignment ledger")


def get_pool_service(request: Request) -> ResourcePoolService:
    return _service_from_state(request, "pool_service", "Resource pool service")


def get_view_service(request: Request) -> OccupancyViewService:
    service = getattr(request.app.state, "view_service", None)
    if service is None:
        ledger = getattr(request.app.state, "ledger", None)
        directory = getattr(request.app.state, "directory", None)
        if ledger is not None and directory is not None:
            service = OccupancyViewService(ledger=ledger, directory=directory)
            request.app.state.view_service = service
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Occupancy view service is not initialized",
        )
    return service


def get_export_service(request: Request) -> ExportService:
    return _service_from_state(request, "export_service", "Export service")


def get_app_settings(request: Request) -> Settings:
    return getattr(request.app.state, "settings", None) or get_settings()
