"""
app.py: FastAPI application factory and startup lifecycle.

This is the ASGI application object imported by uvicorn.
It wires the repository, guest directory, assignment ledger and the
lifecycle/view/export services, registers routers, and runs startup
initialization.

Usage (via launcher):
    python main.py

Usage (direct uvicorn):
    uvicorn app:app --reload
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from backend.controllers.assignment_controller import router as assignment_router
from backend.controllers.resource_controller import router as resource_router
from backend.repository.data_repository import DataRepository
from backend.services.directory_service import GuestDirectory
from backend.services.export_service import ExportService
from backend.services.ledger_service import AssignmentLedger
from backend.services.lifecycle_service import ResourcePoolService
from backend.services.view_service import OccupancyViewService
from backend.utils.config import Settings, get_settings
from backend.utils.logger import get_logger


logger = get_logger(__name__)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Build and wire the FastAPI application.

    Every collaborator is constructed here and handed to its dependents;
    controllers resolve them from app.state.
    """
    settings = settings or get_settings()

    # --- Repository (single SQLite connection factory) ---
    repository = DataRepository(settings)

    # --- Services (assignment logic, no direct DB access) ---
    directory = GuestDirectory(repository=repository, settings=settings)
    ledger = AssignmentLedger(
        repository=repository,
        directory=directory,
        settings=settings,
    )
    pool_service = ResourcePoolService(
        repository=repository,
        ledger=ledger,
        settings=settings,
    )
    view_service = OccupancyViewService(
        ledger=ledger,
        directory=directory,
        settings=settings,
    )
    export_service = ExportService(
        repository=repository,
        ledger=ledger,
        directory=directory,
        settings=settings,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Run startup initialization before accepting requests."""
        _startup(app)
        yield

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        lifespan=lifespan,
    )

    # --- Routers ---
    app.include_router(resource_router)
    app.include_router(assignment_router)

    # --- Inject services into app.state for dependency resolution ---
    app.state.settings = settings
    app.state.repository = repository
    app.state.directory = directory
    app.state.ledger = ledger
    app.state.pool_service = pool_service
    app.state.view_service = view_service
    app.state.export_service = export_service

    return app


def _startup(app: FastAPI) -> None:
    """
    Idempotent startup sequence. Safe to re-run on server restarts.

    Order matters:
      1. Schema must exist before seeding.
      2. Demo data is seeded only into an empty store.
      3. The ledger cache is loaded last so it sees the seeded rows.
    """
    settings: Settings = app.state.settings
    repository: DataRepository = app.state.repository
    ledger: AssignmentLedger = app.state.ledger

    logger.info("Startup: initializing database schema")
    repository.initialize_database()

    if settings.seed_demo_data:
        logger.info("Startup: seeding demo wedding (skipped if store not empty)")
        repository.seed_demo_data()

    logger.info("Startup: loading assignment ledger")
    ledger.reload()

    logger.info("Startup complete, system ready")


# Module-level app object for uvicorn
app = create_app()
