"""HTTP controller layer for guest assignments and derived views."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel, Field

from backend.controllers.dependencies import (
    get_export_service,
    get_ledger,
    get_view_service,
)
from backend.controllers.resource_controller import GuestResponse
from backend.domain.models import (
    AssignmentError,
    AssignmentResult,
    ResourceCategory,
    WritePhase,
)
from backend.services.export_service import ExportService
from backend.services.ledger_service import AssignmentLedger
from backend.services.view_service import OccupancyViewService, ViewValidationError
from backend.utils.logger import get_logger


logger = get_logger(__name__)

router = APIRouter(tags=["assignments"])


class AssignRequest(BaseModel):
    guest_id: str = Field(min_length=1)
    container_id: str = Field(min_length=1)
    assigned_by_user_id: str | None = None
    seat_number: int | None = Field(default=None, gt=0)


class BulkAssignRequest(BaseModel):
    guest_ids: list[str] = Field(min_length=1)
    container_id: str = Field(min_length=1)
    assigned_by_user_id: str | None = None


class ReassignRequest(BaseModel):
    guest_id: str = Field(min_length=1)
    from_container_id: str = Field(min_length=1)
    to_container_id: str = Field(min_length=1)
    assigned_by_user_id: str | None = None


class AssignmentResponse(BaseModel):
    phase: WritePhase
    guest_id: str
    container_id: str
    changed: bool
    error: AssignmentError | None = None
    message: str = ""

    @classmethod
    def from_domain(cls, result: AssignmentResult) -> "AssignmentResponse":
        return cls(
            phase=result.phase,
            guest_id=result.guest_id,
            container_id=result.container_id,
            changed=result.changed,
            error=result.error,
            message=result.message,
        )


class OccupancyStatsResponse(BaseModel):
    total_containers: int = Field(ge=0)
    occupied_containers: int = Field(ge=0)
    available_containers: int = Field(ge=0)
    total_capacity: int = Field(ge=0)
    assigned_guests: int = Field(ge=0)


_STATUS_BY_ERROR = {
    AssignmentError.CAPACITY_EXCEEDED: status.HTTP_409_CONFLICT,
    AssignmentError.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    AssignmentError.REMOTE_WRITE_FAILED: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def _raise_if_rejected(result: AssignmentResult) -> AssignmentResponse:
    """Rejected results become HTTP errors; `local_only` is still a 200."""
    if result.phase is WritePhase.REJECTED and result.error is not None:
        raise HTTPException(
            status_code=_STATUS_BY_ERROR.get(
                result.error, status.HTTP_500_INTERNAL_SERVER_ERROR
            ),
            detail=result.message,
        )
    return AssignmentResponse.from_domain(result)


@router.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}


@router.post("/assignments", response_model=AssignmentResponse)
async def assign_guest(
    payload: AssignRequest,
    ledger: AssignmentLedger = Depends(get_ledger),
) -> AssignmentResponse:
    result = ledger.assign(
        payload.guest_id,
        payload.container_id,
        assigned_by_user_id=payload.assigned_by_user_id,
        seat_number=payload.seat_number,
    )
    return _raise_if_rejected(result)


@router.post("/assignments/bulk", response_model=list[AssignmentResponse])
async def bulk_assign_guests(
    payload: BulkAssignRequest,
    ledger: AssignmentLedger = Depends(get_ledger),
) -> list[AssignmentResponse]:
    """Per-guest outcomes; one rejection does not stop the rest."""
    results = ledger.bulk_assign(
        payload.guest_ids,
        payload.container_id,
        assigned_by_user_id=payload.assigned_by_user_id,
    )
    return [AssignmentResponse.from_domain(result) for result in results]


@router.delete("/assignments", response_model=AssignmentResponse)
async def unassign_guest(
    guest_id: str = Query(min_length=1),
    container_id: str = Query(min_length=1),
    ledger: AssignmentLedger = Depends(get_ledger),
) -> AssignmentResponse:
    return _raise_if_rejected(ledger.unassign(guest_id, container_id))


@router.post("/assignments/reassign", response_model=AssignmentResponse)
async def reassign_guest(
    payload: ReassignRequest,
    ledger: AssignmentLedger = Depends(get_ledger),
) -> AssignmentResponse:
    result = ledger.reassign(
        payload.guest_id,
        payload.from_container_id,
        payload.to_container_id,
        assigned_by_user_id=payload.assigned_by_user_id,
    )
    return _raise_if_rejected(result)


@router.get("/guests/unassigned", response_model=list[GuestResponse])
async def list_unassigned_guests(
    category: ResourceCategory,
    parent_id: str | None = Query(default=None),
    search: str | None = Query(default=None),
    view_service: OccupancyViewService = Depends(get_view_service),
) -> list[GuestResponse]:
    try:
        guests = view_service.unassigned(category, parent_id=parent_id, search=search)
    except ViewValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return [GuestResponse.from_domain(guest) for guest in guests]


@router.get("/guests/needs-attention", response_model=list[GuestResponse])
async def list_guests_needing_attention(
    category: ResourceCategory,
    parent_id: str | None = Query(default=None),
    view_service: OccupancyViewService = Depends(get_view_service),
) -> list[GuestResponse]:
    try:
        guests = view_service.needs_attention(category, parent_id=parent_id)
    except ViewValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return [GuestResponse.from_domain(guest) for guest in guests]


@router.get("/stats", response_model=OccupancyStatsResponse)
async def occupancy_stats(
    category: ResourceCategory,
    parent_id: str | None = Query(default=None),
    view_service: OccupancyViewService = Depends(get_view_service),
) -> OccupancyStatsResponse:
    stats = view_service.occupancy_stats(category, parent_id=parent_id)
    return OccupancyStatsResponse(
        total_containers=stats.total_containers,
        occupied_containers=stats.occupied_containers,
        available_containers=stats.available_containers,
        total_capacity=stats.total_capacity,
        assigned_guests=stats.assigned_guests,
    )


@router.get("/exports/{category}.csv", response_class=PlainTextResponse)
async def export_containers_csv(
    category: ResourceCategory,
    parent_id: str | None = Query(default=None),
    export_service: ExportService = Depends(get_export_service),
) -> PlainTextResponse:
    try:
        content = export_service.export_csv(category, parent_id=parent_id)
    except Exception as exc:  # pragma: no cover
        logger.exception("Unexpected export failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to export CSV",
        ) from exc
    filename = ExportService.export_filename(category)
    return PlainTextResponse(
        content,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
