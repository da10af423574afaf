"""HTTP controller layer for hotels/routes/events, containers and guests."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field, field_validator

from backend.controllers.dependencies import (
    get_app_settings,
    get_directory,
    get_pool_service,
    get_view_service,
)
from backend.domain.constraints import (
    FALLBACK_CAPACITY,
    effective_capacity,
    occupancy_status,
)
from backend.domain.models import Container, Guest, Parent, ResourceCategory, RsvpStatus
from backend.repository.data_repository import PersistenceError
from backend.services.directory_service import GuestDirectory, GuestValidationError
from backend.services.lifecycle_service import (
    ResourceNotFoundError,
    ResourcePoolService,
    ResourceValidationError,
)
from backend.services.view_service import OccupancyViewService, ViewValidationError
from backend.utils.config import Settings
from backend.utils.logger import get_logger


logger = get_logger(__name__)

router = APIRouter(tags=["resources"])


class CreateParentRequest(BaseModel):
    category: ResourceCategory
    name: str = Field(min_length=1, max_length=200)


class ParentResponse(BaseModel):
    parent_id: str
    category: ResourceCategory
    kind: str
    name: str

    @classmethod
    def from_domain(cls, parent: Parent) -> "ParentResponse":
        return cls(
            parent_id=parent.parent_id,
            category=parent.category,
            kind=parent.kind,
            name=parent.name,
        )


class CreateContainerRequest(BaseModel):
    category: ResourceCategory
    parent_id: str = Field(min_length=1)
    label: str = Field(min_length=1, max_length=100)
    container_type: str | None = None
    capacity: int | None = Field(default=None, gt=0)


class ContainerResponse(BaseModel):
    container_id: str
    category: ResourceCategory
    parent_id: str
    label: str
    container_type: str
    capacity: int = Field(gt=0)
    assigned_guest_ids: list[str]
    occupancy: int = Field(ge=0)
    status: str
    updated_at: str

    @classmethod
    def from_domain(
        cls,
        container: Container,
        fallback: int = FALLBACK_CAPACITY,
    ) -> "ContainerResponse":
        return cls(
            container_id=container.container_id,
            category=container.category,
            parent_id=container.parent_id,
            label=container.label,
            container_type=container.container_type,
            capacity=effective_capacity(container, fallback),
            assigned_guest_ids=list(container.assigned_guest_ids),
            occupancy=container.occupancy,
            status=occupancy_status(container, fallback).value,
            updated_at=container.updated_at,
        )


class CapacityEditRequest(BaseModel):
    capacity: int = Field(gt=0)


class CapacityEditResponse(BaseModel):
    phase: str
    container_id: str
    previous_capacity: int
    capacity: int
    occupancy: int
    warning: str | None = None
    message: str = ""


class DeletionResponse(BaseModel):
    deleted_container_ids: list[str]
    unassigned_guest_ids: list[str]
    deleted_parent_id: str | None = None


class CreateGuestRequest(BaseModel):
    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)
    rsvp_status: RsvpStatus = RsvpStatus.PENDING
    is_vip: bool = False

    @field_validator("first_name", "last_name")
    @classmethod
    def validate_names(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("name fields must be non-blank")
        return value.strip()


class RsvpUpdateRequest(BaseModel):
    rsvp_status: RsvpStatus


class GuestResponse(BaseModel):
    guest_id: str
    full_name: str
    rsvp_status: RsvpStatus
    is_vip: bool
    assigned_hotel_id: str | None = None
    assigned_room_id: str | None = None
    assigned_vehicle_id: str | None = None

    @classmethod
    def from_domain(cls, guest: Guest) -> "GuestResponse":
        return cls(
            guest_id=guest.guest_id,
            full_name=guest.full_name,
            rsvp_status=guest.rsvp_status,
            is_vip=guest.is_vip,
            assigned_hotel_id=guest.assigned_hotel_id,
            assigned_room_id=guest.assigned_room_id,
            assigned_vehicle_id=guest.assigned_vehicle_id,
        )


def _store_unavailable(exc: PersistenceError) -> HTTPException:
    logger.error("Store call failed: %s", exc)
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail=str(exc),
    )


@router.post(
    "/parents",
    response_model=ParentResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_parent(
    payload: CreateParentRequest,
    service: ResourcePoolService = Depends(get_pool_service),
) -> ParentResponse:
    try:
        return ParentResponse.from_domain(service.create_parent(payload.category, payload.name))
    except ResourceValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except PersistenceError as exc:
        raise _store_unavailable(exc) from exc


@router.get("/parents", response_model=list[ParentResponse])
async def list_parents(
    category: ResourceCategory | None = Query(default=None),
    service: ResourcePoolService = Depends(get_pool_service),
) -> list[ParentResponse]:
    return [ParentResponse.from_domain(parent) for parent in service.list_parents(category)]


@router.delete("/parents/{parent_id}", response_model=DeletionResponse)
async def delete_parent(
    parent_id: str,
    service: ResourcePoolService = Depends(get_pool_service),
) -> DeletionResponse:
    try:
        result = service.delete_parent(parent_id)
    except ResourceNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except PersistenceError as exc:
        raise _store_unavailable(exc) from exc
    return DeletionResponse(
        deleted_container_ids=result.deleted_container_ids,
        unassigned_guest_ids=result.unassigned_guest_ids,
        deleted_parent_id=result.deleted_parent_id,
    )


@router.post(
    "/containers",
    response_model=ContainerResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_container(
    payload: CreateContainerRequest,
    service: ResourcePoolService = Depends(get_pool_service),
    settings: Settings = Depends(get_app_settings),
) -> ContainerResponse:
    try:
        container = service.create_container(
            category=payload.category,
            parent_id=payload.parent_id,
            label=payload.label,
            container_type=payload.container_type,
            capacity=payload.capacity,
        )
    except ResourceValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except ResourceNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except PersistenceError as exc:
        raise _store_unavailable(exc) from exc
    return ContainerResponse.from_domain(container, settings.fallback_capacity)


@router.get("/containers", response_model=list[ContainerResponse])
async def list_containers(
    category: ResourceCategory,
    parent_id: str | None = Query(default=None),
    mode: str = Query(default="all"),
    view_service: OccupancyViewService = Depends(get_view_service),
    settings: Settings = Depends(get_app_settings),
) -> list[ContainerResponse]:
    try:
        containers = view_service.filter_containers(category, parent_id, mode)
    except ViewValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return [
        ContainerResponse.from_domain(container, settings.fallback_capacity)
        for container in containers
    ]


@router.delete("/containers/{container_id}", response_model=DeletionResponse)
async def delete_container(
    container_id: str,
    service: ResourcePoolService = Depends(get_pool_service),
) -> DeletionResponse:
    try:
        result = service.delete_container(container_id)
    except ResourceNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except PersistenceError as exc:
        raise _store_unavailable(exc) from exc
    return DeletionResponse(
        deleted_container_ids=result.deleted_container_ids,
        unassigned_guest_ids=result.unassigned_guest_ids,
    )


@router.patch("/containers/{container_id}/capacity", response_model=CapacityEditResponse)
async def edit_capacity(
    container_id: str,
    payload: CapacityEditRequest,
    service: ResourcePoolService = Depends(get_pool_service),
) -> CapacityEditResponse:
    try:
        result = service.edit_capacity(container_id, payload.capacity)
    except ResourceValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except ResourceNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return CapacityEditResponse(
        phase=result.phase.value,
        container_id=result.container_id,
        previous_capacity=result.previous_capacity,
        capacity=result.capacity,
        occupancy=result.occupancy,
        warning=result.warning.value if result.warning is not None else None,
        message=result.message,
    )


@router.post(
    "/guests",
    response_model=GuestResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_guest(
    payload: CreateGuestRequest,
    directory: GuestDirectory = Depends(get_directory),
) -> GuestResponse:
    try:
        guest = directory.create_guest(
            first_name=payload.first_name,
            last_name=payload.last_name,
            rsvp_status=payload.rsvp_status,
            is_vip=payload.is_vip,
        )
    except GuestValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except PersistenceError as exc:
        raise _store_unavailable(exc) from exc
    return GuestResponse.from_domain(guest)


@router.patch("/guests/{guest_id}/rsvp", response_model=GuestResponse)
async def update_rsvp(
    guest_id: str,
    payload: RsvpUpdateRequest,
    directory: GuestDirectory = Depends(get_directory),
) -> GuestResponse:
    guest = directory.set_rsvp_status(guest_id, payload.rsvp_status)
    if guest is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Guest {guest_id} not found",
        )
    return GuestResponse.from_domain(guest)
