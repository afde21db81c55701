"""/api/vehicles routes."""

from uuid import UUID

from fastapi import APIRouter, Query, Request

from api.base import acting_user, result_response
from core.models import VehicleCreate, VehicleFilters, VehicleStatus, VehicleUpdate
from core.models.base import CamelModel


class VehicleStatusRequest(CamelModel):
    status: VehicleStatus


def create_vehicles_router(services: dict) -> APIRouter:
    router = APIRouter()

    vehicle_svc = services["vehicle"]

    @router.get("/vehicles")
    def list_vehicles(
        page: int = Query(1),
        limit: int = Query(20),
        vin: str | None = Query(None, description="VIN fragment; bypasses the other filters"),
        search: str | None = Query(None),
        status: VehicleStatus | None = Query(None),
        make: str | None = Query(None),
        model: str | None = Query(None),
        year_min: int | None = Query(None),
        year_max: int | None = Query(None),
        is_public: bool | None = Query(None),
    ):
        if vin:
            return result_response(vehicle_svc.search_by_vin(vin))

        filters = VehicleFilters(
            search=search,
            status=status,
            make=make,
            model=model,
            year_min=year_min,
            year_max=year_max,
            is_public=is_public,
        )
        return result_response(vehicle_svc.list(filters, page, limit))

    @router.post("/vehicles")
    def create_vehicle(request: Request, body: VehicleCreate):
        return result_response(
            vehicle_svc.create(body, created_by=acting_user(request)),
            success_status=201,
        )

    @router.get("/vehicles/{vehicle_id}")
    def get_vehicle(vehicle_id: UUID):
        return result_response(vehicle_svc.get_by_id(vehicle_id))

    @router.put("/vehicles/{vehicle_id}")
    def update_vehicle(request: Request, vehicle_id: UUID, body: VehicleUpdate):
        return result_response(vehicle_svc.update(vehicle_id, body, updated_by=acting_user(request)))

    @router.patch("/vehicles/{vehicle_id}/status")
    def update_vehicle_status(request: Request, vehicle_id: UUID, body: VehicleStatusRequest):
        return result_response(
            vehicle_svc.update_status(vehicle_id, body.status, updated_by=acting_user(request))
        )

    @router.delete("/vehicles/{vehicle_id}")
    def delete_vehicle(request: Request, vehicle_id: UUID):
        return result_response(vehicle_svc.delete(vehicle_id, deleted_by=acting_user(request)))

    return router
