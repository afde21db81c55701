"""/api/customers routes."""

from datetime import date
from uuid import UUID

from fastapi import APIRouter, Query, Request

from api.base import acting_user, result_response
from core.models import CustomerCreate, CustomerFilters, CustomerUpdate


def create_customers_router(services: dict) -> APIRouter:
    router = APIRouter()

    customer_svc = services["customer"]

    @router.get("/customers")
    def list_customers(
        page: int = Query(1),
        limit: int = Query(20),
        search: str | None = Query(None),
        city: str | None = Query(None),
        country: str | None = Query(None),
        marketing_consent: bool | None = Query(None),
        created_from: date | None = Query(None),
        created_to: date | None = Query(None),
    ):
        filters = CustomerFilters(
            search=search,
            city=city,
            country=country,
            marketing_consent=marketing_consent,
            created_from=created_from,
            created_to=created_to,
        )
        return result_response(customer_svc.list(filters, page, limit))

    @router.post("/customers")
    def create_customer(request: Request, body: CustomerCreate):
        return result_response(
            customer_svc.create(body, created_by=acting_user(request)),
            success_status=201,
        )

    @router.get("/customers/{customer_id}")
    def get_customer(customer_id: UUID):
        return result_response(customer_svc.get_by_id(customer_id))

    @router.put("/customers/{customer_id}")
    def update_customer(request: Request, customer_id: UUID, body: CustomerUpdate):
        return result_response(customer_svc.update(customer_id, body, updated_by=acting_user(request)))

    @router.delete("/customers/{customer_id}")
    def delete_customer(request: Request, customer_id: UUID):
        return result_response(customer_svc.delete(customer_id, deleted_by=acting_user(request)))

    return router
