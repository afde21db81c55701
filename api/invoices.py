"""/api/invoices routes."""

from datetime import date
from decimal import Decimal
from uuid import UUID

from fastapi import APIRouter, Query, Request
from pydantic import Field

from api.base import acting_user, result_response
from core.models import (
    Currency,
    InvoiceCreate,
    InvoiceFilters,
    InvoiceLineItem,
    InvoiceStatus,
    InvoiceUpdate,
)
from core.models.base import CamelModel


class VehicleSaleRequest(CamelModel):
    vehicle_id: UUID
    customer_id: UUID
    sale_price: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)
    currency: Currency
    additional_items: list[InvoiceLineItem] = Field(default_factory=list)


def create_invoices_router(services: dict) -> APIRouter:
    router = APIRouter()

    invoice_svc = services["invoice"]
    payment_svc = services["payment"]

    # -------------------------------------------------------------------------
    # Fixed paths (must be registered before /invoices/{invoice_id})
    # -------------------------------------------------------------------------

    @router.get("/invoices/stats")
    def invoice_stats(
        created_from: date | None = Query(None),
        created_to: date | None = Query(None),
    ):
        filters = InvoiceFilters(created_from=created_from, created_to=created_to)
        return result_response(invoice_svc.get_statistics(filters))

    @router.get("/invoices/overdue")
    def overdue_invoices():
        return result_response(invoice_svc.list_overdue())

    @router.post("/invoices/from-vehicle-sale")
    def invoice_from_vehicle_sale(request: Request, body: VehicleSaleRequest):
        result = invoice_svc.create_from_vehicle_sale(
            body.vehicle_id,
            body.customer_id,
            body.sale_price,
            body.currency,
            created_by=acting_user(request),
            additional_items=body.additional_items,
        )
        return result_response(result, success_status=201)

    # -------------------------------------------------------------------------
    # Collection
    # -------------------------------------------------------------------------

    @router.get("/invoices")
    def list_invoices(
        page: int = Query(1),
        limit: int = Query(20),
        search: str | None = Query(None),
        status: InvoiceStatus | None = Query(None),
        customer_id: UUID | None = Query(None),
        vehicle_id: UUID | None = Query(None),
        currency: Currency | None = Query(None),
        created_from: date | None = Query(None),
        created_to: date | None = Query(None),
        due_from: date | None = Query(None),
        due_to: date | None = Query(None),
        overdue_only: bool = Query(False),
    ):
        filters = InvoiceFilters(
            search=search,
            status=status,
            customer_id=customer_id,
            vehicle_id=vehicle_id,
            currency=currency,
            created_from=created_from,
            created_to=created_to,
            due_from=due_from,
            due_to=due_to,
            overdue_only=overdue_only,
        )
        return result_response(invoice_svc.list(filters, page, limit))

    @router.post("/invoices")
    def create_invoice(request: Request, body: InvoiceCreate):
        return result_response(
            invoice_svc.create(body, created_by=acting_user(request)),
            success_status=201,
        )

    # -------------------------------------------------------------------------
    # Single invoice
    # -------------------------------------------------------------------------

    @router.get("/invoices/{invoice_id}")
    def get_invoice(invoice_id: UUID):
        return result_response(invoice_svc.get_by_id(invoice_id))

    @router.put("/invoices/{invoice_id}")
    def update_invoice(request: Request, invoice_id: UUID, body: InvoiceUpdate):
        return result_response(invoice_svc.update(invoice_id, body, updated_by=acting_user(request)))

    @router.delete("/invoices/{invoice_id}")
    def delete_invoice(request: Request, invoice_id: UUID):
        return result_response(invoice_svc.delete(invoice_id, deleted_by=acting_user(request)))

    @router.post("/invoices/{invoice_id}/send")
    def send_invoice(request: Request, invoice_id: UUID):
        return result_response(invoice_svc.send(invoice_id, sent_by=acting_user(request)))

    @router.get("/invoices/{invoice_id}/payments/summary")
    def invoice_payment_summary(invoice_id: UUID):
        return result_response(payment_svc.get_invoice_payment_summary(invoice_id))

    return router
