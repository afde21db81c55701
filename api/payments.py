"""/api/payments routes."""

from datetime import date
from decimal import Decimal
from uuid import UUID

from fastapi import APIRouter, Query, Request
from pydantic import Field

from api.base import acting_user, result_response
from core.models import (
    Currency,
    PaymentCreate,
    PaymentFilters,
    PaymentMethod,
    PaymentUpdate,
)
from core.models.base import CamelModel


class QuickPaymentRequest(CamelModel):
    invoice_id: UUID
    amount: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)
    payment_method: PaymentMethod
    transaction_id: str | None = Field(None, max_length=255)
    notes: str | None = Field(None, max_length=2000)


class FullPaymentRequest(CamelModel):
    invoice_id: UUID
    payment_method: PaymentMethod
    transaction_id: str | None = Field(None, max_length=255)
    notes: str | None = Field(None, max_length=2000)


class RefundRequest(CamelModel):
    amount: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)
    reason: str = Field(..., min_length=1, max_length=1000)


def create_payments_router(services: dict) -> APIRouter:
    router = APIRouter()

    payment_svc = services["payment"]

    # -------------------------------------------------------------------------
    # Fixed paths (must be registered before /payments/{payment_id})
    # -------------------------------------------------------------------------

    @router.get("/payments/stats")
    def payment_stats(
        date_from: date | None = Query(None),
        date_to: date | None = Query(None),
    ):
        filters = PaymentFilters(date_from=date_from, date_to=date_to)
        return result_response(payment_svc.get_statistics(filters))

    @router.get("/payments/recent")
    def recent_payments(limit: int = Query(10)):
        return result_response(payment_svc.get_recent_payments(limit))

    @router.get("/payments/trends")
    def payment_trends():
        return result_response(payment_svc.get_payment_trends())

    @router.post("/payments/quick")
    def quick_payment(request: Request, body: QuickPaymentRequest):
        result = payment_svc.create_quick_payment(
            body.invoice_id,
            body.amount,
            body.payment_method,
            recorded_by=acting_user(request),
            transaction_id=body.transaction_id,
            notes=body.notes,
        )
        return result_response(result, success_status=201)

    @router.post("/payments/full")
    def full_payment(request: Request, body: FullPaymentRequest):
        result = payment_svc.process_full_payment(
            body.invoice_id,
            body.payment_method,
            recorded_by=acting_user(request),
            transaction_id=body.transaction_id,
            notes=body.notes,
        )
        return result_response(result, success_status=201)

    # -------------------------------------------------------------------------
    # Collection
    # -------------------------------------------------------------------------

    @router.get("/payments")
    def list_payments(
        page: int = Query(1),
        limit: int = Query(20),
        search: str | None = Query(None),
        invoice_id: UUID | None = Query(None),
        payment_method: PaymentMethod | None = Query(None),
        currency: Currency | None = Query(None),
        date_from: date | None = Query(None),
        date_to: date | None = Query(None),
        amount_from: Decimal | None = Query(None),
        amount_to: Decimal | None = Query(None),
    ):
        filters = PaymentFilters(
            search=search,
            invoice_id=invoice_id,
            payment_method=payment_method,
            currency=currency,
            date_from=date_from,
            date_to=date_to,
            amount_from=amount_from,
            amount_to=amount_to,
        )
        return result_response(payment_svc.list(filters, page, limit))

    @router.post("/payments")
    def create_payment(request: Request, body: PaymentCreate):
        return result_response(
            payment_svc.create(body, recorded_by=acting_user(request)),
            success_status=201,
        )

    # -------------------------------------------------------------------------
    # Single payment
    # -------------------------------------------------------------------------

    @router.get("/payments/{payment_id}")
    def get_payment(payment_id: UUID):
        return result_response(payment_svc.get_by_id(payment_id))

    @router.put("/payments/{payment_id}")
    def update_payment(request: Request, payment_id: UUID, body: PaymentUpdate):
        return result_response(payment_svc.update(payment_id, body, updated_by=acting_user(request)))

    @router.delete("/payments/{payment_id}")
    def delete_payment(request: Request, payment_id: UUID):
        return result_response(payment_svc.delete(payment_id, deleted_by=acting_user(request)))

    @router.post("/payments/{payment_id}/refund")
    def refund_payment(request: Request, payment_id: UUID, body: RefundRequest):
        result = payment_svc.create_refund(
            payment_id,
            body.amount,
            body.reason,
            recorded_by=acting_user(request),
        )
        return result_response(result, success_status=201)

    return router
