"""Payment domain models.

A payment is a signed movement against exactly one invoice. Negative amounts
are refunds. Amounts are Decimal, stored as NUMERIC(12,2).
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from pydantic import Field, field_validator

from core.models.base import CamelModel
from core.models.enums import Currency, PaymentMethod


class PaymentCreate(CamelModel):
    """Data required to record a payment (or a refund, with a negative amount)."""

    invoice_id: UUID
    amount: Decimal = Field(..., max_digits=12, decimal_places=2)
    currency: Currency
    payment_date: date
    payment_method: PaymentMethod
    transaction_id: str | None = Field(None, max_length=255)
    notes: str | None = Field(None, max_length=2000)

    @field_validator("amount")
    @classmethod
    def reject_zero(cls, v: Decimal) -> Decimal:
        if v == 0:
            raise ValueError("Payment amount cannot be zero")
        return v


class PaymentUpdate(CamelModel):
    """Updatable payment fields. The invoice link is fixed at creation."""

    amount: Decimal | None = Field(None, max_digits=12, decimal_places=2)
    currency: Currency | None = None
    payment_date: date | None = None
    payment_method: PaymentMethod | None = None
    transaction_id: str | None = Field(None, max_length=255)
    notes: str | None = Field(None, max_length=2000)


class Payment(CamelModel):
    """Full payment entity as stored, plus the parent invoice number when joined."""

    id: UUID
    invoice_id: UUID
    amount: Decimal
    currency: Currency
    payment_date: date
    payment_method: PaymentMethod
    transaction_id: str | None = None
    notes: str | None = None
    recorded_by: UUID | None = None
    created_at: datetime
    updated_at: datetime | None = None
    invoice_number: str | None = None
    customer_name: str | None = None

    @property
    def is_refund(self) -> bool:
        return self.amount < 0


class PaymentBrief(CamelModel):
    """Payment line shown inside invoice details and payment summaries."""

    id: UUID
    amount: Decimal
    currency: Currency
    payment_date: date
    payment_method: PaymentMethod
    transaction_id: str | None = None


class PaymentFilters(CamelModel):
    """Optional filters for PaymentService.list. Unset fields do not filter."""

    search: str | None = None
    invoice_id: UUID | None = None
    payment_method: PaymentMethod | None = None
    currency: Currency | None = None
    date_from: date | None = None
    date_to: date | None = None
    amount_from: Decimal | None = None
    amount_to: Decimal | None = None


class InvoicePaymentSummary(CamelModel):
    """How much of an invoice has been paid."""

    invoice_amount: Decimal
    total_paid: Decimal
    balance_due: Decimal
    payment_percentage: Decimal
    payment_count: int
    payments: list[PaymentBrief]


class PaymentStatistics(CamelModel):
    """Payment aggregates. Only total_value is kept per currency; method amounts are raw sums."""

    total: int
    total_value: dict[str, Decimal]
    by_method: dict[str, dict[str, Decimal | int]]
