"""Invoice domain models.

Monetary fields are Decimal (NUMERIC in storage), never float. vat_rate is a
percentage: 5 means 5%.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from pydantic import Field, model_validator

from core.models.base import CamelModel
from core.models.enums import Currency, InvoiceStatus
from core.models.payment import PaymentBrief


class InvoiceLineItem(CamelModel):
    """One billed item. total is quantity * unit_price unless given explicitly."""

    description: str = Field(..., min_length=1, max_length=500)
    quantity: Decimal = Field(Decimal("1"), gt=0)
    unit_price: Decimal = Decimal("0")
    total: Decimal | None = None
    vat_rate: Decimal | None = None

    @model_validator(mode="after")
    def compute_total_if_missing(self) -> "InvoiceLineItem":
        """Compute total from quantity * unit_price if not provided."""
        if self.total is None:
            self.total = self.quantity * self.unit_price
        return self


class InvoiceCreate(CamelModel):
    """Data required to create an invoice. Totals arrive already aggregated."""

    customer_id: UUID
    vehicle_id: UUID | None = None
    invoice_number: str | None = Field(None, max_length=50)
    line_items: list[InvoiceLineItem] = Field(default_factory=list)
    subtotal: Decimal = Field(..., ge=0, max_digits=12, decimal_places=2)
    vat_rate: Decimal = Field(Decimal("0"), ge=0, le=100)
    vat_amount: Decimal = Field(Decimal("0"), ge=0, max_digits=12, decimal_places=2)
    total_amount: Decimal = Field(..., ge=0, max_digits=12, decimal_places=2)
    currency: Currency
    due_date: date | None = None
    payment_terms: str | None = Field(None, max_length=255)
    notes: str | None = Field(None, max_length=2000)
    status: InvoiceStatus = InvoiceStatus.DRAFT


class InvoiceUpdate(CamelModel):
    """Fields that can be written directly. Only non-None fields are changed."""

    customer_id: UUID | None = None
    vehicle_id: UUID | None = None
    line_items: list[InvoiceLineItem] | None = None
    subtotal: Decimal | None = Field(None, ge=0, max_digits=12, decimal_places=2)
    vat_rate: Decimal | None = Field(None, ge=0, le=100)
    vat_amount: Decimal | None = Field(None, ge=0, max_digits=12, decimal_places=2)
    total_amount: Decimal | None = Field(None, ge=0, max_digits=12, decimal_places=2)
    currency: Currency | None = None
    status: InvoiceStatus | None = None
    due_date: date | None = None
    payment_terms: str | None = Field(None, max_length=255)
    notes: str | None = Field(None, max_length=2000)


class Invoice(CamelModel):
    """Full invoice entity as stored."""

    id: UUID
    invoice_number: str
    customer_id: UUID
    vehicle_id: UUID | None = None
    line_items: list[InvoiceLineItem] = Field(default_factory=list)
    subtotal: Decimal
    vat_rate: Decimal
    vat_amount: Decimal
    total_amount: Decimal
    currency: Currency
    status: InvoiceStatus
    due_date: date | None = None
    terms: str | None = None
    notes: str | None = None
    created_by: UUID | None = None
    created_at: datetime
    updated_at: datetime


class CustomerSummary(CamelModel):
    id: UUID
    full_name: str
    email: str | None = None
    phone: str | None = None


class VehicleSummary(CamelModel):
    id: UUID
    year: int
    make: str
    model: str
    vin: str


class InvoiceDetails(Invoice):
    """Invoice with its payments folded in. balance_due may be negative."""

    total_paid: Decimal = Decimal("0")
    balance_due: Decimal = Decimal("0")
    payments: list[PaymentBrief] = Field(default_factory=list)
    customer: CustomerSummary | None = None
    vehicle: VehicleSummary | None = None


class InvoiceFilters(CamelModel):
    """Optional filters for InvoiceService.list. Unset fields do not filter."""

    search: str | None = None
    status: InvoiceStatus | None = None
    customer_id: UUID | None = None
    vehicle_id: UUID | None = None
    currency: Currency | None = None
    created_from: date | None = None
    created_to: date | None = None
    due_from: date | None = None
    due_to: date | None = None
    overdue_only: bool = False


class InvoiceStatistics(CamelModel):
    """Invoice aggregates. Only total_value is kept per currency; status and overdue amounts are raw sums."""

    total: int
    total_value: dict[str, Decimal]
    by_status: dict[str, dict[str, Decimal | int]]
    overdue: dict[str, Decimal | int]
