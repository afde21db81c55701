"""Core domain models."""

from core.models.enums import Currency, InvoiceStatus, PaymentMethod, VehicleStatus
from core.models.result import ServiceResult, ErrorKind, Pagination, page_window
from core.models.customer import Customer, CustomerCreate, CustomerUpdate, CustomerFilters
from core.models.vehicle import Vehicle, VehicleCreate, VehicleUpdate, VehicleFilters
from core.models.payment import (
    Payment, PaymentCreate, PaymentUpdate, PaymentFilters, PaymentBrief,
    InvoicePaymentSummary, PaymentStatistics,
)
from core.models.invoice import (
    Invoice, InvoiceCreate, InvoiceUpdate, InvoiceFilters, InvoiceLineItem,
    InvoiceDetails, InvoiceStatistics, CustomerSummary, VehicleSummary,
)

__all__ = [
    # Enums
    "Currency", "InvoiceStatus", "PaymentMethod", "VehicleStatus",
    # Result envelope
    "ServiceResult", "ErrorKind", "Pagination", "page_window",
    # Customer
    "Customer", "CustomerCreate", "CustomerUpdate", "CustomerFilters",
    # Vehicle
    "Vehicle", "VehicleCreate", "VehicleUpdate", "VehicleFilters",
    # Payment
    "Payment", "PaymentCreate", "PaymentUpdate", "PaymentFilters", "PaymentBrief",
    "InvoicePaymentSummary", "PaymentStatistics",
    # Invoice
    "Invoice", "InvoiceCreate", "InvoiceUpdate", "InvoiceFilters", "InvoiceLineItem",
    "InvoiceDetails", "InvoiceStatistics", "CustomerSummary", "VehicleSummary",
]
