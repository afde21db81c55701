"""Closed value sets shared across models."""

from enum import Enum


class Currency(str, Enum):
    """Currencies the dealership invoices and accepts payment in."""

    AED = "AED"
    USD = "USD"
    CAD = "CAD"


class InvoiceStatus(str, Enum):
    """
    Invoice lifecycle status.

    Derived from payments and due date once any payment exists; see
    core.invoice_status.
    """

    DRAFT = "draft"
    SENT = "sent"
    PARTIALLY_PAID = "partially_paid"
    FULLY_PAID = "fully_paid"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"


class PaymentMethod(str, Enum):
    CASH = "cash"
    BANK_TRANSFER = "bank_transfer"
    CHECK = "check"
    CREDIT_CARD = "credit_card"
    OTHER = "other"


class VehicleStatus(str, Enum):
    """Where a vehicle is in the import pipeline."""

    PENDING_AUCTION = "pending_auction"
    WON_AUCTION = "won_auction"
    IN_TRANSIT = "in_transit"
    AT_PORT = "at_port"
    IN_CUSTOMS = "in_customs"
    READY_FOR_SALE = "ready_for_sale"
    RESERVED = "reserved"
    SOLD = "sold"
    DELIVERED = "delivered"
