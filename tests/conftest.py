"""Shared test fixtures for the dealership ledger test suite.

No database is needed: services get a Mock(spec=PostgresClient) or the
in-memory FakeLedger below, and a Mock(spec=AuditLogger).
"""

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import Mock
from uuid import UUID, uuid4

import pytest

from clients.postgres_client import PostgresClient
from core.audit import AuditLogger
from core.config import AppConfig


# =============================================================================
# TEST CONSTANTS
# =============================================================================

TEST_USER_ID = UUID("00000000-0000-0000-0000-000000000001")
CREATED_AT = datetime(2026, 1, 15, 9, 30, tzinfo=timezone.utc)


# =============================================================================
# ROW FACTORIES
# =============================================================================


def _invoice_row(**overrides) -> dict:
    row = {
        "id": uuid4(),
        "invoice_number": "INV-2026-0001",
        "customer_id": uuid4(),
        "vehicle_id": None,
        "line_items": [],
        "subtotal": Decimal("25000.00"),
        "vat_rate": Decimal("5.00"),
        "vat_amount": Decimal("1250.00"),
        "total_amount": Decimal("26250.00"),
        "currency": "AED",
        "status": "sent",
        "due_date": date.today() + timedelta(days=30),
        "terms": "Net 30 days",
        "notes": None,
        "created_by": TEST_USER_ID,
        "created_at": CREATED_AT,
        "updated_at": CREATED_AT,
    }
    row.update(overrides)
    return row


def _payment_row(**overrides) -> dict:
    row = {
        "id": uuid4(),
        "invoice_id": uuid4(),
        "amount": Decimal("500.00"),
        "currency": "AED",
        "payment_date": date(2026, 1, 20),
        "payment_method": "cash",
        "transaction_id": None,
        "notes": None,
        "recorded_by": TEST_USER_ID,
        "created_at": CREATED_AT,
        "updated_at": CREATED_AT,
    }
    row.update(overrides)
    return row


def _vehicle_row(**overrides) -> dict:
    row = {
        "id": uuid4(),
        "vin": "1HGCM82633A004352",
        "year": 2021,
        "make": "Toyota",
        "model": "Camry",
        "lot_number": "LOT-77",
        "auction_house": "Copart",
        "purchase_price": Decimal("12000.00"),
        "sale_price": None,
        "currency": "USD",
        "current_status": "ready_for_sale",
        "is_public": True,
        "created_by": TEST_USER_ID,
        "created_at": CREATED_AT,
        "updated_at": CREATED_AT,
    }
    row.update(overrides)
    return row


def _customer_row(**overrides) -> dict:
    row = {
        "id": uuid4(),
        "full_name": "Ahmed Al Mansoori",
        "email": "ahmed@example.ae",
        "phone": "+971501234567",
        "address": None,
        "city": "Dubai",
        "country": "UAE",
        "preferred_language": "ar",
        "marketing_consent": False,
        "created_at": CREATED_AT,
        "updated_at": CREATED_AT,
    }
    row.update(overrides)
    return row


@pytest.fixture
def make_invoice_row():
    return _invoice_row


@pytest.fixture
def make_payment_row():
    return _payment_row


@pytest.fixture
def make_vehicle_row():
    return _vehicle_row


@pytest.fixture
def make_customer_row():
    return _customer_row


# =============================================================================
# DOUBLES
# =============================================================================


@pytest.fixture
def test_user_id() -> UUID:
    return TEST_USER_ID


@pytest.fixture
def db():
    """Mock PostgresClient; configure return_value/side_effect per test."""
    return Mock(spec=PostgresClient)


@pytest.fixture
def audit():
    return Mock(spec=AuditLogger)


@pytest.fixture
def config():
    return AppConfig()


class FakeLedger:
    """
    In-memory stand-in for the invoices/payments tables.

    Understands only the statements the invoice status engine and payment
    shortcuts issue; anything else fails the test loudly.
    """

    def __init__(self):
        self.invoices: dict[UUID, dict] = {}
        self.payments: dict[UUID, dict] = {}
        self.statements: list[str] = []

    def add_invoice(self, row: dict) -> dict:
        self.invoices[row["id"]] = dict(row)
        return row

    def add_payment(self, row: dict) -> dict:
        self.payments[row["id"]] = dict(row)
        return row

    def execute(self, query, params=None):
        q = " ".join(query.split())
        self.statements.append(q)

        if q.startswith("SELECT i.*"):
            invoice = self.invoices.get(params[0])
            return [dict(invoice)] if invoice else []

        if "FROM payments WHERE invoice_id = ANY" in q:
            ids = set(params[0])
            rows = [dict(p) for p in self.payments.values() if p["invoice_id"] in ids]
            return sorted(rows, key=lambda p: (p["payment_date"], p["created_at"]), reverse=True)

        if q.startswith("SELECT p.*"):
            payment = self.payments.get(params[0])
            if payment is None:
                return []
            invoice = self.invoices.get(payment["invoice_id"])
            return [{
                **payment,
                "invoice_number": invoice["invoice_number"] if invoice else None,
                "customer_name": "Ahmed Al Mansoori" if invoice else None,
            }]

        raise AssertionError(f"Unexpected query: {q}")

    def execute_single(self, query, params=None):
        rows = self.execute(query, params)
        return rows[0] if rows else None

    def execute_returning(self, query, params=None):
        q = " ".join(query.split())
        self.statements.append(q)

        if q.startswith("INSERT INTO payments"):
            (payment_id, invoice_id, amount, currency, payment_date, method,
             transaction_id, notes, recorded_by, created_at, updated_at) = params
            row = {
                "id": payment_id,
                "invoice_id": invoice_id,
                "amount": amount,
                "currency": currency,
                "payment_date": payment_date,
                "payment_method": method,
                "transaction_id": transaction_id,
                "notes": notes,
                "recorded_by": recorded_by,
                "created_at": created_at,
                "updated_at": updated_at,
            }
            self.payments[payment_id] = row
            return [dict(row)]

        if q.startswith("UPDATE invoices SET status"):
            status, updated_at, invoice_id = params
            self.invoices[invoice_id].update(status=status, updated_at=updated_at)
            return [dict(self.invoices[invoice_id])]

        raise AssertionError(f"Unexpected statement: {q}")

    def execute_scalar(self, query, params=None):
        raise AssertionError(f"Unexpected scalar query: {query}")

    def inserted_payments(self) -> int:
        return sum(1 for q in self.statements if q.startswith("INSERT INTO payments"))


@pytest.fixture
def ledger():
    return FakeLedger()
