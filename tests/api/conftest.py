"""API test fixtures: the full app wired to Mock(spec=...) services."""

from unittest.mock import Mock

import pytest
from starlette.testclient import TestClient

from core.config import AppConfig
from core.services.customer_service import CustomerService
from core.services.invoice_service import InvoiceService
from core.services.payment_service import PaymentService
from core.services.vehicle_service import VehicleService
from main import create_app


# =============================================================================
# SERVICE FIXTURES
# =============================================================================


@pytest.fixture
def invoice_service():
    return Mock(spec=InvoiceService)


@pytest.fixture
def payment_service():
    return Mock(spec=PaymentService)


@pytest.fixture
def customer_service():
    return Mock(spec=CustomerService)


@pytest.fixture
def vehicle_service():
    return Mock(spec=VehicleService)


@pytest.fixture
def services(invoice_service, payment_service, customer_service, vehicle_service):
    return {
        "invoice": invoice_service,
        "payment": payment_service,
        "customer": customer_service,
        "vehicle": vehicle_service,
    }


# =============================================================================
# APP & CLIENT FIXTURES
# =============================================================================


@pytest.fixture
def app(services):
    """App with middleware, error handlers and every /api router."""
    return create_app(AppConfig(), services=services)


@pytest.fixture
def client(app):
    return TestClient(app, raise_server_exceptions=False)


@pytest.fixture
def user_headers(test_user_id):
    """Headers identifying the acting user, as the gateway would send them."""
    return {"X-User-ID": str(test_user_id)}
