"""
Application entry point.

Wires config, the Postgres client, the audit logger and services into a
FastAPI app. Run with `python main.py` or `uvicorn main:app`.
"""

import logging

import uvicorn
from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.customers import create_customers_router
from api.errors import register_error_handlers
from api.invoices import create_invoices_router
from api.middleware import RequestIDMiddleware
from api.payments import create_payments_router
from api.vehicles import create_vehicles_router
from clients.postgres_client import PostgresClient
from clients.vault_client import get_database_url
from core.audit import AuditLogger
from core.config import AppConfig
from core.services.customer_service import CustomerService
from core.services.invoice_service import InvoiceService
from core.services.payment_service import PaymentService
from core.services.vehicle_service import VehicleService

logger = logging.getLogger(__name__)


def build_services(postgres: PostgresClient, config: AppConfig) -> dict:
    """One instance of each service, sharing a single client and audit logger."""
    audit = AuditLogger(postgres)
    invoice_service = InvoiceService(postgres, audit, config)

    return {
        "invoice": invoice_service,
        "payment": PaymentService(postgres, audit, invoice_service, config),
        "customer": CustomerService(postgres, audit, config),
        "vehicle": VehicleService(postgres, audit, config),
    }


def create_app(config: AppConfig | None = None, services: dict | None = None) -> FastAPI:
    """
    Build the FastAPI app.

    Args:
        config: Settings; read from the environment when omitted
        services: Prebuilt services; built against the Vault-configured
            database when omitted

    Returns:
        App with middleware, error handlers and all /api routers
    """
    config = config or AppConfig.from_env()

    if services is None:
        postgres = PostgresClient(get_database_url())
        services = build_services(postgres, config)

    app = FastAPI(title=config.app_name)
    app.add_middleware(RequestIDMiddleware)
    if config.cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=config.cors_origins,
            allow_methods=["*"],
            allow_headers=["*"],
        )
    register_error_handlers(app)

    app.include_router(create_invoices_router(services), prefix="/api")
    app.include_router(create_payments_router(services), prefix="/api")
    app.include_router(create_customers_router(services), prefix="/api")
    app.include_router(create_vehicles_router(services), prefix="/api")

    logger.info(f"{config.app_name} ready")
    return app


if __name__ == "__main__":
    load_dotenv()
    settings = AppConfig.from_env()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run(create_app(settings), host="0.0.0.0", port=8000, log_level=settings.log_level.lower())
