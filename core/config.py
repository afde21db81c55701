"""Application configuration."""

import os

from pydantic import BaseModel, Field


class AppConfig(BaseModel):
    """
    Dealership back-office configuration.

    Values come from the environment (a .env file is loaded by main.py before
    this is built). Secrets such as the database URL are not stored here; see
    clients.vault_client.
    """

    # Listing
    default_page_size: int = Field(
        default=20,
        description="Page size used when a list call omits limit",
        ge=1,
        le=100,
    )
    max_page_size: int = Field(
        default=100,
        description="Hard ceiling on limit for every list operation",
        ge=1,
        le=100,
    )

    # Invoicing
    payment_terms_days: int = Field(
        default=30,
        description="Days until due for invoices created from a vehicle sale",
        ge=0,
    )
    aed_vat_rate: int = Field(
        default=5,
        description="VAT percentage applied to AED vehicle sales",
        ge=0,
        le=100,
    )

    # Application
    app_name: str = Field(default="Dealership Ledger")
    log_level: str = Field(default="INFO", pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$")
    cors_origins: list[str] = Field(default_factory=list)

    @classmethod
    def from_env(cls) -> "AppConfig":
        """Build config from environment variables, falling back to defaults."""
        values = {}
        env_map = {
            "default_page_size": "DEFAULT_PAGE_SIZE",
            "max_page_size": "MAX_PAGE_SIZE",
            "payment_terms_days": "PAYMENT_TERMS_DAYS",
            "aed_vat_rate": "AED_VAT_RATE",
            "app_name": "APP_NAME",
            "log_level": "LOG_LEVEL",
        }
        for field, env_name in env_map.items():
            raw = os.getenv(env_name)
            if raw is not None:
                values[field] = raw

        origins = os.getenv("CORS_ORIGINS")
        if origins:
            values["cors_origins"] = [o.strip() for o in origins.split(",") if o.strip()]

        return cls(**values)
