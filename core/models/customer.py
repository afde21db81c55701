"""Customer (buyer) domain models."""

from datetime import date, datetime
from uuid import UUID

from pydantic import EmailStr, Field

from core.models.base import CamelModel


class CustomerCreate(CamelModel):
    """Data required to create a customer."""

    full_name: str = Field(..., min_length=1, max_length=255)
    email: EmailStr | None = None
    phone: str | None = Field(None, max_length=50)
    address: str | None = Field(None, max_length=500)
    city: str | None = Field(None, max_length=100)
    country: str = Field("UAE", max_length=100)
    preferred_language: str = Field("en", pattern="^(en|ar|fr|ru)$")
    marketing_consent: bool = False


class CustomerUpdate(CamelModel):
    """Data that can be updated on a customer. All fields optional."""

    full_name: str | None = Field(None, min_length=1, max_length=255)
    email: EmailStr | None = None
    phone: str | None = Field(None, max_length=50)
    address: str | None = Field(None, max_length=500)
    city: str | None = Field(None, max_length=100)
    country: str | None = Field(None, max_length=100)
    preferred_language: str | None = Field(None, pattern="^(en|ar|fr|ru)$")
    marketing_consent: bool | None = None


class Customer(CamelModel):
    """Full customer entity as stored."""

    id: UUID
    full_name: str
    email: str | None
    phone: str | None
    address: str | None
    city: str | None
    country: str
    preferred_language: str
    marketing_consent: bool
    created_at: datetime
    updated_at: datetime


class CustomerFilters(CamelModel):
    """Optional filters for CustomerService.list."""

    search: str | None = None
    city: str | None = None
    country: str | None = None
    marketing_consent: bool | None = None
    created_from: date | None = None
    created_to: date | None = None
