"""Vehicle inventory models."""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import Field, field_validator

from core.models.base import CamelModel
from core.models.enums import Currency, VehicleStatus

_VIN_PATTERN = "^[A-HJ-NPR-Z0-9]{17}$"


def _normalise_vin(v: str | None) -> str | None:
    return v.strip().upper() if v else v


class VehicleCreate(CamelModel):
    """Data required to add a vehicle to inventory."""

    vin: str = Field(..., pattern=_VIN_PATTERN)
    year: int = Field(..., ge=1900, le=2100)
    make: str = Field(..., min_length=1, max_length=100)
    model: str = Field(..., min_length=1, max_length=100)
    lot_number: str | None = Field(None, max_length=50)
    auction_house: str | None = Field(None, max_length=100)
    purchase_price: Decimal | None = Field(None, ge=0, max_digits=12, decimal_places=2)
    sale_price: Decimal | None = Field(None, ge=0, max_digits=12, decimal_places=2)
    currency: Currency = Currency.USD
    current_status: VehicleStatus = VehicleStatus.PENDING_AUCTION
    is_public: bool = False

    @field_validator("vin", mode="before")
    @classmethod
    def uppercase_vin(cls, v):
        return _normalise_vin(v)


class VehicleUpdate(CamelModel):
    """Data that can be updated on a vehicle. All fields optional."""

    vin: str | None = Field(None, pattern=_VIN_PATTERN)
    year: int | None = Field(None, ge=1900, le=2100)
    make: str | None = Field(None, min_length=1, max_length=100)
    model: str | None = Field(None, min_length=1, max_length=100)
    lot_number: str | None = Field(None, max_length=50)
    auction_house: str | None = Field(None, max_length=100)
    purchase_price: Decimal | None = Field(None, ge=0, max_digits=12, decimal_places=2)
    sale_price: Decimal | None = Field(None, ge=0, max_digits=12, decimal_places=2)
    currency: Currency | None = None
    is_public: bool | None = None

    @field_validator("vin", mode="before")
    @classmethod
    def uppercase_vin(cls, v):
        return _normalise_vin(v)


class Vehicle(CamelModel):
    """Full vehicle entity as stored."""

    id: UUID
    vin: str
    year: int
    make: str
    model: str
    lot_number: str | None = None
    auction_house: str | None = None
    purchase_price: Decimal | None = None
    sale_price: Decimal | None = None
    currency: Currency
    current_status: VehicleStatus
    is_public: bool
    created_by: UUID | None = None
    created_at: datetime
    updated_at: datetime

    @property
    def description(self) -> str:
        """Invoice line text: "<year> <make> <model> - VIN: <vin>"."""
        return f"{self.year} {self.make} {self.model} - VIN: {self.vin}"


class VehicleFilters(CamelModel):
    """Optional filters for VehicleService.list."""

    search: str | None = None
    status: VehicleStatus | None = None
    make: str | None = None
    model: str | None = None
    year_min: int | None = None
    year_max: int | None = None
    is_public: bool | None = None
