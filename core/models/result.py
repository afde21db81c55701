"""
Uniform result envelope returned by every service operation.

Services never raise across their boundary. Success carries data (and
pagination for list calls); failure carries a human-readable error string
plus an ErrorKind the HTTP layer maps to a status code.
"""

import math
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field

from core.models.base import CamelModel


class ErrorKind(str, Enum):
    """Failure category. Drives the HTTP status code; never sent to clients."""

    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    VALIDATION = "validation"
    UNAUTHORIZED = "unauthorized"
    FORBIDDEN = "forbidden"
    INTERNAL = "internal"


class Pagination(CamelModel):
    """Page metadata for list operations."""

    page: int
    limit: int
    total: int
    pages: int

    @classmethod
    def build(cls, page: int, limit: int, total: int) -> "Pagination":
        return cls(page=page, limit=limit, total=total, pages=math.ceil(total / limit))


def page_window(page: int | None, limit: int | None, default_limit: int = 20, max_limit: int = 100) -> tuple[int, int, int]:
    """
    Clamp caller paging input.

    Returns:
        (page, limit, offset) with page >= 1 and 1 <= limit <= max_limit
    """
    page = max(1, page or 1)
    limit = default_limit if limit is None else limit
    limit = min(max(1, limit), max_limit)
    return page, limit, (page - 1) * limit


def _dump(value: Any) -> Any:
    """JSON-safe form. Decimals stay exact as strings."""
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json", by_alias=True)
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, list):
        return [_dump(v) for v in value]
    if isinstance(value, dict):
        return {k: _dump(v) for k, v in value.items()}
    return value


class ServiceResult(BaseModel):
    """
    {success: true, data, pagination?} or {success: false, error}.

    Usage:
        return ServiceResult.ok(invoice)
        return ServiceResult.ok(invoices, pagination=Pagination.build(page, limit, total))
        return ServiceResult.fail("Invoice not found", ErrorKind.NOT_FOUND)
    """

    success: bool
    data: Any = None
    error: str | None = None
    pagination: Pagination | None = None
    kind: ErrorKind | None = Field(default=None, exclude=True)

    @classmethod
    def ok(cls, data: Any = None, pagination: Pagination | None = None) -> "ServiceResult":
        return cls(success=True, data=data, pagination=pagination)

    @classmethod
    def fail(cls, error: str, kind: ErrorKind | None = None) -> "ServiceResult":
        return cls(success=False, error=error, kind=kind)

    def to_dict(self) -> dict[str, Any]:
        """Wire form. Failure bodies hold only success and error."""
        if not self.success:
            return {"success": False, "error": self.error}

        body: dict[str, Any] = {"success": True}
        if self.data is not None:
            body["data"] = _dump(self.data)
        if self.pagination is not None:
            body["pagination"] = _dump(self.pagination)
        return body
