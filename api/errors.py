"""Error sanitising, status mapping and global exception handlers for FastAPI."""

import logging
import re

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from starlette.responses import JSONResponse

from core.models import ErrorKind, ServiceResult

logger = logging.getLogger(__name__)

# Applied in order; each pattern redacts one kind of secret
_REDACTIONS = [
    (re.compile(r"connection string.*?failed", re.IGNORECASE), "database connection failed"),
    (re.compile(r"password.*?@", re.IGNORECASE), "credentials@"),
    (re.compile(r"user:.*?@", re.IGNORECASE), "user:***@"),
    (re.compile(r"postgresql://.*?@", re.IGNORECASE), "postgresql://***@"),
    (re.compile(r"SUPABASE_.*?KEY", re.IGNORECASE), "***KEY"),
    (re.compile(r"ERROR: (.*?)$", re.IGNORECASE | re.MULTILINE), "database error"),
]

STATUS_BY_KIND = {
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.CONFLICT: 409,
    ErrorKind.VALIDATION: 400,
    ErrorKind.UNAUTHORIZED: 401,
    ErrorKind.FORBIDDEN: 403,
    ErrorKind.INTERNAL: 500,
}


def sanitize_error(message: str | Exception) -> str:
    """Strip credentials, connection strings and raw database errors from a message."""
    text = str(message)
    for pattern, replacement in _REDACTIONS:
        text = pattern.sub(replacement, text)
    return text


def status_for_message(message: str) -> int:
    """Status for a failure without an ErrorKind, matched on message wording."""
    if "not found" in message:
        return 404
    if "already exists" in message:
        return 409
    if "Unauthorized" in message:
        return 401
    if "Forbidden" in message:
        return 403
    return 500


def status_for_result(result: ServiceResult) -> int:
    """HTTP status for a failed ServiceResult."""
    if result.kind is not None:
        return STATUS_BY_KIND[result.kind]
    return status_for_message(result.error or "")


def _error_body(message: str) -> dict:
    return {"success": False, "error": message}


def register_error_handlers(app: FastAPI) -> None:
    """Register global exception handlers on the app."""

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError):
        message = sanitize_error(exc)
        status_code = status_for_message(message)
        return JSONResponse(
            status_code=400 if status_code == 500 else status_code,
            content=_error_body(message),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        details = "; ".join(
            f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}"
            for err in exc.errors()
        )
        return JSONResponse(
            status_code=400,
            content=_error_body(f"Validation failed: {details}"),
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled exception")
        return JSONResponse(
            status_code=500,
            content=_error_body("Internal server error"),
        )
