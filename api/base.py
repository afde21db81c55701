"""
Unified API response format.

Every endpoint answers with the service result envelope:
{"success": true, "data": ..., "pagination"?: {...}} or
{"success": false, "error": "..."}. Failure messages are sanitised before
they leave the process.
"""

from fastapi import Request
from starlette.responses import JSONResponse

from api.errors import sanitize_error, status_for_result
from core.models import ServiceResult


def result_response(result: ServiceResult, success_status: int = 200) -> JSONResponse:
    """JSON response for a ServiceResult, with the status its outcome implies."""
    if result.success:
        return JSONResponse(status_code=success_status, content=result.to_dict())

    return JSONResponse(
        status_code=status_for_result(result),
        content={"success": False, "error": sanitize_error(result.error or "")},
    )


def acting_user(request: Request):
    """User id recorded by RequestIDMiddleware, or None for anonymous calls."""
    return getattr(request.state, "user_id", None)
