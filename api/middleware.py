"""Request-scoped middleware for API requests."""

import logging
from uuid import UUID, uuid4

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

logger = logging.getLogger(__name__)

USER_ID_HEADER = "X-User-ID"


class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    Assigns a unique request ID to every request and records the acting user.

    The user id is taken on trust from the X-User-ID header set by the
    upstream gateway. A missing or malformed header leaves it None.
    """

    async def dispatch(self, request: Request, call_next):
        request_id = str(uuid4())
        request.state.request_id = request_id
        request.state.user_id = _parse_user_id(request.headers.get(USER_ID_HEADER))

        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response


def _parse_user_id(raw: str | None) -> UUID | None:
    if not raw:
        return None
    try:
        return UUID(raw)
    except ValueError:
        logger.warning(f"Ignoring malformed {USER_ID_HEADER} header: {raw!r}")
        return None
