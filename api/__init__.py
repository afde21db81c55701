"""API modules for HTTP interface."""

from api.base import result_response, acting_user
from api.errors import register_error_handlers, sanitize_error, status_for_result
from api.middleware import RequestIDMiddleware
