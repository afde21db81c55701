"""Tests for how the /api routers are mounted."""

import inspect

from fastapi.routing import APIRoute


def _api_routes(app):
    return [route for route in app.routes if isinstance(route, APIRoute) and route.path.startswith("/api")]


class TestHandlers:
    """Route handlers call blocking psycopg2 services."""

    def test_every_router_is_mounted(self, app):
        paths = {route.path for route in _api_routes(app)}

        for prefix in ("/api/invoices", "/api/payments", "/api/customers", "/api/vehicles"):
            assert prefix in paths

    def test_handlers_run_in_threadpool(self, app):
        """Plain def handlers keep database calls off the event loop."""
        routes = _api_routes(app)

        assert routes
        for route in routes:
            assert not inspect.iscoroutinefunction(route.endpoint), route.path
