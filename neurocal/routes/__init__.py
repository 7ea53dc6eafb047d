"""
FastAPI routers for all API endpoints.

Each module defines a router for one area (auth, calendar, ai, billing,
features, analytics). Routers authenticate, validate, call a service and
map its result or its domain error to an HTTP response.
"""
