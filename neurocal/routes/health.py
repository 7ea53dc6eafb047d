"""
Health check route for the NeuroCal backend.

This endpoint is PUBLIC (no authentication required) and provides a simple
status check for load balancers, monitoring and deployment verification.
"""

import logging

from fastapi import APIRouter

from neurocal.schemas.health import HealthResponse

logger = logging.getLogger(__name__)

# Mounted at root level in main.py
router = APIRouter(tags=["system"])


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check endpoint",
    description=(
        "Public health check endpoint (no authentication required). "
        "Returns a simple status indicator for monitoring and load balancing."
    ),
    status_code=200,
)
async def health_check() -> HealthResponse:
    logger.debug("Health check endpoint called")
    return HealthResponse(status="ok")
