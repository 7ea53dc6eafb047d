"""
Health check endpoint schemas.

The health endpoint is PUBLIC (no authentication required).
"""

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    """Response model for GET /health, used by load balancers and uptime checks."""

    status: str = Field(
        default="ok",
        description="Always 'ok' while the API is responding",
        examples=["ok"]
    )
