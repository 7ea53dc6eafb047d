"""
HTTPException builders shared by the routers.

Every error body has the shape {"error": <code>, "details": <message>}.
"""

from fastapi import HTTPException, status

from neurocal.services.errors import ServiceError


def service_http_error(e: ServiceError) -> HTTPException:
    """Map a domain error to its HTTP status and error code."""
    return HTTPException(
        status_code=e.status_code,
        detail={"error": e.error_code, "details": e.message},
    )


def internal_error(error: str, details: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail={"error": error, "details": details},
    )
