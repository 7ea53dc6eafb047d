"""
FastAPI application entry point for the NeuroCal backend.

This module creates the FastAPI app instance and registers all routers.
"""

import logging
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware

from neurocal.config import settings
from neurocal.routes.ai import router as ai_router
from neurocal.routes.analytics import router as analytics_router
from neurocal.routes.auth import router as auth_router
from neurocal.routes.billing import router as billing_router
from neurocal.routes.events import router as events_router
from neurocal.routes.features import router as features_router
from neurocal.routes.health import router as health_router
from neurocal.utils.logging import configure_logging

configure_logging(settings.LOG_LEVEL)

logger = logging.getLogger(__name__)


def _get_cors_origins() -> list[str]:
    """
    Get allowed CORS origins based on environment.

    Environment-based configuration:
    - ENVIRONMENT=production: Uses CORS_ALLOWED_ORIGINS (comma-separated)
    - ENVIRONMENT=testing/development: Allows all origins for local dev

    Returns:
        List of allowed origin URLs, or ["*"] for development.
    """
    environment = settings.ENVIRONMENT

    if settings.is_production():
        if settings.CORS_ALLOWED_ORIGINS:
            origins = [
                origin.strip()
                for origin in settings.CORS_ALLOWED_ORIGINS.split(",")
                if origin.strip()
            ]
            logger.info(f"CORS configured for production with {len(origins)} allowed origins")
            return origins
        logger.warning(
            "CORS_ALLOWED_ORIGINS not set in production. "
            "No web origins allowed. Set CORS_ALLOWED_ORIGINS for the web client."
        )
        return []

    logger.info(f"CORS configured for {environment}: allowing all origins")
    return ["*"]


# Create FastAPI app
app = FastAPI(
    title="NeuroCal API",
    description="Backend service for the NeuroCal AI calendar",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc"
)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """
    Log validation errors and return them in the API error shape.

    Request bodies are not logged: they may contain passwords.
    """
    logger.warning(
        f"Validation error on {request.method} {request.url.path}: "
        f"{[e.get('loc') for e in exc.errors()]}"
    )

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error": "validation_error",
            "details": [
                {"loc": list(e.get("loc", ())), "msg": e.get("msg"), "type": e.get("type")}
                for e in exc.errors()
            ],
        }
    )


# Configure CORS with environment-based origins
cors_origins = _get_cors_origins()
app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=cors_origins != ["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register routers
app.include_router(health_router)
app.include_router(auth_router)
app.include_router(events_router)
app.include_router(ai_router)
app.include_router(billing_router)
app.include_router(features_router)
app.include_router(analytics_router)

logger.info("FastAPI app initialized successfully")
