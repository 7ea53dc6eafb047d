"""
Analytics API endpoints.

GET /api/analytics/dashboard summarises the user's own calendar and AI usage
over a trailing window.
"""

import logging
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Query, status

from neurocal.auth.dependencies import AuthenticatedUser, get_authenticated_user
from neurocal.db.client import get_supabase_client
from neurocal.schemas.analytics import DashboardResponse
from neurocal.services import analytics_service
from neurocal.utils.http_errors import internal_error

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/analytics", tags=["analytics"])


@router.get(
    "/dashboard",
    response_model=DashboardResponse,
    status_code=status.HTTP_200_OK,
    summary="Calendar analytics dashboard",
    description="""
    Summarise the last `days` days of the user's calendar.

    This endpoint:
    - Counts events and hours per event type
    - Reports focus and meeting hours and average events per active day
    - Returns a per-day trend covering every day of the window
    - Aggregates AI interactions per type with average confidence

    Security:
    - Requires valid Authorization Bearer token
    - RLS ensures only the user's own rows are read
    """
)
async def dashboard(
    auth_user: Annotated[AuthenticatedUser, Depends(get_authenticated_user)],
    days: int = Query(30, ge=1, le=365, description="Length of the window in days"),
    timezone: Optional[str] = Query(
        None, max_length=64, description="IANA timezone for the daily trend (defaults to the profile timezone)"
    ),
) -> DashboardResponse:
    logger.info(f"Dashboard requested by user {auth_user.user_id} (days={days})")

    supabase_client = get_supabase_client(auth_user.access_token)

    try:
        data = await analytics_service.get_dashboard(
            supabase_client, auth_user.user_id, days, timezone_name=timezone
        )
    except Exception as e:
        logger.error(f"Dashboard failed for user {auth_user.user_id}: {e}", exc_info=True)
        raise internal_error("analytics_error", "Failed to build analytics dashboard")

    return DashboardResponse(**data)
