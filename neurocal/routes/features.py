"""
Feature access API endpoints.

GET /api/features/check/{feature} reports whether the user's plan grants a
feature this month. Checking never counts as usage; gated endpoints count
usage through the require_feature dependency.
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Path, status

from neurocal.auth.dependencies import AuthenticatedUser, get_authenticated_user
from neurocal.db.client import get_supabase_client
from neurocal.schemas.features import FeatureCheckResponse
from neurocal.services import subscription_service
from neurocal.utils.http_errors import internal_error

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/features", tags=["features"])


@router.get(
    "/check/{feature}",
    response_model=FeatureCheckResponse,
    status_code=status.HTTP_200_OK,
    summary="Check access to a plan feature",
    description="""
    Report access to a feature for the authenticated user.

    Access requires a trial or active subscription whose plan enables the
    feature, and monthly usage below the plan limit (-1 = unlimited).
    """
)
async def check_feature(
    auth_user: Annotated[AuthenticatedUser, Depends(get_authenticated_user)],
    feature: str = Path(..., min_length=1, max_length=64, description="Feature key, e.g. ai_suggestions"),
) -> FeatureCheckResponse:
    supabase_client = get_supabase_client(auth_user.access_token)

    try:
        result = await subscription_service.check_feature(supabase_client, auth_user.user_id, feature)
    except Exception as e:
        logger.error(f"Feature check {feature} failed for user {auth_user.user_id}: {e}", exc_info=True)
        raise internal_error("feature_check_failed", "Failed to check feature access")

    logger.debug(f"Feature {feature} for user {auth_user.user_id}: has_access={result['has_access']}")
    return FeatureCheckResponse(**result)
