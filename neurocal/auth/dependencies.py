"""
FastAPI dependency functions for authentication and feature gating.

These functions are used as FastAPI dependencies to verify bearer tokens,
extract the authenticated user_id, and enforce subscription entitlements.
"""

import logging
from dataclasses import dataclass
from typing import Annotated, Any, Callable, Coroutine, Dict, Optional

from fastapi import Depends, Header, HTTPException, status
from jwt.exceptions import ExpiredSignatureError, InvalidTokenError

from neurocal.auth.security import decode_access_token
from neurocal.db.client import get_supabase_client
from neurocal.services import subscription_service

logger = logging.getLogger(__name__)


@dataclass
class AuthenticatedUser:
    """
    Represents an authenticated user with their token.

    Attributes:
        user_id: The user's UUID from the JWT token's 'sub' claim
        access_token: The full JWT access token (for creating authenticated Supabase clients)
        email: The 'email' claim, if present
    """
    user_id: str
    access_token: str
    email: Optional[str] = None


def _unauthorized(error: str, details: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={"error": error, "details": details},
        headers={"WWW-Authenticate": "Bearer"},
    )


def _extract_bearer_token(authorization: Optional[str]) -> str:
    if not authorization:
        logger.warning("Missing Authorization header")
        raise _unauthorized("unauthorized", "Missing Authorization header")

    # Extract token from "Bearer <token>" format
    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        logger.warning("Invalid Authorization header format")
        raise _unauthorized("unauthorized", "Invalid Authorization header format")

    return parts[1]


async def get_authenticated_user(
    authorization: Annotated[str | None, Header()] = None
) -> AuthenticatedUser:
    """
    Verify the bearer token and return the authenticated user with token.

    This is a FastAPI dependency that:
    1. Reads Authorization header (format: "Bearer <token>")
    2. Verifies signature, expiration, audience and issuer
    3. Extracts user_id from the 'sub' claim

    Raises:
        HTTPException: 401 if token is missing, invalid, or expired

    Security:
        - The token is the ONLY source of truth for user_id
        - Any user_id sent in a request body is ignored

    Usage:
        @router.get("/protected")
        async def protected_route(
            auth_user: Annotated[AuthenticatedUser, Depends(get_authenticated_user)]
        ):
            supabase_client = get_supabase_client(auth_user.access_token)
    """
    token = _extract_bearer_token(authorization)

    try:
        payload = decode_access_token(token)
    except ExpiredSignatureError:
        logger.warning("Token has expired")
        raise _unauthorized("token_expired", "Authentication token has expired")
    except InvalidTokenError as e:
        logger.warning(f"Invalid token: {str(e)}")
        raise _unauthorized("invalid_token", "Invalid authentication token")

    user_id = payload.get("sub")
    if not user_id:
        logger.error("Token payload missing 'sub' claim")
        raise _unauthorized("unauthorized", "Invalid token: missing user ID")

    logger.debug(f"Token verified successfully for user_id={user_id}")

    return AuthenticatedUser(
        user_id=str(user_id),
        access_token=token,
        email=payload.get("email"),
    )


async def verify_token(
    auth_user: Annotated[AuthenticatedUser, Depends(get_authenticated_user)]
) -> str:
    """Verify the bearer token and return only the user_id."""
    return auth_user.user_id


def require_feature(
    feature: str,
) -> Callable[..., Coroutine[Any, Any, AuthenticatedUser]]:
    """
    Build a dependency that gates an endpoint behind a plan feature.

    When access is granted the month's usage counter for the feature is
    incremented before the endpoint runs.

    Usage:
        @router.post("/create-event")
        async def create_event(
            auth_user: Annotated[AuthenticatedUser, Depends(require_feature("ai_suggestions"))]
        ):
            ...

    Raises:
        HTTPException: 403 when the plan does not include the feature or the
                       monthly limit is exhausted, 500 if the check fails
    """

    async def _feature_gate(
        auth_user: Annotated[AuthenticatedUser, Depends(get_authenticated_user)]
    ) -> AuthenticatedUser:
        supabase_client = get_supabase_client(auth_user.access_token)

        try:
            has_access = await subscription_service.has_feature_access(
                supabase_client, auth_user.user_id, feature
            )
        except Exception as e:
            logger.error(f"Failed to check feature access for {feature}: {e}", exc_info=True)
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail={"error": "feature_check_failed", "details": "Failed to check feature access"},
            )

        if not has_access:
            logger.info(f"Feature {feature} denied for user {auth_user.user_id}")
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail={
                    "error": "feature_not_available",
                    "details": "Feature not available in your current plan",
                    "upgrade_required": True,
                    "feature": feature,
                },
            )

        await subscription_service.track_usage(supabase_client, auth_user.user_id, feature)
        return auth_user

    return _feature_gate


async def require_subscription(
    auth_user: Annotated[AuthenticatedUser, Depends(get_authenticated_user)]
) -> Dict[str, Any]:
    """
    Require a trial or active subscription and return it.

    Raises:
        HTTPException: 403 when the user has no entitled subscription
    """
    supabase_client = get_supabase_client(auth_user.access_token)
    subscription = await subscription_service.get_user_subscription(
        supabase_client, auth_user.user_id
    )

    if not subscription or not subscription_service.is_entitled(subscription):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={
                "error": "subscription_required",
                "details": "Active subscription required",
                "upgrade_required": True,
            },
        )

    return subscription
