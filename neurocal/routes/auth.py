"""
Auth API endpoints.

Provides endpoints for account and session operations:
- POST /api/auth/register, /login, /check-email (public)
- POST /api/auth/verify-email, /resend-verification, /forgot-password,
  /reset-password (public, one-time token flows)
- PUT /api/auth/change-password, GET /api/auth/me (bearer token)
- GET/PUT /api/auth/profile, GET/PUT /api/auth/preferences (bearer token)

Public endpoints have no user token yet, so they use the service-role client
and filter by e-mail or token explicitly.
"""

import logging
from typing import Annotated, Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, status

from neurocal.auth.dependencies import AuthenticatedUser, get_authenticated_user
from neurocal.config import settings
from neurocal.db.client import get_service_role_client, get_supabase_client
from neurocal.schemas.auth import (
    AuthMeResponse,
    ChangePasswordRequest,
    CheckEmailRequest,
    CheckEmailResponse,
    EmailRequest,
    LoginRequest,
    LoginResponse,
    MessageResponse,
    PreferencesResponse,
    PreferencesUpdateRequest,
    ProfileUpdateRequest,
    ProfileUpdateResponse,
    RegisterRequest,
    RegisterResponse,
    ResetPasswordRequest,
    UserResponse,
    VerifyEmailRequest,
    VerifyEmailResponse,
)
from neurocal.services import user_service
from neurocal.services.errors import ServiceError
from neurocal.utils.http_errors import internal_error, service_http_error

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])

FORGOT_PASSWORD_MESSAGE = "If an account exists for this email, a password reset link has been sent."


def _as_str(v: Any) -> str:
    return str(v) if v is not None else ""


def _user_response(user: Dict[str, Any]) -> UserResponse:
    return UserResponse(
        id=_as_str(user.get("id")),
        email=_as_str(user.get("email")),
        first_name=user.get("first_name"),
        last_name=user.get("last_name"),
        display_name=user.get("display_name"),
        email_verified=bool(user.get("email_verified")),
        timezone=user.get("timezone"),
        preferences=user.get("preferences") or {},
        created_at=user.get("created_at"),
    )


# =============================================================================
# PUBLIC ENDPOINTS
# =============================================================================

@router.post(
    "/register",
    response_model=RegisterResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register a new account",
    description="""
    Create an account with e-mail and password.

    This endpoint:
    - Rejects e-mails that are already registered (400 user_exists)
    - Stores a bcrypt hash of the password
    - Starts a free trial on the Pro plan
    - Sends a verification e-mail

    The account cannot log in until the e-mail is verified.
    """
)
async def register(request: RegisterRequest) -> RegisterResponse:
    """
    Register a user.

    **6-STEP ENDPOINT FLOW:**

    Step 1: Auth
    - Public endpoint (no token yet)

    Step 2: Parse/Validate Request
    - FastAPI validates RegisterRequest (e-mail format, password length)

    Step 3: Domain & Intent Filter
    - Duplicate e-mails rejected by the service

    Step 4: Call Service
    - register_user() creates the user, trial and verification token

    Step 5: Map Output -> ResponseModel
    - Convert user record to RegisterResponse

    Step 6: Persistence
    - Service layer inserts users, user_subscriptions, user_usage, auth_tokens
    """
    logger.info("Registration attempt")

    try:
        supabase_client = get_service_role_client()
        user = await user_service.register_user(
            supabase_client=supabase_client,
            email=request.email,
            password=request.password,
            first_name=request.first_name,
            last_name=request.last_name,
        )
    except ServiceError as e:
        logger.info(f"Registration rejected: {e.error_code}")
        raise service_http_error(e)
    except Exception as e:
        logger.error(f"Registration failed: {e}", exc_info=True)
        raise internal_error("registration_failed", "Failed to create account")

    return RegisterResponse(
        message="Account created successfully. Please check your email to verify your account.",
        user=_user_response(user),
    )


@router.post(
    "/login",
    response_model=LoginResponse,
    status_code=status.HTTP_200_OK,
    summary="Log in with e-mail and password",
    description="""
    Exchange credentials for a signed access token.

    Returns 401 for unknown e-mails, wrong passwords and unverified accounts.
    """
)
async def login(request: LoginRequest) -> LoginResponse:
    try:
        supabase_client = get_service_role_client()
        user, token = await user_service.login_user(
            supabase_client, request.email, request.password
        )
    except ServiceError as e:
        raise service_http_error(e)
    except Exception as e:
        logger.error(f"Login failed: {e}", exc_info=True)
        raise internal_error("login_failed", "Failed to log in")

    logger.info(f"User {user.get('id')} logged in")

    return LoginResponse(
        access_token=token,
        expires_in=settings.JWT_EXPIRES_DAYS * 24 * 60 * 60,
        user=_user_response(user),
    )


@router.post(
    "/check-email",
    response_model=CheckEmailResponse,
    status_code=status.HTTP_200_OK,
    summary="Check whether an e-mail is registered",
)
async def check_email(request: CheckEmailRequest) -> CheckEmailResponse:
    try:
        supabase_client = get_service_role_client()
        result = await user_service.check_email(supabase_client, request.email)
    except Exception as e:
        logger.error(f"Email check failed: {e}", exc_info=True)
        raise internal_error("check_failed", "Failed to check email")

    return CheckEmailResponse(**result)


@router.post(
    "/verify-email",
    response_model=VerifyEmailResponse,
    status_code=status.HTTP_200_OK,
    summary="Verify an e-mail address",
    description="""
    Consume a verification token from the e-mail link.

    Returns 400 invalid_token when the token is unknown, used or expired.
    """
)
async def verify_email(request: VerifyEmailRequest) -> VerifyEmailResponse:
    try:
        supabase_client = get_service_role_client()
        user = await user_service.verify_email(supabase_client, request.token)
    except ServiceError as e:
        raise service_http_error(e)
    except Exception as e:
        logger.error(f"Email verification failed: {e}", exc_info=True)
        raise internal_error("verification_failed", "Failed to verify email")

    return VerifyEmailResponse(user=_user_response(user))


@router.post(
    "/resend-verification",
    response_model=MessageResponse,
    status_code=status.HTTP_200_OK,
    summary="Resend the verification e-mail",
)
async def resend_verification(request: EmailRequest) -> MessageResponse:
    try:
        supabase_client = get_service_role_client()
        await user_service.resend_verification(supabase_client, request.email)
    except ServiceError as e:
        raise service_http_error(e)
    except Exception as e:
        logger.error(f"Resend verification failed: {e}", exc_info=True)
        raise internal_error("send_failed", "Failed to resend verification email")

    return MessageResponse(message="Verification email sent")


@router.post(
    "/forgot-password",
    response_model=MessageResponse,
    status_code=status.HTTP_200_OK,
    summary="Request a password reset link",
    description="""
    Send a password reset link if the account exists.

    The response is identical whether or not the e-mail is registered.
    """
)
async def forgot_password(request: EmailRequest) -> MessageResponse:
    try:
        supabase_client = get_service_role_client()
        await user_service.request_password_reset(supabase_client, request.email)
    except Exception as e:
        logger.error(f"Password reset request failed: {e}", exc_info=True)
        raise internal_error("reset_failed", "Failed to process password reset request")

    return MessageResponse(message=FORGOT_PASSWORD_MESSAGE)


@router.post(
    "/reset-password",
    response_model=MessageResponse,
    status_code=status.HTTP_200_OK,
    summary="Set a new password with a reset token",
)
async def reset_password(request: ResetPasswordRequest) -> MessageResponse:
    try:
        supabase_client = get_service_role_client()
        await user_service.reset_password(supabase_client, request.token, request.password)
    except ServiceError as e:
        raise service_http_error(e)
    except Exception as e:
        logger.error(f"Password reset failed: {e}", exc_info=True)
        raise internal_error("reset_failed", "Failed to reset password")

    return MessageResponse(message="Password reset successfully")


# =============================================================================
# AUTHENTICATED ENDPOINTS
# =============================================================================

@router.put(
    "/change-password",
    response_model=MessageResponse,
    status_code=status.HTTP_200_OK,
    summary="Change the current password",
    description="""
    Replace the password after checking the current one.

    Returns 401 invalid_password when the current password does not match.
    """
)
async def change_password(
    request: ChangePasswordRequest,
    auth_user: Annotated[AuthenticatedUser, Depends(get_authenticated_user)]
) -> MessageResponse:
    supabase_client = get_supabase_client(auth_user.access_token)

    try:
        await user_service.change_password(
            supabase_client,
            auth_user.user_id,
            request.current_password,
            request.new_password,
        )
    except ServiceError as e:
        raise service_http_error(e)
    except Exception as e:
        logger.error(f"Password change failed for user {auth_user.user_id}: {e}", exc_info=True)
        raise internal_error("update_failed", "Failed to change password")

    return MessageResponse(message="Password changed successfully")


@router.get(
    "/me",
    response_model=AuthMeResponse,
    status_code=status.HTTP_200_OK,
    summary="Get authenticated user identity",
    description="""
    Get the authenticated user's core identity for session hydration.

    This endpoint:
    - Validates the bearer token
    - Returns user_id and email from JWT claims
    - Includes the stored user record when it exists

    Use this for:
    - App boot to hydrate global session state
    - Confirming token is still valid

    Security:
    - Requires valid Authorization Bearer token
    - RLS ensures users only see their own data
    """
)
async def get_auth_me(
    auth_user: Annotated[AuthenticatedUser, Depends(get_authenticated_user)]
) -> AuthMeResponse:
    logger.info(f"GET /api/auth/me for user {auth_user.user_id}")

    supabase_client = get_supabase_client(auth_user.access_token)

    user: Optional[Dict[str, Any]] = None
    try:
        user = await user_service.get_user_by_id(supabase_client, auth_user.user_id)
    except Exception as e:
        logger.error(f"Error fetching user for auth/me: {e}", exc_info=True)
        raise internal_error("fetch_error", "Failed to retrieve user")

    return AuthMeResponse(
        user_id=auth_user.user_id,
        email=auth_user.email or (user.get("email") if user else None),
        user=_user_response(user) if user else None,
    )


@router.get(
    "/profile",
    response_model=UserResponse,
    status_code=status.HTTP_200_OK,
    summary="Get the user's profile",
)
async def get_profile(
    auth_user: Annotated[AuthenticatedUser, Depends(get_authenticated_user)]
) -> UserResponse:
    supabase_client = get_supabase_client(auth_user.access_token)

    try:
        user = await user_service.get_user_by_id(supabase_client, auth_user.user_id)
    except Exception as e:
        logger.error(f"Failed to fetch profile for user {auth_user.user_id}: {e}", exc_info=True)
        raise internal_error("fetch_error", "Failed to retrieve profile")

    if not user:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"error": "not_found", "details": "User not found"},
        )

    return _user_response(user)


@router.put(
    "/profile",
    response_model=ProfileUpdateResponse,
    status_code=status.HTTP_200_OK,
    summary="Update the user's profile",
    description="""
    Update name, timezone or preferences.

    This endpoint:
    - Requires at least one field (400 no_fields otherwise)
    - Recomputes display_name when first_name or last_name change
    - Replaces preferences wholesale (use PUT /preferences to merge)
    """
)
async def update_profile(
    request: ProfileUpdateRequest,
    auth_user: Annotated[AuthenticatedUser, Depends(get_authenticated_user)]
) -> ProfileUpdateResponse:
    supabase_client = get_supabase_client(auth_user.access_token)

    try:
        user = await user_service.update_profile(
            supabase_client,
            auth_user.user_id,
            first_name=request.first_name,
            last_name=request.last_name,
            timezone=request.timezone,
            preferences=request.preferences,
        )
    except ServiceError as e:
        raise service_http_error(e)
    except Exception as e:
        logger.error(f"Failed to update profile for user {auth_user.user_id}: {e}", exc_info=True)
        raise internal_error("update_failed", "Failed to update profile")

    return ProfileUpdateResponse(user=_user_response(user))


@router.get(
    "/preferences",
    response_model=PreferencesResponse,
    status_code=status.HTTP_200_OK,
    summary="Get the user's preferences",
)
async def get_preferences(
    auth_user: Annotated[AuthenticatedUser, Depends(get_authenticated_user)]
) -> PreferencesResponse:
    supabase_client = get_supabase_client(auth_user.access_token)

    try:
        preferences = await user_service.get_preferences(supabase_client, auth_user.user_id)
    except ServiceError as e:
        raise service_http_error(e)
    except Exception as e:
        logger.error(f"Failed to fetch preferences for user {auth_user.user_id}: {e}", exc_info=True)
        raise internal_error("fetch_error", "Failed to retrieve preferences")

    return PreferencesResponse(preferences=preferences)


@router.put(
    "/preferences",
    response_model=PreferencesResponse,
    status_code=status.HTTP_200_OK,
    summary="Merge new values into the user's preferences",
)
async def update_preferences(
    request: PreferencesUpdateRequest,
    auth_user: Annotated[AuthenticatedUser, Depends(get_authenticated_user)]
) -> PreferencesResponse:
    supabase_client = get_supabase_client(auth_user.access_token)

    try:
        preferences = await user_service.update_preferences(
            supabase_client, auth_user.user_id, request.preferences
        )
    except ServiceError as e:
        raise service_http_error(e)
    except Exception as e:
        logger.error(f"Failed to update preferences for user {auth_user.user_id}: {e}", exc_info=True)
        raise internal_error("update_failed", "Failed to update preferences")

    return PreferencesResponse(preferences=preferences)
