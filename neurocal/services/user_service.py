"""
User account service: registration, login, one-time tokens and profile.

Unauthenticated flows (register, login, verification, password reset) run
with the service-role client because there is no user token yet. Profile
and password changes run with the user-scoped client under RLS.

CRITICAL RULES:
1. password_hash never leaves this module (USER_COLUMNS excludes it)
2. E-mails are stored lower-cased and trimmed
3. One-time tokens are single use: used_at is set when consumed
4. forgot-password behaves identically whether or not the account exists
"""

import copy
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Optional, Tuple, cast

from postgrest.exceptions import APIError
from supabase import Client

from neurocal.auth.security import (
    create_access_token,
    generate_one_time_token,
    hash_password,
    verify_password,
)
from neurocal.config import settings
from neurocal.services import subscription_service
from neurocal.services.email_service import email_service
from neurocal.services.errors import (
    AuthError,
    ConflictError,
    InvalidRequestError,
    NotFoundError,
)
from neurocal.utils.constants import DEFAULT_PREFERENCES, TOKEN_TYPES
from neurocal.utils.dates import parse_timestamp, to_iso, utc_now

logger = logging.getLogger(__name__)

USER_COLUMNS = (
    "id, email, first_name, last_name, display_name, email_verified, "
    "timezone, preferences, is_admin, created_at, updated_at"
)


def normalize_email(email: str) -> str:
    return email.strip().lower()


def _display_name(first_name: Optional[str], last_name: Optional[str]) -> str:
    return " ".join(part for part in (first_name, last_name) if part).strip()


def deep_merge(base: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge `overrides` into a copy of `base`."""
    merged = copy.deepcopy(base)
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


# =============================================================================
# LOOKUPS
# =============================================================================

async def get_user_by_id(supabase_client: Client, user_id: str) -> Optional[Dict[str, Any]]:
    result = (
        supabase_client.table("users")
        .select(USER_COLUMNS)
        .eq("id", user_id)
        .execute()
    )
    if not result.data:
        logger.warning(f"User not found: {user_id}")
        return None
    return cast(Dict[str, Any], result.data[0])


async def get_user_timezone(supabase_client: Client, user_id: str) -> Optional[str]:
    """The user's stored IANA timezone name, or None."""
    result = (
        supabase_client.table("users")
        .select("timezone")
        .eq("id", user_id)
        .execute()
    )
    if not result.data:
        return None
    return cast(Dict[str, Any], result.data[0]).get("timezone")


async def _get_user_with_hash(
    supabase_client: Client,
    *,
    email: Optional[str] = None,
    user_id: Optional[str] = None,
) -> Optional[Dict[str, Any]]:
    query = supabase_client.table("users").select(f"{USER_COLUMNS}, password_hash")
    if email is not None:
        query = query.eq("email", normalize_email(email))
    else:
        query = query.eq("id", user_id)
    result = query.execute()
    if not result.data:
        return None
    return cast(Dict[str, Any], result.data[0])


def _public(user: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in user.items() if k != "password_hash"}


# =============================================================================
# ONE-TIME TOKENS
# =============================================================================

async def _issue_token(
    supabase_client: Client,
    user_id: str,
    token_type: str,
    ttl: timedelta,
) -> str:
    token = generate_one_time_token()
    (
        supabase_client.table("auth_tokens")
        .insert({
            "user_id": user_id,
            "token": token,
            "token_type": token_type,
            "expires_at": to_iso(utc_now() + ttl),
        })
        .execute()
    )
    logger.debug(f"Issued {token_type} token for user {user_id}")
    return token


async def _consume_token(
    supabase_client: Client,
    token: str,
    token_type: str,
    now: Optional[datetime] = None,
) -> str:
    """
    Validate a one-time token, mark it used and return its user_id.

    Raises:
        InvalidRequestError: Unknown, already used or expired token
    """
    now = now or utc_now()
    result = (
        supabase_client.table("auth_tokens")
        .select("*")
        .eq("token", token)
        .eq("token_type", token_type)
        .execute()
    )
    if not result.data:
        raise InvalidRequestError("Invalid or expired token", "invalid_token")

    row = cast(Dict[str, Any], result.data[0])
    if row.get("used_at"):
        raise InvalidRequestError("Token has already been used", "invalid_token")

    expires_at = parse_timestamp(row.get("expires_at"))
    if expires_at is None or expires_at <= now:
        raise InvalidRequestError("Invalid or expired token", "invalid_token")

    # Only one concurrent request can flip used_at from null
    claimed = (
        supabase_client.table("auth_tokens")
        .update({"used_at": to_iso(now)})
        .eq("id", row["id"])
        .is_("used_at", "null")
        .execute()
    )
    if not claimed.data:
        raise InvalidRequestError("Token has already been used", "invalid_token")
    return str(row["user_id"])


# =============================================================================
# REGISTRATION & LOGIN
# =============================================================================

async def register_user(
    supabase_client: Client,
    email: str,
    password: str,
    first_name: str,
    last_name: str,
) -> Dict[str, Any]:
    """
    Create a user, start their free trial and send the verification e-mail.

    Args:
        supabase_client: Service-role Supabase client
        email: Login e-mail (normalized before storing)
        password: Plain password, hashed with bcrypt here
        first_name: Given name
        last_name: Family name

    Returns:
        The created user (without password_hash)

    Raises:
        ConflictError: If the e-mail is already registered
    """
    email = normalize_email(email)

    existing = supabase_client.table("users").select("id").eq("email", email).execute()
    if existing.data:
        raise ConflictError("User already exists", "user_exists")

    user_data = {
        "email": email,
        "password_hash": hash_password(password),
        "first_name": first_name,
        "last_name": last_name,
        "display_name": _display_name(first_name, last_name),
        "email_verified": False,
        "preferences": DEFAULT_PREFERENCES,
    }

    try:
        result = supabase_client.table("users").insert(user_data).execute()
    except APIError as e:
        if e.code == "23505":  # unique_violation, concurrent registration
            raise ConflictError("User already exists", "user_exists")
        raise
    if not result.data:
        raise Exception("Failed to create user: no data returned")

    user = _public(cast(Dict[str, Any], result.data[0]))
    user_id = str(user["id"])
    logger.info(f"User registered: {user_id}")

    try:
        await subscription_service.create_free_trial(supabase_client, user_id, email)
    except Exception as e:
        # The account is usable without a trial; subscribe_to_plan creates the row later
        logger.error(f"Failed to start trial for user {user_id}: {e}", exc_info=True)

    token = await _issue_token(
        supabase_client,
        user_id,
        TOKEN_TYPES['EMAIL_VERIFICATION'],
        timedelta(hours=settings.EMAIL_VERIFICATION_TTL_HOURS),
    )
    email_service.send_verification_email(email, first_name, token)

    return user


async def login_user(
    supabase_client: Client,
    email: str,
    password: str,
) -> Tuple[Dict[str, Any], str]:
    """
    Check credentials and issue an access token.

    Returns:
        Tuple of (user, access_token)

    Raises:
        AuthError: Unknown e-mail, wrong password, or unverified e-mail
    """
    user = await _get_user_with_hash(supabase_client, email=email)

    if not user or not verify_password(password, user.get("password_hash")):
        logger.info("Login rejected: invalid credentials")
        raise AuthError("Invalid credentials", "invalid_credentials")

    if not user.get("email_verified"):
        raise AuthError(
            "Please verify your email address before signing in",
            "email_not_verified",
        )

    token = create_access_token(str(user["id"]), email=user["email"])
    logger.info(f"User logged in: {user['id']}")
    return _public(user), token


async def check_email(supabase_client: Client, email: str) -> Dict[str, bool]:
    user = await _get_user_with_hash(supabase_client, email=email)
    if not user:
        return {"exists": False, "has_password": False, "email_verified": False}
    return {
        "exists": True,
        "has_password": bool(user.get("password_hash")),
        "email_verified": bool(user.get("email_verified")),
    }


# =============================================================================
# E-MAIL VERIFICATION & PASSWORD RESET
# =============================================================================

async def verify_email(supabase_client: Client, token: str) -> Dict[str, Any]:
    """
    Consume a verification token and mark the user's e-mail verified.

    Raises:
        InvalidRequestError: Bad token
        NotFoundError: Token owner no longer exists
    """
    user_id = await _consume_token(supabase_client, token, TOKEN_TYPES['EMAIL_VERIFICATION'])

    result = (
        supabase_client.table("users")
        .update({"email_verified": True, "updated_at": to_iso(utc_now())})
        .eq("id", user_id)
        .execute()
    )
    if not result.data:
        raise NotFoundError("User not found")

    user = _public(cast(Dict[str, Any], result.data[0]))
    email_service.send_welcome_email(user["email"], user.get("first_name"))
    logger.info(f"Email verified for user {user_id}")
    return user


async def resend_verification(supabase_client: Client, email: str) -> None:
    """
    Raises:
        NotFoundError: Unknown e-mail
        InvalidRequestError: E-mail already verified
    """
    user = await _get_user_with_hash(supabase_client, email=email)
    if not user:
        raise NotFoundError("User not found")
    if user.get("email_verified"):
        raise InvalidRequestError("Email is already verified", "already_verified")

    token = await _issue_token(
        supabase_client,
        str(user["id"]),
        TOKEN_TYPES['EMAIL_VERIFICATION'],
        timedelta(hours=settings.EMAIL_VERIFICATION_TTL_HOURS),
    )
    email_service.send_verification_email(user["email"], user.get("first_name"), token)


async def request_password_reset(supabase_client: Client, email: str) -> None:
    """Issue a reset token if the account exists. Silent otherwise."""
    user = await _get_user_with_hash(supabase_client, email=email)
    if not user:
        logger.info("Password reset requested for unknown e-mail")
        return

    token = await _issue_token(
        supabase_client,
        str(user["id"]),
        TOKEN_TYPES['PASSWORD_RESET'],
        timedelta(hours=settings.PASSWORD_RESET_TTL_HOURS),
    )
    email_service.send_password_reset_email(user["email"], user.get("first_name"), token)
    logger.info(f"Password reset token issued for user {user['id']}")


async def reset_password(supabase_client: Client, token: str, new_password: str) -> None:
    user_id = await _consume_token(supabase_client, token, TOKEN_TYPES['PASSWORD_RESET'])
    (
        supabase_client.table("users")
        .update({"password_hash": hash_password(new_password), "updated_at": to_iso(utc_now())})
        .eq("id", user_id)
        .execute()
    )
    logger.info(f"Password reset for user {user_id}")


async def change_password(
    supabase_client: Client,
    user_id: str,
    current_password: str,
    new_password: str,
) -> None:
    """
    Raises:
        NotFoundError: User missing
        InvalidRequestError: Account has no local password
        AuthError: Current password is wrong
    """
    user = await _get_user_with_hash(supabase_client, user_id=user_id)
    if not user:
        raise NotFoundError("User not found")
    if not user.get("password_hash"):
        raise InvalidRequestError("No local password set for this account", "no_password")
    if not verify_password(current_password, user["password_hash"]):
        raise AuthError("Current password is incorrect", "invalid_password")

    (
        supabase_client.table("users")
        .update({"password_hash": hash_password(new_password), "updated_at": to_iso(utc_now())})
        .eq("id", user_id)
        .execute()
    )
    logger.info(f"Password changed for user {user_id}")


# =============================================================================
# PROFILE & PREFERENCES
# =============================================================================

async def update_profile(
    supabase_client: Client,
    user_id: str,
    first_name: Optional[str] = None,
    last_name: Optional[str] = None,
    timezone: Optional[str] = None,
    preferences: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """
    Update profile fields. display_name follows first/last name changes.

    Raises:
        InvalidRequestError: Nothing to update
        NotFoundError: User missing
    """
    updates: Dict[str, Any] = {}
    if first_name:
        updates["first_name"] = first_name
    if last_name:
        updates["last_name"] = last_name
    if timezone:
        updates["timezone"] = timezone
    if preferences is not None:
        updates["preferences"] = preferences

    if not updates:
        raise InvalidRequestError("No fields to update", "no_fields")

    if first_name or last_name:
        current = await get_user_by_id(supabase_client, user_id)
        if not current:
            raise NotFoundError("User not found")
        updates["display_name"] = _display_name(
            first_name or current.get("first_name"),
            last_name or current.get("last_name"),
        )

    updates["updated_at"] = to_iso(utc_now())

    logger.info(f"Updating profile for user {user_id}: fields={list(updates.keys())}")

    result = (
        supabase_client.table("users")
        .update(updates)
        .eq("id", user_id)
        .execute()
    )
    if not result.data:
        raise NotFoundError("User not found")

    return _public(cast(Dict[str, Any], result.data[0]))


async def get_preferences(supabase_client: Client, user_id: str) -> Dict[str, Any]:
    """Stored preferences merged over DEFAULT_PREFERENCES."""
    user = await get_user_by_id(supabase_client, user_id)
    if not user:
        raise NotFoundError("User not found")
    return deep_merge(DEFAULT_PREFERENCES, user.get("preferences") or {})


async def update_preferences(
    supabase_client: Client,
    user_id: str,
    preferences: Dict[str, Any],
) -> Dict[str, Any]:
    """Deep-merge new values into the stored preferences and return the result."""
    current = await get_preferences(supabase_client, user_id)
    merged = deep_merge(current, preferences)

    (
        supabase_client.table("users")
        .update({"preferences": merged, "updated_at": to_iso(utc_now())})
        .eq("id", user_id)
        .execute()
    )
    logger.info(f"Preferences updated for user {user_id}")
    return merged
