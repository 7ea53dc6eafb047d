"""
Password hashing and access token handling for NeuroCal.

- Passwords are hashed with bcrypt (12 rounds)
- Access tokens are HS256 JWTs signed with settings.JWT_SECRET
- One-time tokens (e-mail verification, password reset) are random URL-safe
  strings persisted in auth_tokens; they are NOT JWTs
"""

import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import bcrypt
import jwt

from neurocal.config import settings

BCRYPT_ROUNDS = 12

TOKEN_AUDIENCE = "authenticated"
TOKEN_ROLE = "authenticated"
TOKEN_ISSUER = "neurocal"


def hash_password(password: str) -> str:
    """Hash a password with a fresh bcrypt salt."""
    salt = bcrypt.gensalt(rounds=BCRYPT_ROUNDS)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(plain_password: str, hashed_password: Optional[str]) -> bool:
    """Verify a password against a bcrypt hash. Missing hashes never match."""
    if not hashed_password:
        return False
    try:
        return bcrypt.checkpw(
            plain_password.encode("utf-8"),
            hashed_password.encode("utf-8")
        )
    except ValueError:
        # Malformed hash in the database
        return False


def create_access_token(
    user_id: str,
    email: Optional[str] = None,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """
    Create a signed access token for a user.

    Claims follow the Supabase session token layout (sub, role, aud) so the
    same token can be forwarded to Supabase for RLS-scoped queries.

    Args:
        user_id: The user's UUID (becomes the 'sub' claim)
        email: Optional e-mail claim
        expires_delta: Token lifetime (defaults to JWT_EXPIRES_DAYS)

    Returns:
        Encoded JWT string

    Raises:
        ValueError: If JWT_SECRET is not configured
    """
    if not settings.JWT_SECRET:
        raise ValueError("JWT_SECRET is not configured. Cannot sign access tokens.")

    now = datetime.now(timezone.utc)
    if expires_delta is None:
        expires_delta = timedelta(days=settings.JWT_EXPIRES_DAYS)

    payload: Dict[str, Any] = {
        "sub": str(user_id),
        "role": TOKEN_ROLE,
        "aud": TOKEN_AUDIENCE,
        "iss": TOKEN_ISSUER,
        "iat": now,
        "exp": now + expires_delta,
    }
    if email:
        payload["email"] = email

    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_access_token(token: str) -> Dict[str, Any]:
    """
    Decode and verify an access token.

    Raises:
        jwt.ExpiredSignatureError: Token has expired
        jwt.InvalidTokenError: Signature, audience or issuer mismatch, or malformed token
    """
    return jwt.decode(
        token,
        settings.JWT_SECRET,
        algorithms=[settings.JWT_ALGORITHM],
        audience=TOKEN_AUDIENCE,
        issuer=TOKEN_ISSUER,
        options={
            "verify_signature": True,
            "verify_exp": True,
            "verify_aud": True,
            "verify_iss": True,
            "require": ["sub", "exp"],
        },
    )


def generate_one_time_token() -> str:
    """Random token for e-mail verification and password reset links."""
    return secrets.token_urlsafe(32)
