"""
Pydantic schemas for authentication and account endpoints.

These models define the strict request/response contracts for /api/auth.
Passwords are accepted in requests only and never appear in responses.
"""

from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator


def _strip_required(value: str) -> str:
    value = value.strip()
    if not value:
        raise ValueError("must not be blank")
    return value


# --- Shared models ---

class UserResponse(BaseModel):
    """
    Public user record.

    Mirrors the users table minus password_hash.
    """
    id: str = Field(..., description="User UUID")
    email: str = Field(..., description="Login e-mail (lower-cased)")
    first_name: Optional[str] = Field(None, description="Given name")
    last_name: Optional[str] = Field(None, description="Family name")
    display_name: Optional[str] = Field(None, description="'First Last', kept in sync with name changes")
    email_verified: bool = Field(False, description="Whether the e-mail address was confirmed")
    timezone: Optional[str] = Field(None, description="IANA timezone name", examples=["Europe/Madrid"])
    preferences: Dict[str, Any] = Field(default_factory=dict, description="Free-form UI/AI preferences")
    created_at: Optional[str] = Field(None, description="ISO-8601 timestamp when created")


class MessageResponse(BaseModel):
    message: str = Field(..., description="Human-readable result")


# --- Registration & login ---

class RegisterRequest(BaseModel):
    """
    Request to create an account with e-mail and password.

    A free trial starts automatically and a verification e-mail is sent.
    """
    email: EmailStr = Field(..., description="Login e-mail", examples=["ada@example.com"])
    password: str = Field(..., min_length=6, max_length=128, description="Plain password (min 6 chars)")
    first_name: str = Field(..., min_length=1, max_length=100, description="Given name")
    last_name: str = Field(..., min_length=1, max_length=100, description="Family name")

    @field_validator("first_name", "last_name")
    @classmethod
    def strip_names(cls, v: str) -> str:
        return _strip_required(v)


class RegisterResponse(BaseModel):
    message: str = Field(
        ...,
        examples=["Account created successfully. Please check your email to verify your account."]
    )
    user: UserResponse


class LoginRequest(BaseModel):
    email: EmailStr = Field(..., description="Login e-mail")
    password: str = Field(..., min_length=1, description="Plain password")


class LoginResponse(BaseModel):
    """
    Response after a successful login.

    access_token is an HS256 JWT to send as 'Authorization: Bearer <token>'.
    """
    message: str = Field("Login successful")
    access_token: str = Field(..., description="Signed JWT")
    token_type: Literal["bearer"] = Field("bearer")
    expires_in: int = Field(..., description="Token lifetime in seconds")
    user: UserResponse


class CheckEmailRequest(BaseModel):
    email: EmailStr


class CheckEmailResponse(BaseModel):
    exists: bool = Field(..., description="An account uses this e-mail")
    has_password: bool = Field(..., description="The account can sign in with a password")
    email_verified: bool = Field(..., description="The e-mail was confirmed")


# --- One-time token flows ---

class VerifyEmailRequest(BaseModel):
    token: str = Field(..., min_length=1, description="Token from the verification link")


class VerifyEmailResponse(BaseModel):
    message: str = Field("Email verified successfully")
    user: UserResponse


class EmailRequest(BaseModel):
    """Request carrying only an e-mail (resend verification, forgot password)."""
    email: EmailStr


class ResetPasswordRequest(BaseModel):
    token: str = Field(..., min_length=1, description="Token from the reset link")
    password: str = Field(..., min_length=6, max_length=128, description="New password")


class ChangePasswordRequest(BaseModel):
    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=6, max_length=128)


# --- Identity & profile ---

class AuthMeResponse(BaseModel):
    """
    Response for GET /api/auth/me - Authenticated user identity.

    Used on app boot to hydrate session state and confirm token validity.
    """
    user_id: str = Field(..., description="User UUID (from JWT 'sub' claim)")
    email: Optional[str] = Field(None, description="User's email (from JWT 'email' claim, if present)")
    user: Optional[UserResponse] = Field(None, description="Stored user record, null if missing")

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "user_id": "38f7d540-23fa-497a-8df2-3ab9cbe13da5",
                    "email": "ada@example.com",
                    "user": {
                        "id": "38f7d540-23fa-497a-8df2-3ab9cbe13da5",
                        "email": "ada@example.com",
                        "first_name": "Ada",
                        "last_name": "Lovelace",
                        "display_name": "Ada Lovelace",
                        "email_verified": True,
                        "timezone": "Europe/London",
                        "preferences": {"theme": "dark"},
                        "created_at": "2026-10-01T09:00:00+00:00"
                    }
                }
            ]
        }
    }


class ProfileUpdateRequest(BaseModel):
    """
    Partial profile update. At least one field must be provided.

    Changing first_name or last_name recomputes display_name.
    """
    first_name: Optional[str] = Field(None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(None, min_length=1, max_length=100)
    timezone: Optional[str] = Field(None, min_length=1, max_length=64, examples=["America/New_York"])
    preferences: Optional[Dict[str, Any]] = Field(None, description="Replaces stored preferences")


class ProfileUpdateResponse(BaseModel):
    message: str = Field("Profile updated successfully")
    user: UserResponse


class PreferencesUpdateRequest(BaseModel):
    preferences: Dict[str, Any] = Field(
        ...,
        description="Values deep-merged into the stored preferences",
        examples=[{"theme": "dark", "workingHours": {"start": "08:00"}}]
    )


class PreferencesResponse(BaseModel):
    preferences: Dict[str, Any] = Field(..., description="Stored preferences merged over defaults")
