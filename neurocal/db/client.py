"""
Supabase client factory with RLS enforcement.

NeuroCal signs its own access tokens (HS256) with the Supabase project JWT
secret, with role/aud set to "authenticated". Supabase therefore treats them
like its own session tokens and RLS policies resolve auth.uid() to the
token's 'sub' claim.

CRITICAL SECURITY RULES:
1. User-initiated requests ALWAYS use get_supabase_client(access_token)
2. The service role client is ONLY for flows without a user token
3. Every service-role query MUST filter by user_id explicitly
"""

import logging

from supabase import Client, ClientOptions, create_client

from neurocal.config import settings

logger = logging.getLogger(__name__)


def get_supabase_client(access_token: str) -> Client:
    """
    Create an authenticated Supabase client for a specific user.

    This client respects Row Level Security (RLS) policies because every
    request carries the user's JWT in the Authorization header. All queries
    are scoped to rows where user_id = auth.uid().

    Args:
        access_token: The user's JWT access token (verified in
                      neurocal/auth/dependencies.py).

    Returns:
        An authenticated Supabase client that enforces RLS.

    Example:
        >>> client = get_supabase_client(auth_user.access_token)
        >>> result = client.table("events").select("*").execute()
    """
    client: Client = create_client(
        supabase_url=settings.SUPABASE_URL,
        supabase_key=settings.SUPABASE_PUBLISHABLE_KEY,
        options=ClientOptions(
            headers={"Authorization": f"Bearer {access_token}"},
            auto_refresh_token=False,
            persist_session=False,
        ),
    )

    logger.debug("Created authenticated Supabase client with user token (RLS enforced)")

    return client


def get_service_role_client() -> Client:
    """
    Create a Supabase client with service_role privileges.

    WARNING: This bypasses RLS and should ONLY be used for:
    - Registration, login and one-time token flows (no user token yet)
    - Stripe webhooks (caller is Stripe, not a user)
    - Maintenance jobs that need cross-user access
    - Admin metrics

    Returns:
        A Supabase client with service_role privileges (bypasses RLS).

    Raises:
        ValueError: If SUPABASE_SERVICE_ROLE_KEY is not configured.
    """
    if not settings.SUPABASE_SERVICE_ROLE_KEY:
        raise ValueError(
            "SUPABASE_SERVICE_ROLE_KEY is not configured. "
            "It is required for auth, webhook and maintenance operations."
        )

    return create_client(
        supabase_url=settings.SUPABASE_URL,
        supabase_key=settings.SUPABASE_SERVICE_ROLE_KEY,
        options=ClientOptions(auto_refresh_token=False, persist_session=False),
    )
