"""
Database access layer for NeuroCal Backend.

Two kinds of Supabase client are available:
- get_supabase_client(access_token): per-request, user-scoped, RLS enforced
- get_service_role_client(): server-side, used only where no user token exists
  (registration/login, Stripe webhooks, maintenance jobs, admin metrics)

DO NOT define table schemas, migrations, or RLS policies here.
"""

from .client import get_service_role_client, get_supabase_client

__all__ = ["get_supabase_client", "get_service_role_client"]
