"""
Service layer for the NeuroCal backend.

Contains the business logic behind the routers:
- Persistence against Supabase (called with a user-scoped client under RLS,
  or the service-role client for auth bootstrap, webhooks and jobs)
- Stripe billing and webhook mirroring
- Natural-language event parsing and scheduling heuristics
- LLM calls (Gemini) with heuristic fallback

Services raise the domain errors in services.errors; routers translate them
into HTTP responses.
"""

from . import (
    errors,
    subscription_service,
    email_service,
    stripe_webhook_service,
    maintenance_service,
    user_service,
    event_parser,
    scheduling,
    event_service,
    ai_service,
    suggestion_service,
    analytics_service,
)

__all__ = [
    "errors",
    "subscription_service",
    "email_service",
    "stripe_webhook_service",
    "maintenance_service",
    "user_service",
    "event_parser",
    "scheduling",
    "event_service",
    "ai_service",
    "suggestion_service",
    "analytics_service",
]
