"""
AI suggestion persistence service.

Stored suggestions are short free-text tips for the user or for one of
their events (suggestion_type + content). They come from meeting prep,
the insight rules, or the client.
"""

import logging
from typing import Any, Dict, List, Optional, cast

from postgrest.exceptions import APIError
from supabase import Client

from neurocal.services.errors import NotFoundError, is_malformed_id, malformed_id_as_not_found

logger = logging.getLogger(__name__)


async def get_suggestions(
    supabase_client: Client,
    user_id: str,
    event_id: Optional[str] = None,
    suggestion_type: Optional[str] = None,
    unapplied_only: bool = False,
    limit: int = 50,
) -> List[Dict[str, Any]]:
    """Fetch the user's suggestions, newest first, with optional filters."""
    query = (
        supabase_client.table("ai_suggestions")
        .select("*")
        .eq("user_id", user_id)
    )
    if event_id:
        query = query.eq("event_id", event_id)
    if suggestion_type:
        query = query.eq("suggestion_type", suggestion_type)
    if unapplied_only:
        query = query.eq("is_applied", False)

    try:
        result = query.order("created_at", desc=True).limit(limit).execute()
    except APIError as e:
        # No suggestion can belong to a malformed event id
        if event_id and is_malformed_id(e):
            return []
        raise
    return cast(List[Dict[str, Any]], result.data or [])


async def create_suggestion(
    supabase_client: Client,
    user_id: str,
    suggestion_type: str,
    content: str,
    event_id: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Store a suggestion, optionally attached to one of the user's events.

    Raises:
        NotFoundError: event_id does not belong to the user
    """
    if event_id:
        with malformed_id_as_not_found("Event not found"):
            owned = (
                supabase_client.table("events")
                .select("id")
                .eq("id", event_id)
                .eq("user_id", user_id)
                .execute()
            )
        if not owned.data:
            raise NotFoundError("Event not found")

    result = (
        supabase_client.table("ai_suggestions")
        .insert({
            "user_id": user_id,
            "event_id": event_id,
            "suggestion_type": suggestion_type,
            "content": content,
            "is_applied": False,
        })
        .execute()
    )
    if not result.data:
        raise Exception("Failed to create suggestion: no data returned")

    suggestion = cast(Dict[str, Any], result.data[0])
    logger.info(f"Suggestion {suggestion['id']} created for user {user_id}: type={suggestion_type}")
    return suggestion


async def apply_suggestion(supabase_client: Client, user_id: str, suggestion_id: str) -> Dict[str, Any]:
    with malformed_id_as_not_found("Suggestion not found"):
        result = (
            supabase_client.table("ai_suggestions")
            .update({"is_applied": True})
            .eq("id", suggestion_id)
            .eq("user_id", user_id)
            .execute()
        )
    if not result.data:
        raise NotFoundError("Suggestion not found")
    return cast(Dict[str, Any], result.data[0])


async def delete_suggestion(supabase_client: Client, user_id: str, suggestion_id: str) -> None:
    with malformed_id_as_not_found("Suggestion not found"):
        result = (
            supabase_client.table("ai_suggestions")
            .delete()
            .eq("id", suggestion_id)
            .eq("user_id", user_id)
            .execute()
        )
    if not result.data:
        raise NotFoundError("Suggestion not found")
    logger.info(f"Suggestion {suggestion_id} deleted for user {user_id}")
