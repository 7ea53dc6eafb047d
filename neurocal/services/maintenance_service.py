"""
Periodic subscription maintenance jobs.

Run by scripts/run_maintenance.py from an external scheduler (cron, a
platform scheduler, etc.). All jobs use the service-role client and take
`now` explicitly so they can be replayed.

Each job processes users one by one; a failure for one user is logged and
the job moves on to the next.
"""

import logging
import math
from datetime import datetime, timedelta
from typing import Any, Dict, List, cast

from supabase import Client

from neurocal.services.email_service import email_service
from neurocal.services.subscription_service import initialize_usage_tracking
from neurocal.utils.dates import parse_timestamp, to_iso

logger = logging.getLogger(__name__)

TRIAL_ENDING_SOON = "trial_ending_soon"
NOTIFICATION_COOLDOWN = timedelta(hours=24)


def _display_name(row: Dict[str, Any]) -> str:
    user = row.get("user") or {}
    email = user.get("email") or ""
    return user.get("display_name") or email.split("@")[0]


async def expire_trials(supabase_client: Client, now: datetime) -> int:
    """
    Move trials whose trial_end_date has passed to 'expired'.

    Returns:
        Number of trials expired
    """
    result = (
        supabase_client.table("user_subscriptions")
        .select("id, user_id, trial_end_date, user:user_id(email, display_name)")
        .eq("status", "trial")
        .lte("trial_end_date", to_iso(now))
        .execute()
    )
    rows = cast(List[Dict[str, Any]], result.data or [])
    logger.info(f"Found {len(rows)} expired trials")

    expired = 0
    for row in rows:
        try:
            (
                supabase_client.table("user_subscriptions")
                .update({"status": "expired", "updated_at": to_iso(now)})
                .eq("id", row["id"])
                .execute()
            )
            email = (row.get("user") or {}).get("email")
            if email:
                email_service.send_trial_expired_email(email, _display_name(row))
            expired += 1
            logger.info(f"Trial expired for user {row['user_id']}")
        except Exception as e:
            logger.error(f"Failed to expire trial for user {row.get('user_id')}: {e}", exc_info=True)

    return expired


async def notify_trials_ending_soon(supabase_client: Client, now: datetime, days: int = 3) -> int:
    """
    E-mail users whose trial ends within `days` days.

    A user receives at most one notice per 24 hours; the last send time is
    kept in email_notifications.

    Returns:
        Number of notices sent
    """
    horizon = now + timedelta(days=days)
    result = (
        supabase_client.table("user_subscriptions")
        .select("id, user_id, trial_end_date, user:user_id(email, display_name)")
        .eq("status", "trial")
        .gt("trial_end_date", to_iso(now))
        .lte("trial_end_date", to_iso(horizon))
        .execute()
    )
    rows = cast(List[Dict[str, Any]], result.data or [])
    if not rows:
        return 0

    user_ids = [row["user_id"] for row in rows]
    recent = (
        supabase_client.table("email_notifications")
        .select("user_id, created_at")
        .eq("type", TRIAL_ENDING_SOON)
        .in_("user_id", user_ids)
        .execute()
    )
    recently_notified = set()
    for n in cast(List[Dict[str, Any]], recent.data or []):
        sent_at = parse_timestamp(n.get("created_at"))
        if sent_at and sent_at > now - NOTIFICATION_COOLDOWN:
            recently_notified.add(n["user_id"])

    sent = 0
    for row in rows:
        user_id = row["user_id"]
        if user_id in recently_notified:
            continue

        email = (row.get("user") or {}).get("email")
        trial_end = parse_timestamp(row.get("trial_end_date"))
        if not email or not trial_end:
            continue

        days_left = max(1, math.ceil((trial_end - now).total_seconds() / 86400))
        try:
            if not email_service.send_trial_ending_soon_email(email, _display_name(row), days_left):
                # Not recorded, so the next run retries
                logger.warning(f"Trial ending soon email not sent for user {user_id}")
                continue
            (
                supabase_client.table("email_notifications")
                .upsert(
                    {"user_id": user_id, "type": TRIAL_ENDING_SOON, "created_at": to_iso(now)},
                    on_conflict="user_id,type",
                )
                .execute()
            )
            sent += 1
            logger.info(f"Trial ending soon email sent for user {user_id}")
        except Exception as e:
            logger.error(f"Failed to send trial ending soon email for user {user_id}: {e}", exc_info=True)

    return sent


async def reset_monthly_usage(supabase_client: Client, now: datetime) -> int:
    """
    Start a new usage month for every entitled user.

    Counters are bucketed by month_year, so last month's rows stay as history
    and zeroed rows are created for the month containing `now`.

    Returns:
        Number of users initialized
    """
    result = (
        supabase_client.table("user_subscriptions")
        .select("user_id")
        .in_("status", ["trial", "active"])
        .execute()
    )
    user_ids = sorted({row["user_id"] for row in cast(List[Dict[str, Any]], result.data or [])})

    initialized = 0
    for user_id in user_ids:
        try:
            await initialize_usage_tracking(supabase_client, user_id, now)
            initialized += 1
        except Exception as e:
            logger.error(f"Failed to reset usage for user {user_id}: {e}", exc_info=True)

    logger.info(f"Reset monthly usage for {initialized} users")
    return initialized
