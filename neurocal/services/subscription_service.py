"""
Subscription, plan and usage persistence service.

CRITICAL RULES:
1. A user's current subscription is the newest user_subscriptions row
2. Only 'trial' and 'active' subscriptions grant gated features
3. Plan features are a bool map; plan limits are an int map where -1 = unlimited
4. Usage is counted per (user_id, feature, month_year) and never decremented
5. Stripe is the source of truth for paid subscriptions; local rows mirror it
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, cast

from supabase import Client

from neurocal.config import settings
from neurocal.services.errors import NotFoundError, SubscriptionError
from neurocal.services.stripe_service import StripeService, subscription_period
from neurocal.utils.constants import (
    ENTITLED_STATUSES,
    TRACKED_FEATURES,
    TRIAL_PLAN_NAME,
    UNLIMITED,
)
from neurocal.utils.dates import (
    first_day_of_next_month,
    from_unix,
    month_year,
    to_iso,
    utc_now,
)

logger = logging.getLogger(__name__)


# =============================================================================
# PLANS
# =============================================================================

async def get_active_plans(supabase_client: Client) -> List[Dict[str, Any]]:
    """Fetch all active plans, cheapest first."""
    result = (
        supabase_client.table("subscription_plans")
        .select("*")
        .eq("is_active", True)
        .order("price_monthly")
        .execute()
    )
    return cast(List[Dict[str, Any]], result.data or [])


async def get_plan_by_name(supabase_client: Client, plan_name: str) -> Optional[Dict[str, Any]]:
    result = (
        supabase_client.table("subscription_plans")
        .select("*")
        .eq("name", plan_name)
        .execute()
    )
    if not result.data:
        return None
    return cast(Dict[str, Any], result.data[0])


# =============================================================================
# SUBSCRIPTIONS
# =============================================================================

def _flatten_subscription(row: Dict[str, Any]) -> Dict[str, Any]:
    """Merge the embedded plan into the subscription record."""
    subscription = {k: v for k, v in row.items() if k != "plan"}
    plan = row.get("plan") or {}
    subscription["plan_name"] = plan.get("name")
    subscription["display_name"] = plan.get("display_name")
    subscription["features"] = plan.get("features") or {}
    subscription["limits"] = plan.get("limits") or {}
    return subscription


async def get_user_subscription(
    supabase_client: Client,
    user_id: str
) -> Optional[Dict[str, Any]]:
    """
    Fetch the user's current (newest) subscription joined with its plan.

    Returns:
        Subscription record with plan_name, display_name, features and limits,
        or None if the user never had a subscription
    """
    result = (
        supabase_client.table("user_subscriptions")
        .select("*, plan:plan_id(*)")
        .eq("user_id", user_id)
        .order("created_at", desc=True)
        .limit(1)
        .execute()
    )

    if not result.data:
        logger.debug(f"No subscription found for user {user_id}")
        return None

    return _flatten_subscription(cast(Dict[str, Any], result.data[0]))


def is_entitled(subscription: Dict[str, Any]) -> bool:
    return subscription.get("status") in ENTITLED_STATUSES


async def _latest_subscription_with_status(
    supabase_client: Client,
    user_id: str,
    statuses: List[str],
) -> Optional[Dict[str, Any]]:
    result = (
        supabase_client.table("user_subscriptions")
        .select("*")
        .eq("user_id", user_id)
        .in_("status", statuses)
        .order("created_at", desc=True)
        .limit(1)
        .execute()
    )
    if not result.data:
        return None
    return cast(Dict[str, Any], result.data[0])


async def _update_subscription(
    supabase_client: Client,
    subscription_id: str,
    updates: Dict[str, Any],
) -> Dict[str, Any]:
    updates = {**updates, "updated_at": to_iso(utc_now())}
    result = (
        supabase_client.table("user_subscriptions")
        .update(updates)
        .eq("id", subscription_id)
        .execute()
    )
    if not result.data:
        raise SubscriptionError(f"Failed to update subscription {subscription_id}")
    return cast(Dict[str, Any], result.data[0])


async def create_free_trial(
    supabase_client: Client,
    user_id: str,
    email: str,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """
    Start a free trial on the Pro plan for a newly registered user.

    A Stripe customer is created when Stripe is configured so that the trial
    can later be converted without re-collecting customer data.

    Raises:
        SubscriptionError: If the trial plan is missing or the insert fails
    """
    now = now or utc_now()

    plan = await get_plan_by_name(supabase_client, TRIAL_PLAN_NAME)
    if not plan:
        raise SubscriptionError(f"Trial plan '{TRIAL_PLAN_NAME}' not found")

    stripe_customer_id = None
    if settings.stripe_enabled():
        stripe_customer_id = StripeService().create_customer(email=email, user_id=user_id)
    else:
        logger.warning("Stripe not configured; trial created without a Stripe customer")

    trial_end = now + timedelta(days=settings.TRIAL_DURATION_DAYS)

    subscription_data = {
        "user_id": user_id,
        "plan_id": plan["id"],
        "status": "trial",
        "trial_start_date": to_iso(now),
        "trial_end_date": to_iso(trial_end),
        "current_period_start": to_iso(now),
        "current_period_end": to_iso(trial_end),
        "cancel_at_period_end": False,
        "stripe_customer_id": stripe_customer_id,
    }

    result = supabase_client.table("user_subscriptions").insert(subscription_data).execute()
    if not result.data:
        raise SubscriptionError("Trial creation failed: no data returned")

    subscription = cast(Dict[str, Any], result.data[0])
    await initialize_usage_tracking(supabase_client, user_id, now)

    logger.info(f"Trial started for user {user_id} until {trial_end.date()}")
    return subscription


async def _user_email(supabase_client: Client, user_id: str) -> str:
    result = supabase_client.table("users").select("email").eq("id", user_id).execute()
    if not result.data:
        raise NotFoundError("User not found")
    return str(cast(Dict[str, Any], result.data[0])["email"])


async def _ensure_stripe_customer(
    supabase_client: Client,
    stripe_service: StripeService,
    user_id: str,
    subscription: Optional[Dict[str, Any]],
) -> str:
    """
    Return the subscription's Stripe customer, creating one if it has none.

    The new customer is stored on the row immediately so a retry after a
    declined card reuses it.
    """
    customer_id = subscription.get("stripe_customer_id") if subscription else None
    if customer_id:
        return str(customer_id)

    email = await _user_email(supabase_client, user_id)
    customer_id = stripe_service.create_customer(email=email, user_id=user_id)
    if subscription:
        await _update_subscription(
            supabase_client, str(subscription["id"]), {"stripe_customer_id": customer_id}
        )
    return customer_id


async def subscribe_to_plan(
    supabase_client: Client,
    user_id: str,
    plan_name: str,
    payment_method_id: str,
) -> Dict[str, Any]:
    """
    Convert a trial (or expired trial) into a paid Stripe subscription.

    Users with no subscription row (trial creation failed at registration) or
    whose last subscription was canceled get a new row. A missing Stripe
    customer is created on the fly.

    Raises:
        SubscriptionError: The current subscription is active or past due
        NotFoundError: Unknown plan
        BillingNotConfigured: Stripe is not configured
    """
    subscription = await _latest_subscription_with_status(
        supabase_client, user_id, ["trial", "expired"]
    )
    current = subscription
    if not subscription:
        current = await get_user_subscription(supabase_client, user_id)
        if current and current.get("status") != "canceled":
            raise SubscriptionError("No trial or expired subscription found")

    plan = await get_plan_by_name(supabase_client, plan_name)
    if not plan:
        raise NotFoundError(f"Invalid plan selected: {plan_name}")

    stripe_service = StripeService()
    # A canceled subscription's customer is reused for the new one
    customer_id = await _ensure_stripe_customer(supabase_client, stripe_service, user_id, current)

    stripe_service.attach_default_payment_method(
        customer_id=customer_id, payment_method_id=payment_method_id
    )
    stripe_subscription = stripe_service.create_subscription(
        customer_id=customer_id,
        price_id=stripe_service.price_id_for_plan(plan_name),
    )
    period_start, period_end = subscription_period(stripe_subscription)

    logger.info(f"User {user_id} subscribed to plan {plan_name}")

    updates = {
        "plan_id": plan["id"],
        "status": "active",
        "stripe_customer_id": customer_id,
        "stripe_subscription_id": str(stripe_subscription.id),
        "payment_method_id": payment_method_id,
        "current_period_start": to_iso(from_unix(period_start)),
        "current_period_end": to_iso(from_unix(period_end)),
        "trial_start_date": None,
        "trial_end_date": None,
    }
    if subscription:
        return await _update_subscription(supabase_client, str(subscription["id"]), updates)

    result = (
        supabase_client.table("user_subscriptions")
        .insert({**updates, "user_id": user_id, "cancel_at_period_end": False})
        .execute()
    )
    if not result.data:
        raise SubscriptionError("Subscription creation failed: no data returned")
    await initialize_usage_tracking(supabase_client, user_id)
    return cast(Dict[str, Any], result.data[0])


async def cancel_subscription(
    supabase_client: Client,
    user_id: str,
    cancel_immediately: bool = False,
) -> Dict[str, Any]:
    """
    Cancel the user's active subscription, immediately or at period end.

    Raises:
        SubscriptionError: If there is no active subscription
    """
    subscription = await _latest_subscription_with_status(supabase_client, user_id, ["active"])
    if not subscription:
        raise SubscriptionError("No active subscription found")

    stripe_service = StripeService()
    stripe_subscription_id = subscription.get("stripe_subscription_id")

    if cancel_immediately:
        if stripe_subscription_id:
            stripe_service.cancel_subscription_now(stripe_subscription_id)
        updates = {
            "status": "canceled",
            "canceled_at": to_iso(utc_now()),
            "cancel_at_period_end": False,
        }
    else:
        if stripe_subscription_id:
            stripe_service.set_cancel_at_period_end(stripe_subscription_id, True)
        updates = {"cancel_at_period_end": True}

    logger.info(
        f"Canceling subscription {subscription['id']} for user {user_id} "
        f"(immediately={cancel_immediately})"
    )
    return await _update_subscription(supabase_client, str(subscription["id"]), updates)


async def reactivate_subscription(supabase_client: Client, user_id: str) -> Dict[str, Any]:
    """
    Undo a pending cancel-at-period-end.

    Raises:
        NotFoundError: If there is no Stripe-backed subscription
    """
    subscription = await get_user_subscription(supabase_client, user_id)
    if not subscription or not subscription.get("stripe_subscription_id"):
        raise NotFoundError("No subscription found")

    StripeService().set_cancel_at_period_end(subscription["stripe_subscription_id"], False)

    return await _update_subscription(
        supabase_client,
        str(subscription["id"]),
        {"cancel_at_period_end": False},
    )


async def update_payment_method(
    supabase_client: Client,
    user_id: str,
    payment_method_id: str,
) -> Dict[str, Any]:
    subscription = await get_user_subscription(supabase_client, user_id)
    if not subscription or not subscription.get("stripe_customer_id"):
        raise NotFoundError("No subscription found")

    StripeService().set_default_payment_method(
        customer_id=subscription["stripe_customer_id"],
        payment_method_id=payment_method_id,
    )

    return await _update_subscription(
        supabase_client,
        str(subscription["id"]),
        {"payment_method_id": payment_method_id},
    )


async def _stripe_customer_id(supabase_client: Client, user_id: str) -> str:
    subscription = await get_user_subscription(supabase_client, user_id)
    if not subscription or not subscription.get("stripe_customer_id"):
        raise NotFoundError("No billing customer found")
    return str(subscription["stripe_customer_id"])


async def create_setup_intent(supabase_client: Client, user_id: str) -> str:
    """
    Start collecting a card for the user's Stripe customer. Returns the client secret.

    A subscription without a customer (trial started while Stripe was down)
    gets one here.
    """
    subscription = await get_user_subscription(supabase_client, user_id)
    if not subscription:
        raise NotFoundError("No billing customer found")
    stripe_service = StripeService()
    customer_id = await _ensure_stripe_customer(supabase_client, stripe_service, user_id, subscription)
    return stripe_service.create_setup_intent(customer_id=customer_id)


async def create_portal_session(supabase_client: Client, user_id: str) -> str:
    """Open a Stripe billing portal session. Returns its URL."""
    customer_id = await _stripe_customer_id(supabase_client, user_id)
    return StripeService().create_portal_session(customer_id=customer_id)


async def get_billing_history(
    supabase_client: Client,
    user_id: str,
    limit: int = 50,
) -> List[Dict[str, Any]]:
    result = (
        supabase_client.table("billing_history")
        .select("*")
        .eq("user_id", user_id)
        .order("created_at", desc=True)
        .limit(limit)
        .execute()
    )
    return cast(List[Dict[str, Any]], result.data or [])


# =============================================================================
# USAGE & FEATURE ACCESS
# =============================================================================

async def get_user_usage(
    supabase_client: Client,
    user_id: str,
    feature: str,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Fetch this month's usage row for a feature (usage_count 0 if none)."""
    now = now or utc_now()
    result = (
        supabase_client.table("user_usage")
        .select("*")
        .eq("user_id", user_id)
        .eq("feature", feature)
        .eq("month_year", month_year(now))
        .execute()
    )
    if not result.data:
        return {"usage_count": 0}
    return cast(Dict[str, Any], result.data[0])


def evaluate_feature_access(
    subscription: Optional[Dict[str, Any]],
    feature: str,
    usage_count: int,
) -> bool:
    """
    Decide whether a subscription grants a feature given current usage.

    Rules:
        - No subscription, or status other than trial/active -> denied
        - Feature missing or falsy in plan features -> denied
        - Limit present and not -1 -> usage_count must be below the limit
    """
    if not subscription or not is_entitled(subscription):
        return False

    features = subscription.get("features") or {}
    if not features.get(feature):
        return False

    limit = (subscription.get("limits") or {}).get(feature)
    if limit is not None and int(limit) != UNLIMITED:
        return usage_count < int(limit)

    return True


async def has_feature_access(supabase_client: Client, user_id: str, feature: str) -> bool:
    subscription = await get_user_subscription(supabase_client, user_id)
    if not subscription:
        return False

    usage = await get_user_usage(supabase_client, user_id, feature)
    return evaluate_feature_access(subscription, feature, int(usage.get("usage_count") or 0))


async def check_feature(supabase_client: Client, user_id: str, feature: str) -> Dict[str, Any]:
    """Describe the user's access to a feature without tracking usage."""
    subscription = await get_user_subscription(supabase_client, user_id)
    usage = await get_user_usage(supabase_client, user_id, feature)
    usage_count = int(usage.get("usage_count") or 0)

    limit = None
    if subscription:
        limit = (subscription.get("limits") or {}).get(feature)

    return {
        "feature": feature,
        "has_access": evaluate_feature_access(subscription, feature, usage_count),
        "usage_count": usage_count,
        "limit": int(limit) if limit is not None else None,
        "is_unlimited": limit is None or int(limit) == UNLIMITED,
        "plan_name": subscription.get("plan_name") if subscription else None,
        "status": subscription.get("status") if subscription else None,
    }


async def track_usage(
    supabase_client: Client,
    user_id: str,
    feature: str,
    count: int = 1,
    now: Optional[datetime] = None,
) -> Optional[Dict[str, Any]]:
    """
    Increment this month's usage counter for a feature.

    Usage tracking never blocks the request it belongs to: failures are
    logged and None is returned.
    """
    now = now or utc_now()
    bucket = month_year(now)

    try:
        existing = (
            supabase_client.table("user_usage")
            .select("id, usage_count")
            .eq("user_id", user_id)
            .eq("feature", feature)
            .eq("month_year", bucket)
            .execute()
        )

        if existing.data:
            row = cast(Dict[str, Any], existing.data[0])
            result = (
                supabase_client.table("user_usage")
                .update({
                    "usage_count": int(row.get("usage_count") or 0) + count,
                    "updated_at": to_iso(now),
                })
                .eq("id", row["id"])
                .execute()
            )
        else:
            result = (
                supabase_client.table("user_usage")
                .insert({
                    "user_id": user_id,
                    "feature": feature,
                    "usage_count": count,
                    "month_year": bucket,
                    "reset_date": first_day_of_next_month(now).isoformat(),
                })
                .execute()
            )

        logger.debug(f"Tracked usage of {feature} for user {user_id} in {bucket}")
        return cast(Dict[str, Any], result.data[0]) if result.data else None

    except Exception as e:
        logger.error(f"Failed to track usage of {feature} for user {user_id}: {e}", exc_info=True)
        return None


async def initialize_usage_tracking(
    supabase_client: Client,
    user_id: str,
    now: Optional[datetime] = None,
) -> None:
    """Create zeroed usage rows for every tracked feature in the current month."""
    now = now or utc_now()
    rows = [
        {
            "user_id": user_id,
            "feature": feature,
            "usage_count": 0,
            "month_year": month_year(now),
            "reset_date": first_day_of_next_month(now).isoformat(),
        }
        for feature in TRACKED_FEATURES
    ]
    (
        supabase_client.table("user_usage")
        .upsert(rows, on_conflict="user_id,feature,month_year", ignore_duplicates=True)
        .execute()
    )


async def get_usage_summary(supabase_client: Client, user_id: str) -> List[Dict[str, Any]]:
    """
    Current month's usage per feature, with plan limits.

    Every feature that has a limit on the user's plan is reported, even if it
    has not been used yet.
    """
    subscription = await get_user_subscription(supabase_client, user_id)
    limits: Dict[str, Any] = (subscription or {}).get("limits") or {}

    result = (
        supabase_client.table("user_usage")
        .select("*")
        .eq("user_id", user_id)
        .eq("month_year", month_year(utc_now()))
        .execute()
    )
    counts = {
        row["feature"]: int(row.get("usage_count") or 0)
        for row in cast(List[Dict[str, Any]], result.data or [])
    }

    summary = []
    for feature in sorted(set(counts) | set(limits)):
        usage_count = counts.get(feature, 0)
        limit = limits.get(feature, UNLIMITED)
        limit = int(limit) if limit is not None else UNLIMITED
        is_unlimited = limit == UNLIMITED
        if is_unlimited or limit <= 0:
            percentage_used = 0
        else:
            percentage_used = round(usage_count / limit * 100)
        summary.append({
            "feature": feature,
            "usage_count": usage_count,
            "limit": limit,
            "is_unlimited": is_unlimited,
            "percentage_used": percentage_used,
        })

    return summary


# =============================================================================
# ADMIN METRICS
# =============================================================================

MONTHLY_PRICE_FALLBACK = 9.99


async def get_subscription_metrics(
    supabase_client: Client,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """
    Subscription counts and MRR for subscriptions created in the last 30 days.

    MRR sums the monthly price of the plan behind each active subscription.
    """
    now = now or utc_now()
    since = now - timedelta(days=30)

    result = (
        supabase_client.table("user_subscriptions")
        .select("status, current_period_start, current_period_end, plan:plan_id(price_monthly)")
        .gte("created_at", to_iso(since))
        .execute()
    )
    rows = cast(List[Dict[str, Any]], result.data or [])

    def _count(status: str) -> int:
        return sum(1 for r in rows if r.get("status") == status)

    mrr = 0.0
    for r in rows:
        if r.get("status") == "active":
            price = (r.get("plan") or {}).get("price_monthly")
            mrr += float(price) if price is not None else MONTHLY_PRICE_FALLBACK

    return {
        "active_trials": _count("trial"),
        "active_subscriptions": _count("active"),
        "canceled_subscriptions": _count("canceled"),
        "monthly_recurring_revenue": round(mrr, 2),
    }


async def get_conversion_funnel(
    supabase_client: Client,
    now: Optional[datetime] = None,
) -> List[Dict[str, Any]]:
    """Trial-started vs trial-converted counts for the last 30 days."""
    now = now or utc_now()
    since = now - timedelta(days=30)

    result = (
        supabase_client.table("user_subscriptions")
        .select("status")
        .in_("status", ["trial", "active", "canceled"])
        .gte("created_at", to_iso(since))
        .execute()
    )
    rows = cast(List[Dict[str, Any]], result.data or [])

    started = len(rows)
    converted = sum(1 for r in rows if r.get("status") == "active")
    conversion_rate = round(converted * 100.0 / started, 2) if started else 0.0

    return [
        {"stage": "Trial Started", "users": started, "conversion_rate": 100.0},
        {"stage": "Trial Converted", "users": converted, "conversion_rate": conversion_rate},
    ]
