"""
Stripe webhook event handling.

Mirrors Stripe subscription and invoice state into user_subscriptions and
billing_history. Runs with the service-role client: webhook requests carry
no user token, so every query filters by the Stripe subscription id.

Events whose subscription is unknown locally are logged and acknowledged.
"""

import logging
from typing import Any, Dict, Optional, cast

from supabase import Client

from neurocal.services.email_service import email_service
from neurocal.services.stripe_service import stripe_attr, subscription_period
from neurocal.utils.dates import from_unix, to_iso, utc_now

logger = logging.getLogger(__name__)


async def _find_subscription(
    supabase_client: Client,
    stripe_subscription_id: Optional[str],
) -> Optional[Dict[str, Any]]:
    if not stripe_subscription_id:
        return None

    result = (
        supabase_client.table("user_subscriptions")
        .select("*")
        .eq("stripe_subscription_id", stripe_subscription_id)
        .execute()
    )
    if not result.data:
        logger.info(f"No subscription found for Stripe subscription: {stripe_subscription_id}")
        return None
    return cast(Dict[str, Any], result.data[0])


async def _get_user_contact(supabase_client: Client, user_id: str) -> Optional[Dict[str, Any]]:
    result = (
        supabase_client.table("users")
        .select("email, display_name, first_name")
        .eq("id", user_id)
        .execute()
    )
    if not result.data:
        return None
    return cast(Dict[str, Any], result.data[0])


def _invoice_subscription_id(invoice: Any) -> Optional[str]:
    """
    Stripe subscription id of an invoice.

    Newer API versions nest it under parent.subscription_details.
    """
    sub_id = stripe_attr(invoice, "subscription")
    if not sub_id:
        parent = stripe_attr(invoice, "parent")
        details = stripe_attr(parent, "subscription_details")
        sub_id = stripe_attr(details, "subscription")
    if sub_id is not None and not isinstance(sub_id, str):
        sub_id = stripe_attr(sub_id, "id")
    return sub_id


async def _record_invoice(
    supabase_client: Client,
    subscription: Dict[str, Any],
    invoice: Any,
    amount_cents: Any,
    invoice_status: str,
) -> None:
    (
        supabase_client.table("billing_history")
        .insert({
            "user_id": subscription["user_id"],
            "subscription_id": subscription["id"],
            "amount": (amount_cents or 0) / 100,
            "currency": stripe_attr(invoice, "currency") or "usd",
            "status": invoice_status,
            "stripe_invoice_id": stripe_attr(invoice, "id"),
            "billing_period_start": to_iso(from_unix(stripe_attr(invoice, "period_start"))),
            "billing_period_end": to_iso(from_unix(stripe_attr(invoice, "period_end"))),
        })
        .execute()
    )


async def _set_status(supabase_client: Client, subscription_id: str, updates: Dict[str, Any]) -> None:
    updates = {**updates, "updated_at": to_iso(utc_now())}
    supabase_client.table("user_subscriptions").update(updates).eq("id", subscription_id).execute()


async def handle_payment_succeeded(supabase_client: Client, invoice: Any) -> None:
    subscription = await _find_subscription(supabase_client, _invoice_subscription_id(invoice))
    if not subscription:
        return

    await _set_status(supabase_client, subscription["id"], {"status": "active"})
    await _record_invoice(
        supabase_client, subscription, invoice, stripe_attr(invoice, "amount_paid"), "paid"
    )
    logger.info(f"Payment succeeded for subscription: {subscription['id']}")


async def handle_payment_failed(supabase_client: Client, invoice: Any) -> None:
    subscription = await _find_subscription(supabase_client, _invoice_subscription_id(invoice))
    if not subscription:
        return

    await _set_status(supabase_client, subscription["id"], {"status": "past_due"})
    await _record_invoice(
        supabase_client, subscription, invoice, stripe_attr(invoice, "amount_due"), "failed"
    )

    user = await _get_user_contact(supabase_client, subscription["user_id"])
    if user:
        email_service.send_payment_failed_email(
            user["email"], user.get("display_name") or user.get("first_name")
        )

    logger.info(f"Payment failed for subscription: {subscription['id']}")


async def handle_subscription_updated(supabase_client: Client, stripe_subscription: Any) -> None:
    subscription = await _find_subscription(supabase_client, stripe_attr(stripe_subscription, "id"))
    if not subscription:
        return

    period_start, period_end = subscription_period(stripe_subscription)
    await _set_status(
        supabase_client,
        subscription["id"],
        {
            "current_period_start": to_iso(from_unix(period_start)),
            "current_period_end": to_iso(from_unix(period_end)),
            "cancel_at_period_end": bool(stripe_attr(stripe_subscription, "cancel_at_period_end")),
        },
    )
    logger.info(f"Subscription updated: {subscription['id']}")


async def handle_subscription_deleted(supabase_client: Client, stripe_subscription: Any) -> None:
    subscription = await _find_subscription(supabase_client, stripe_attr(stripe_subscription, "id"))
    if not subscription:
        return

    await _set_status(
        supabase_client,
        subscription["id"],
        {"status": "canceled", "canceled_at": to_iso(utc_now())},
    )
    logger.info(f"Subscription canceled: {subscription['id']}")


async def handle_trial_will_end(supabase_client: Client, stripe_subscription: Any) -> None:
    subscription = await _find_subscription(supabase_client, stripe_attr(stripe_subscription, "id"))
    if not subscription:
        return

    user = await _get_user_contact(supabase_client, subscription["user_id"])
    if user:
        # Stripe sends this event three days before the trial ends
        email_service.send_trial_ending_soon_email(
            user["email"], user.get("display_name") or user.get("first_name"), 3
        )
    logger.info(f"Trial ending soon email sent for subscription: {subscription['id']}")


EVENT_HANDLERS = {
    "invoice.payment_succeeded": handle_payment_succeeded,
    "invoice.payment_failed": handle_payment_failed,
    "customer.subscription.updated": handle_subscription_updated,
    "customer.subscription.deleted": handle_subscription_deleted,
    "customer.subscription.trial_will_end": handle_trial_will_end,
}


async def handle_stripe_event(supabase_client: Client, event: Any) -> bool:
    """
    Dispatch a verified Stripe event to its handler.

    Returns:
        True if the event type is handled, False if it was only acknowledged

    Raises:
        Exception: Database errors propagate so the route answers 500 and
                   Stripe retries the delivery
    """
    event_type = stripe_attr(event, "type")
    data = stripe_attr(event, "data")
    obj = stripe_attr(data, "object")

    handler = EVENT_HANDLERS.get(event_type)
    if handler is None:
        logger.info(f"Unhandled Stripe event type: {event_type}")
        return False

    logger.info(f"Handling Stripe event {event_type} ({stripe_attr(event, 'id')})")
    await handler(supabase_client, obj)
    return True
