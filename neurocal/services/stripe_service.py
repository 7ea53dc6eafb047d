"""
Thin wrapper over the Stripe SDK.

All Stripe calls made by NeuroCal go through StripeService so that tests
can patch a single seam. Billing fails closed: constructing the service
without STRIPE_SECRET_KEY raises BillingNotConfigured.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional

import stripe

from neurocal.config import settings
from neurocal.services.errors import BillingNotConfigured

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StripeConfig:
    secret_key: str
    webhook_secret: Optional[str]
    basic_price_id: Optional[str]
    pro_price_id: Optional[str]
    portal_return_url: str


def _get_stripe_config() -> StripeConfig:
    """Load Stripe config from Settings. Fail closed if the secret key is missing."""
    if not settings.STRIPE_SECRET_KEY:
        raise BillingNotConfigured("Stripe not configured (missing: STRIPE_SECRET_KEY)")

    base = settings.FRONTEND_URL.rstrip("/")
    return StripeConfig(
        secret_key=settings.STRIPE_SECRET_KEY,
        webhook_secret=settings.STRIPE_WEBHOOK_SECRET or None,
        basic_price_id=settings.STRIPE_BASIC_PRICE_ID or None,
        pro_price_id=settings.STRIPE_PRO_PRICE_ID or None,
        portal_return_url=f"{base}/dashboard/billing",
    )


def stripe_attr(obj: Any, key: str, default: Any = None) -> Any:
    """Read a field from a Stripe object or a plain dict."""
    if obj is None:
        return default
    if isinstance(obj, dict):
        return obj.get(key, default)
    return getattr(obj, key, default)


def subscription_period(stripe_subscription: Any) -> tuple[Any, Any]:
    """
    Return (current_period_start, current_period_end) unix timestamps.

    Newer Stripe API versions moved the period fields onto subscription
    items, so fall back to the first item when the top-level ones are absent.
    """
    start = stripe_attr(stripe_subscription, "current_period_start")
    end = stripe_attr(stripe_subscription, "current_period_end")
    if start is not None and end is not None:
        return start, end

    items = stripe_attr(stripe_subscription, "items")
    data = stripe_attr(items, "data") or []
    if data:
        first = data[0]
        start = start if start is not None else stripe_attr(first, "current_period_start")
        end = end if end is not None else stripe_attr(first, "current_period_end")
    return start, end


class StripeService:
    def __init__(self) -> None:
        cfg = _get_stripe_config()
        stripe.api_key = cfg.secret_key
        self.cfg = cfg

    def price_id_for_plan(self, plan_name: str) -> str:
        price_id = self.cfg.basic_price_id if plan_name == "basic" else self.cfg.pro_price_id
        if not price_id:
            raise BillingNotConfigured(f"No Stripe price configured for plan '{plan_name}'")
        return price_id

    def create_customer(self, *, email: str, user_id: str) -> str:
        customer = stripe.Customer.create(email=email, metadata={"user_id": user_id})
        logger.info(f"Created Stripe customer for user {user_id}")
        return str(customer.id)

    def attach_default_payment_method(self, *, customer_id: str, payment_method_id: str) -> None:
        stripe.PaymentMethod.attach(payment_method_id, customer=customer_id)
        self.set_default_payment_method(customer_id=customer_id, payment_method_id=payment_method_id)

    def set_default_payment_method(self, *, customer_id: str, payment_method_id: str) -> None:
        stripe.Customer.modify(
            customer_id,
            invoice_settings={"default_payment_method": payment_method_id},
        )

    def create_subscription(self, *, customer_id: str, price_id: str) -> Any:
        return stripe.Subscription.create(
            customer=customer_id,
            items=[{"price": price_id}],
            expand=["latest_invoice.payment_intent"],
        )

    def cancel_subscription_now(self, stripe_subscription_id: str) -> None:
        stripe.Subscription.cancel(stripe_subscription_id)

    def set_cancel_at_period_end(self, stripe_subscription_id: str, cancel: bool) -> None:
        stripe.Subscription.modify(stripe_subscription_id, cancel_at_period_end=cancel)

    def create_setup_intent(self, *, customer_id: str) -> str:
        intent = stripe.SetupIntent.create(
            customer=customer_id,
            payment_method_types=["card"],
            usage="off_session",
        )
        return str(intent.client_secret)

    def create_portal_session(self, *, customer_id: str) -> str:
        session = stripe.billing_portal.Session.create(
            customer=customer_id,
            return_url=self.cfg.portal_return_url,
        )
        return str(session.url)

    def construct_event(self, *, payload: bytes, sig_header: str) -> Any:
        if not self.cfg.webhook_secret:
            raise BillingNotConfigured("Stripe webhook secret not configured")
        return stripe.Webhook.construct_event(
            payload=payload,
            sig_header=sig_header,
            secret=self.cfg.webhook_secret,
        )
