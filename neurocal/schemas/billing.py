"""
Pydantic schemas for billing endpoints.

Covers plans, the user's subscription, usage counters, billing history,
Stripe-backed subscription changes, the webhook ack and admin metrics.
"""

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

SubscriptionStatus = Literal["trial", "active", "past_due", "canceled", "expired"]


# --- Plans ---

class PlanResponse(BaseModel):
    """
    Response for a subscription plan.

    features is a bool map; limits is an int map where -1 means unlimited.
    """
    id: str = Field(..., description="Plan UUID")
    name: str = Field(..., description="Machine name", examples=["pro"])
    display_name: str = Field(..., examples=["Pro"])
    price_monthly: float = Field(..., description="Monthly price in the billing currency")
    features: Dict[str, bool] = Field(default_factory=dict)
    limits: Dict[str, int] = Field(default_factory=dict)


class PlanListResponse(BaseModel):
    plans: List[PlanResponse] = Field(..., description="Active plans, cheapest first")
    count: int


# --- Subscription ---

class SubscriptionResponse(BaseModel):
    id: str
    user_id: str
    status: SubscriptionStatus
    plan_name: Optional[str] = None
    display_name: Optional[str] = None
    features: Dict[str, bool] = Field(default_factory=dict)
    limits: Dict[str, int] = Field(default_factory=dict)
    trial_start_date: Optional[str] = None
    trial_end_date: Optional[str] = None
    current_period_start: Optional[str] = None
    current_period_end: Optional[str] = None
    cancel_at_period_end: bool = False
    canceled_at: Optional[str] = None
    created_at: Optional[str] = None


class UsageItem(BaseModel):
    feature: str
    usage_count: int
    limit: int = Field(..., description="Monthly limit (-1 = unlimited)")
    is_unlimited: bool
    percentage_used: int = Field(..., ge=0)


class UsageResponse(BaseModel):
    usage: List[UsageItem]


class BillingHistoryItem(BaseModel):
    id: str
    amount: float
    currency: str = "usd"
    status: Literal["paid", "failed"]
    stripe_invoice_id: Optional[str] = None
    billing_period_start: Optional[str] = None
    billing_period_end: Optional[str] = None
    created_at: Optional[str] = None


class BillingHistoryResponse(BaseModel):
    history: List[BillingHistoryItem] = Field(..., description="Newest first")
    count: int


# --- Subscription changes ---

class ConvertTrialRequest(BaseModel):
    """
    Request to convert a trial (or expired trial) into a paid subscription.

    payment_method_id comes from Stripe Elements on the client.
    """
    payment_method_id: str = Field(..., min_length=1, examples=["pm_1NXa9bLkdIwHu7ix"])
    plan_name: str = Field(..., min_length=1, examples=["pro"])


class CancelSubscriptionRequest(BaseModel):
    cancel_immediately: bool = Field(
        False,
        description="Cancel now instead of at the end of the current period"
    )


class UpdatePaymentMethodRequest(BaseModel):
    payment_method_id: str = Field(..., min_length=1)


class SubscriptionChangeResponse(BaseModel):
    message: str
    subscription: SubscriptionResponse


class SetupIntentResponse(BaseModel):
    client_secret: str = Field(..., description="Stripe SetupIntent client secret")


class PortalSessionResponse(BaseModel):
    url: str = Field(..., description="Stripe billing portal URL")


class WebhookAckResponse(BaseModel):
    received: bool = True
    handled: bool = Field(..., description="False when the event type is not acted upon")


# --- Admin ---

class SubscriptionMetrics(BaseModel):
    active_trials: int
    active_subscriptions: int
    canceled_subscriptions: int
    monthly_recurring_revenue: float


class FunnelStage(BaseModel):
    stage: str = Field(..., examples=["Trial Started"])
    users: int
    conversion_rate: float = Field(..., description="Percent of trial starters")


class AdminMetricsResponse(BaseModel):
    """Subscription metrics for the last 30 days."""
    metrics: SubscriptionMetrics
    conversion_funnel: List[FunnelStage]

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "metrics": {
                        "active_trials": 42,
                        "active_subscriptions": 17,
                        "canceled_subscriptions": 3,
                        "monthly_recurring_revenue": 169.83
                    },
                    "conversion_funnel": [
                        {"stage": "Trial Started", "users": 62, "conversion_rate": 100.0},
                        {"stage": "Trial Converted", "users": 17, "conversion_rate": 27.42}
                    ]
                }
            ]
        }
    }


def subscription_from_record(record: Dict[str, Any]) -> SubscriptionResponse:
    """Build a SubscriptionResponse from a flattened subscription row."""
    return SubscriptionResponse(
        id=str(record.get("id")),
        user_id=str(record.get("user_id")),
        status=record.get("status", "trial"),
        plan_name=record.get("plan_name"),
        display_name=record.get("display_name"),
        features=record.get("features") or {},
        limits=record.get("limits") or {},
        trial_start_date=record.get("trial_start_date"),
        trial_end_date=record.get("trial_end_date"),
        current_period_start=record.get("current_period_start"),
        current_period_end=record.get("current_period_end"),
        cancel_at_period_end=bool(record.get("cancel_at_period_end")),
        canceled_at=record.get("canceled_at"),
        created_at=record.get("created_at"),
    )
