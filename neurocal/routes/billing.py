"""
Billing API endpoints.

Provides endpoints for plans, the user's subscription and usage, Stripe
subscription changes, the Stripe webhook and admin subscription metrics.

Endpoints that call Stripe return 503 when STRIPE_SECRET_KEY is not set.
The webhook and admin metrics use the service-role client: the webhook
caller is Stripe, and metrics span all users.
"""

import logging
from typing import Annotated, Optional

import stripe
from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from supabase import Client

from neurocal.auth.dependencies import AuthenticatedUser, get_authenticated_user
from neurocal.db.client import get_service_role_client, get_supabase_client
from neurocal.schemas.billing import (
    AdminMetricsResponse,
    BillingHistoryItem,
    BillingHistoryResponse,
    CancelSubscriptionRequest,
    ConvertTrialRequest,
    FunnelStage,
    PlanListResponse,
    PlanResponse,
    PortalSessionResponse,
    SetupIntentResponse,
    SubscriptionChangeResponse,
    SubscriptionMetrics,
    SubscriptionResponse,
    UpdatePaymentMethodRequest,
    UsageItem,
    UsageResponse,
    WebhookAckResponse,
    subscription_from_record,
)
from neurocal.services import stripe_webhook_service, subscription_service, user_service
from neurocal.services.errors import ServiceError
from neurocal.services.stripe_service import StripeService
from neurocal.utils.http_errors import internal_error, service_http_error

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/billing", tags=["billing"])


async def _refreshed_subscription(supabase_client: Client, user_id: str) -> SubscriptionResponse:
    """Re-read the subscription so the response carries plan details."""
    subscription = await subscription_service.get_user_subscription(supabase_client, user_id)
    if not subscription:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"error": "not_found", "details": "No subscription found"},
        )
    return subscription_from_record(subscription)


# =============================================================================
# PLANS, SUBSCRIPTION, USAGE, HISTORY
# =============================================================================

@router.get(
    "/plans",
    response_model=PlanListResponse,
    status_code=status.HTTP_200_OK,
    summary="List subscription plans",
)
async def list_plans(
    auth_user: Annotated[AuthenticatedUser, Depends(get_authenticated_user)]
) -> PlanListResponse:
    supabase_client = get_supabase_client(auth_user.access_token)

    try:
        plans = await subscription_service.get_active_plans(supabase_client)
    except Exception as e:
        logger.error(f"Failed to list plans: {e}", exc_info=True)
        raise internal_error("fetch_error", "Failed to retrieve plans")

    responses = [
        PlanResponse(
            id=str(p.get("id")),
            name=str(p.get("name")),
            display_name=str(p.get("display_name") or p.get("name")),
            price_monthly=float(p.get("price_monthly") or 0),
            features=p.get("features") or {},
            limits=p.get("limits") or {},
        )
        for p in plans
    ]
    return PlanListResponse(plans=responses, count=len(responses))


@router.get(
    "/subscription",
    response_model=SubscriptionResponse,
    status_code=status.HTTP_200_OK,
    summary="Get the current subscription",
    description="""
    Return the user's newest subscription joined with its plan.

    Returns 404 when the user has never had a subscription.
    """
)
async def get_subscription(
    auth_user: Annotated[AuthenticatedUser, Depends(get_authenticated_user)]
) -> SubscriptionResponse:
    supabase_client = get_supabase_client(auth_user.access_token)

    try:
        subscription = await subscription_service.get_user_subscription(
            supabase_client, auth_user.user_id
        )
    except Exception as e:
        logger.error(f"Failed to fetch subscription for user {auth_user.user_id}: {e}", exc_info=True)
        raise internal_error("fetch_error", "Failed to retrieve subscription")

    if not subscription:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"error": "not_found", "details": "No subscription found"},
        )

    return subscription_from_record(subscription)


@router.get(
    "/usage",
    response_model=UsageResponse,
    status_code=status.HTTP_200_OK,
    summary="Current month's feature usage",
)
async def get_usage(
    auth_user: Annotated[AuthenticatedUser, Depends(get_authenticated_user)]
) -> UsageResponse:
    supabase_client = get_supabase_client(auth_user.access_token)

    try:
        summary = await subscription_service.get_usage_summary(supabase_client, auth_user.user_id)
    except Exception as e:
        logger.error(f"Failed to fetch usage for user {auth_user.user_id}: {e}", exc_info=True)
        raise internal_error("fetch_error", "Failed to retrieve usage")

    return UsageResponse(usage=[UsageItem(**item) for item in summary])


@router.get(
    "/history",
    response_model=BillingHistoryResponse,
    status_code=status.HTTP_200_OK,
    summary="Billing history",
)
async def get_history(
    auth_user: Annotated[AuthenticatedUser, Depends(get_authenticated_user)]
) -> BillingHistoryResponse:
    supabase_client = get_supabase_client(auth_user.access_token)

    try:
        rows = await subscription_service.get_billing_history(supabase_client, auth_user.user_id)
    except Exception as e:
        logger.error(f"Failed to fetch billing history for user {auth_user.user_id}: {e}", exc_info=True)
        raise internal_error("fetch_error", "Failed to retrieve billing history")

    history = [
        BillingHistoryItem(
            id=str(r.get("id")),
            amount=float(r.get("amount") or 0),
            currency=r.get("currency") or "usd",
            status=r.get("status", "paid"),
            stripe_invoice_id=r.get("stripe_invoice_id"),
            billing_period_start=r.get("billing_period_start"),
            billing_period_end=r.get("billing_period_end"),
            created_at=r.get("created_at"),
        )
        for r in rows
    ]
    return BillingHistoryResponse(history=history, count=len(history))


# =============================================================================
# SUBSCRIPTION CHANGES (STRIPE)
# =============================================================================

@router.post(
    "/convert-trial",
    response_model=SubscriptionChangeResponse,
    status_code=status.HTTP_200_OK,
    summary="Convert a trial into a paid subscription",
    description="""
    Attach the payment method, create the Stripe subscription and mark the
    local subscription active.

    This endpoint:
    - Returns 400 when there is no trial or expired subscription to convert
    - Returns 404 for an unknown plan_name
    - Returns 503 when Stripe is not configured
    """
)
async def convert_trial(
    request: ConvertTrialRequest,
    auth_user: Annotated[AuthenticatedUser, Depends(get_authenticated_user)]
) -> SubscriptionChangeResponse:
    """
    Convert the user's trial.

    **6-STEP ENDPOINT FLOW:**

    Step 1: Auth
    - Handled by get_authenticated_user dependency

    Step 2: Parse/Validate Request
    - FastAPI validates ConvertTrialRequest

    Step 3: Domain & Intent Filter
    - Service requires a trial or expired subscription

    Step 4: Call Service
    - subscribe_to_plan() talks to Stripe and updates the local row

    Step 5: Map Output -> ResponseModel
    - Refreshed subscription mapped to SubscriptionChangeResponse

    Step 6: Persistence
    - Service layer updates user_subscriptions
    """
    supabase_client = get_supabase_client(auth_user.access_token)

    try:
        await subscription_service.subscribe_to_plan(
            supabase_client,
            auth_user.user_id,
            request.plan_name,
            request.payment_method_id,
        )
        subscription = await _refreshed_subscription(supabase_client, auth_user.user_id)
    except HTTPException:
        raise
    except ServiceError as e:
        logger.warning(f"Trial conversion rejected for user {auth_user.user_id}: {e.error_code}")
        raise service_http_error(e)
    except stripe.StripeError as e:
        logger.error(f"Stripe error converting trial for user {auth_user.user_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": "payment_failed", "details": str(e.user_message or "Payment failed")},
        )
    except Exception as e:
        logger.error(f"Trial conversion failed for user {auth_user.user_id}: {e}", exc_info=True)
        raise internal_error("subscription_error", "Failed to convert trial")

    return SubscriptionChangeResponse(
        message="Subscription activated successfully",
        subscription=subscription,
    )


@router.post(
    "/cancel-subscription",
    response_model=SubscriptionChangeResponse,
    status_code=status.HTTP_200_OK,
    summary="Cancel the active subscription",
    description="""
    Cancel now (status becomes canceled) or at the end of the current
    period (cancel_at_period_end). Returns 400 without an active subscription.
    """
)
async def cancel_subscription(
    request: CancelSubscriptionRequest,
    auth_user: Annotated[AuthenticatedUser, Depends(get_authenticated_user)]
) -> SubscriptionChangeResponse:
    supabase_client = get_supabase_client(auth_user.access_token)

    try:
        await subscription_service.cancel_subscription(
            supabase_client, auth_user.user_id, request.cancel_immediately
        )
        subscription = await _refreshed_subscription(supabase_client, auth_user.user_id)
    except HTTPException:
        raise
    except ServiceError as e:
        raise service_http_error(e)
    except Exception as e:
        logger.error(f"Cancellation failed for user {auth_user.user_id}: {e}", exc_info=True)
        raise internal_error("subscription_error", "Failed to cancel subscription")

    message = (
        "Subscription canceled"
        if request.cancel_immediately
        else "Subscription will be canceled at the end of the billing period"
    )
    return SubscriptionChangeResponse(message=message, subscription=subscription)


@router.post(
    "/reactivate-subscription",
    response_model=SubscriptionChangeResponse,
    status_code=status.HTTP_200_OK,
    summary="Undo a pending cancellation",
)
async def reactivate_subscription(
    auth_user: Annotated[AuthenticatedUser, Depends(get_authenticated_user)]
) -> SubscriptionChangeResponse:
    supabase_client = get_supabase_client(auth_user.access_token)

    try:
        await subscription_service.reactivate_subscription(supabase_client, auth_user.user_id)
        subscription = await _refreshed_subscription(supabase_client, auth_user.user_id)
    except HTTPException:
        raise
    except ServiceError as e:
        raise service_http_error(e)
    except Exception as e:
        logger.error(f"Reactivation failed for user {auth_user.user_id}: {e}", exc_info=True)
        raise internal_error("subscription_error", "Failed to reactivate subscription")

    return SubscriptionChangeResponse(
        message="Subscription reactivated successfully",
        subscription=subscription,
    )


@router.post(
    "/update-payment-method",
    response_model=SubscriptionChangeResponse,
    status_code=status.HTTP_200_OK,
    summary="Replace the default payment method",
)
async def update_payment_method(
    request: UpdatePaymentMethodRequest,
    auth_user: Annotated[AuthenticatedUser, Depends(get_authenticated_user)]
) -> SubscriptionChangeResponse:
    supabase_client = get_supabase_client(auth_user.access_token)

    try:
        await subscription_service.update_payment_method(
            supabase_client, auth_user.user_id, request.payment_method_id
        )
        subscription = await _refreshed_subscription(supabase_client, auth_user.user_id)
    except HTTPException:
        raise
    except ServiceError as e:
        raise service_http_error(e)
    except Exception as e:
        logger.error(f"Payment method update failed for user {auth_user.user_id}: {e}", exc_info=True)
        raise internal_error("subscription_error", "Failed to update payment method")

    return SubscriptionChangeResponse(
        message="Payment method updated successfully",
        subscription=subscription,
    )


@router.post(
    "/create-setup-intent",
    response_model=SetupIntentResponse,
    status_code=status.HTTP_200_OK,
    summary="Start collecting a card",
)
async def create_setup_intent(
    auth_user: Annotated[AuthenticatedUser, Depends(get_authenticated_user)]
) -> SetupIntentResponse:
    supabase_client = get_supabase_client(auth_user.access_token)

    try:
        client_secret = await subscription_service.create_setup_intent(
            supabase_client, auth_user.user_id
        )
    except ServiceError as e:
        raise service_http_error(e)
    except Exception as e:
        logger.error(f"Setup intent failed for user {auth_user.user_id}: {e}", exc_info=True)
        raise internal_error("stripe_error", "Failed to create setup intent")

    return SetupIntentResponse(client_secret=client_secret)


@router.post(
    "/create-portal-session",
    response_model=PortalSessionResponse,
    status_code=status.HTTP_200_OK,
    summary="Open the Stripe billing portal",
)
async def create_portal_session(
    auth_user: Annotated[AuthenticatedUser, Depends(get_authenticated_user)]
) -> PortalSessionResponse:
    supabase_client = get_supabase_client(auth_user.access_token)

    try:
        url = await subscription_service.create_portal_session(supabase_client, auth_user.user_id)
    except ServiceError as e:
        raise service_http_error(e)
    except Exception as e:
        logger.error(f"Portal session failed for user {auth_user.user_id}: {e}", exc_info=True)
        raise internal_error("stripe_error", "Failed to create portal session")

    return PortalSessionResponse(url=url)


# =============================================================================
# WEBHOOK
# =============================================================================

@router.post(
    "/webhook",
    response_model=WebhookAckResponse,
    status_code=status.HTTP_200_OK,
    summary="Stripe webhook",
    description="""
    Receive Stripe events. The raw body is verified against the
    Stripe-Signature header (400 on mismatch).

    Handled types: invoice.payment_succeeded, invoice.payment_failed,
    customer.subscription.updated, customer.subscription.deleted and
    customer.subscription.trial_will_end. Other types are acknowledged
    without action. Database failures return 500 so Stripe retries.
    """
)
async def stripe_webhook(
    request: Request,
    stripe_signature: Annotated[Optional[str], Header(alias="stripe-signature")] = None,
) -> WebhookAckResponse:
    if not stripe_signature:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": "invalid_signature", "details": "Missing Stripe-Signature header"},
        )

    payload = await request.body()

    try:
        event = StripeService().construct_event(payload=payload, sig_header=stripe_signature)
    except ServiceError as e:
        raise service_http_error(e)
    except (ValueError, stripe.SignatureVerificationError) as e:
        logger.warning(f"Rejected Stripe webhook: {e}")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": "invalid_signature", "details": "Webhook signature verification failed"},
        )

    try:
        supabase_client = get_service_role_client()
        handled = await stripe_webhook_service.handle_stripe_event(supabase_client, event)
    except Exception as e:
        logger.error(f"Stripe webhook {event['type']} failed: {e}", exc_info=True)
        raise internal_error("webhook_error", "Failed to process webhook")

    return WebhookAckResponse(received=True, handled=handled)


# =============================================================================
# ADMIN
# =============================================================================

@router.get(
    "/admin/metrics",
    response_model=AdminMetricsResponse,
    status_code=status.HTTP_200_OK,
    summary="Subscription metrics (admin)",
    description="""
    Trial, active and canceled counts, MRR and the trial conversion funnel
    for subscriptions created in the last 30 days.

    Security:
    - Requires valid Authorization Bearer token
    - Returns 403 unless the user is an admin
    """
)
async def admin_metrics(
    auth_user: Annotated[AuthenticatedUser, Depends(get_authenticated_user)]
) -> AdminMetricsResponse:
    try:
        supabase_client = get_service_role_client()
        user = await user_service.get_user_by_id(supabase_client, auth_user.user_id)
    except Exception as e:
        logger.error(f"Admin check failed for user {auth_user.user_id}: {e}", exc_info=True)
        raise internal_error("fetch_error", "Failed to verify admin access")

    if not user or not user.get("is_admin"):
        logger.warning(f"Non-admin user {auth_user.user_id} requested admin metrics")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={"error": "forbidden", "details": "Admin access required"},
        )

    try:
        metrics = await subscription_service.get_subscription_metrics(supabase_client)
        funnel = await subscription_service.get_conversion_funnel(supabase_client)
    except Exception as e:
        logger.error(f"Failed to compute admin metrics: {e}", exc_info=True)
        raise internal_error("metrics_error", "Failed to compute subscription metrics")

    return AdminMetricsResponse(
        metrics=SubscriptionMetrics(**metrics),
        conversion_funnel=[FunnelStage(**stage) for stage in funnel],
    )
