"""
Tests for subscription, usage and feature access logic.
"""

import pytest
from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

from neurocal.services.errors import NotFoundError, SubscriptionError
from neurocal.services.subscription_service import (
    cancel_subscription,
    check_feature,
    create_free_trial,
    create_setup_intent,
    evaluate_feature_access,
    get_conversion_funnel,
    get_subscription_metrics,
    get_usage_summary,
    subscribe_to_plan,
    track_usage,
)

NOW = datetime(2026, 10, 17, 12, 0, tzinfo=timezone.utc)


def _subscription(status="active", features=None, limits=None):
    return {
        "id": "sub-1",
        "user_id": "user-1",
        "status": status,
        "plan_name": "basic",
        "features": {"ai_suggestions": True} if features is None else features,
        "limits": {"ai_suggestions": 50} if limits is None else limits,
    }


class TestEvaluateFeatureAccess:
    """Access rules for gated features."""

    def test_no_subscription(self):
        assert evaluate_feature_access(None, "ai_suggestions", 0) is False

    @pytest.mark.parametrize("status", ["past_due", "canceled", "expired"])
    def test_status_without_entitlement(self, status):
        assert evaluate_feature_access(_subscription(status=status), "ai_suggestions", 0) is False

    def test_trial_is_entitled(self):
        assert evaluate_feature_access(_subscription(status="trial"), "ai_suggestions", 0) is True

    def test_feature_not_in_plan(self):
        sub = _subscription(features={"ai_suggestions": False})

        assert evaluate_feature_access(sub, "ai_suggestions", 0) is False
        assert evaluate_feature_access(sub, "calendar_integrations", 0) is False

    def test_under_limit(self):
        assert evaluate_feature_access(_subscription(), "ai_suggestions", 49) is True

    def test_limit_reached(self):
        assert evaluate_feature_access(_subscription(), "ai_suggestions", 50) is False

    def test_unlimited(self):
        sub = _subscription(limits={"ai_suggestions": -1})

        assert evaluate_feature_access(sub, "ai_suggestions", 10_000) is True

    def test_no_limit_entry(self):
        assert evaluate_feature_access(_subscription(limits={}), "ai_suggestions", 10_000) is True


class TestCheckFeature:
    """check_feature reports without counting usage."""

    @pytest.mark.asyncio
    @patch("neurocal.services.subscription_service.get_user_usage")
    @patch("neurocal.services.subscription_service.get_user_subscription")
    async def test_reports_limit_and_usage(self, mock_sub, mock_usage, supabase_client):
        mock_sub.return_value = _subscription()
        mock_usage.return_value = {"usage_count": 50}

        result = await check_feature(supabase_client, "user-1", "ai_suggestions")

        assert result == {
            "feature": "ai_suggestions",
            "has_access": False,
            "usage_count": 50,
            "limit": 50,
            "is_unlimited": False,
            "plan_name": "basic",
            "status": "active",
        }
        supabase_client.table.assert_not_called()

    @pytest.mark.asyncio
    @patch("neurocal.services.subscription_service.get_user_usage")
    @patch("neurocal.services.subscription_service.get_user_subscription")
    async def test_without_subscription(self, mock_sub, mock_usage, supabase_client):
        mock_sub.return_value = None
        mock_usage.return_value = {"usage_count": 0}

        result = await check_feature(supabase_client, "user-1", "ai_suggestions")

        assert result["has_access"] is False
        assert result["plan_name"] is None


class TestTrackUsage:
    """Monthly usage counters."""

    @pytest.mark.asyncio
    async def test_first_use_in_month_inserts_row(self, supabase_client, make_query):
        query = make_query([], [{"id": "u-1", "usage_count": 1}])
        supabase_client.table.return_value = query

        result = await track_usage(supabase_client, "user-1", "ai_suggestions", now=NOW)

        assert result == {"id": "u-1", "usage_count": 1}
        inserted = query.insert.call_args.args[0]
        assert inserted["month_year"] == "2026-10"
        assert inserted["usage_count"] == 1
        assert inserted["reset_date"] == "2026-11-01"

    @pytest.mark.asyncio
    async def test_existing_row_is_incremented(self, supabase_client, make_query):
        query = make_query([{"id": "u-1", "usage_count": 4}], [{"id": "u-1", "usage_count": 5}])
        supabase_client.table.return_value = query

        await track_usage(supabase_client, "user-1", "ai_suggestions", now=NOW)

        assert query.update.call_args.args[0]["usage_count"] == 5
        query.insert.assert_not_called()

    @pytest.mark.asyncio
    async def test_failure_does_not_raise(self, supabase_client):
        supabase_client.table.side_effect = Exception("connection reset")

        assert await track_usage(supabase_client, "user-1", "ai_suggestions", now=NOW) is None


class TestUsageSummary:

    @pytest.mark.asyncio
    @patch("neurocal.services.subscription_service.get_user_subscription")
    async def test_includes_unused_limited_features(self, mock_sub, supabase_client, make_query):
        mock_sub.return_value = _subscription(limits={"ai_suggestions": 50, "calendar_integrations": 1})
        supabase_client.table.return_value = make_query(
            [{"feature": "ai_suggestions", "usage_count": 25}]
        )

        summary = await get_usage_summary(supabase_client, "user-1")

        assert summary == [
            {"feature": "ai_suggestions", "usage_count": 25, "limit": 50,
             "is_unlimited": False, "percentage_used": 50},
            {"feature": "calendar_integrations", "usage_count": 0, "limit": 1,
             "is_unlimited": False, "percentage_used": 0},
        ]


class TestTrialLifecycle:
    """Trial creation and conversion."""

    @pytest.mark.asyncio
    async def test_create_free_trial(self, supabase_client, make_query):
        plans = make_query([{"id": "plan-pro", "name": "pro"}])
        subscriptions = make_query([{"id": "sub-1", "status": "trial"}])
        usage = make_query([])
        tables = {"subscription_plans": plans, "user_subscriptions": subscriptions, "user_usage": usage}
        supabase_client.table.side_effect = lambda name: tables[name]

        result = await create_free_trial(supabase_client, "user-1", "ada@example.com", now=NOW)

        assert result["status"] == "trial"
        row = subscriptions.insert.call_args.args[0]
        assert row["plan_id"] == "plan-pro"
        assert row["trial_start_date"] == "2026-10-17T12:00:00+00:00"
        assert row["trial_end_date"] == "2026-10-24T12:00:00+00:00"
        assert row["stripe_customer_id"] is None
        usage_rows = usage.upsert.call_args.args[0]
        assert {r["feature"] for r in usage_rows} == {"ai_suggestions", "calendar_integrations"}
        assert all(r["usage_count"] == 0 for r in usage_rows)

    @pytest.mark.asyncio
    async def test_create_free_trial_without_plan(self, supabase_client, make_query):
        supabase_client.table.return_value = make_query([])

        with pytest.raises(SubscriptionError):
            await create_free_trial(supabase_client, "user-1", "ada@example.com", now=NOW)

    @pytest.mark.asyncio
    async def test_subscribe_while_already_active(self, supabase_client, make_query):
        supabase_client.table.return_value = make_query(
            [], [{"id": "sub-1", "status": "active", "plan": {"name": "basic"}}]
        )

        with pytest.raises(SubscriptionError):
            await subscribe_to_plan(supabase_client, "user-1", "pro", "pm_123")

    @pytest.mark.asyncio
    async def test_subscribe_unknown_plan(self, supabase_client, make_query):
        subscriptions = make_query([{"id": "sub-1", "status": "trial", "stripe_customer_id": "cus_1"}])
        plans = make_query([])
        tables = {"subscription_plans": plans, "user_subscriptions": subscriptions}
        supabase_client.table.side_effect = lambda name: tables[name]

        with pytest.raises(NotFoundError):
            await subscribe_to_plan(supabase_client, "user-1", "gold", "pm_123")

    @pytest.mark.asyncio
    @patch("neurocal.services.subscription_service.StripeService")
    async def test_subscribe_activates_trial(self, mock_stripe_service, supabase_client, make_query):
        subscriptions = make_query(
            [{"id": "sub-1", "status": "trial", "stripe_customer_id": "cus_1"}],
            [{"id": "sub-1", "status": "active"}],
        )
        plans = make_query([{"id": "plan-pro", "name": "pro"}])
        tables = {"subscription_plans": plans, "user_subscriptions": subscriptions}
        supabase_client.table.side_effect = lambda name: tables[name]

        stripe_service = mock_stripe_service.return_value
        stripe_service.price_id_for_plan.return_value = "price_pro"
        stripe_service.create_subscription.return_value = MagicMock(
            id="sub_stripe_1", current_period_start=1792238400, current_period_end=1794916800
        )

        result = await subscribe_to_plan(supabase_client, "user-1", "pro", "pm_123")

        assert result["status"] == "active"
        stripe_service.attach_default_payment_method.assert_called_once_with(
            customer_id="cus_1", payment_method_id="pm_123"
        )
        updates = subscriptions.update.call_args.args[0]
        assert updates["status"] == "active"
        assert updates["stripe_subscription_id"] == "sub_stripe_1"
        assert updates["trial_end_date"] is None
        stripe_service.create_customer.assert_not_called()

    @pytest.mark.asyncio
    @patch("neurocal.services.subscription_service.StripeService")
    async def test_subscribe_creates_missing_customer(self, mock_stripe_service, supabase_client, make_query):
        subscriptions = make_query(
            [{"id": "sub-1", "status": "trial", "stripe_customer_id": None}],
            [{"id": "sub-1", "status": "trial", "stripe_customer_id": "cus_new"}],
            [{"id": "sub-1", "status": "active"}],
        )
        users = make_query([{"email": "ada@example.com"}])
        plans = make_query([{"id": "plan-pro", "name": "pro"}])
        tables = {"subscription_plans": plans, "user_subscriptions": subscriptions, "users": users}
        supabase_client.table.side_effect = lambda name: tables[name]

        stripe_service = mock_stripe_service.return_value
        stripe_service.create_customer.return_value = "cus_new"
        stripe_service.price_id_for_plan.return_value = "price_pro"
        stripe_service.create_subscription.return_value = MagicMock(
            id="sub_stripe_1", current_period_start=1792238400, current_period_end=1794916800
        )

        result = await subscribe_to_plan(supabase_client, "user-1", "pro", "pm_123")

        assert result["status"] == "active"
        stripe_service.create_customer.assert_called_once_with(email="ada@example.com", user_id="user-1")
        stripe_service.attach_default_payment_method.assert_called_once_with(
            customer_id="cus_new", payment_method_id="pm_123"
        )
        # Customer is persisted before the card is charged
        first_update = subscriptions.update.call_args_list[0].args[0]
        assert first_update["stripe_customer_id"] == "cus_new"
        assert "status" not in first_update

    @pytest.mark.asyncio
    @patch("neurocal.services.subscription_service.StripeService")
    async def test_subscribe_without_subscription_row(self, mock_stripe_service, supabase_client, make_query):
        subscriptions = make_query([], [], [{"id": "sub-2", "status": "active"}])
        users = make_query([{"email": "ada@example.com"}])
        plans = make_query([{"id": "plan-pro", "name": "pro"}])
        usage = make_query([])
        tables = {
            "subscription_plans": plans,
            "user_subscriptions": subscriptions,
            "users": users,
            "user_usage": usage,
        }
        supabase_client.table.side_effect = lambda name: tables[name]

        stripe_service = mock_stripe_service.return_value
        stripe_service.create_customer.return_value = "cus_new"
        stripe_service.price_id_for_plan.return_value = "price_pro"
        stripe_service.create_subscription.return_value = MagicMock(
            id="sub_stripe_1", current_period_start=1792238400, current_period_end=1794916800
        )

        result = await subscribe_to_plan(supabase_client, "user-1", "pro", "pm_123")

        assert result["id"] == "sub-2"
        subscriptions.update.assert_not_called()
        inserted = subscriptions.insert.call_args.args[0]
        assert inserted["user_id"] == "user-1"
        assert inserted["status"] == "active"
        assert inserted["plan_id"] == "plan-pro"
        assert inserted["stripe_customer_id"] == "cus_new"
        usage.upsert.assert_called_once()

    @pytest.mark.asyncio
    @patch("neurocal.services.subscription_service.StripeService")
    async def test_resubscribe_after_cancel(self, mock_stripe_service, supabase_client, make_query):
        subscriptions = make_query(
            [],
            [{"id": "sub-1", "status": "canceled", "stripe_customer_id": "cus_1", "plan": {"name": "pro"}}],
            [{"id": "sub-3", "status": "active"}],
        )
        plans = make_query([{"id": "plan-pro", "name": "pro"}])
        usage = make_query([])
        tables = {"subscription_plans": plans, "user_subscriptions": subscriptions, "user_usage": usage}
        supabase_client.table.side_effect = lambda name: tables[name]

        stripe_service = mock_stripe_service.return_value
        stripe_service.price_id_for_plan.return_value = "price_pro"
        stripe_service.create_subscription.return_value = MagicMock(
            id="sub_stripe_3", current_period_start=1792238400, current_period_end=1794916800
        )

        result = await subscribe_to_plan(supabase_client, "user-1", "pro", "pm_123")

        assert result["id"] == "sub-3"
        stripe_service.create_customer.assert_not_called()
        inserted = subscriptions.insert.call_args.args[0]
        assert inserted["stripe_customer_id"] == "cus_1"
        assert inserted["stripe_subscription_id"] == "sub_stripe_3"

    @pytest.mark.asyncio
    @patch("neurocal.services.subscription_service.StripeService")
    async def test_setup_intent_creates_missing_customer(self, mock_stripe_service, supabase_client, make_query):
        subscriptions = make_query(
            [{"id": "sub-1", "status": "trial", "stripe_customer_id": None, "plan": {"name": "pro"}}],
            [{"id": "sub-1", "status": "trial", "stripe_customer_id": "cus_new"}],
        )
        users = make_query([{"email": "ada@example.com"}])
        tables = {"user_subscriptions": subscriptions, "users": users}
        supabase_client.table.side_effect = lambda name: tables[name]

        stripe_service = mock_stripe_service.return_value
        stripe_service.create_customer.return_value = "cus_new"
        stripe_service.create_setup_intent.return_value = "seti_secret"

        secret = await create_setup_intent(supabase_client, "user-1")

        assert secret == "seti_secret"
        stripe_service.create_setup_intent.assert_called_once_with(customer_id="cus_new")
        assert subscriptions.update.call_args.args[0]["stripe_customer_id"] == "cus_new"


class TestCancelSubscription:

    @pytest.mark.asyncio
    async def test_no_active_subscription(self, supabase_client, make_query):
        supabase_client.table.return_value = make_query([])

        with pytest.raises(SubscriptionError):
            await cancel_subscription(supabase_client, "user-1")

    @pytest.mark.asyncio
    @patch("neurocal.services.subscription_service.StripeService")
    async def test_cancel_at_period_end(self, mock_stripe_service, supabase_client, make_query):
        query = make_query(
            [{"id": "sub-1", "status": "active", "stripe_subscription_id": "sub_stripe_1"}],
            [{"id": "sub-1", "status": "active", "cancel_at_period_end": True}],
        )
        supabase_client.table.return_value = query

        await cancel_subscription(supabase_client, "user-1", cancel_immediately=False)

        mock_stripe_service.return_value.set_cancel_at_period_end.assert_called_once_with("sub_stripe_1", True)
        assert query.update.call_args.args[0]["cancel_at_period_end"] is True

    @pytest.mark.asyncio
    @patch("neurocal.services.subscription_service.StripeService")
    async def test_cancel_immediately(self, mock_stripe_service, supabase_client, make_query):
        query = make_query(
            [{"id": "sub-1", "status": "active", "stripe_subscription_id": "sub_stripe_1"}],
            [{"id": "sub-1", "status": "canceled"}],
        )
        supabase_client.table.return_value = query

        await cancel_subscription(supabase_client, "user-1", cancel_immediately=True)

        mock_stripe_service.return_value.cancel_subscription_now.assert_called_once_with("sub_stripe_1")
        assert query.update.call_args.args[0]["status"] == "canceled"


class TestAdminMetrics:

    @pytest.mark.asyncio
    async def test_subscription_metrics(self, supabase_client, make_query):
        supabase_client.table.return_value = make_query([
            {"status": "trial"},
            {"status": "trial"},
            {"status": "active", "plan": {"price_monthly": "4.99"}},
            {"status": "active", "plan": {"price_monthly": 9.99}},
            {"status": "canceled"},
        ])

        metrics = await get_subscription_metrics(supabase_client, now=NOW)

        assert metrics == {
            "active_trials": 2,
            "active_subscriptions": 2,
            "canceled_subscriptions": 1,
            "monthly_recurring_revenue": 14.98,
        }

    @pytest.mark.asyncio
    async def test_conversion_funnel(self, supabase_client, make_query):
        supabase_client.table.return_value = make_query(
            [{"status": "trial"}] * 5 + [{"status": "active"}] * 2 + [{"status": "canceled"}]
        )

        funnel = await get_conversion_funnel(supabase_client, now=NOW)

        assert funnel[0] == {"stage": "Trial Started", "users": 8, "conversion_rate": 100.0}
        assert funnel[1] == {"stage": "Trial Converted", "users": 2, "conversion_rate": 25.0}

    @pytest.mark.asyncio
    async def test_conversion_funnel_empty(self, supabase_client, make_query):
        supabase_client.table.return_value = make_query([])

        funnel = await get_conversion_funnel(supabase_client, now=NOW)

        assert funnel[1]["conversion_rate"] == 0.0
