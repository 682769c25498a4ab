from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from backend.app.feature_gates import (
    EntitlementContext,
    FeatureGateError,
    LimitEvaluation,
    assert_within_limit,
    evaluate_limit,
    require_feature,
)
from backend.app.subscriptions import (
    EntitlementDecision,
    PlanTier,
    Subscription,
    SubscriptionStatus,
    default_decision,
    evaluate_access,
)

NOW = datetime(2024, 6, 1, tzinfo=timezone.utc)


def _decision(tier: PlanTier, status: SubscriptionStatus = SubscriptionStatus.ACTIVE) -> EntitlementDecision:
    record = Subscription(
        id="sub_1",
        owner_id="owner-1",
        plan_tier=tier,
        status=status,
        period_start=NOW - timedelta(days=1),
        period_end=NOW + timedelta(days=29),
        created_at=NOW - timedelta(days=1),
        updated_at=NOW - timedelta(days=1),
    )
    return evaluate_access(record, NOW)


def test_require_feature_allows_enabled_switch() -> None:
    require_feature(_decision(PlanTier.ANNUAL), "api_access")


def test_require_feature_raises_when_tier_lacks_switch() -> None:
    with pytest.raises(FeatureGateError) as exc:
        require_feature(_decision(PlanTier.MONTHLY), "custom_branding")

    assert exc.value.code == "entitlement_required"
    assert exc.value.payload["missing_entitlement"] == "custom_branding"
    http_exc = exc.value.to_http_exception()
    assert http_exc.status_code == 403
    assert http_exc.detail["error"] == "entitlement_required"


def test_require_feature_rejects_inactive_subscription() -> None:
    with pytest.raises(FeatureGateError) as exc:
        require_feature(_decision(PlanTier.ANNUAL, SubscriptionStatus.PAST_DUE), "api_access")

    assert exc.value.code == "subscription_inactive"
    assert exc.value.status_code == 403
    assert exc.value.payload["days_remaining"] == 29
    assert exc.value.to_http_exception().status_code == 403


def test_require_feature_rejects_unknown_switch() -> None:
    with pytest.raises(KeyError):
        require_feature(_decision(PlanTier.ANNUAL), "max_customers")


def test_trial_customer_limit_is_enforced() -> None:
    decision = default_decision()

    evaluation = assert_within_limit(decision, "max_customers", current_usage=99)
    assert isinstance(evaluation, LimitEvaluation)
    assert evaluation.remaining == 1

    with pytest.raises(FeatureGateError) as exc:
        assert_within_limit(decision, "max_customers", current_usage=100)

    assert exc.value.code == "plan_limit_reached"
    assert exc.value.payload["limit"] == 100
    assert exc.value.payload["projected_usage"] == 101


def test_paid_tiers_have_unlimited_branches() -> None:
    evaluation = evaluate_limit(_decision(PlanTier.MONTHLY), "max_branches", current_usage=500, requested=10)

    assert evaluation.allowed is True
    assert evaluation.unlimited is True
    assert evaluation.remaining is None
    assert evaluation.to_dict()["projected_usage"] == 510


def test_entitlement_context_helpers() -> None:
    context = EntitlementContext(_decision(PlanTier.SEMIANNUAL))

    assert context.plan_tier == PlanTier.SEMIANNUAL
    assert context.has("custom_branding") is True
    assert context.has("max_customers") is False
    context.require("priority_support")
    context.require_access()
    assert context.assert_within_limit("max_customers", current_usage=10_000).allowed is True


def test_entitlement_context_for_default_decision() -> None:
    context = EntitlementContext(default_decision())

    assert context.plan_tier is None
    assert context.has("advanced_analytics") is False
    assert context.evaluate_limit("max_branches", current_usage=1).allowed is False
