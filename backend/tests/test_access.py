from __future__ import annotations

from datetime import datetime, timedelta, timezone

from backend.app.subscriptions import (
    TRIAL_FEATURES,
    PlanTier,
    Subscription,
    SubscriptionStatus,
    default_decision,
    evaluate_access,
    features_for,
)
from backend.app.subscriptions.access import days_until


NOW = datetime(2024, 6, 1, 9, 30, tzinfo=timezone.utc)


def _record(**overrides) -> Subscription:
    values = {
        "id": "sub_1",
        "owner_id": "owner-1",
        "plan_tier": PlanTier.MONTHLY,
        "status": SubscriptionStatus.ACTIVE,
        "period_start": NOW - timedelta(days=20),
        "period_end": NOW + timedelta(days=10),
        "created_at": NOW - timedelta(days=20),
        "updated_at": NOW - timedelta(days=20),
    }
    values.update(overrides)
    return Subscription(**values)


def test_missing_record_fails_open_with_trial_features() -> None:
    decision = evaluate_access(None, NOW)

    assert decision.has_access is True
    assert decision.features == TRIAL_FEATURES
    assert decision.days_remaining == 30
    assert decision.subscription is None
    assert decision == default_decision()


def test_active_record_within_period_grants_access() -> None:
    record = _record(plan_tier=PlanTier.ANNUAL)

    decision = evaluate_access(record, NOW)

    assert decision.has_access is True
    assert decision.features == features_for(PlanTier.ANNUAL)
    assert decision.days_remaining == 10
    assert decision.subscription == record


def test_cancelled_record_keeps_remaining_days_but_denies_access() -> None:
    decision = evaluate_access(_record(status=SubscriptionStatus.CANCELLED), NOW)

    assert decision.has_access is False
    assert decision.days_remaining == 10


def test_past_due_record_denies_access() -> None:
    decision = evaluate_access(_record(status=SubscriptionStatus.PAST_DUE), NOW)

    assert decision.has_access is False


def test_expired_period_denies_access_with_zero_days() -> None:
    record = _record(
        period_start=NOW - timedelta(days=31),
        period_end=NOW - timedelta(days=1),
        created_at=NOW - timedelta(days=31),
        updated_at=NOW - timedelta(days=31),
    )

    decision = evaluate_access(record, NOW)

    assert decision.has_access is False
    assert decision.days_remaining == 0


def test_period_ending_exactly_now_denies_access() -> None:
    record = _record(period_end=NOW)

    decision = evaluate_access(record, NOW)

    assert decision.has_access is False
    assert decision.days_remaining == 0


def test_partial_days_round_up() -> None:
    assert days_until(NOW + timedelta(hours=1), NOW) == 1
    assert days_until(NOW + timedelta(days=2, seconds=1), NOW) == 3
    assert days_until(NOW - timedelta(hours=5), NOW) == 0
