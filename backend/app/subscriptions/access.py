"""Entitlement evaluation from the current subscription record."""
from __future__ import annotations

import math
from datetime import datetime, timedelta
from typing import Optional

from .catalog import TRIAL_FEATURES, features_for
from .models import EntitlementDecision, Subscription, SubscriptionStatus

DEFAULT_TRIAL_DAYS = 30

_ONE_DAY = timedelta(days=1)


def default_decision() -> EntitlementDecision:
    """Fail-open decision used when no record can be determined."""

    return EntitlementDecision(
        has_access=True,
        features=TRIAL_FEATURES,
        days_remaining=DEFAULT_TRIAL_DAYS,
    )


def days_until(period_end: datetime, now: datetime) -> int:
    remaining = (period_end - now) / _ONE_DAY
    return max(0, math.ceil(remaining))


def evaluate_access(record: Optional[Subscription], now: datetime) -> EntitlementDecision:
    """Compute the entitlement decision for ``record`` at ``now``.

    A missing record yields the default trial policy rather than a denial so
    that an unknown or unreachable store never locks an account out.
    """

    if record is None:
        return default_decision()

    has_access = record.status == SubscriptionStatus.ACTIVE and record.period_end > now
    return EntitlementDecision(
        has_access=has_access,
        features=features_for(record.plan_tier),
        days_remaining=days_until(record.period_end, now),
        subscription=record,
    )


__all__ = ["DEFAULT_TRIAL_DAYS", "days_until", "default_decision", "evaluate_access"]
