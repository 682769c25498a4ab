"""Billing period lengths per plan tier."""
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Dict, Tuple, Union

from .models import PlanTier

DEFAULT_PERIOD = timedelta(days=30)

PERIOD_LENGTHS: Dict[PlanTier, timedelta] = {
    PlanTier.TRIAL: timedelta(days=30),
    PlanTier.MONTHLY: timedelta(days=30),
    PlanTier.SEMIANNUAL: timedelta(days=180),
    PlanTier.ANNUAL: timedelta(days=365),
}


def billing_period(plan_tier: Union[PlanTier, str, None]) -> timedelta:
    """Return the period length for ``plan_tier``; unknown tiers get 30 days."""

    try:
        tier = PlanTier(plan_tier)
    except (TypeError, ValueError):
        return DEFAULT_PERIOD
    return PERIOD_LENGTHS.get(tier, DEFAULT_PERIOD)


def period_bounds(plan_tier: Union[PlanTier, str, None], start: datetime) -> Tuple[datetime, datetime]:
    return start, start + billing_period(plan_tier)


__all__ = ["DEFAULT_PERIOD", "PERIOD_LENGTHS", "billing_period", "period_bounds"]
