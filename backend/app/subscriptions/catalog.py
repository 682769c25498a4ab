"""Static catalog definitions for plan tiers."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict

from .models import UNLIMITED, FeatureSet, PlanTier


@dataclass(frozen=True)
class PlanDefinition:
    """Describes a plan tier, its price and the features it unlocks."""

    tier: PlanTier
    display_name: str
    price_cents: int
    features: FeatureSet


TRIAL_FEATURES = FeatureSet(
    max_customers=100,
    max_branches=1,
    advanced_analytics=False,
    priority_support=False,
    custom_branding=False,
    api_access=False,
)


def _paid_features(tier: PlanTier) -> FeatureSet:
    # Branding and API access start above the monthly tier.
    extended = tier != PlanTier.MONTHLY
    return FeatureSet(
        max_customers=UNLIMITED,
        max_branches=UNLIMITED,
        advanced_analytics=True,
        priority_support=True,
        custom_branding=extended,
        api_access=extended,
    )


PLAN_CATALOG: Dict[PlanTier, PlanDefinition] = {
    PlanTier.TRIAL: PlanDefinition(
        tier=PlanTier.TRIAL,
        display_name="Free trial",
        price_cents=0,
        features=TRIAL_FEATURES,
    ),
    PlanTier.MONTHLY: PlanDefinition(
        tier=PlanTier.MONTHLY,
        display_name="Monthly",
        price_cents=299,
        features=_paid_features(PlanTier.MONTHLY),
    ),
    PlanTier.SEMIANNUAL: PlanDefinition(
        tier=PlanTier.SEMIANNUAL,
        display_name="Semiannual",
        price_cents=999,
        features=_paid_features(PlanTier.SEMIANNUAL),
    ),
    PlanTier.ANNUAL: PlanDefinition(
        tier=PlanTier.ANNUAL,
        display_name="Annual",
        price_cents=1999,
        features=_paid_features(PlanTier.ANNUAL),
    ),
}


def get_plan_definition(plan_tier: PlanTier) -> PlanDefinition:
    """Return a plan definition, raising if unsupported."""

    try:
        return PLAN_CATALOG[plan_tier]
    except KeyError as exc:  # pragma: no cover - guarded by static catalog
        raise KeyError(f"Unknown plan tier: {plan_tier}") from exc


def features_for(plan_tier: PlanTier) -> FeatureSet:
    """Return the feature set for a tier; every non-trial tier is paid."""

    if plan_tier == PlanTier.TRIAL:
        return TRIAL_FEATURES
    definition = PLAN_CATALOG.get(plan_tier)
    if definition is None:
        return _paid_features(plan_tier)
    return definition.features


def price_cents(plan_tier: PlanTier) -> int:
    definition = PLAN_CATALOG.get(plan_tier)
    return definition.price_cents if definition else 0


__all__ = [
    "PLAN_CATALOG",
    "PlanDefinition",
    "TRIAL_FEATURES",
    "features_for",
    "get_plan_definition",
    "price_cents",
]
