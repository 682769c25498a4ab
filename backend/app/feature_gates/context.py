"""Convenience wrapper around entitlement decisions for feature gating."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional, Union

from ..subscriptions import EntitlementDecision, PlanTier
from .enforcement import require_access, require_feature
from .quota import LimitEvaluation, assert_within_limit, evaluate_limit


@dataclass(frozen=True)
class EntitlementContext:
    """Facade exposing gating-centric helpers for an owner's entitlement."""

    decision: EntitlementDecision

    @property
    def feature_flags(self) -> Dict[str, Union[int, bool]]:
        return self.decision.features.to_flags()

    @property
    def plan_tier(self) -> Optional[PlanTier]:
        subscription = self.decision.subscription
        return subscription.plan_tier if subscription else None

    def has(self, feature: str) -> bool:
        """Return whether access is granted and the feature is enabled."""

        return self.decision.has_access and self.feature_flags.get(feature) is True

    def require_access(self) -> None:
        require_access(self.decision)

    def require(self, feature: str, *, error_code: str = "entitlement_required") -> None:
        require_feature(self.decision, feature, error_code=error_code)

    def evaluate_limit(self, limit_name: str, *, current_usage: int, requested: int = 1) -> LimitEvaluation:
        return evaluate_limit(self.decision, limit_name, current_usage=current_usage, requested=requested)

    def assert_within_limit(
        self,
        limit_name: str,
        *,
        current_usage: int,
        requested: int = 1,
        error_code: str = "plan_limit_reached",
    ) -> LimitEvaluation:
        return assert_within_limit(
            self.decision,
            limit_name,
            current_usage=current_usage,
            requested=requested,
            error_code=error_code,
        )
