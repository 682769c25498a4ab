"""Numeric plan limit evaluation for feature gating."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from ..subscriptions import UNLIMITED, EntitlementDecision
from .exceptions import FeatureGateError


@dataclass(frozen=True)
class LimitEvaluation:
    """Represents the outcome of a plan limit check."""

    limit_name: str
    limit: int
    current_usage: int
    requested: int
    projected_usage: int
    allowed: bool

    @property
    def unlimited(self) -> bool:
        return self.limit == UNLIMITED

    @property
    def remaining(self) -> Optional[int]:
        if self.unlimited:
            return None
        return max(0, self.limit - self.current_usage)

    def to_dict(self) -> dict[str, object]:
        return {
            "limit_name": self.limit_name,
            "limit": self.limit,
            "current_usage": self.current_usage,
            "requested": self.requested,
            "projected_usage": self.projected_usage,
            "allowed": self.allowed,
        }


def evaluate_limit(
    decision: EntitlementDecision,
    limit_name: str,
    *,
    current_usage: int,
    requested: int = 1,
) -> LimitEvaluation:
    """Determine whether adding ``requested`` items stays within a plan limit."""

    limit = decision.features.limit(limit_name)
    projected = current_usage + max(requested, 0)
    allowed = limit == UNLIMITED or projected <= limit
    return LimitEvaluation(
        limit_name=limit_name,
        limit=limit,
        current_usage=current_usage,
        requested=max(requested, 0),
        projected_usage=projected,
        allowed=allowed,
    )


def assert_within_limit(
    decision: EntitlementDecision,
    limit_name: str,
    *,
    current_usage: int,
    requested: int = 1,
    error_code: str = "plan_limit_reached",
) -> LimitEvaluation:
    """Raise when the projected usage exceeds the plan's limit."""

    evaluation = evaluate_limit(decision, limit_name, current_usage=current_usage, requested=requested)
    if not evaluation.allowed:
        raise FeatureGateError(
            code=error_code,
            message=f"Plan limit for {limit_name} reached.",
            detail={
                "limit_name": limit_name,
                "limit": evaluation.limit,
                "projected_usage": evaluation.projected_usage,
            },
        )
    return evaluation
