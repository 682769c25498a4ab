"""Feature gating utilities coordinating entitlement enforcement."""
from .context import EntitlementContext
from .enforcement import require_access, require_feature
from .exceptions import FeatureGateError
from .quota import LimitEvaluation, assert_within_limit, evaluate_limit

__all__ = [
    "EntitlementContext",
    "FeatureGateError",
    "LimitEvaluation",
    "assert_within_limit",
    "evaluate_limit",
    "require_access",
    "require_feature",
]
