"""Helpers for enforcing entitlement checks on API and service layers."""
from __future__ import annotations

from typing import Optional

from ..subscriptions import EntitlementDecision
from .exceptions import FeatureGateError


def require_access(decision: EntitlementDecision) -> None:
    """Ensure the decision grants access at all before any feature check."""

    if not decision.has_access:
        raise FeatureGateError.inactive(decision.days_remaining)


def require_feature(
    decision: EntitlementDecision,
    feature: str,
    *,
    error_code: str = "entitlement_required",
    message: Optional[str] = None,
) -> None:
    """Ensure a boolean feature of the decision's plan is enabled.

    Parameters
    ----------
    decision:
        Entitlement decision as returned by ``SubscriptionService.check_access``.
    feature:
        Name of a boolean :class:`FeatureSet` field, e.g. ``"api_access"``.
    error_code:
        Optional override for the surfaced error code when the feature is not
        granted. Defaults to ``"entitlement_required"``.
    message:
        Optional human-friendly message explaining the failure. If omitted, a
        default message mentioning the missing feature is used.
    """

    require_access(decision)
    flags = decision.features.to_flags()
    value = flags.get(feature)
    if not isinstance(value, bool):
        raise KeyError(f"Unknown feature: {feature}")

    if not value:
        raise FeatureGateError(
            code=error_code,
            message=message or f"Entitlement '{feature}' is required.",
            detail={"missing_entitlement": feature},
        )
