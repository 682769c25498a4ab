"""Configuration for billing notification handling and subscription policy."""
from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional


@dataclass(frozen=True)
class SubscriptionConfig:
    """Settings consumed by the subscription services and webhook route."""

    webhook_secret: str
    signature_header: str
    signature_tolerance_seconds: int
    deduplicate_events: bool
    stats_current_only: bool
    cors_allow_origin: str
    log_level: str
    auto_create_schema: bool


def _to_bool(value: Optional[str], *, default: bool) -> bool:
    if value is None:
        return default
    lowered = value.strip().lower()
    if lowered in {"1", "true", "yes", "on"}:
        return True
    if lowered in {"0", "false", "no", "off"}:
        return False
    return default


def _to_int(value: Optional[str], *, default: int) -> int:
    if value is None or value == "":
        return default
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Expected integer value, got {value!r}") from exc


def load_subscription_config(env: Optional[Mapping[str, str]] = None) -> SubscriptionConfig:
    """Load :class:`SubscriptionConfig` from environment variables."""

    env_mapping = os.environ if env is None else env

    signature_header = (env_mapping.get("BILLING_SIGNATURE_HEADER") or "stripe-signature").strip().lower()
    tolerance = max(0, _to_int(env_mapping.get("BILLING_SIGNATURE_TOLERANCE"), default=300))
    log_level = (env_mapping.get("SUBSCRIPTIONS_LOG_LEVEL") or "INFO").strip().upper()

    return SubscriptionConfig(
        webhook_secret=env_mapping.get("BILLING_WEBHOOK_SECRET", ""),
        signature_header=signature_header,
        signature_tolerance_seconds=tolerance,
        deduplicate_events=_to_bool(env_mapping.get("SUBSCRIPTIONS_DEDUPLICATE_EVENTS"), default=True),
        stats_current_only=_to_bool(env_mapping.get("SUBSCRIPTIONS_STATS_CURRENT_ONLY"), default=False),
        cors_allow_origin=env_mapping.get("SUBSCRIPTIONS_CORS_ORIGIN", "*"),
        log_level=log_level,
        auto_create_schema=_to_bool(env_mapping.get("SUBSCRIPTIONS_AUTO_CREATE_SCHEMA"), default=False),
    )


__all__ = ["SubscriptionConfig", "load_subscription_config"]
