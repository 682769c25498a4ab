from __future__ import annotations

import pytest

from backend.app.subscriptions import SubscriptionConfig, load_subscription_config


def test_defaults_apply_for_empty_environment() -> None:
    config = load_subscription_config({})

    assert config == SubscriptionConfig(
        webhook_secret="",
        signature_header="stripe-signature",
        signature_tolerance_seconds=300,
        deduplicate_events=True,
        stats_current_only=False,
        cors_allow_origin="*",
        log_level="INFO",
        auto_create_schema=False,
    )


def test_values_are_read_from_environment() -> None:
    config = load_subscription_config(
        {
            "BILLING_WEBHOOK_SECRET": "whsec_123",
            "BILLING_SIGNATURE_HEADER": " X-Billing-Signature ",
            "BILLING_SIGNATURE_TOLERANCE": "60",
            "SUBSCRIPTIONS_DEDUPLICATE_EVENTS": "off",
            "SUBSCRIPTIONS_STATS_CURRENT_ONLY": "yes",
            "SUBSCRIPTIONS_CORS_ORIGIN": "https://app.example.com",
            "SUBSCRIPTIONS_LOG_LEVEL": "debug",
            "SUBSCRIPTIONS_AUTO_CREATE_SCHEMA": "1",
        }
    )

    assert config.webhook_secret == "whsec_123"
    assert config.signature_header == "x-billing-signature"
    assert config.signature_tolerance_seconds == 60
    assert config.deduplicate_events is False
    assert config.stats_current_only is True
    assert config.cors_allow_origin == "https://app.example.com"
    assert config.log_level == "DEBUG"
    assert config.auto_create_schema is True


def test_unrecognized_boolean_falls_back_to_default() -> None:
    config = load_subscription_config({"SUBSCRIPTIONS_DEDUPLICATE_EVENTS": "maybe"})

    assert config.deduplicate_events is True


def test_negative_tolerance_is_clamped() -> None:
    assert load_subscription_config({"BILLING_SIGNATURE_TOLERANCE": "-5"}).signature_tolerance_seconds == 0


def test_invalid_tolerance_raises() -> None:
    with pytest.raises(ValueError):
        load_subscription_config({"BILLING_SIGNATURE_TOLERANCE": "soon"})
