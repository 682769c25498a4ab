from __future__ import annotations

import logging

from backend.app.services import subscriptions as subscription_services
from backend.app.services.subscriptions import LoggingSubscriptionAuditLogger
from backend.app.subscriptions import SubscriptionAuditEvent, SubscriptionAuditEventType


def test_audit_events_are_forwarded_to_logging(caplog) -> None:
    audit_logger = LoggingSubscriptionAuditLogger()

    with caplog.at_level(logging.INFO, logger="subscriptions.audit"):
        audit_logger.log(
            SubscriptionAuditEvent(
                event_type=SubscriptionAuditEventType.SUBSCRIPTION_CANCELLED,
                subscription_id="sub_1",
                owner_id="owner-1",
                metadata={"source_event_id": "evt_1"},
            )
        )

    [record] = caplog.records
    assert record.name == "subscriptions.audit"
    assert record.subscription_event == "subscription_cancelled"
    assert record.subscription_id == "sub_1"
    assert "owner=owner-1" in record.getMessage()


def test_engine_and_service_share_serializer(monkeypatch) -> None:
    monkeypatch.setenv("BILLING_WEBHOOK_SECRET", "whsec_wiring")
    for factory in (
        subscription_services.get_subscription_config,
        subscription_services.get_repository,
        subscription_services.get_owner_serializer,
        subscription_services.get_audit_logger,
        subscription_services.get_subscription_service,
        subscription_services.get_reconciliation_engine,
        subscription_services.get_event_ingestor,
    ):
        factory.cache_clear()

    try:
        service = subscription_services.get_subscription_service()
        engine = subscription_services.get_reconciliation_engine()

        assert service.serializer is engine.serializer
        assert service.repository is engine.repository
        assert isinstance(engine.audit_logger, LoggingSubscriptionAuditLogger)
        assert subscription_services.get_event_ingestor() is subscription_services.get_event_ingestor()
    finally:
        subscription_services.get_subscription_config.cache_clear()
        subscription_services.get_event_ingestor.cache_clear()
