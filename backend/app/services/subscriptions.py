"""Application wiring for the subscription services."""
from __future__ import annotations

import logging
from functools import lru_cache

from ..subscriptions import (
    EventIngestor,
    HMACSignatureVerifier,
    OwnerSerializer,
    ReconciliationEngine,
    SubscriptionAuditEvent,
    SubscriptionAuditLogger,
    SubscriptionConfig,
    SubscriptionService,
    load_subscription_config,
)
from ..subscriptions.repository import PostgresSubscriptionRepository


logger = logging.getLogger("subscriptions.audit")


class LoggingSubscriptionAuditLogger(SubscriptionAuditLogger):
    """Audit logger forwarding subscription transitions to logging."""

    def log(self, event: SubscriptionAuditEvent) -> None:
        logger.info(
            "Subscription event %s subscription=%s owner=%s metadata=%s",
            event.event_type.value,
            event.subscription_id,
            event.owner_id,
            event.metadata,
            extra={
                "subscription_event": event.event_type.value,
                "subscription_id": event.subscription_id,
                "owner_id": event.owner_id,
            },
        )


@lru_cache(maxsize=1)
def get_subscription_config() -> SubscriptionConfig:
    return load_subscription_config()


@lru_cache(maxsize=1)
def get_repository() -> PostgresSubscriptionRepository:
    return PostgresSubscriptionRepository()


@lru_cache(maxsize=1)
def get_owner_serializer() -> OwnerSerializer:
    # Shared by the engine and the service so both write paths serialize per owner.
    return OwnerSerializer()


@lru_cache(maxsize=1)
def get_audit_logger() -> LoggingSubscriptionAuditLogger:
    return LoggingSubscriptionAuditLogger()


@lru_cache(maxsize=1)
def get_subscription_service() -> SubscriptionService:
    config = get_subscription_config()
    return SubscriptionService(
        repository=get_repository(),
        serializer=get_owner_serializer(),
        audit_logger=get_audit_logger(),
        stats_current_only=config.stats_current_only,
    )


@lru_cache(maxsize=1)
def get_reconciliation_engine() -> ReconciliationEngine:
    config = get_subscription_config()
    return ReconciliationEngine(
        repository=get_repository(),
        serializer=get_owner_serializer(),
        audit_logger=get_audit_logger(),
        deduplicate_events=config.deduplicate_events,
    )


@lru_cache(maxsize=1)
def get_event_ingestor() -> EventIngestor:
    config = get_subscription_config()
    if not config.webhook_secret:
        raise RuntimeError("BILLING_WEBHOOK_SECRET must be configured to accept billing notifications")
    verifier = HMACSignatureVerifier(
        config.webhook_secret,
        tolerance_seconds=config.signature_tolerance_seconds,
    )
    return EventIngestor(verifier=verifier)


__all__ = [
    "LoggingSubscriptionAuditLogger",
    "get_event_ingestor",
    "get_owner_serializer",
    "get_reconciliation_engine",
    "get_repository",
    "get_subscription_config",
    "get_subscription_service",
]
