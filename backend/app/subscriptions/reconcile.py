"""Write path applying canonical billing events to subscription records."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Optional, Protocol

from .errors import StoreUnavailable
from .locks import OwnerSerializer
from .models import (
    CanonicalEvent,
    InvoiceFailed,
    InvoicePaid,
    NewSubscription,
    ReconcileResult,
    ReconcileStatus,
    Subscription,
    SubscriptionActivated,
    SubscriptionAuditEvent,
    SubscriptionAuditEventType,
    SubscriptionCancelled,
    SubscriptionChanges,
    SubscriptionStatus,
)
from .periods import period_bounds
from .repository import SubscriptionRepository

logger = logging.getLogger(__name__)


class SubscriptionAuditLogger(Protocol):
    """Captures structured subscription audit events."""

    def log(self, event: SubscriptionAuditEvent) -> None:
        ...


class NullAuditLogger:
    def log(self, event: SubscriptionAuditEvent) -> None:
        return None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ReconciliationEngine:
    """Owns every write-path transition driven by billing notifications.

    ``apply`` never raises for store outages; it returns a ``FAILED`` result so
    the caller rejects the notification and the processor redelivers it.
    """

    repository: SubscriptionRepository
    serializer: OwnerSerializer = field(default_factory=OwnerSerializer)
    audit_logger: SubscriptionAuditLogger = field(default_factory=NullAuditLogger)
    clock: Callable[[], datetime] = field(default=_utcnow)
    deduplicate_events: bool = True

    def apply(self, event: CanonicalEvent) -> ReconcileResult:
        try:
            if self.deduplicate_events and self.repository.has_processed_event(event.source_event_id):
                logger.info("Skipping duplicate event %s (%s)", event.source_event_id, event.kind.value)
                return ReconcileResult.skipped("duplicate event")

            result = self._dispatch(event)

            if self.deduplicate_events and result.status != ReconcileStatus.FAILED:
                self.repository.record_processed_event(event.source_event_id, event.kind, event.occurred_at)
        except StoreUnavailable as exc:
            logger.error(
                "Store unavailable while applying %s event %s: %s",
                event.kind.value,
                event.source_event_id,
                exc,
            )
            return ReconcileResult.failed(exc)
        return result

    def _dispatch(self, event: CanonicalEvent) -> ReconcileResult:
        if isinstance(event, SubscriptionActivated):
            return self._activate(event)
        if isinstance(event, InvoicePaid):
            return self._invoice_paid(event)
        if isinstance(event, InvoiceFailed):
            return self._set_status_by_ref(
                event,
                SubscriptionStatus.PAST_DUE,
                SubscriptionAuditEventType.PAYMENT_FAILED,
            )
        if isinstance(event, SubscriptionCancelled):
            return self._set_status_by_ref(
                event,
                SubscriptionStatus.CANCELLED,
                SubscriptionAuditEventType.SUBSCRIPTION_CANCELLED,
            )
        raise TypeError(f"Unsupported event type: {type(event).__name__}")

    def _activate(self, event: SubscriptionActivated) -> ReconcileResult:
        with self.serializer.hold(event.owner_id):
            now = self.clock()
            period_start, period_end = period_bounds(event.plan_tier, now)
            current = self.repository.find_current_by_owner(event.owner_id)
            if current is None:
                persisted = self.repository.insert(
                    NewSubscription(
                        owner_id=event.owner_id,
                        plan_tier=event.plan_tier,
                        status=SubscriptionStatus.ACTIVE,
                        billing_customer_ref=event.billing_customer_ref,
                        billing_subscription_ref=event.billing_subscription_ref,
                        period_start=period_start,
                        period_end=period_end,
                    )
                )
                logger.info(
                    "Created subscription %s for owner %s plan=%s",
                    persisted.id,
                    persisted.owner_id,
                    persisted.plan_tier.value,
                )
            else:
                refs = {
                    "billing_customer_ref": event.billing_customer_ref,
                    "billing_subscription_ref": event.billing_subscription_ref,
                }
                persisted = self._require_updated(
                    current,
                    SubscriptionChanges(
                        plan_tier=event.plan_tier,
                        status=SubscriptionStatus.ACTIVE,
                        period_start=period_start,
                        period_end=period_end,
                        **{key: value for key, value in refs.items() if value is not None},
                    ),
                )
                logger.info(
                    "Updated subscription %s for owner %s plan=%s",
                    persisted.id,
                    persisted.owner_id,
                    persisted.plan_tier.value,
                )

        self._audit(SubscriptionAuditEventType.SUBSCRIPTION_ACTIVATED, persisted, event)
        return ReconcileResult.applied(persisted)

    def _invoice_paid(self, event: InvoicePaid) -> ReconcileResult:
        record = self._find_by_ref(event)
        if record is None:
            return ReconcileResult.skipped("no subscription for billing reference")

        with self.serializer.hold(record.owner_id):
            reported = event.reported_period
            if reported is None:
                period_start, period_end = period_bounds(record.plan_tier, self.clock())
            else:
                period_start, period_end = reported
            persisted = self._require_updated(
                record,
                SubscriptionChanges(
                    status=SubscriptionStatus.ACTIVE,
                    period_start=period_start,
                    period_end=period_end,
                ),
            )

        logger.info(
            "Subscription %s renewed until %s",
            persisted.id,
            persisted.period_end.isoformat(),
        )
        self._audit(SubscriptionAuditEventType.SUBSCRIPTION_RENEWED, persisted, event)
        return ReconcileResult.applied(persisted)

    def _set_status_by_ref(
        self,
        event: CanonicalEvent,
        status: SubscriptionStatus,
        audit_type: SubscriptionAuditEventType,
    ) -> ReconcileResult:
        record = self._find_by_ref(event)
        if record is None:
            return ReconcileResult.skipped("no subscription for billing reference")

        with self.serializer.hold(record.owner_id):
            persisted = self._require_updated(record, SubscriptionChanges(status=status))

        logger.info("Subscription %s marked %s", persisted.id, status.value)
        self._audit(audit_type, persisted, event)
        return ReconcileResult.applied(persisted)

    def _find_by_ref(self, event: CanonicalEvent) -> Optional[Subscription]:
        record = self.repository.find_by_billing_ref(event.billing_subscription_ref)
        if record is None:
            logger.warning(
                "No subscription found for billing reference %s (event %s, %s)",
                event.billing_subscription_ref,
                event.source_event_id,
                event.kind.value,
            )
        return record

    def _require_updated(self, record: Subscription, changes: SubscriptionChanges) -> Subscription:
        updated = self.repository.update(record.id, changes)
        if updated is None:
            raise StoreUnavailable(f"Subscription {record.id} vanished during update", operation="update")
        return updated

    def _audit(
        self,
        event_type: SubscriptionAuditEventType,
        subscription: Subscription,
        event: CanonicalEvent,
    ) -> None:
        self.audit_logger.log(
            SubscriptionAuditEvent(
                event_type=event_type,
                subscription_id=subscription.id,
                owner_id=subscription.owner_id,
                metadata={
                    "source_event_id": event.source_event_id,
                    "status": subscription.status.value,
                    "plan_tier": subscription.plan_tier.value,
                },
                occurred_at=event.occurred_at,
            )
        )


__all__ = ["NullAuditLogger", "ReconciliationEngine", "SubscriptionAuditLogger"]
