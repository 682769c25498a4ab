"""Application-facing subscription operations: entitlement checks and administration."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Sequence

from .access import default_decision, evaluate_access
from .catalog import price_cents
from .errors import RecordNotFound, StoreUnavailable
from .locks import OwnerSerializer
from .models import (
    EntitlementDecision,
    NewSubscription,
    PaymentRecord,
    PlanTier,
    Subscription,
    SubscriptionAuditEvent,
    SubscriptionAuditEventType,
    SubscriptionChanges,
    SubscriptionFilter,
    SubscriptionStats,
    SubscriptionStatus,
)
from .periods import billing_period
from .reconcile import NullAuditLogger, SubscriptionAuditLogger
from .repository import SubscriptionRepository

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class SubscriptionService:
    """Coordinates entitlement queries and subscription administration."""

    repository: SubscriptionRepository
    serializer: OwnerSerializer = field(default_factory=OwnerSerializer)
    audit_logger: SubscriptionAuditLogger = field(default_factory=NullAuditLogger)
    clock: Callable[[], datetime] = field(default=_utcnow)
    stats_current_only: bool = False

    def check_access(self, owner_id: str) -> EntitlementDecision:
        """Return the owner's entitlement; store failures fall back to the trial default."""

        try:
            record = self.repository.find_current_by_owner(owner_id)
        except StoreUnavailable as exc:
            logger.warning("Entitlement lookup failed for owner %s, failing open: %s", owner_id, exc)
            return default_decision()
        except Exception:
            logger.exception("Unexpected error during entitlement lookup for owner %s", owner_id)
            return default_decision()
        return evaluate_access(record, self.clock())

    def get_current(self, owner_id: str) -> Optional[Subscription]:
        return self.repository.find_current_by_owner(owner_id)

    def create_or_renew(
        self,
        owner_id: str,
        plan_tier: PlanTier,
        billing_customer_ref: Optional[str] = None,
        billing_subscription_ref: Optional[str] = None,
    ) -> Subscription:
        """Start a subscription for ``owner_id`` or renew the current one.

        An active current record keeps its ``period_start`` and has its end
        pushed to ``now + period(plan_tier)``; an inactive one is restarted.
        """

        with self.serializer.hold(owner_id):
            now = self.clock()
            period_end = now + billing_period(plan_tier)
            current = self.repository.find_current_by_owner(owner_id)

            if current is None:
                persisted = self.repository.insert(
                    NewSubscription(
                        owner_id=owner_id,
                        plan_tier=plan_tier,
                        status=SubscriptionStatus.ACTIVE,
                        billing_customer_ref=billing_customer_ref,
                        billing_subscription_ref=billing_subscription_ref,
                        period_start=now,
                        period_end=period_end,
                    )
                )
                audit_type = SubscriptionAuditEventType.SUBSCRIPTION_ACTIVATED
            else:
                changes = {
                    "plan_tier": plan_tier,
                    "status": SubscriptionStatus.ACTIVE,
                    "period_end": period_end,
                }
                # Omitted references keep the stored ones so billing events still match.
                if billing_customer_ref is not None:
                    changes["billing_customer_ref"] = billing_customer_ref
                if billing_subscription_ref is not None:
                    changes["billing_subscription_ref"] = billing_subscription_ref
                if current.is_active:
                    audit_type = SubscriptionAuditEventType.SUBSCRIPTION_RENEWED
                else:
                    changes["period_start"] = now
                    audit_type = SubscriptionAuditEventType.SUBSCRIPTION_ACTIVATED
                persisted = self.repository.update(current.id, SubscriptionChanges(**changes))
                if persisted is None:
                    raise RecordNotFound(f"Subscription {current.id} not found")

        logger.info(
            "Subscription %s for owner %s set to %s until %s",
            persisted.id,
            owner_id,
            persisted.plan_tier.value,
            persisted.period_end.isoformat(),
        )
        self.audit_logger.log(
            SubscriptionAuditEvent(
                event_type=audit_type,
                subscription_id=persisted.id,
                owner_id=owner_id,
                metadata={"plan_tier": persisted.plan_tier.value, "source": "application"},
            )
        )
        return persisted

    def set_status(self, subscription_id: str, status: SubscriptionStatus) -> None:
        updated = self.repository.update(subscription_id, SubscriptionChanges(status=status))
        if updated is None:
            raise RecordNotFound(f"Subscription {subscription_id} not found")

        self.audit_logger.log(
            SubscriptionAuditEvent(
                event_type=SubscriptionAuditEventType.STATUS_CHANGED,
                subscription_id=updated.id,
                owner_id=updated.owner_id,
                metadata={"status": status.value},
            )
        )

    def list_all(self, criteria: Optional[SubscriptionFilter] = None) -> List[Subscription]:
        return list(self.repository.list_all(criteria))

    def history(self, owner_id: str, *, limit: int = 20) -> List[Subscription]:
        return list(self.repository.list_by_owner(owner_id, descending=True, limit=limit))

    def compute_stats(self, *, current_only: Optional[bool] = None) -> SubscriptionStats:
        """Aggregate counts, revenue estimate and churn over stored rows.

        By default every historical row counts, renewals included. With
        ``current_only`` only the most recent row per owner is considered.
        """

        if current_only is None:
            current_only = self.stats_current_only
        records: Sequence[Subscription] = self.repository.list_all(None)
        if current_only:
            records = _latest_per_owner(records)

        total = len(records)
        cancelled = sum(1 for record in records if record.status == SubscriptionStatus.CANCELLED)
        revenue_cents = sum(price_cents(record.plan_tier) for record in records)
        return SubscriptionStats(
            total=total,
            active=sum(1 for record in records if record.status == SubscriptionStatus.ACTIVE),
            trial=sum(1 for record in records if record.plan_tier == PlanTier.TRIAL),
            paid=sum(1 for record in records if record.plan_tier != PlanTier.TRIAL),
            revenue_estimate=round(revenue_cents / 100, 2),
            churn_rate=(cancelled / total) * 100 if total else 0.0,
        )

    def payment_history(self, owner_id: str) -> List[PaymentRecord]:
        try:
            record = self.repository.find_current_by_owner(owner_id)
        except StoreUnavailable as exc:
            logger.warning("Payment history unavailable for owner %s: %s", owner_id, exc)
            return []
        if record is None:
            return []

        return [
            PaymentRecord(
                id=record.id,
                amount=price_cents(record.plan_tier),
                status="paid" if record.is_active else "failed",
                created=int(record.created_at.timestamp()),
                period_start=int(record.period_start.timestamp()),
                period_end=int(record.period_end.timestamp()),
                plan_tier=record.plan_tier,
            )
        ]


def _latest_per_owner(records: Sequence[Subscription]) -> List[Subscription]:
    latest: Dict[str, Subscription] = {}
    for record in records:
        existing = latest.get(record.owner_id)
        if existing is None or record.created_at > existing.created_at:
            latest[record.owner_id] = record
    return list(latest.values())


__all__ = ["SubscriptionService"]
