"""Domain models for subscription reconciliation and entitlement checks."""
from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Dict, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

UNLIMITED = -1


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


class PlanTier(str, Enum):
    """Subscription levels offered to accounts."""

    TRIAL = "trial"
    MONTHLY = "monthly"
    SEMIANNUAL = "semiannual"
    ANNUAL = "annual"

    @property
    def is_paid(self) -> bool:
        return self != PlanTier.TRIAL


class SubscriptionStatus(str, Enum):
    """Lifecycle state of a subscription record."""

    ACTIVE = "active"
    EXPIRED = "expired"
    CANCELLED = "cancelled"
    PAST_DUE = "past_due"


class EventKind(str, Enum):
    """Canonical event kinds understood by the reconciliation engine."""

    SUBSCRIPTION_ACTIVATED = "subscription_activated"
    INVOICE_PAID = "invoice_paid"
    INVOICE_FAILED = "invoice_failed"
    SUBSCRIPTION_CANCELLED = "subscription_cancelled"


@dataclass(frozen=True)
class FeatureSet:
    """Entitlement limits and switches granted by a plan tier."""

    max_customers: int
    max_branches: int
    advanced_analytics: bool = False
    priority_support: bool = False
    custom_branding: bool = False
    api_access: bool = False

    def limit(self, name: str) -> int:
        """Return a numeric limit, ``UNLIMITED`` meaning no cap."""

        value = getattr(self, name)
        if isinstance(value, bool) or not isinstance(value, int):
            raise KeyError(f"Unknown limit: {name}")
        return value

    def to_flags(self) -> Dict[str, int | bool]:
        return asdict(self)


class Subscription(BaseModel):
    """Durable subscription row owned by an account."""

    id: str
    owner_id: str
    plan_tier: PlanTier
    status: SubscriptionStatus
    billing_customer_ref: Optional[str] = None
    billing_subscription_ref: Optional[str] = None
    period_start: datetime
    period_end: datetime
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    model_config = ConfigDict(frozen=True)

    @field_validator("period_start", "period_end", "created_at", "updated_at")
    @classmethod
    def _ensure_utc(cls, value: datetime) -> datetime:
        return _as_utc(value)

    @model_validator(mode="after")
    def _check_ordering(self) -> "Subscription":
        if self.period_end <= self.period_start:
            raise ValueError("period_end must be after period_start")
        if self.updated_at < self.created_at:
            raise ValueError("updated_at must not precede created_at")
        return self

    @property
    def is_active(self) -> bool:
        return self.status == SubscriptionStatus.ACTIVE


class NewSubscription(BaseModel):
    """Fields supplied when inserting a subscription; the store assigns the rest."""

    owner_id: str
    plan_tier: PlanTier
    status: SubscriptionStatus = SubscriptionStatus.ACTIVE
    billing_customer_ref: Optional[str] = None
    billing_subscription_ref: Optional[str] = None
    period_start: datetime
    period_end: datetime

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def _check_period(self) -> "NewSubscription":
        if self.period_end <= self.period_start:
            raise ValueError("period_end must be after period_start")
        return self


class SubscriptionChanges(BaseModel):
    """Partial update; only fields that were explicitly set are written."""

    plan_tier: Optional[PlanTier] = None
    status: Optional[SubscriptionStatus] = None
    billing_customer_ref: Optional[str] = None
    billing_subscription_ref: Optional[str] = None
    period_start: Optional[datetime] = None
    period_end: Optional[datetime] = None

    model_config = ConfigDict(frozen=True)

    def as_update(self) -> Dict[str, object]:
        return self.model_dump(exclude_unset=True)


class SubscriptionFilter(BaseModel):
    """Optional predicates for listing subscriptions."""

    owner_id: Optional[str] = None
    status: Optional[SubscriptionStatus] = None
    plan_tier: Optional[PlanTier] = None
    limit: Optional[int] = Field(default=None, ge=1)

    model_config = ConfigDict(frozen=True)


class _CanonicalEventBase(BaseModel):
    source_event_id: str
    occurred_at: datetime
    owner_id: Optional[str] = None
    billing_customer_ref: Optional[str] = None

    model_config = ConfigDict(frozen=True)

    @field_validator("occurred_at")
    @classmethod
    def _ensure_utc(cls, value: datetime) -> datetime:
        return _as_utc(value)


class SubscriptionActivated(_CanonicalEventBase):
    kind: Literal[EventKind.SUBSCRIPTION_ACTIVATED] = EventKind.SUBSCRIPTION_ACTIVATED
    owner_id: str
    plan_tier: PlanTier
    billing_subscription_ref: Optional[str] = None


class InvoicePaid(_CanonicalEventBase):
    kind: Literal[EventKind.INVOICE_PAID] = EventKind.INVOICE_PAID
    billing_subscription_ref: str
    period_start: Optional[datetime] = None
    period_end: Optional[datetime] = None

    @property
    def reported_period(self) -> Optional[tuple[datetime, datetime]]:
        """Externally reported billing period, when both bounds are usable."""

        if self.period_start is None or self.period_end is None:
            return None
        start, end = _as_utc(self.period_start), _as_utc(self.period_end)
        if end <= start:
            return None
        return start, end


class InvoiceFailed(_CanonicalEventBase):
    kind: Literal[EventKind.INVOICE_FAILED] = EventKind.INVOICE_FAILED
    billing_subscription_ref: str


class SubscriptionCancelled(_CanonicalEventBase):
    kind: Literal[EventKind.SUBSCRIPTION_CANCELLED] = EventKind.SUBSCRIPTION_CANCELLED
    billing_subscription_ref: str


CanonicalEvent = Annotated[
    Union[SubscriptionActivated, InvoicePaid, InvoiceFailed, SubscriptionCancelled],
    Field(discriminator="kind"),
]


@dataclass(frozen=True)
class IgnoredNotification:
    """A notification acknowledged without further processing."""

    source_event_id: Optional[str]
    notification_type: Optional[str]
    reason: str


class EntitlementDecision(BaseModel):
    """Result of evaluating an account's access at a point in time."""

    has_access: bool
    features: FeatureSet
    days_remaining: int = Field(ge=0)
    subscription: Optional[Subscription] = None

    model_config = ConfigDict(frozen=True)


class ReconcileStatus(str, Enum):
    APPLIED = "applied"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class ReconcileResult:
    """Outcome of applying one canonical event to the record store."""

    status: ReconcileStatus
    subscription: Optional[Subscription] = None
    reason: Optional[str] = None
    error: Optional[Exception] = None

    @classmethod
    def applied(cls, subscription: Subscription) -> "ReconcileResult":
        return cls(status=ReconcileStatus.APPLIED, subscription=subscription)

    @classmethod
    def skipped(cls, reason: str) -> "ReconcileResult":
        return cls(status=ReconcileStatus.SKIPPED, reason=reason)

    @classmethod
    def failed(cls, error: Exception) -> "ReconcileResult":
        return cls(status=ReconcileStatus.FAILED, reason=str(error), error=error)

    @property
    def should_acknowledge(self) -> bool:
        """Whether the notification can be acknowledged to the processor."""

        return self.status != ReconcileStatus.FAILED


class SubscriptionStats(BaseModel):
    """Aggregate figures for the administration dashboard."""

    total: int = 0
    active: int = 0
    trial: int = 0
    paid: int = 0
    revenue_estimate: float = 0.0
    churn_rate: float = 0.0

    model_config = ConfigDict(frozen=True)


class PaymentRecord(BaseModel):
    """Payment history row derived from the current subscription."""

    id: str
    amount: int = Field(ge=0, description="Amount in cents for the plan tier")
    status: Literal["paid", "failed"]
    created: int
    period_start: int
    period_end: int
    plan_tier: PlanTier

    model_config = ConfigDict(frozen=True)


class SubscriptionAuditEventType(str, Enum):
    """Audit event categories emitted on subscription transitions."""

    SUBSCRIPTION_ACTIVATED = "subscription_activated"
    SUBSCRIPTION_RENEWED = "subscription_renewed"
    PAYMENT_FAILED = "payment_failed"
    SUBSCRIPTION_CANCELLED = "subscription_cancelled"
    STATUS_CHANGED = "status_changed"


class SubscriptionAuditEvent(BaseModel):
    """Structured audit event for logging and analytics."""

    event_type: SubscriptionAuditEventType
    subscription_id: Optional[str] = None
    owner_id: Optional[str] = None
    metadata: Dict[str, str] = Field(default_factory=dict)
    occurred_at: datetime = Field(default_factory=_utcnow)

    model_config = ConfigDict(frozen=True)
