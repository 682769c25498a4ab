"""Subscription domain: billing notification reconciliation and entitlement checks."""

from .access import default_decision, evaluate_access
from .catalog import PLAN_CATALOG, TRIAL_FEATURES, features_for, get_plan_definition, price_cents
from .config import SubscriptionConfig, load_subscription_config
from .errors import (
    IngestError,
    PayloadMalformed,
    RecordNotFound,
    SignatureInvalid,
    StoreUnavailable,
    SubscriptionError,
)
from .ingest import EventIngestor, IngestOutcome
from .locks import OwnerSerializer
from .models import (
    UNLIMITED,
    CanonicalEvent,
    EntitlementDecision,
    EventKind,
    FeatureSet,
    IgnoredNotification,
    InvoiceFailed,
    InvoicePaid,
    NewSubscription,
    PaymentRecord,
    PlanTier,
    ReconcileResult,
    ReconcileStatus,
    Subscription,
    SubscriptionActivated,
    SubscriptionAuditEvent,
    SubscriptionAuditEventType,
    SubscriptionCancelled,
    SubscriptionChanges,
    SubscriptionFilter,
    SubscriptionStats,
    SubscriptionStatus,
)
from .periods import billing_period, period_bounds
from .reconcile import NullAuditLogger, ReconciliationEngine, SubscriptionAuditLogger
from .repository import SubscriptionRepository
from .service import SubscriptionService
from .signatures import HMACSignatureVerifier, SignatureVerifier

__all__ = [
    "PLAN_CATALOG",
    "TRIAL_FEATURES",
    "UNLIMITED",
    "CanonicalEvent",
    "EntitlementDecision",
    "EventIngestor",
    "EventKind",
    "FeatureSet",
    "HMACSignatureVerifier",
    "IgnoredNotification",
    "IngestError",
    "IngestOutcome",
    "InvoiceFailed",
    "InvoicePaid",
    "NewSubscription",
    "NullAuditLogger",
    "OwnerSerializer",
    "PayloadMalformed",
    "PaymentRecord",
    "PlanTier",
    "ReconcileResult",
    "ReconcileStatus",
    "ReconciliationEngine",
    "RecordNotFound",
    "SignatureInvalid",
    "SignatureVerifier",
    "StoreUnavailable",
    "Subscription",
    "SubscriptionActivated",
    "SubscriptionAuditEvent",
    "SubscriptionAuditEventType",
    "SubscriptionAuditLogger",
    "SubscriptionCancelled",
    "SubscriptionChanges",
    "SubscriptionConfig",
    "SubscriptionError",
    "SubscriptionFilter",
    "SubscriptionRepository",
    "SubscriptionService",
    "SubscriptionStats",
    "SubscriptionStatus",
    "billing_period",
    "default_decision",
    "evaluate_access",
    "features_for",
    "get_plan_definition",
    "load_subscription_config",
    "period_bounds",
    "price_cents",
]
