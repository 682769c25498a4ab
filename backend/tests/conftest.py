from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Sequence, Set

import pytest

from backend.app.subscriptions import (
    EventKind,
    HMACSignatureVerifier,
    NewSubscription,
    OwnerSerializer,
    StoreUnavailable,
    Subscription,
    SubscriptionAuditEvent,
    SubscriptionChanges,
    SubscriptionFilter,
)
from backend.app.subscriptions.repository import SubscriptionRepository


WEBHOOK_SECRET = "whsec_test_secret"
EPOCH = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now: datetime = EPOCH) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class InMemorySubscriptionRepository(SubscriptionRepository):
    def __init__(self, clock: FakeClock) -> None:
        self.clock = clock
        self.rows: Dict[str, Subscription] = {}
        self.order: Dict[str, int] = {}
        self.processed_events: Dict[str, EventKind] = {}
        self._sequence = 0

    def _sorted(self, rows: Sequence[Subscription], *, descending: bool = True) -> List[Subscription]:
        return sorted(rows, key=lambda row: (row.created_at, self.order[row.id]), reverse=descending)

    def get(self, subscription_id: str) -> Optional[Subscription]:
        return self.rows.get(subscription_id)

    def find_current_by_owner(self, owner_id: str) -> Optional[Subscription]:
        rows = self.list_by_owner(owner_id, limit=1)
        return rows[0] if rows else None

    def find_by_billing_ref(self, billing_subscription_ref: str) -> Optional[Subscription]:
        matches = [row for row in self.rows.values() if row.billing_subscription_ref == billing_subscription_ref]
        ordered = self._sorted(matches)
        return ordered[0] if ordered else None

    def insert(self, record: NewSubscription) -> Subscription:
        self._sequence += 1
        now = self.clock()
        subscription = Subscription(
            id=f"sub_{self._sequence}",
            created_at=now,
            updated_at=now,
            **record.model_dump(),
        )
        self.rows[subscription.id] = subscription
        self.order[subscription.id] = self._sequence
        return subscription

    def update(self, subscription_id: str, changes: SubscriptionChanges) -> Optional[Subscription]:
        existing = self.rows.get(subscription_id)
        if existing is None:
            return None
        values = changes.as_update()
        values["updated_at"] = max(self.clock(), existing.created_at)
        updated = Subscription(**{**existing.model_dump(), **values})
        self.rows[subscription_id] = updated
        return updated

    def list_by_owner(
        self,
        owner_id: str,
        *,
        descending: bool = True,
        limit: Optional[int] = None,
    ) -> List[Subscription]:
        rows = self._sorted([row for row in self.rows.values() if row.owner_id == owner_id], descending=descending)
        return rows[:limit] if limit is not None else rows

    def list_all(self, criteria: Optional[SubscriptionFilter] = None) -> List[Subscription]:
        criteria = criteria or SubscriptionFilter()
        rows = [
            row
            for row in self.rows.values()
            if (criteria.owner_id is None or row.owner_id == criteria.owner_id)
            and (criteria.status is None or row.status == criteria.status)
            and (criteria.plan_tier is None or row.plan_tier == criteria.plan_tier)
        ]
        ordered = self._sorted(rows)
        return ordered[: criteria.limit] if criteria.limit is not None else ordered

    def has_processed_event(self, event_id: str) -> bool:
        return event_id in self.processed_events

    def record_processed_event(self, event_id: str, kind: EventKind, occurred_at: datetime) -> bool:
        if event_id in self.processed_events:
            return False
        self.processed_events[event_id] = kind
        return True


class UnavailableSubscriptionRepository(InMemorySubscriptionRepository):
    """Repository whose selected operations fail as if the store were down."""

    def __init__(self, clock: FakeClock, failing: Optional[Set[str]] = None) -> None:
        super().__init__(clock)
        self.failing = failing if failing is not None else {
            "get",
            "find_current_by_owner",
            "find_by_billing_ref",
            "insert",
            "update",
            "list_by_owner",
            "list_all",
            "has_processed_event",
            "record_processed_event",
        }

    def _check(self, operation: str) -> None:
        if operation in self.failing:
            raise StoreUnavailable("connection refused", operation=operation)

    def get(self, subscription_id):
        self._check("get")
        return super().get(subscription_id)

    def find_current_by_owner(self, owner_id):
        self._check("find_current_by_owner")
        return super().find_current_by_owner(owner_id)

    def find_by_billing_ref(self, billing_subscription_ref):
        self._check("find_by_billing_ref")
        return super().find_by_billing_ref(billing_subscription_ref)

    def insert(self, record):
        self._check("insert")
        return super().insert(record)

    def update(self, subscription_id, changes):
        self._check("update")
        return super().update(subscription_id, changes)

    def list_by_owner(self, owner_id, *, descending=True, limit=None):
        self._check("list_by_owner")
        return super().list_by_owner(owner_id, descending=descending, limit=limit)

    def list_all(self, criteria=None):
        self._check("list_all")
        return super().list_all(criteria)

    def has_processed_event(self, event_id):
        self._check("has_processed_event")
        return super().has_processed_event(event_id)

    def record_processed_event(self, event_id, kind, occurred_at):
        self._check("record_processed_event")
        return super().record_processed_event(event_id, kind, occurred_at)


class RecordingAuditLogger:
    def __init__(self) -> None:
        self.events: List[SubscriptionAuditEvent] = []

    def log(self, event: SubscriptionAuditEvent) -> None:
        self.events.append(event)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def repository(clock: FakeClock) -> InMemorySubscriptionRepository:
    return InMemorySubscriptionRepository(clock)


@pytest.fixture
def unavailable_repository(clock: FakeClock) -> UnavailableSubscriptionRepository:
    return UnavailableSubscriptionRepository(clock)


@pytest.fixture
def serializer() -> OwnerSerializer:
    return OwnerSerializer()


@pytest.fixture
def audit_logger() -> RecordingAuditLogger:
    return RecordingAuditLogger()


@pytest.fixture
def verifier(clock: FakeClock) -> HMACSignatureVerifier:
    return HMACSignatureVerifier(WEBHOOK_SECRET, tolerance_seconds=300, clock=clock)


@pytest.fixture
def webhook_secret() -> str:
    return WEBHOOK_SECRET
