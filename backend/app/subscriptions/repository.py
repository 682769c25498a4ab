"""Persistence layer for subscription records."""
from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime
from typing import Iterator, List, Optional, Protocol, Sequence
from uuid import uuid4

import psycopg2
import psycopg2.extras
from psycopg2.extensions import connection as PgConnection
from psycopg2.extensions import cursor as PgCursor

from .errors import StoreUnavailable
from .models import (
    EventKind,
    NewSubscription,
    PlanTier,
    Subscription,
    SubscriptionChanges,
    SubscriptionFilter,
    SubscriptionStatus,
)

try:  # pragma: no cover - resolve connection helper when imported from FastAPI app
    from backend.app_context import get_conn
except ModuleNotFoundError as exc:  # pragma: no cover
    if exc.name != "backend":
        raise
    from ...app_context import get_conn  # type: ignore[no-redef]


SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS subscriptions (
    id TEXT PRIMARY KEY,
    owner_id TEXT NOT NULL,
    plan_tier TEXT NOT NULL,
    status TEXT NOT NULL,
    billing_customer_ref TEXT,
    billing_subscription_ref TEXT,
    period_start TIMESTAMPTZ NOT NULL,
    period_end TIMESTAMPTZ NOT NULL,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    CHECK (period_end > period_start)
);

CREATE INDEX IF NOT EXISTS subscriptions_owner_created_idx
    ON subscriptions (owner_id, created_at DESC);

CREATE INDEX IF NOT EXISTS subscriptions_billing_ref_idx
    ON subscriptions (billing_subscription_ref);

CREATE TABLE IF NOT EXISTS subscription_events (
    event_id TEXT PRIMARY KEY,
    kind TEXT NOT NULL,
    occurred_at TIMESTAMPTZ NOT NULL,
    processed_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);
"""

# Columns a partial update may touch; anything else is rejected.
_UPDATABLE_COLUMNS = (
    "plan_tier",
    "status",
    "billing_customer_ref",
    "billing_subscription_ref",
    "period_start",
    "period_end",
)

# psycopg2 raises these when the server cannot be reached or the session dies.
_UNAVAILABLE_ERRORS = (psycopg2.OperationalError, psycopg2.InterfaceError)


class SubscriptionRepository(Protocol):
    """Store operations used by the reconciliation engine and services."""

    def get(self, subscription_id: str) -> Optional[Subscription]:
        ...

    def find_current_by_owner(self, owner_id: str) -> Optional[Subscription]:
        ...

    def find_by_billing_ref(self, billing_subscription_ref: str) -> Optional[Subscription]:
        ...

    def insert(self, record: NewSubscription) -> Subscription:
        ...

    def update(self, subscription_id: str, changes: SubscriptionChanges) -> Optional[Subscription]:
        ...

    def list_by_owner(
        self,
        owner_id: str,
        *,
        descending: bool = True,
        limit: Optional[int] = None,
    ) -> Sequence[Subscription]:
        ...

    def list_all(self, criteria: Optional[SubscriptionFilter] = None) -> Sequence[Subscription]:
        ...

    def has_processed_event(self, event_id: str) -> bool:
        ...

    def record_processed_event(self, event_id: str, kind: EventKind, occurred_at: datetime) -> bool:
        ...


@contextmanager
def managed_connection(conn: Optional[PgConnection] = None):
    """Context manager that manages transaction boundaries for optional connections."""

    if conn is not None:
        yield conn, False
        return

    try:
        connection = get_conn()
    except _UNAVAILABLE_ERRORS as exc:
        raise StoreUnavailable(f"Unable to connect to subscription store: {exc}", operation="connect") from exc
    try:
        yield connection, True
        connection.commit()
    except Exception:
        connection.rollback()
        raise
    finally:
        connection.close()


def _row_to_subscription(row: dict) -> Subscription:
    return Subscription(
        id=row["id"],
        owner_id=row["owner_id"],
        plan_tier=PlanTier(row["plan_tier"]),
        status=SubscriptionStatus(row["status"]),
        billing_customer_ref=row.get("billing_customer_ref"),
        billing_subscription_ref=row.get("billing_subscription_ref"),
        period_start=row["period_start"],
        period_end=row["period_end"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _enum_value(value: object) -> object:
    return getattr(value, "value", value)


class PostgresSubscriptionRepository:
    """Concrete repository persisting subscriptions in PostgreSQL."""

    def __init__(self, *, conn: Optional[PgConnection] = None) -> None:
        self._conn = conn

    @contextmanager
    def _cursor(self, operation: str) -> Iterator[PgCursor]:
        try:
            with managed_connection(self._conn) as (connection, _managed):
                cursor = connection.cursor(cursor_factory=psycopg2.extras.RealDictCursor)
                try:
                    yield cursor
                finally:
                    cursor.close()
        except _UNAVAILABLE_ERRORS as exc:
            raise StoreUnavailable(f"Subscription store unavailable during {operation}: {exc}", operation=operation) from exc

    def ensure_schema(self) -> None:
        with self._cursor("ensure_schema") as cursor:
            cursor.execute(SCHEMA_SQL)

    def get(self, subscription_id: str) -> Optional[Subscription]:
        with self._cursor("get") as cursor:
            cursor.execute(
                """
                SELECT *
                FROM subscriptions
                WHERE id = %s
                LIMIT 1
                """,
                (subscription_id,),
            )
            row = cursor.fetchone()
            return _row_to_subscription(row) if row else None

    def find_current_by_owner(self, owner_id: str) -> Optional[Subscription]:
        rows = self.list_by_owner(owner_id, descending=True, limit=1)
        return rows[0] if rows else None

    def find_by_billing_ref(self, billing_subscription_ref: str) -> Optional[Subscription]:
        with self._cursor("find_by_billing_ref") as cursor:
            cursor.execute(
                """
                SELECT *
                FROM subscriptions
                WHERE billing_subscription_ref = %s
                ORDER BY created_at DESC
                LIMIT 1
                """,
                (billing_subscription_ref,),
            )
            row = cursor.fetchone()
            return _row_to_subscription(row) if row else None

    def insert(self, record: NewSubscription) -> Subscription:
        with self._cursor("insert") as cursor:
            cursor.execute(
                """
                INSERT INTO subscriptions (
                    id,
                    owner_id,
                    plan_tier,
                    status,
                    billing_customer_ref,
                    billing_subscription_ref,
                    period_start,
                    period_end
                )
                VALUES (%(id)s, %(owner_id)s, %(plan_tier)s, %(status)s,
                        %(billing_customer_ref)s, %(billing_subscription_ref)s,
                        %(period_start)s, %(period_end)s)
                RETURNING *
                """,
                {
                    "id": f"sub_{uuid4().hex}",
                    "owner_id": record.owner_id,
                    "plan_tier": record.plan_tier.value,
                    "status": record.status.value,
                    "billing_customer_ref": record.billing_customer_ref,
                    "billing_subscription_ref": record.billing_subscription_ref,
                    "period_start": record.period_start,
                    "period_end": record.period_end,
                },
            )
            row = cursor.fetchone()
            if not row:
                raise RuntimeError("Failed to persist subscription")
            return _row_to_subscription(row)

    def update(self, subscription_id: str, changes: SubscriptionChanges) -> Optional[Subscription]:
        values = changes.as_update()
        unknown = set(values) - set(_UPDATABLE_COLUMNS)
        if unknown:
            raise ValueError(f"Cannot update columns: {sorted(unknown)}")
        if not values:
            return self.get(subscription_id)

        assignments = ", ".join(f"{column} = %({column})s" for column in values)
        params = {column: _enum_value(value) for column, value in values.items()}
        params["subscription_id"] = subscription_id
        with self._cursor("update") as cursor:
            cursor.execute(
                f"""
                UPDATE subscriptions
                SET {assignments},
                    updated_at = NOW()
                WHERE id = %(subscription_id)s
                RETURNING *
                """,
                params,
            )
            row = cursor.fetchone()
            return _row_to_subscription(row) if row else None

    def list_by_owner(
        self,
        owner_id: str,
        *,
        descending: bool = True,
        limit: Optional[int] = None,
    ) -> List[Subscription]:
        direction = "DESC" if descending else "ASC"
        with self._cursor("list_by_owner") as cursor:
            cursor.execute(
                f"""
                SELECT *
                FROM subscriptions
                WHERE owner_id = %s
                ORDER BY created_at {direction}
                LIMIT %s
                """,
                (owner_id, limit),
            )
            rows = cursor.fetchall() or []
            return [_row_to_subscription(row) for row in rows]

    def list_all(self, criteria: Optional[SubscriptionFilter] = None) -> List[Subscription]:
        criteria = criteria or SubscriptionFilter()
        clauses: List[str] = []
        params: List[object] = []
        if criteria.owner_id:
            clauses.append("owner_id = %s")
            params.append(criteria.owner_id)
        if criteria.status:
            clauses.append("status = %s")
            params.append(criteria.status.value)
        if criteria.plan_tier:
            clauses.append("plan_tier = %s")
            params.append(criteria.plan_tier.value)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        params.append(criteria.limit)

        with self._cursor("list_all") as cursor:
            cursor.execute(
                f"""
                SELECT *
                FROM subscriptions
                {where}
                ORDER BY created_at DESC
                LIMIT %s
                """,
                tuple(params),
            )
            rows = cursor.fetchall() or []
            return [_row_to_subscription(row) for row in rows]

    def has_processed_event(self, event_id: str) -> bool:
        with self._cursor("has_processed_event") as cursor:
            cursor.execute(
                "SELECT 1 FROM subscription_events WHERE event_id = %s LIMIT 1",
                (event_id,),
            )
            return cursor.fetchone() is not None

    def record_processed_event(self, event_id: str, kind: EventKind, occurred_at: datetime) -> bool:
        with self._cursor("record_processed_event") as cursor:
            cursor.execute(
                """
                INSERT INTO subscription_events (event_id, kind, occurred_at, processed_at)
                VALUES (%s, %s, %s, NOW())
                ON CONFLICT (event_id) DO NOTHING
                """,
                (event_id, kind.value, occurred_at),
            )
            return cursor.rowcount > 0


__all__ = ["PostgresSubscriptionRepository", "SCHEMA_SQL", "SubscriptionRepository", "managed_connection"]
