"""Normalization of billing processor notifications into canonical events."""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Mapping, Optional, Union

from .errors import PayloadMalformed, SignatureInvalid
from .models import (
    CanonicalEvent,
    IgnoredNotification,
    InvoiceFailed,
    InvoicePaid,
    PlanTier,
    SubscriptionActivated,
    SubscriptionCancelled,
)
from .signatures import SignatureVerifier

logger = logging.getLogger(__name__)

IngestOutcome = Union[CanonicalEvent, IgnoredNotification]


@dataclass
class _Notification:
    event_id: str
    event_type: str
    obj: Mapping[str, Any]
    occurred_at: datetime

    @property
    def metadata(self) -> Mapping[str, Any]:
        value = self.obj.get("metadata")
        return value if isinstance(value, Mapping) else {}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class EventIngestor:
    """Verifies and parses processor notifications.

    Notification types the engine does not act on come back as
    :class:`IgnoredNotification` so the caller can acknowledge them and the
    processor stops redelivering.
    """

    verifier: SignatureVerifier
    clock: Callable[[], datetime] = field(default=_utcnow)

    def ingest(self, payload: bytes, signature: Optional[str]) -> IngestOutcome:
        if not signature:
            raise SignatureInvalid("no signature")
        self.verifier.verify(payload, signature)

        notification = self._parse(payload)
        parser = _PARSERS.get(notification.event_type)
        if parser is None:
            logger.info(
                "Ignoring unhandled notification type %s id=%s",
                notification.event_type,
                notification.event_id,
            )
            return IgnoredNotification(
                source_event_id=notification.event_id,
                notification_type=notification.event_type,
                reason="unhandled notification type",
            )

        outcome = parser(notification)
        if isinstance(outcome, IgnoredNotification):
            logger.info(
                "Ignoring notification %s id=%s: %s",
                notification.event_type,
                notification.event_id,
                outcome.reason,
            )
        else:
            logger.debug(
                "Normalized notification %s id=%s into %s",
                notification.event_type,
                notification.event_id,
                outcome.kind.value,
            )
        return outcome

    def _parse(self, payload: bytes) -> _Notification:
        try:
            document = json.loads(payload)
        except (UnicodeDecodeError, ValueError) as exc:
            raise PayloadMalformed(f"Invalid JSON payload: {exc}") from exc
        if not isinstance(document, dict):
            raise PayloadMalformed("Notification payload must be a JSON object")

        event_id = _require_str(document, "id")
        event_type = _require_str(document, "type")
        data = document.get("data")
        obj = data.get("object") if isinstance(data, dict) else None
        if not isinstance(obj, dict):
            raise PayloadMalformed("data.object missing from notification")

        occurred_at = _from_unix(document.get("created")) or self.clock()
        return _Notification(event_id=event_id, event_type=event_type, obj=obj, occurred_at=occurred_at)


def _parse_checkout_completed(notification: _Notification) -> IngestOutcome:
    metadata = notification.metadata
    owner_id = _optional_str(metadata.get("user_id"))
    if not owner_id:
        raise PayloadMalformed("metadata.user_id missing from checkout session")

    return SubscriptionActivated(
        source_event_id=notification.event_id,
        occurred_at=notification.occurred_at,
        owner_id=owner_id,
        plan_tier=_plan_tier(metadata.get("plan_type")),
        billing_customer_ref=_optional_str(notification.obj.get("customer")),
        billing_subscription_ref=_optional_str(notification.obj.get("subscription")),
    )


def _parse_payment_intent(notification: _Notification) -> IngestOutcome:
    metadata = notification.metadata
    owner_id = _optional_str(metadata.get("user_id"))
    if not owner_id or not metadata.get("plan_type"):
        return IgnoredNotification(
            source_event_id=notification.event_id,
            notification_type=notification.event_type,
            reason="payment intent without purchase metadata",
        )

    return SubscriptionActivated(
        source_event_id=notification.event_id,
        occurred_at=notification.occurred_at,
        owner_id=owner_id,
        plan_tier=_plan_tier(metadata.get("plan_type")),
        billing_customer_ref=_optional_str(notification.obj.get("customer")),
    )


def _parse_invoice(notification: _Notification, *, paid: bool) -> IngestOutcome:
    subscription_ref = _optional_str(notification.obj.get("subscription"))
    if not subscription_ref:
        return IgnoredNotification(
            source_event_id=notification.event_id,
            notification_type=notification.event_type,
            reason="invoice not attached to a subscription",
        )

    common: Dict[str, Any] = {
        "source_event_id": notification.event_id,
        "occurred_at": notification.occurred_at,
        "owner_id": _optional_str(notification.metadata.get("user_id")),
        "billing_customer_ref": _optional_str(notification.obj.get("customer")),
        "billing_subscription_ref": subscription_ref,
    }
    if not paid:
        return InvoiceFailed(**common)

    period_start, period_end = _invoice_period(notification.obj)
    return InvoicePaid(period_start=period_start, period_end=period_end, **common)


def _parse_invoice_paid(notification: _Notification) -> IngestOutcome:
    return _parse_invoice(notification, paid=True)


def _parse_invoice_failed(notification: _Notification) -> IngestOutcome:
    return _parse_invoice(notification, paid=False)


def _parse_subscription_deleted(notification: _Notification) -> IngestOutcome:
    return SubscriptionCancelled(
        source_event_id=notification.event_id,
        occurred_at=notification.occurred_at,
        owner_id=_optional_str(notification.metadata.get("user_id")),
        billing_customer_ref=_optional_str(notification.obj.get("customer")),
        billing_subscription_ref=_require_str(notification.obj, "id"),
    )


_PARSERS: Dict[str, Callable[[_Notification], IngestOutcome]] = {
    "checkout.session.completed": _parse_checkout_completed,
    "payment_intent.succeeded": _parse_payment_intent,
    "invoice.payment_succeeded": _parse_invoice_paid,
    "invoice.payment_failed": _parse_invoice_failed,
    "customer.subscription.deleted": _parse_subscription_deleted,
}

HANDLED_NOTIFICATION_TYPES = frozenset(_PARSERS)


def _invoice_period(obj: Mapping[str, Any]) -> tuple[Optional[datetime], Optional[datetime]]:
    lines = obj.get("lines")
    line_items = lines.get("data") if isinstance(lines, dict) else None
    if isinstance(line_items, list) and line_items and isinstance(line_items[0], dict):
        period = line_items[0].get("period")
        if isinstance(period, dict):
            start, end = _from_unix(period.get("start")), _from_unix(period.get("end"))
            if start and end:
                return start, end
    return _from_unix(obj.get("period_start")), _from_unix(obj.get("period_end"))


def _plan_tier(value: object) -> PlanTier:
    try:
        return PlanTier(str(value))
    except ValueError as exc:
        raise PayloadMalformed(f"Invalid plan_type in metadata: {value!r}") from exc


def _require_str(mapping: Mapping[str, Any], key: str) -> str:
    value = _optional_str(mapping.get(key))
    if not value:
        raise PayloadMalformed(f"{key} missing from notification")
    return value


def _optional_str(value: object) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, dict):
        # Expanded objects carry their identifier under "id".
        value = value.get("id")
        if value is None:
            return None
    text = str(value).strip()
    return text or None


def _from_unix(value: object) -> Optional[datetime]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return datetime.fromtimestamp(int(value), tz=timezone.utc)
    except (TypeError, ValueError, OverflowError, OSError):
        return None


__all__ = ["EventIngestor", "HANDLED_NOTIFICATION_TYPES", "IngestOutcome"]
