"""Exceptions raised by the subscription domain."""
from __future__ import annotations

from typing import Optional


class SubscriptionError(Exception):
    """Base class for subscription domain failures."""


class IngestError(SubscriptionError):
    """Raised when an inbound billing notification cannot be accepted."""


class SignatureInvalid(IngestError):
    """The notification signature is missing or does not verify."""


class PayloadMalformed(IngestError):
    """The notification body is not parseable or lacks required fields."""


class RecordNotFound(SubscriptionError, LookupError):
    """No subscription record matches the requested key."""


class StoreUnavailable(SubscriptionError):
    """The durable record store could not serve the request."""

    def __init__(self, message: str, *, operation: Optional[str] = None) -> None:
        super().__init__(message)
        self.operation = operation


__all__ = [
    "IngestError",
    "PayloadMalformed",
    "RecordNotFound",
    "SignatureInvalid",
    "StoreUnavailable",
    "SubscriptionError",
]
