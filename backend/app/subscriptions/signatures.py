"""Verification of billing processor notification signatures."""
from __future__ import annotations

import hashlib
import hmac
from datetime import datetime, timezone
from typing import Callable, List, Optional, Protocol, Tuple

from .errors import SignatureInvalid

SIGNATURE_SCHEME = "v1"


class SignatureVerifier(Protocol):
    """Protocol describing notification authenticity checks."""

    def verify(self, payload: bytes, header: str) -> None:
        """Raise :class:`SignatureInvalid` unless ``header`` signs ``payload``."""


class HMACSignatureVerifier:
    """Checks ``t=<unix>,v1=<hex>`` headers signed with a shared endpoint secret.

    The signed message is ``"<t>." + body``; the digest is HMAC-SHA256. Several
    ``v1`` entries may be present while the processor rotates secrets, and any
    one of them matching is sufficient.
    """

    def __init__(
        self,
        secret: str,
        *,
        tolerance_seconds: int = 300,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        if not secret:
            raise ValueError("secret must be provided")
        self._secret = secret.encode("utf-8")
        self._tolerance_seconds = tolerance_seconds
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def _digest(self, payload: bytes, timestamp: int) -> str:
        signed = str(timestamp).encode("utf-8") + b"." + payload
        return hmac.new(self._secret, signed, hashlib.sha256).hexdigest()

    def sign(self, payload: bytes, timestamp: Optional[int] = None) -> str:
        """Build a header value for ``payload``; used by tests and local tooling."""

        if timestamp is None:
            timestamp = int(self._clock().timestamp())
        return f"t={timestamp},{SIGNATURE_SCHEME}={self._digest(payload, timestamp)}"

    def verify(self, payload: bytes, header: str) -> None:
        timestamp, signatures = _parse_header(header)
        expected = self._digest(payload, timestamp)
        if not any(hmac.compare_digest(expected, candidate) for candidate in signatures):
            raise SignatureInvalid("No signatures found matching the expected signature for payload")

        if self._tolerance_seconds > 0:
            age = self._clock().timestamp() - timestamp
            if age > self._tolerance_seconds:
                raise SignatureInvalid("Timestamp outside the tolerance zone")


def _parse_header(header: str) -> Tuple[int, List[str]]:
    timestamp: Optional[int] = None
    signatures: List[str] = []
    for item in header.split(","):
        key, _, value = item.strip().partition("=")
        if key == "t":
            try:
                timestamp = int(value)
            except ValueError:
                timestamp = None
        elif key == SIGNATURE_SCHEME and value:
            signatures.append(value)

    if timestamp is None or not signatures:
        raise SignatureInvalid("Unable to extract timestamp and signatures from header")
    return timestamp, signatures


__all__ = ["HMACSignatureVerifier", "SIGNATURE_SCHEME", "SignatureVerifier"]
