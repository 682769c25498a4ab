"""Errors raised when an entitlement check blocks a request."""
from __future__ import annotations

from typing import Any, Dict, Mapping, Optional

from fastapi import HTTPException, status


class FeatureGateError(Exception):
    """A gating failure carrying a JSON-ready payload for API callers."""

    def __init__(
        self,
        code: str,
        message: str,
        *,
        status_code: int = status.HTTP_403_FORBIDDEN,
        detail: Optional[Mapping[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.status_code = status_code
        self._payload: Dict[str, Any] = {"error": code, "message": message, **(detail or {})}

    @classmethod
    def inactive(cls, days_remaining: int) -> "FeatureGateError":
        return cls(
            "subscription_inactive",
            "An active subscription is required.",
            status_code=status.HTTP_403_FORBIDDEN,
            detail={"days_remaining": days_remaining},
        )

    @property
    def payload(self) -> Mapping[str, Any]:
        return self._payload

    def to_http_exception(self) -> HTTPException:
        return HTTPException(status_code=self.status_code, detail=dict(self._payload))
