"""API routes for billing notifications, entitlement checks and subscription administration."""
from __future__ import annotations

import logging
import os
from typing import Dict, Optional

from fastapi import APIRouter, Cookie, Depends, HTTPException, Query, Request, Response, status
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from ..schemas.subscriptions import (
    AccessResponse,
    CreateSubscriptionRequest,
    PaymentListResponse,
    PaymentResponse,
    StatsResponse,
    StatusUpdateRequest,
    SubscriptionListResponse,
    SubscriptionResponse,
)
from ..services.subscriptions import (
    get_event_ingestor,
    get_reconciliation_engine,
    get_subscription_config,
    get_subscription_service,
)
from ..subscriptions import (
    IgnoredNotification,
    IngestError,
    PlanTier,
    RecordNotFound,
    ReconcileStatus,
    StoreUnavailable,
    SubscriptionFilter,
    SubscriptionStatus,
)

try:  # pragma: no cover - resolve session helper when imported from FastAPI app
    from backend.app_context import get_current_user
except ModuleNotFoundError as exc:  # pragma: no cover
    if exc.name != "backend":
        raise
    from ...app_context import get_current_user  # type: ignore[no-redef]

logger = logging.getLogger(__name__)


_SESSION_COOKIE_NAME = os.getenv("SESSION_COOKIE_NAME", "session")


def _get_current_user(
    session_token: Optional[str] = Cookie(None, alias=_SESSION_COOKIE_NAME),
):
    return get_current_user(session_token=session_token)


def _require_admin(current_user=Depends(_get_current_user)):
    if getattr(current_user, "role", None) != "admin":
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin privileges required")
    return current_user


def _cors_headers() -> Dict[str, str]:
    config = get_subscription_config()
    return {
        "Access-Control-Allow-Origin": config.cors_allow_origin,
        "Access-Control-Allow-Headers": f"authorization, content-type, {config.signature_header}",
        "Access-Control-Allow-Methods": "POST, OPTIONS",
    }


router = APIRouter(prefix="/api/subscriptions", tags=["subscriptions"])


@router.options("/webhook")
def webhook_preflight() -> Response:
    return Response(status_code=status.HTTP_200_OK, headers=_cors_headers())


@router.post("/webhook")
async def receive_webhook(request: Request) -> JSONResponse:
    """Accept a signed billing notification and reconcile it.

    Any failure answers 400 so the processor redelivers; acknowledged
    notifications (applied, skipped or ignored) answer 200.
    """

    config = get_subscription_config()
    headers = _cors_headers()
    signature = request.headers.get(config.signature_header)
    if not signature:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No signature", headers=headers)

    payload = await request.body()
    try:
        ingestor = get_event_ingestor()
        outcome = await run_in_threadpool(ingestor.ingest, payload, signature)
        if isinstance(outcome, IgnoredNotification):
            error = None
        else:
            engine = get_reconciliation_engine()
            result = await run_in_threadpool(engine.apply, outcome)
            error = result.error if result.status == ReconcileStatus.FAILED else None
    except IngestError as exc:
        logger.warning("Rejected billing notification: %s", exc)
        error = exc
    except Exception as exc:
        logger.exception("Unexpected error while processing billing notification")
        error = exc

    if error is not None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Webhook error: {error}",
            headers=headers,
        )
    return JSONResponse({"received": True}, headers=headers)


@router.get("/access", response_model=AccessResponse)
def check_access(current_user=Depends(_get_current_user)) -> AccessResponse:
    service = get_subscription_service()
    decision = service.check_access(str(current_user.id))
    return AccessResponse.from_decision(decision)


@router.get("/payments", response_model=PaymentListResponse)
def list_payments(current_user=Depends(_get_current_user)) -> PaymentListResponse:
    service = get_subscription_service()
    records = service.payment_history(str(current_user.id))
    return PaymentListResponse(payments=[PaymentResponse.from_record(record) for record in records])


@router.get("/history", response_model=SubscriptionListResponse)
def list_history(
    limit: int = Query(20, ge=1, le=100),
    *,
    current_user=Depends(_get_current_user),
) -> SubscriptionListResponse:
    service = get_subscription_service()
    try:
        records = service.history(str(current_user.id), limit=limit)
    except StoreUnavailable as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    return SubscriptionListResponse(
        subscriptions=[SubscriptionResponse.from_subscription(record) for record in records]
    )


@router.post("", response_model=SubscriptionResponse)
def create_or_renew(
    payload: CreateSubscriptionRequest,
    *,
    current_user=Depends(_require_admin),
) -> SubscriptionResponse:
    service = get_subscription_service()
    try:
        subscription = service.create_or_renew(
            payload.owner_id,
            payload.plan_tier,
            billing_customer_ref=payload.billing_customer_ref,
            billing_subscription_ref=payload.billing_subscription_ref,
        )
    except StoreUnavailable as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except RecordNotFound as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    return SubscriptionResponse.from_subscription(subscription)


@router.get("", response_model=SubscriptionListResponse)
def list_subscriptions(
    owner_id: Optional[str] = Query(None, alias="ownerId"),
    subscription_status: Optional[SubscriptionStatus] = Query(None, alias="status"),
    plan_tier: Optional[PlanTier] = Query(None, alias="planTier"),
    limit: Optional[int] = Query(None, ge=1, le=500),
    *,
    current_user=Depends(_require_admin),
) -> SubscriptionListResponse:
    service = get_subscription_service()
    criteria = SubscriptionFilter(
        owner_id=owner_id,
        status=subscription_status,
        plan_tier=plan_tier,
        limit=limit,
    )
    try:
        records = service.list_all(criteria)
    except StoreUnavailable as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    return SubscriptionListResponse(
        subscriptions=[SubscriptionResponse.from_subscription(record) for record in records]
    )


@router.get("/stats", response_model=StatsResponse)
def subscription_stats(current_user=Depends(_require_admin)) -> StatsResponse:
    service = get_subscription_service()
    try:
        stats = service.compute_stats()
    except StoreUnavailable as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    return StatsResponse.from_stats(stats)


@router.patch("/{subscription_id}/status", status_code=status.HTTP_204_NO_CONTENT)
def update_status(
    subscription_id: str,
    payload: StatusUpdateRequest,
    *,
    current_user=Depends(_require_admin),
) -> Response:
    service = get_subscription_service()
    try:
        service.set_status(subscription_id, payload.status)
    except RecordNotFound as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except StoreUnavailable as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)


__all__ = ["router"]
