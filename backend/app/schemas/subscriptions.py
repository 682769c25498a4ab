"""API schemas for subscription endpoints."""
from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from ..subscriptions import (
    EntitlementDecision,
    PaymentRecord,
    PlanTier,
    Subscription,
    SubscriptionStats,
    SubscriptionStatus,
)


class SubscriptionResponse(BaseModel):
    id: str
    owner_id: str = Field(alias="ownerId")
    plan_tier: PlanTier = Field(alias="planTier")
    status: SubscriptionStatus
    billing_customer_ref: Optional[str] = Field(alias="billingCustomerRef", default=None)
    billing_subscription_ref: Optional[str] = Field(alias="billingSubscriptionRef", default=None)
    period_start: datetime = Field(alias="periodStart")
    period_end: datetime = Field(alias="periodEnd")
    created_at: datetime = Field(alias="createdAt")
    updated_at: datetime = Field(alias="updatedAt")

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_subscription(cls, subscription: Subscription) -> "SubscriptionResponse":
        return cls(
            id=subscription.id,
            owner_id=subscription.owner_id,
            plan_tier=subscription.plan_tier,
            status=subscription.status,
            billing_customer_ref=subscription.billing_customer_ref,
            billing_subscription_ref=subscription.billing_subscription_ref,
            period_start=subscription.period_start,
            period_end=subscription.period_end,
            created_at=subscription.created_at,
            updated_at=subscription.updated_at,
        )


class SubscriptionListResponse(BaseModel):
    subscriptions: List[SubscriptionResponse]


class AccessResponse(BaseModel):
    has_access: bool = Field(alias="hasAccess")
    features: Dict[str, Union[int, bool]]
    days_remaining: int = Field(alias="daysRemaining")
    plan_tier: Optional[PlanTier] = Field(alias="planTier", default=None)
    status: Optional[SubscriptionStatus] = None

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_decision(cls, decision: EntitlementDecision) -> "AccessResponse":
        subscription = decision.subscription
        return cls(
            has_access=decision.has_access,
            features=decision.features.to_flags(),
            days_remaining=decision.days_remaining,
            plan_tier=subscription.plan_tier if subscription else None,
            status=subscription.status if subscription else None,
        )


class PaymentResponse(BaseModel):
    id: str
    amount: int
    status: str
    created: int
    period_start: int = Field(alias="periodStart")
    period_end: int = Field(alias="periodEnd")
    plan_tier: PlanTier = Field(alias="planTier")

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_record(cls, record: PaymentRecord) -> "PaymentResponse":
        return cls(
            id=record.id,
            amount=record.amount,
            status=record.status,
            created=record.created,
            period_start=record.period_start,
            period_end=record.period_end,
            plan_tier=record.plan_tier,
        )


class PaymentListResponse(BaseModel):
    payments: List[PaymentResponse]


class CreateSubscriptionRequest(BaseModel):
    owner_id: str = Field(alias="ownerId", min_length=1)
    plan_tier: PlanTier = Field(alias="planTier")
    billing_customer_ref: Optional[str] = Field(alias="billingCustomerRef", default=None)
    billing_subscription_ref: Optional[str] = Field(alias="billingSubscriptionRef", default=None)

    model_config = ConfigDict(populate_by_name=True)


class StatusUpdateRequest(BaseModel):
    status: SubscriptionStatus


class StatsResponse(BaseModel):
    total: int
    active: int
    trial: int
    paid: int
    revenue_estimate: float = Field(alias="revenueEstimate")
    churn_rate: float = Field(alias="churnRate")

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_stats(cls, stats: SubscriptionStats) -> "StatsResponse":
        return cls(
            total=stats.total,
            active=stats.active,
            trial=stats.trial,
            paid=stats.paid,
            revenue_estimate=stats.revenue_estimate,
            churn_rate=stats.churn_rate,
        )


class WebhookAck(BaseModel):
    received: bool = True


__all__ = [
    "AccessResponse",
    "CreateSubscriptionRequest",
    "PaymentListResponse",
    "PaymentResponse",
    "StatsResponse",
    "StatusUpdateRequest",
    "SubscriptionListResponse",
    "SubscriptionResponse",
    "WebhookAck",
]
