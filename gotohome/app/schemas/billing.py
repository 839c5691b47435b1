"""API schemas for payment and entitlement endpoints."""
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..billing import PaymentRequest
from ..entitlements import EntitlementPayload, PlanCatalog, PlanKey


class BuildPaymentRequest(BaseModel):
    plan_id: str = Field(alias="planId", min_length=1, max_length=32)
    user_id: str = Field(alias="userId", min_length=1, max_length=128)
    user_email: Optional[str] = Field(alias="userEmail", default=None, max_length=320)
    return_domain: Optional[str] = Field(alias="returnDomain", default=None)

    model_config = ConfigDict(populate_by_name=True)


class BuildPaymentResponse(BaseModel):
    payment_data: Dict[str, Any] = Field(alias="paymentData")
    order_id: str = Field(alias="orderId")
    is_recurring: bool = Field(alias="isRecurring")

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_payment(cls, payment: PaymentRequest) -> "BuildPaymentResponse":
        return cls(
            payment_data=payment.form_fields,
            order_id=payment.order.order_reference,
            is_recurring=payment.is_recurring,
        )


class PlanOut(BaseModel):
    id: str
    plan: PlanKey
    name: str
    price: int
    currency: str
    duration_days: int = Field(alias="durationDays")
    recurring: bool

    model_config = ConfigDict(populate_by_name=True)


class PlanListResponse(BaseModel):
    version: str
    plans: List[PlanOut]

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_catalog(cls, catalog: PlanCatalog, currency: str) -> "PlanListResponse":
        return cls(
            version=catalog.version,
            plans=[
                PlanOut(
                    id=plan.plan_id,
                    plan=plan.key,
                    name=plan.product_name,
                    price=plan.price,
                    currency=currency,
                    duration_days=plan.duration_days,
                    recurring=plan.recurring,
                )
                for plan in catalog
                if plan.purchasable
            ],
        )


class EntitlementResponse(BaseModel):
    user_id: str = Field(alias="userId")
    plan: PlanKey
    expires_at: Optional[datetime] = Field(alias="expiresAt", default=None)
    is_expired: bool = Field(alias="isExpired")
    feature_flags: Dict[str, Optional[int] | bool] = Field(alias="featureFlags")

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_payload(cls, payload: EntitlementPayload) -> "EntitlementResponse":
        return cls(
            user_id=payload.user_id,
            plan=payload.plan,
            expires_at=payload.expires_at,
            is_expired=payload.is_expired,
            feature_flags=dict(payload.feature_flags),
        )
