"""Domain models for the payment gateway integration."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..entitlements.models import PlanKey
from .errors import MalformedRequest

ORDER_REFERENCE_PREFIX = "order"
ORDER_REFERENCE_DELIMITER = "_"
ACCEPT_STATUS = "accept"


def _jsonable(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, dict):
        return {str(key): _jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(item) for item in value]
    return value


class TransactionStatus(str, Enum):
    """Transaction states reported by the gateway."""

    APPROVED = "Approved"
    DECLINED = "Declined"
    PENDING = "Pending"
    IN_PROCESSING = "InProcessing"
    WAITING_AUTH_COMPLETE = "WaitingAuthComplete"
    EXPIRED = "Expired"
    REFUNDED = "Refunded"
    REFUND_IN_PROCESSING = "RefundInProcessing"
    VOIDED = "Voided"


class OrderStatus(str, Enum):
    """Lifecycle status for a locally recorded order."""

    PENDING = "pending"
    APPROVED = "approved"
    DECLINED = "declined"
    REFUNDED = "refunded"
    EXPIRED = "expired"

    @classmethod
    def from_transaction(cls, status: str) -> "OrderStatus":
        mapping = {
            TransactionStatus.APPROVED.value: cls.APPROVED,
            TransactionStatus.DECLINED.value: cls.DECLINED,
            TransactionStatus.REFUNDED.value: cls.REFUNDED,
            TransactionStatus.VOIDED.value: cls.REFUNDED,
            TransactionStatus.EXPIRED.value: cls.EXPIRED,
        }
        return mapping.get(status, cls.PENDING)


@dataclass(frozen=True)
class OrderReference:
    """Parsed form of the ``order_{userId}_{planId}_{unixMillis}`` wire identifier."""

    user_id: str
    plan_id: str
    created_millis: int

    def __str__(self) -> str:
        return ORDER_REFERENCE_DELIMITER.join(
            (ORDER_REFERENCE_PREFIX, self.user_id, self.plan_id, str(self.created_millis))
        )

    @classmethod
    def parse(cls, raw: Optional[str]) -> "OrderReference":
        if not raw or not isinstance(raw, str):
            raise MalformedRequest("order reference is missing")
        parts = raw.split(ORDER_REFERENCE_DELIMITER)
        if len(parts) < 4 or parts[0] != ORDER_REFERENCE_PREFIX:
            raise MalformedRequest(f"invalid order reference format: {raw!r}")
        user_id, plan_id = parts[1], parts[2]
        if not user_id or not plan_id:
            raise MalformedRequest(f"invalid order reference format: {raw!r}")
        if not (parts[3].isascii() and parts[3].isdigit()):
            raise MalformedRequest(f"invalid order timestamp: {raw!r}")
        created_millis = int(parts[3])
        return cls(user_id=user_id, plan_id=plan_id, created_millis=created_millis)


class Order(BaseModel):
    """A single payment attempt created when the user confirms a plan."""

    order_reference: str
    user_id: str
    plan_id: str
    plan_key: PlanKey
    amount: int = Field(ge=0)
    currency: str = Field(min_length=3, max_length=3)
    status: OrderStatus = OrderStatus.PENDING
    transaction_status: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    @field_validator("currency")
    @classmethod
    def _upper_currency(cls, value: str) -> str:
        return value.upper()


class PaymentRequest(BaseModel):
    """Signed form fields the client submits to the hosted payment page."""

    order: Order
    form_fields: Dict[str, Any]
    is_recurring: bool = False

    model_config = ConfigDict(frozen=True)


class CallbackEvent(BaseModel):
    """Normalized gateway callback. Every field is untrusted until verified."""

    merchant_account: str = ""
    order_reference: str = ""
    amount: str = ""
    currency: str = ""
    auth_code: str = ""
    card_pan: str = ""
    transaction_status: str = ""
    reason_code: str = ""
    merchant_signature: str = ""
    payload: Dict[str, Any] = Field(default_factory=dict)
    received_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(frozen=True)

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "CallbackEvent":
        def text(key: str) -> str:
            value = payload.get(key)
            return "" if value is None else str(value)

        return cls(
            merchant_account=text("merchantAccount"),
            order_reference=text("orderReference"),
            amount=text("amount"),
            currency=text("currency"),
            auth_code=text("authCode"),
            card_pan=text("cardPan"),
            transaction_status=text("transactionStatus"),
            reason_code=text("reasonCode"),
            merchant_signature=text("merchantSignature"),
            payload=_jsonable(payload),
        )

    def signature_fields(self) -> List[str]:
        """Ordered fields the gateway signs on callbacks."""

        return [
            self.merchant_account,
            self.order_reference,
            self.amount,
            self.currency,
            self.auth_code,
            self.card_pan,
            self.transaction_status,
            self.reason_code,
        ]

    @property
    def is_approved(self) -> bool:
        return self.transaction_status == TransactionStatus.APPROVED.value


class CallbackAcknowledgment(BaseModel):
    """Signed ``accept`` answer that stops gateway redelivery."""

    order_reference: str = Field(alias="orderReference")
    status: str = ACCEPT_STATUS
    time: int
    signature: str

    model_config = ConfigDict(populate_by_name=True, frozen=True)


class ReconciliationOutcome(str, Enum):
    """Terminal states of the callback state machine."""

    ENTITLEMENT_APPLIED = "entitlement_applied"
    NO_CHANGE = "no_change"
    REJECTED = "rejected"


class SubscriptionActivation(BaseModel):
    """Event broadcast to operators after a paid plan becomes active."""

    user_id: str
    order_reference: str
    plan_key: PlanKey
    product_name: str
    price: int
    currency: str
    duration_days: int
    expires_at: datetime
    client_email: Optional[str] = None

    model_config = ConfigDict(frozen=True)


class ReconciliationResult(BaseModel):
    """Outcome of processing one callback delivery."""

    outcome: ReconciliationOutcome
    acknowledgment: CallbackAcknowledgment
    order_reference: str
    error_code: Optional[str] = None
    duplicate: bool = False
    activation: Optional[SubscriptionActivation] = None

    model_config = ConfigDict(frozen=True)


__all__ = [
    "ACCEPT_STATUS",
    "CallbackAcknowledgment",
    "CallbackEvent",
    "Order",
    "OrderReference",
    "OrderStatus",
    "PaymentRequest",
    "ReconciliationOutcome",
    "ReconciliationResult",
    "SubscriptionActivation",
    "TransactionStatus",
]
