from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

import pytest

from gotohome.app.billing import (
    CallbackEvent,
    GatewayConfig,
    GatewaySigner,
    Order,
    OrderStatus,
    load_gateway_config,
)
from gotohome.app.entitlements import Entitlement

MERCHANT_ACCOUNT = "gotohome_com_ua"
SECRET_KEY = "test-secret-key"


class InMemoryBillingRepository:
    """Dict-backed stand-in for the PostgreSQL repository."""

    def __init__(self) -> None:
        self.orders: Dict[str, Order] = {}
        self.entitlements: Dict[str, Entitlement] = {}
        self.callback_keys: Set[Tuple[str, str, str]] = set()
        self.callback_events: List[CallbackEvent] = []
        self.entitlement_writes = 0

    def save_order(self, order: Order) -> Order:
        return self.orders.setdefault(order.order_reference, order)

    def update_order_status(
        self,
        order_reference: str,
        *,
        status: OrderStatus,
        transaction_status: str,
    ) -> Optional[Order]:
        order = self.orders.get(order_reference)
        if order is None:
            return None
        updated = order.model_copy(
            update={
                "status": status,
                "transaction_status": transaction_status,
                "updated_at": datetime.now(timezone.utc),
            }
        )
        self.orders[order_reference] = updated
        return updated

    def record_callback_event(self, event: CallbackEvent) -> bool:
        key = (event.order_reference, event.transaction_status, event.merchant_signature)
        if key in self.callback_keys:
            return False
        self.callback_keys.add(key)
        self.callback_events.append(event)
        return True

    def upsert_entitlement(self, entitlement: Entitlement) -> Entitlement:
        self.entitlements[entitlement.user_id] = entitlement
        self.entitlement_writes += 1
        return entitlement

    def get_entitlement(self, user_id: str) -> Optional[Entitlement]:
        return self.entitlements.get(user_id)


class FrozenClock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def gateway_config() -> GatewayConfig:
    return load_gateway_config({"WAYFORPAY_LOGIN": MERCHANT_ACCOUNT, "WAYFORPAY_KEY": SECRET_KEY})


@pytest.fixture
def signer() -> GatewaySigner:
    return GatewaySigner(SECRET_KEY)


@pytest.fixture
def signed_payload(signer: GatewaySigner) -> Callable[..., Dict[str, Any]]:
    """Factory for gateway callback bodies signed with the test key."""

    def build(**overrides: Any) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "merchantAccount": MERCHANT_ACCOUNT,
            "orderReference": "order_u123_30days_1700000000000",
            "amount": "299",
            "currency": "UAH",
            "authCode": "541963",
            "cardPan": "41****8217",
            "transactionStatus": "Approved",
            "reasonCode": "1100",
            "email": "buyer@example.com",
        }
        payload.update(overrides)
        payload["merchantSignature"] = signer.sign(
            [
                payload["merchantAccount"],
                payload["orderReference"],
                payload["amount"],
                payload["currency"],
                payload["authCode"],
                payload["cardPan"],
                payload["transactionStatus"],
                payload["reasonCode"],
            ]
        )
        return payload

    return build


@pytest.fixture
def repository() -> InMemoryBillingRepository:
    return InMemoryBillingRepository()


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(datetime(2024, 11, 5, 12, 0, tzinfo=timezone.utc))
