"""Builds signed payment requests for the hosted payment page."""
from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional, Protocol

from ..entitlements.catalog import PlanCatalog, PlanDefinition
from .config import GatewayConfig
from .errors import MalformedRequest
from .models import ORDER_REFERENCE_DELIMITER, Order, OrderReference, OrderStatus, PaymentRequest
from .redirects import build_return_url, resolve_allowed_origin
from .signature import GatewaySigner

logger = logging.getLogger("billing")

PRODUCT_COUNT = 1
MERCHANT_AUTH_TYPE = "SimpleSignature"


class OrderRepository(Protocol):
    """Persistence operations required by the order builder."""

    def save_order(self, order: Order) -> Order:
        ...


class OrderBuilder:
    """Turns a plan selection into a signed gateway form.

    Prices and durations come from the injected catalog only; the client
    contributes nothing beyond the plan identifier it picked.
    """

    def __init__(
        self,
        *,
        config: GatewayConfig,
        catalog: PlanCatalog,
        signer: GatewaySigner,
        repository: OrderRepository,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._config = config
        self._catalog = catalog
        self._signer = signer
        self._repository = repository
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def build_payment(
        self,
        *,
        plan_id: str,
        user_id: str,
        user_email: Optional[str],
        return_domain: Optional[str] = None,
    ) -> PaymentRequest:
        plan = self._catalog.get(plan_id)
        if plan is None:
            raise MalformedRequest("Invalid plan")

        user_id = (user_id or "").strip()
        if not user_id or ORDER_REFERENCE_DELIMITER in user_id:
            raise MalformedRequest("Invalid user id")

        now = self._clock()
        created_millis = int(now.timestamp() * 1000)
        order_date = int(now.timestamp())
        reference = str(
            OrderReference(user_id=user_id, plan_id=plan.plan_id, created_millis=created_millis)
        )

        signature = self._signer.sign(
            [
                self._config.merchant_account,
                self._config.merchant_domain,
                reference,
                order_date,
                plan.price,
                self._config.currency,
                plan.product_name,
                PRODUCT_COUNT,
                plan.price,
            ]
        )

        origin = resolve_allowed_origin(return_domain, self._config)
        form_fields: Dict[str, Any] = {
            "merchantAccount": self._config.merchant_account,
            "merchantAuthType": MERCHANT_AUTH_TYPE,
            "merchantDomainName": self._config.merchant_domain,
            "merchantSignature": signature,
            "orderReference": reference,
            "orderDate": order_date,
            "amount": plan.price,
            "currency": self._config.currency,
            "productName": [plan.product_name],
            "productPrice": [plan.price],
            "productCount": [PRODUCT_COUNT],
            "returnUrl": build_return_url(self._config, origin),
            "serviceUrl": self._config.service_url,
            "language": self._config.language,
        }
        if user_email:
            form_fields["clientEmail"] = user_email
        if plan.recurring:
            form_fields.update(self._recurring_fields(plan, now))

        order = self._repository.save_order(
            Order(
                order_reference=reference,
                user_id=user_id,
                plan_id=plan.plan_id,
                plan_key=plan.key,
                amount=plan.price,
                currency=self._config.currency,
                status=OrderStatus.PENDING,
                created_at=now,
                updated_at=now,
            )
        )
        logger.info(
            "Payment request built order=%s plan=%s amount=%s %s recurring=%s",
            reference,
            plan.plan_id,
            plan.price,
            self._config.currency,
            plan.recurring,
        )
        return PaymentRequest(order=order, form_fields=form_fields, is_recurring=plan.recurring)

    def _recurring_fields(self, plan: PlanDefinition, now: datetime) -> Dict[str, Any]:
        first_charge = now + timedelta(days=plan.duration_days)
        return {
            "regularMode": plan.recurring_mode.value if plan.recurring_mode else "monthly",
            "regularAmount": plan.price,
            "dateNext": first_charge.strftime("%d.%m.%Y"),
            "regularCount": plan.recurring_count,
            "regularOn": 1,
        }


__all__ = ["MERCHANT_AUTH_TYPE", "OrderBuilder", "OrderRepository", "PRODUCT_COUNT"]
