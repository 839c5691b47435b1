"""Verifies gateway callbacks and applies the resulting entitlement transition.

Callback state machine, per order reference::

    received -> verified -> entitlement_applied | no_change
             \\-> rejected

Only a verified ``Approved`` delivery writes to the entitlement store. Rejected
deliveries still get a signed ``accept`` so the gateway stops retrying a
request that can never succeed; only storage failures escape to the caller so
that the gateway redelivers.
"""
from __future__ import annotations

import json
import logging
from datetime import datetime, timedelta, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, Optional, Protocol
from urllib import parse as urllib_parse

from ..entitlements.catalog import PlanCatalog, PlanDefinition
from ..entitlements.models import Entitlement
from .config import GatewayConfig
from .errors import AuthenticationFailure, BillingError, MalformedRequest, StorageFailure
from .models import (
    ACCEPT_STATUS,
    CallbackAcknowledgment,
    CallbackEvent,
    Order,
    OrderReference,
    OrderStatus,
    ReconciliationOutcome,
    ReconciliationResult,
    SubscriptionActivation,
)
from .signature import GatewaySigner

logger = logging.getLogger("billing.callbacks")


class ReconciliationRepository(Protocol):
    """Persistence operations required by the callback reconciler."""

    def update_order_status(
        self,
        order_reference: str,
        *,
        status: OrderStatus,
        transaction_status: str,
    ) -> Optional[Order]:
        ...

    def record_callback_event(self, event: CallbackEvent) -> bool:
        ...

    def upsert_entitlement(self, entitlement: Entitlement) -> Entitlement:
        ...


def parse_callback_body(raw: bytes) -> Dict[str, Any]:
    """Decode a callback body.

    The gateway posts a JSON document, sometimes with a form content type so
    that the whole document shows up as the single form key.
    """

    try:
        text = raw.decode("utf-8").strip()
    except UnicodeDecodeError as exc:
        raise MalformedRequest("callback body is not valid UTF-8") from exc
    if not text:
        raise MalformedRequest("callback body is empty")

    try:
        payload = json.loads(text, parse_float=Decimal)
    except json.JSONDecodeError:
        form = urllib_parse.parse_qs(text, keep_blank_values=True)
        if len(form) == 1:
            (key, values), = form.items()
            if not any(values):
                try:
                    payload = json.loads(key, parse_float=Decimal)
                except json.JSONDecodeError as exc:
                    raise MalformedRequest("callback body is not JSON") from exc
            else:
                payload = {key: values[-1]}
        elif form:
            payload = {key: values[-1] for key, values in form.items()}
        else:
            raise MalformedRequest("callback body is not JSON")

    if not isinstance(payload, dict):
        raise MalformedRequest("callback body must be a JSON object")
    return payload


class CallbackReconciler:
    """Authenticates callbacks and reconciles entitlement state."""

    def __init__(
        self,
        *,
        config: GatewayConfig,
        catalog: PlanCatalog,
        signer: GatewaySigner,
        repository: ReconciliationRepository,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._config = config
        self._catalog = catalog
        self._signer = signer
        self._repository = repository
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def acknowledge(self, order_reference: str) -> CallbackAcknowledgment:
        """Signed ``accept`` answer for ``order_reference``."""

        timestamp = int(self._clock().timestamp())
        signature = self._signer.sign([order_reference, ACCEPT_STATUS, timestamp])
        return CallbackAcknowledgment(
            order_reference=order_reference,
            status=ACCEPT_STATUS,
            time=timestamp,
            signature=signature,
        )

    def reject(self, order_reference: str, error: BillingError) -> ReconciliationResult:
        """Acknowledge a delivery that will never succeed, without any mutation."""

        return ReconciliationResult(
            outcome=ReconciliationOutcome.REJECTED,
            acknowledgment=self.acknowledge(order_reference),
            order_reference=order_reference,
            error_code=error.code,
        )

    def reconcile(self, event: CallbackEvent) -> ReconciliationResult:
        """Process one delivery.

        Raises :class:`~gotohome.app.billing.errors.StorageFailure` when an
        approval cannot be written. Audit writes for other statuses are logged
        and acknowledged; every other failure is reported through a
        ``rejected`` result.
        """

        try:
            self._authenticate(event)
            reference = OrderReference.parse(event.order_reference)
            plan = self._catalog.get(reference.plan_id)
            if plan is None:
                raise MalformedRequest(f"Unknown plan: {reference.plan_id}")
            if event.is_approved:
                self._check_amount(event, plan)
        except AuthenticationFailure as exc:
            logger.error(
                "Rejected unauthenticated payment callback: %s",
                exc.message,
                extra={
                    "order_reference": event.order_reference,
                    "merchant_account": event.merchant_account,
                    "transaction_status": event.transaction_status,
                },
            )
            return self.reject(event.order_reference, exc)
        except MalformedRequest as exc:
            logger.warning(
                "Rejected malformed payment callback: %s",
                exc.message,
                extra={"order_reference": event.order_reference},
            )
            return self.reject(event.order_reference, exc)

        if not event.is_approved:
            try:
                self._update_order(event)
                self._repository.record_callback_event(event)
            except StorageFailure:
                logger.exception(
                    "Could not record %s callback, acknowledging without audit trail",
                    event.transaction_status,
                    extra={"order_reference": event.order_reference},
                )
            else:
                logger.info(
                    "Callback %s status=%s, entitlement unchanged",
                    event.order_reference,
                    event.transaction_status,
                )
            return ReconciliationResult(
                outcome=ReconciliationOutcome.NO_CHANGE,
                acknowledgment=self.acknowledge(event.order_reference),
                order_reference=event.order_reference,
            )

        self._update_order(event)
        now = self._clock()
        expires_at = now + timedelta(days=plan.duration_days)
        stored = self._repository.upsert_entitlement(
            Entitlement(
                user_id=reference.user_id,
                plan=plan.key,
                expires_at=expires_at,
                updated_at=now,
            )
        )
        fresh = self._repository.record_callback_event(event)
        logger.info(
            "Subscription updated for user %s to %s until %s",
            stored.user_id,
            stored.plan.value,
            stored.expires_at.isoformat() if stored.expires_at else None,
            extra={"order_reference": event.order_reference, "duplicate": not fresh},
        )

        activation = None
        if fresh:
            email = event.payload.get("email") or event.payload.get("clientEmail")
            activation = SubscriptionActivation(
                user_id=reference.user_id,
                order_reference=event.order_reference,
                plan_key=plan.key,
                product_name=plan.product_name,
                price=plan.price,
                currency=self._config.currency,
                duration_days=plan.duration_days,
                expires_at=expires_at,
                client_email=str(email) if email else None,
            )

        return ReconciliationResult(
            outcome=ReconciliationOutcome.ENTITLEMENT_APPLIED,
            acknowledgment=self.acknowledge(event.order_reference),
            order_reference=event.order_reference,
            duplicate=not fresh,
            activation=activation,
        )

    def _update_order(self, event: CallbackEvent) -> None:
        order = self._repository.update_order_status(
            event.order_reference,
            status=OrderStatus.from_transaction(event.transaction_status),
            transaction_status=event.transaction_status,
        )
        if order is None:
            logger.warning(
                "Callback for an order that was not recorded locally: %s",
                event.order_reference,
            )

    def _authenticate(self, event: CallbackEvent) -> None:
        if event.merchant_account != self._config.merchant_account:
            raise AuthenticationFailure("merchant account does not match configuration")
        if not self._signer.verify(event.signature_fields(), event.merchant_signature):
            raise AuthenticationFailure("merchant signature mismatch")

    def _check_amount(self, event: CallbackEvent, plan: PlanDefinition) -> None:
        try:
            amount = Decimal(event.amount)
        except InvalidOperation as exc:
            raise AuthenticationFailure(f"unreadable amount {event.amount!r}") from exc
        if amount != Decimal(plan.price) or event.currency.upper() != self._config.currency:
            raise AuthenticationFailure(
                f"paid {event.amount} {event.currency} does not match plan price "
                f"{plan.price} {self._config.currency}"
            )


__all__ = ["CallbackReconciler", "ReconciliationRepository", "parse_callback_body"]
