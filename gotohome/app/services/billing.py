"""Application wiring for the payment and entitlement services."""
from __future__ import annotations

import logging
from functools import lru_cache

from ..billing import (
    CallbackReconciler,
    GatewayConfig,
    GatewaySigner,
    OrderBuilder,
    load_gateway_config,
    load_notifier_config,
)
from ..billing.repository import PostgresBillingRepository
from ..entitlements import PLAN_CATALOG, EntitlementService, PlanCatalog
from .notifications import SubscriptionNotifier, create_subscription_notifier

logger = logging.getLogger("billing")


@lru_cache(maxsize=1)
def get_gateway_config() -> GatewayConfig:
    return load_gateway_config()


def get_plan_catalog() -> PlanCatalog:
    return PLAN_CATALOG


@lru_cache(maxsize=1)
def get_billing_repository() -> PostgresBillingRepository:
    return PostgresBillingRepository()


@lru_cache(maxsize=1)
def get_order_builder() -> OrderBuilder:
    config = get_gateway_config()
    return OrderBuilder(
        config=config,
        catalog=get_plan_catalog(),
        signer=GatewaySigner(config.secret_key),
        repository=get_billing_repository(),
    )


@lru_cache(maxsize=1)
def get_callback_reconciler() -> CallbackReconciler:
    config = get_gateway_config()
    return CallbackReconciler(
        config=config,
        catalog=get_plan_catalog(),
        signer=GatewaySigner(config.secret_key),
        repository=get_billing_repository(),
    )


@lru_cache(maxsize=1)
def get_entitlement_service() -> EntitlementService:
    return EntitlementService(get_billing_repository(), catalog=get_plan_catalog())


@lru_cache(maxsize=1)
def get_subscription_notifier() -> SubscriptionNotifier:
    notifier = create_subscription_notifier(load_notifier_config())
    logger.info("Subscription notifier configured", extra=notifier.describe())
    return notifier


def validate_configuration() -> GatewayConfig:
    """Load gateway settings eagerly so that missing secrets stop startup."""

    config = get_gateway_config()
    GatewaySigner(config.secret_key)
    return config


__all__ = [
    "get_billing_repository",
    "get_callback_reconciler",
    "get_entitlement_service",
    "get_gateway_config",
    "get_order_builder",
    "get_plan_catalog",
    "get_subscription_notifier",
    "validate_configuration",
]
