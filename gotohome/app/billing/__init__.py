"""Billing domain package: signed payment requests and callback reconciliation."""

from .config import GatewayConfig, NotifierConfig, load_gateway_config, load_notifier_config
from .errors import (
    AuthenticationFailure,
    BillingError,
    ConfigurationError,
    DownstreamNotificationFailure,
    MalformedRequest,
    StorageFailure,
)
from .models import (
    CallbackAcknowledgment,
    CallbackEvent,
    Order,
    OrderReference,
    OrderStatus,
    PaymentRequest,
    ReconciliationOutcome,
    ReconciliationResult,
    SubscriptionActivation,
    TransactionStatus,
)
from .orders import OrderBuilder, OrderRepository
from .reconciler import CallbackReconciler, ReconciliationRepository, parse_callback_body
from .signature import GatewaySigner

__all__ = [
    "AuthenticationFailure",
    "BillingError",
    "CallbackAcknowledgment",
    "CallbackEvent",
    "CallbackReconciler",
    "ConfigurationError",
    "DownstreamNotificationFailure",
    "GatewayConfig",
    "GatewaySigner",
    "MalformedRequest",
    "NotifierConfig",
    "Order",
    "OrderBuilder",
    "OrderReference",
    "OrderRepository",
    "OrderStatus",
    "PaymentRequest",
    "ReconciliationOutcome",
    "ReconciliationRepository",
    "ReconciliationResult",
    "StorageFailure",
    "SubscriptionActivation",
    "TransactionStatus",
    "load_gateway_config",
    "load_notifier_config",
    "parse_callback_body",
]
