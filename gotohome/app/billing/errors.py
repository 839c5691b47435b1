"""Error taxonomy for payment building and callback reconciliation."""
from __future__ import annotations


class BillingError(Exception):
    """Base class for billing failures carrying a stable error code."""

    code = "billing_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ConfigurationError(BillingError):
    """Required gateway configuration is missing. Fatal at startup."""

    code = "configuration_error"


class MalformedRequest(BillingError):
    """The request or order reference cannot be interpreted."""

    code = "malformed_request"


class AuthenticationFailure(BillingError):
    """Merchant identity, signature or amount does not match."""

    code = "authentication_failure"


class StorageFailure(BillingError):
    """Persisting billing state failed; the operation may be retried."""

    code = "storage_failure"


class DownstreamNotificationFailure(BillingError):
    """A best-effort notification could not be delivered."""

    code = "notification_failure"


__all__ = [
    "AuthenticationFailure",
    "BillingError",
    "ConfigurationError",
    "DownstreamNotificationFailure",
    "MalformedRequest",
    "StorageFailure",
]
