"""Feature gating utilities coordinating entitlement enforcement."""
from .context import EntitlementContext
from .enforcement import require_entitlement, require_feature
from .exceptions import FeatureGateError

__all__ = [
    "EntitlementContext",
    "FeatureGateError",
    "require_entitlement",
    "require_feature",
]
