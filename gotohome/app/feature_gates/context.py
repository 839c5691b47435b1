"""Convenience wrapper around entitlement payloads for feature gating."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, TypeVar, Union

from ..entitlements import EntitlementPayload, PlanKey
from .enforcement import is_granted, require_entitlement

T = TypeVar("T")


@dataclass(frozen=True)
class EntitlementContext:
    """Facade exposing gating-centric helpers for a user's entitlements.

    Build one per request from a freshly resolved payload.
    """

    payload: EntitlementPayload

    @property
    def feature_flags(self) -> Dict[str, Union[Optional[int], bool]]:
        return dict(self.payload.feature_flags)

    @property
    def plan(self) -> PlanKey:
        return self.payload.plan

    @property
    def listing_limit(self) -> Optional[int]:
        return self.payload.listing_limit

    def has(self, flag: str) -> bool:
        """Return whether the current plan grants ``flag``."""

        return is_granted(self.payload.feature_flags, flag)

    def require(self, flag: str, *, error_code: str = "entitlement_required") -> None:
        """Raise :class:`FeatureGateError` unless ``flag`` is granted."""

        require_entitlement(self.payload.feature_flags, flag, error_code=error_code)

    def apply_listing_limit(self, listings: Sequence[T]) -> List[T]:
        """Trim ``listings`` to the number the plan may see."""

        limit = self.listing_limit
        if limit is None:
            return list(listings)
        return list(listings[: max(limit, 0)])
