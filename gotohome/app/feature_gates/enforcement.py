"""Gate checks applied by routes that consume entitlement flags."""
from __future__ import annotations

from typing import Callable, Mapping, Optional

from fastapi import Depends

from ..entitlements import EntitlementService
from ..services.billing import get_entitlement_service
from .exceptions import FeatureGateError

LISTING_LIMIT_FLAG = "listings.limit"


def is_granted(feature_flags: Mapping[str, object], flag: str) -> bool:
    """Boolean flags must be ``True``; the listing limit only when unlimited."""

    if flag not in feature_flags:
        return False
    value = feature_flags[flag]
    if flag == LISTING_LIMIT_FLAG:
        return value is None
    return value is True


def require_entitlement(
    feature_flags: Mapping[str, object],
    flag: str,
    *,
    error_code: str = "entitlement_required",
    message: Optional[str] = None,
) -> None:
    """Raise :class:`FeatureGateError` unless ``flag`` is granted by the plan."""

    if is_granted(feature_flags, flag):
        return
    raise FeatureGateError(
        code=error_code,
        message=message or f"Your plan does not include '{flag}'.",
        detail={"missing_entitlement": flag},
    )


def require_feature(flag: str) -> Callable[..., object]:
    """Build a FastAPI dependency that gates a route on ``flag``.

    The route must expose a ``user_id`` path or query parameter. The
    entitlement is resolved from the store on every request.
    """

    from .context import EntitlementContext

    def dependency(
        user_id: str,
        service: EntitlementService = Depends(get_entitlement_service),
    ) -> EntitlementContext:
        context = EntitlementContext(service.get_entitlements(user_id))
        try:
            context.require(flag)
        except FeatureGateError as exc:
            raise exc.to_http_exception() from exc
        return context

    return dependency
