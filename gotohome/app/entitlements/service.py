"""Service responsible for computing entitlement payloads from stored plan state."""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, Optional, Protocol

from .catalog import PLAN_CATALOG, PlanCatalog
from .models import Entitlement, EntitlementPayload, PlanKey

logger = logging.getLogger("entitlements")


class EntitlementRepository(Protocol):
    """Data access layer for per-user entitlement rows."""

    def get_entitlement(self, user_id: str) -> Optional[Entitlement]:
        ...


def effective_plan(entitlement: Optional[Entitlement], now: datetime) -> PlanKey:
    """Return the plan a user holds at ``now``.

    Expiry is evaluated lazily on read: a row whose ``expires_at`` is at or
    before ``now`` yields :attr:`PlanKey.FREE` whatever plan is stored, and the
    row itself is never rewritten.
    """

    if entitlement is None:
        return PlanKey.FREE
    if entitlement.expires_at is not None and entitlement.expires_at <= now:
        return PlanKey.FREE
    return entitlement.plan


class EntitlementService:
    """Resolves the effective plan and feature flags for a user on every read."""

    def __init__(
        self,
        repository: EntitlementRepository,
        *,
        catalog: PlanCatalog = PLAN_CATALOG,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._repository = repository
        self._catalog = catalog
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def get_entitlements(self, user_id: str) -> EntitlementPayload:
        """Return entitlements for the given user.

        The store is consulted on each call; results must not be cached by
        callers beyond a single request.
        """

        now = self._clock()
        entitlement = self._repository.get_entitlement(user_id)
        plan = effective_plan(entitlement, now)
        stored_plan = entitlement.plan if entitlement else PlanKey.FREE
        is_expired = plan != stored_plan

        if is_expired:
            logger.debug(
                "Entitlement expired for user %s stored_plan=%s expires_at=%s",
                user_id,
                stored_plan.value,
                entitlement.expires_at if entitlement else None,
            )

        bundle = self._catalog.bundle_for(plan)
        return EntitlementPayload(
            user_id=user_id,
            plan=plan,
            stored_plan=stored_plan,
            expires_at=entitlement.expires_at if entitlement else None,
            is_expired=is_expired,
            feature_flags=bundle.to_flags(),
            generated_at=now,
        )
