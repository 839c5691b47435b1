from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from fastapi import HTTPException

from gotohome.app.entitlements import (
    PLAN_CATALOG,
    Entitlement,
    EntitlementPayload,
    EntitlementService,
    PlanKey,
)
from gotohome.app.feature_gates import (
    EntitlementContext,
    FeatureGateError,
    require_entitlement,
    require_feature,
)


def _payload(plan: PlanKey) -> EntitlementPayload:
    return EntitlementPayload(
        user_id="u1",
        plan=plan,
        stored_plan=plan,
        feature_flags=PLAN_CATALOG.bundle_for(plan).to_flags(),
    )


@pytest.fixture
def free_payload() -> EntitlementPayload:
    return _payload(PlanKey.FREE)


@pytest.fixture
def long_payload() -> EntitlementPayload:
    return _payload(PlanKey.TIER_LONG)


def test_require_entitlement_allows_enabled_flag(long_payload: EntitlementPayload) -> None:
    require_entitlement(long_payload.feature_flags, "saved.items")


def test_require_entitlement_raises_when_missing(free_payload: EntitlementPayload) -> None:
    with pytest.raises(FeatureGateError) as exc:
        require_entitlement(free_payload.feature_flags, "filters.advanced")

    assert exc.value.code == "entitlement_required"
    assert exc.value.status_code == 403
    assert exc.value.payload["missing_entitlement"] == "filters.advanced"
    assert exc.value.payload["upgradePath"] == "/subscription"


def test_entitlement_context_helpers(long_payload: EntitlementPayload) -> None:
    context = EntitlementContext(long_payload)

    assert context.plan == PlanKey.TIER_LONG
    assert context.has("bot.alerts") is True
    assert context.has("unknown.flag") is False
    context.require("contacts.visible")

    with pytest.raises(FeatureGateError):
        context.require("unknown.flag")


def test_unlimited_listings_only_for_paid_plans(free_payload, long_payload) -> None:
    assert EntitlementContext(free_payload).has("listings.limit") is False
    assert EntitlementContext(long_payload).has("listings.limit") is True

    with pytest.raises(FeatureGateError):
        EntitlementContext(free_payload).require("listings.limit")


def test_listing_limit_trims_for_free_plan(free_payload, long_payload) -> None:
    listings = list(range(25))

    assert EntitlementContext(free_payload).apply_listing_limit(listings) == list(range(10))
    assert EntitlementContext(long_payload).apply_listing_limit(listings) == listings


class _StaticRepository:
    def __init__(self, entitlement):
        self._entitlement = entitlement

    def get_entitlement(self, user_id):
        return self._entitlement


def test_require_feature_dependency_blocks_expired_subscription() -> None:
    now = datetime.now(timezone.utc)
    service = EntitlementService(
        _StaticRepository(
            Entitlement(user_id="u1", plan=PlanKey.TIER_LONG, expires_at=now - timedelta(seconds=1))
        )
    )
    dependency = require_feature("saved.items")

    with pytest.raises(HTTPException) as exc:
        dependency(user_id="u1", service=service)

    assert exc.value.status_code == 403
    assert exc.value.detail["missing_entitlement"] == "saved.items"


def test_require_feature_dependency_returns_context_for_active_plan() -> None:
    now = datetime.now(timezone.utc)
    service = EntitlementService(
        _StaticRepository(
            Entitlement(user_id="u1", plan=PlanKey.TIER_LONG, expires_at=now + timedelta(days=1))
        )
    )

    context = require_feature("saved.items")(user_id="u1", service=service)

    assert isinstance(context, EntitlementContext)
    assert context.plan == PlanKey.TIER_LONG
