"""Static catalog definitions for subscription plans."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterator, Optional, Tuple

from .models import FeatureBundle, PlanKey, RecurringMode


@dataclass(frozen=True)
class PlanDefinition:
    """Describes a purchasable plan and its entitlement mapping.

    ``plan_id`` is the identifier used on the wire (payment forms and order
    references), ``key`` is the value persisted on the entitlement row.
    """

    plan_id: str
    key: PlanKey
    product_name: str
    price: int
    duration_days: int
    bundle: FeatureBundle
    recurring: bool = False
    recurring_mode: Optional[RecurringMode] = None
    recurring_count: int = 0

    @property
    def purchasable(self) -> bool:
        return self.price > 0 and self.duration_days > 0


FREE_BUNDLE = FeatureBundle(
    listing_limit=10,
    filters_advanced=False,
    contacts_visible=False,
    saved_items=False,
    bot_alerts=False,
)

SHORT_TIER_BUNDLE = FeatureBundle(
    listing_limit=None,
    filters_advanced=True,
    contacts_visible=True,
    saved_items=False,
    bot_alerts=False,
)

LONG_TIER_BUNDLE = FeatureBundle(
    listing_limit=None,
    filters_advanced=True,
    contacts_visible=True,
    saved_items=True,
    bot_alerts=True,
)


@dataclass(frozen=True)
class PlanCatalog:
    """Immutable, versioned plan table shared by order building and reconciliation."""

    version: str
    plans: Tuple[PlanDefinition, ...]
    free_bundle: FeatureBundle = FREE_BUNDLE
    _by_id: Dict[str, PlanDefinition] = field(init=False, repr=False, compare=False)
    _by_key: Dict[PlanKey, PlanDefinition] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "_by_id", {plan.plan_id: plan for plan in self.plans})
        object.__setattr__(self, "_by_key", {plan.key: plan for plan in self.plans})

    def __iter__(self) -> Iterator[PlanDefinition]:
        return iter(self.plans)

    def get(self, plan_id: str) -> Optional[PlanDefinition]:
        """Return the purchasable plan for a wire identifier, if any."""

        plan = self._by_id.get(plan_id)
        if plan is None or not plan.purchasable:
            return None
        return plan

    def bundle_for(self, plan_key: PlanKey) -> FeatureBundle:
        if plan_key == PlanKey.FREE:
            return self.free_bundle
        try:
            return self._by_key[plan_key].bundle
        except KeyError as exc:
            raise KeyError(f"Unknown plan key: {plan_key}") from exc


PLAN_CATALOG = PlanCatalog(
    version="2024-11",
    plans=(
        PlanDefinition(
            plan_id="10days",
            key=PlanKey.TIER_SHORT,
            product_name="GoToHome Smart - 10 днів",
            price=199,
            duration_days=10,
            bundle=SHORT_TIER_BUNDLE,
        ),
        PlanDefinition(
            plan_id="30days",
            key=PlanKey.TIER_LONG,
            product_name="GoToHome Pro - 30 днів",
            price=299,
            duration_days=30,
            bundle=LONG_TIER_BUNDLE,
            recurring=True,
            recurring_mode=RecurringMode.MONTHLY,
            recurring_count=12,
        ),
    ),
)
