"""Domain models for entitlements and plan computation."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class PlanKey(str, Enum):
    """Canonical identifiers for subscription plans as stored per user."""

    FREE = "free"
    TIER_SHORT = "plan_10_days"
    TIER_LONG = "plan_30_days"


class RecurringMode(str, Enum):
    """Recurrence frequencies understood by the payment gateway."""

    MONTHLY = "monthly"


@dataclass(frozen=True)
class FeatureBundle:
    """Represents a normalized set of entitlement feature flags."""

    listing_limit: Optional[int] = 10
    filters_advanced: bool = False
    contacts_visible: bool = False
    saved_items: bool = False
    bot_alerts: bool = False

    def to_flags(self) -> Dict[str, Optional[int] | bool]:
        """Serialize bundle to flattened flag keys."""

        return {
            "listings.limit": self.listing_limit,
            "filters.advanced": self.filters_advanced,
            "contacts.visible": self.contacts_visible,
            "saved.items": self.saved_items,
            "bot.alerts": self.bot_alerts,
        }


class Entitlement(BaseModel):
    """Stored per-user plan row. ``expires_at`` is ``None`` for free users."""

    user_id: str
    plan: PlanKey
    expires_at: Optional[datetime] = None
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(frozen=True)

    @field_validator("expires_at", "updated_at")
    @classmethod
    def _ensure_aware(cls, value: Optional[datetime]) -> Optional[datetime]:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


class EntitlementPayload(BaseModel):
    """Computed entitlement payload returned to feature consumers."""

    user_id: str
    plan: PlanKey
    stored_plan: PlanKey
    expires_at: Optional[datetime] = None
    is_expired: bool = False
    feature_flags: Dict[str, Optional[int] | bool]
    generated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(frozen=True)

    @property
    def is_paid(self) -> bool:
        return self.plan != PlanKey.FREE

    @property
    def listing_limit(self) -> Optional[int]:
        value = self.feature_flags.get("listings.limit")
        return None if value is None else int(value)
