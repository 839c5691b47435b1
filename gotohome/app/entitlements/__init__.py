"""Entitlements domain models and services."""

from .catalog import PLAN_CATALOG, PlanCatalog, PlanDefinition
from .models import (
    Entitlement,
    EntitlementPayload,
    FeatureBundle,
    PlanKey,
    RecurringMode,
)
from .service import EntitlementRepository, EntitlementService, effective_plan

__all__ = [
    "PLAN_CATALOG",
    "PlanCatalog",
    "PlanDefinition",
    "Entitlement",
    "EntitlementPayload",
    "FeatureBundle",
    "PlanKey",
    "RecurringMode",
    "EntitlementRepository",
    "EntitlementService",
    "effective_plan",
]
