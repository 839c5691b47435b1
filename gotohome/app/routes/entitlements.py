"""Read-only entitlement endpoint for feature consumers (filters, saved items, bot)."""
from __future__ import annotations

from fastapi import APIRouter, Depends

from ..entitlements import EntitlementService
from ..schemas.billing import EntitlementResponse
from ..services.billing import get_entitlement_service

router = APIRouter(prefix="/api/entitlements", tags=["entitlements"])


@router.get("/{user_id}", response_model=EntitlementResponse)
def read_entitlements(
    user_id: str,
    service: EntitlementService = Depends(get_entitlement_service),
) -> EntitlementResponse:
    return EntitlementResponse.from_payload(service.get_entitlements(user_id))
