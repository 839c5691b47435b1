"""API routes exposing payment building, gateway callbacks and the return redirect."""
from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, HTTPException, Query, Request, status
from fastapi.responses import HTMLResponse, JSONResponse
from starlette.concurrency import run_in_threadpool

from ..billing import CallbackEvent, MalformedRequest, StorageFailure, parse_callback_body
from ..billing.redirects import render_redirect_page, resolve_allowed_origin
from ..schemas.billing import BuildPaymentRequest, BuildPaymentResponse, PlanListResponse
from ..services.billing import (
    get_callback_reconciler,
    get_gateway_config,
    get_order_builder,
    get_plan_catalog,
    get_subscription_notifier,
)
from ..services.notifications import deliver_safely

logger = logging.getLogger("billing")

router = APIRouter(prefix="/api/payments", tags=["payments"])


@router.get("/plans", response_model=PlanListResponse)
def list_plans() -> PlanListResponse:
    return PlanListResponse.from_catalog(get_plan_catalog(), get_gateway_config().currency)


@router.post("/build", response_model=BuildPaymentResponse)
def build_payment(payload: BuildPaymentRequest) -> BuildPaymentResponse:
    builder = get_order_builder()
    try:
        payment = builder.build_payment(
            plan_id=payload.plan_id,
            user_id=payload.user_id,
            user_email=payload.user_email,
            return_domain=payload.return_domain,
        )
    except MalformedRequest as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=exc.message) from exc
    except StorageFailure as exc:
        logger.exception("Failed to record order for user %s", payload.user_id)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Payment service temporarily unavailable",
        ) from exc
    return BuildPaymentResponse.from_payment(payment)


@router.post("/callback")
async def receive_callback(request: Request, background_tasks: BackgroundTasks) -> JSONResponse:
    reconciler = get_callback_reconciler()
    raw_body = await request.body()

    try:
        payload = parse_callback_body(raw_body)
    except MalformedRequest as exc:
        logger.warning("Unreadable payment callback: %s", exc.message)
        result = reconciler.reject("", exc)
        return JSONResponse(result.acknowledgment.model_dump(by_alias=True))

    event = CallbackEvent.from_payload(payload)
    try:
        result = await run_in_threadpool(reconciler.reconcile, event)
    except StorageFailure as exc:
        logger.exception(
            "Storage failure while reconciling callback %s; gateway will retry",
            event.order_reference,
        )
        return JSONResponse(
            {"error": exc.code, "orderReference": event.order_reference},
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    if result.activation is not None:
        background_tasks.add_task(deliver_safely, get_subscription_notifier(), result.activation)

    return JSONResponse(result.acknowledgment.model_dump(by_alias=True))


@router.api_route("/return", methods=["GET", "POST"], response_class=HTMLResponse)
def payment_return(rd: Optional[str] = Query(default=None)) -> HTMLResponse:
    origin = resolve_allowed_origin(rd, get_gateway_config())
    return HTMLResponse(
        render_redirect_page(origin),
        headers={"Cache-Control": "no-store"},
    )
