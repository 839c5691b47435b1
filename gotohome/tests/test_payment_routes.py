from __future__ import annotations

import json
from datetime import timedelta
from typing import List
from urllib import parse as urllib_parse

import pytest
from fastapi import FastAPI, HTTPException
from fastapi.testclient import TestClient

from gotohome.app.billing import CallbackReconciler, OrderBuilder, StorageFailure, SubscriptionActivation
from gotohome.app.entitlements import PLAN_CATALOG, Entitlement, EntitlementService, PlanKey
from gotohome.app.routes import billing as billing_routes
from gotohome.app.routes import entitlements as entitlement_routes
from gotohome.app.schemas.billing import BuildPaymentRequest
from gotohome.app.services.billing import get_entitlement_service
from gotohome.app.services.notifications import SubscriptionNotifier


class RecordingNotifier(SubscriptionNotifier):
    name = "recording"

    def __init__(self, *, fail: bool = False) -> None:
        self.fail = fail
        self.activations: List[SubscriptionActivation] = []

    def notify_subscription_activated(self, activation: SubscriptionActivation) -> None:
        self.activations.append(activation)
        if self.fail:
            raise RuntimeError("telegram is down")


@pytest.fixture
def builder(gateway_config, signer, repository, clock) -> OrderBuilder:
    return OrderBuilder(
        config=gateway_config, catalog=PLAN_CATALOG, signer=signer, repository=repository, clock=clock
    )


@pytest.fixture
def reconciler(gateway_config, signer, repository, clock) -> CallbackReconciler:
    return CallbackReconciler(
        config=gateway_config, catalog=PLAN_CATALOG, signer=signer, repository=repository, clock=clock
    )


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def client(monkeypatch, gateway_config, builder, reconciler, notifier, repository, clock) -> TestClient:
    monkeypatch.setattr(billing_routes, "get_gateway_config", lambda: gateway_config)
    monkeypatch.setattr(billing_routes, "get_order_builder", lambda: builder)
    monkeypatch.setattr(billing_routes, "get_callback_reconciler", lambda: reconciler)
    monkeypatch.setattr(billing_routes, "get_subscription_notifier", lambda: notifier)

    app = FastAPI()
    app.include_router(billing_routes.router)
    app.include_router(entitlement_routes.router)
    app.dependency_overrides[get_entitlement_service] = lambda: EntitlementService(
        repository, clock=clock
    )
    return TestClient(app)


def test_build_payment_route_returns_signed_form(monkeypatch, builder, gateway_config) -> None:
    monkeypatch.setattr(billing_routes, "get_order_builder", lambda: builder)

    response = billing_routes.build_payment(
        BuildPaymentRequest(planId="10days", userId="u77", userEmail="a@b.c")
    )

    assert response.is_recurring is False
    assert response.order_id.startswith("order_u77_10days_")
    assert response.payment_data["merchantAccount"] == gateway_config.merchant_account
    assert response.payment_data["amount"] == 199


def test_build_payment_rejects_unknown_plan(client) -> None:
    response = client.post("/api/payments/build", json={"planId": "year", "userId": "u1"})

    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid plan"


def test_build_payment_ignores_oversized_return_domain(client) -> None:
    response = client.post(
        "/api/payments/build",
        json={"planId": "10days", "userId": "u1", "returnDomain": "https://evil.example.com/" + "a" * 3000},
    )

    assert response.status_code == 200
    return_url = response.json()["paymentData"]["returnUrl"]
    assert urllib_parse.parse_qs(urllib_parse.urlsplit(return_url).query)["rd"] == ["https://www.gotohome.com.ua"]


def test_build_payment_storage_failure_is_503(monkeypatch, builder) -> None:
    def failing_build(**kwargs):
        raise StorageFailure("database error: OperationalError")

    monkeypatch.setattr(builder, "build_payment", failing_build)
    monkeypatch.setattr(billing_routes, "get_order_builder", lambda: builder)

    with pytest.raises(HTTPException) as exc:
        billing_routes.build_payment(BuildPaymentRequest(planId="10days", userId="u1"))

    assert exc.value.status_code == 503


def test_plans_route_lists_purchasable_plans(client) -> None:
    response = client.get("/api/payments/plans")

    body = response.json()
    assert response.status_code == 200
    assert body["version"] == PLAN_CATALOG.version
    assert [plan["id"] for plan in body["plans"]] == ["10days", "30days"]
    assert body["plans"][1]["durationDays"] == 30
    assert body["plans"][1]["recurring"] is True


def test_callback_applies_entitlement_and_notifies(
    client, signer, signed_payload, repository, notifier, clock
) -> None:
    response = client.post("/api/payments/callback", content=json.dumps(signed_payload()))

    body = response.json()
    assert response.status_code == 200
    assert body["orderReference"] == "order_u123_30days_1700000000000"
    assert body["status"] == "accept"
    assert body["signature"] == signer.sign([body["orderReference"], "accept", body["time"]])
    assert repository.entitlements["u123"].expires_at == clock.now + timedelta(days=30)
    assert len(notifier.activations) == 1


def test_callback_accepts_form_encoded_json(client, signed_payload, repository) -> None:
    response = client.post(
        "/api/payments/callback",
        content=json.dumps(signed_payload()),
        headers={"Content-Type": "application/x-www-form-urlencoded"},
    )

    assert response.status_code == 200
    assert repository.entitlements["u123"].plan == PlanKey.TIER_LONG


def test_duplicate_callback_notifies_once(client, signed_payload, notifier) -> None:
    body = json.dumps(signed_payload())

    client.post("/api/payments/callback", content=body)
    client.post("/api/payments/callback", content=body)

    assert len(notifier.activations) == 1


def test_forged_callback_is_acknowledged_without_change(client, signed_payload, repository, notifier) -> None:
    payload = signed_payload()
    payload["merchantSignature"] = "f" * 32

    response = client.post("/api/payments/callback", content=json.dumps(payload))

    assert response.status_code == 200
    assert response.json()["status"] == "accept"
    assert repository.entitlements == {}
    assert notifier.activations == []


def test_unreadable_callback_is_acknowledged(client, repository) -> None:
    response = client.post("/api/payments/callback", content=b"not json at all")

    assert response.status_code == 200
    assert response.json()["status"] == "accept"
    assert response.json()["orderReference"] == ""
    assert repository.entitlements == {}


def test_storage_failure_requests_redelivery(client, signed_payload, repository, monkeypatch) -> None:
    def failing_upsert(entitlement: Entitlement) -> Entitlement:
        raise StorageFailure("database error: OperationalError")

    monkeypatch.setattr(repository, "upsert_entitlement", failing_upsert)

    response = client.post("/api/payments/callback", content=json.dumps(signed_payload()))

    assert response.status_code == 500
    assert response.json()["error"] == "storage_failure"


def test_notifier_failure_does_not_change_response(client, signed_payload, repository, monkeypatch) -> None:
    broken = RecordingNotifier(fail=True)
    monkeypatch.setattr(billing_routes, "get_subscription_notifier", lambda: broken)

    response = client.post("/api/payments/callback", content=json.dumps(signed_payload()))

    assert response.status_code == 200
    assert response.json()["status"] == "accept"
    assert len(broken.activations) == 1
    assert repository.entitlements["u123"].plan == PlanKey.TIER_LONG


@pytest.mark.parametrize("method", ["get", "post"])
def test_return_route_redirects_to_allowed_origin(client, method: str) -> None:
    response = getattr(client, method)(
        "/api/payments/return", params={"rd": "https://branch-7.lovable.app"}
    )

    assert response.status_code == 200
    assert response.headers["cache-control"] == "no-store"
    assert "https://branch-7.lovable.app/main" in response.text


def test_return_route_ignores_foreign_origin(client) -> None:
    response = client.get("/api/payments/return", params={"rd": "https://evil.example.com"})

    assert "https://www.gotohome.com.ua/main" in response.text
    assert "evil.example.com" not in response.text


def test_entitlement_route_reports_effective_plan(client, repository, clock) -> None:
    repository.entitlements["u1"] = Entitlement(
        user_id="u1", plan=PlanKey.TIER_SHORT, expires_at=clock.now - timedelta(seconds=1)
    )

    body = client.get("/api/entitlements/u1").json()

    assert body["userId"] == "u1"
    assert body["plan"] == "free"
    assert body["isExpired"] is True
    assert body["featureFlags"]["listings.limit"] == 10


def test_return_route_redirects_home_for_oversized_origin(client) -> None:
    response = client.get(
        "/api/payments/return", params={"rd": "https://evil.example.com/" + "a" * 3000}
    )

    assert response.status_code == 200
    assert "https://www.gotohome.com.ua/main" in response.text
    assert "evil.example.com" not in response.text
