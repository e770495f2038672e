from __future__ import annotations

import json
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass

from fastapi.testclient import TestClient

from story_service.app.api.deps import (
    get_credit_service,
    get_payment_service,
    get_story_service,
    get_users_service,
)
from story_service.app.config import BillingConfig
from story_service.app.main import create_app
from story_service.app.models.payment import VerifiedCheckout
from story_service.app.services.credit_ledger import CreditLedgerGuard
from story_service.app.services.credit_service import CreditService
from story_service.app.services.entitlement_reconciler import EntitlementReconciler
from story_service.app.services.generation_service import StoryService
from story_service.app.services.payment_service import PaymentService
from story_service.app.services.users_service import UsersService
from story_service.app.services.visibility_policy import VisibilityPolicy

from fakes import (
    FakeCreditTransactionRepository,
    FakeEventBus,
    FakePaymentEventRepository,
    FakePaymentGateway,
    FakeStoryGenerator,
    FakeStoryRepository,
    FakeUserRepository,
    build_settings,
    build_user,
)


@dataclass
class ApiFixture:
    client: TestClient
    user_repo: FakeUserRepository
    payment_repo: FakePaymentEventRepository
    gateway: FakePaymentGateway
    generator: FakeStoryGenerator


def _build_fixture(credits: int = 10) -> ApiFixture:
    user_repo = FakeUserRepository(build_user("user-001", credits=credits))
    story_repo = FakeStoryRepository()
    transaction_repo = FakeCreditTransactionRepository()
    payment_repo = FakePaymentEventRepository()
    event_bus = FakeEventBus()
    generator = FakeStoryGenerator()
    gateway = FakePaymentGateway()

    guard = CreditLedgerGuard(
        user_repo,
        transaction_repo,
        event_bus,
        timeout_seconds=5.0,
        executor=ThreadPoolExecutor(max_workers=2),
    )
    story_service = StoryService(
        user_repo,
        story_repo,
        guard,
        generator,
        VisibilityPolicy(),
        free_story_limit=3,
    )
    reconciler = EntitlementReconciler(user_repo, payment_repo, transaction_repo, event_bus)
    payment_service = PaymentService(
        gateway, reconciler, user_repo, BillingConfig(), "http://localhost:3000"
    )

    app = create_app()
    app.dependency_overrides[get_story_service] = lambda: story_service
    app.dependency_overrides[get_payment_service] = lambda: payment_service
    app.dependency_overrides[get_users_service] = lambda: UsersService(
        user_repo, free_story_limit=3
    )
    app.dependency_overrides[get_credit_service] = lambda: CreditService(
        user_repo, transaction_repo
    )

    return ApiFixture(
        client=TestClient(app),
        user_repo=user_repo,
        payment_repo=payment_repo,
        gateway=gateway,
        generator=generator,
    )


def _create_body(**overrides) -> dict:
    body = {"title": "", "settings": build_settings().model_dump(exclude_none=True)}
    body.update(overrides)
    return body


def test_health() -> None:
    fx = _build_fixture()

    resp = fx.client.get("/health")

    assert resp.status_code == 200
    assert resp.json() == {"status": "ok", "service": "story-service"}


def test_create_story_requires_user_header() -> None:
    fx = _build_fixture()

    resp = fx.client.post("/api/v1/stories", json=_create_body())

    assert resp.status_code == 401
    assert resp.json()["detail"]["code"] == "unauthorized"


def test_create_story_returns_remaining_credits() -> None:
    fx = _build_fixture(credits=10)

    resp = fx.client.post(
        "/api/v1/stories", json=_create_body(), headers={"X-User-Code": "user-001"}
    )

    assert resp.status_code == 201
    data = resp.json()
    assert data["credits_remaining"] == 9
    assert data["story"]["is_public"] is True


def test_insufficient_credits_maps_to_402() -> None:
    fx = _build_fixture(credits=0)

    resp = fx.client.post(
        "/api/v1/stories", json=_create_body(), headers={"X-User-Code": "user-001"}
    )

    assert resp.status_code == 402
    detail = resp.json()["detail"]
    assert detail["code"] == "insufficient_credits"
    assert detail["required"] == 1
    assert detail["available"] == 0


def test_story_limit_maps_to_403() -> None:
    fx = _build_fixture()
    fx.user_repo.users["user-001"].story_ids = ["a", "b", "c"]

    resp = fx.client.post(
        "/api/v1/stories", json=_create_body(), headers={"X-User-Code": "user-001"}
    )

    assert resp.status_code == 403
    assert resp.json()["detail"]["code"] == "story_limit_reached"


def test_generation_failure_maps_to_502_and_refunds() -> None:
    fx = _build_fixture(credits=2)
    fx.generator.error = RuntimeError("model down")

    resp = fx.client.post(
        "/api/v1/stories", json=_create_body(), headers={"X-User-Code": "user-001"}
    )

    assert resp.status_code == 502
    assert resp.json()["detail"]["code"] == "generation_failed"
    assert fx.user_repo.users["user-001"].credits == 2


def test_unknown_settings_field_is_rejected() -> None:
    fx = _build_fixture()
    body = _create_body()
    body["settings"]["mood_music"] = "jazz"

    resp = fx.client.post("/api/v1/stories", json=body, headers={"X-User-Code": "user-001"})

    assert resp.status_code == 422


def test_profile_and_balance_endpoints() -> None:
    fx = _build_fixture(credits=7)
    headers = {"X-User-Code": "user-001"}

    profile = fx.client.get("/api/v1/users/me", headers=headers)
    balance = fx.client.get("/api/v1/credits", headers=headers)

    assert profile.status_code == 200
    assert profile.json()["stories_remaining"] == 3
    assert balance.status_code == 200
    assert balance.json()["credits"] == 7


def test_webhook_with_bad_signature_returns_400() -> None:
    fx = _build_fixture()
    fx.gateway.reject_signature = True

    resp = fx.client.post(
        "/api/v1/payments/webhook",
        content=b"{}",
        headers={"stripe-signature": "t=1,v1=bad"},
    )

    assert resp.status_code == 400
    assert resp.json()["detail"]["code"] == "invalid_signature"


def test_webhook_acknowledges_even_when_user_is_missing() -> None:
    fx = _build_fixture()
    payload = json.dumps(
        {
            "type": "checkout.session.completed",
            "data": {
                "object": {
                    "id": "cs_ghost",
                    "payment_status": "paid",
                    "metadata": {"user_code": "ghost", "credits_granted": "30"},
                }
            },
        }
    )

    resp = fx.client.post(
        "/api/v1/payments/webhook",
        content=payload,
        headers={"stripe-signature": "t=1,v1=sig"},
    )

    assert resp.status_code == 200
    assert resp.json() == {"received": True}
    assert "checkout:cs_ghost" in fx.payment_repo.records


def test_webhook_applies_credits() -> None:
    fx = _build_fixture(credits=10)
    payload = json.dumps(
        {
            "type": "checkout.session.completed",
            "data": {
                "object": {
                    "id": "cs_ok",
                    "payment_status": "paid",
                    "metadata": {"user_code": "user-001", "kind": "credits", "credits_granted": "30"},
                }
            },
        }
    )

    resp = fx.client.post(
        "/api/v1/payments/webhook",
        content=payload,
        headers={"stripe-signature": "t=1,v1=sig"},
    )

    assert resp.status_code == 200
    assert fx.user_repo.users["user-001"].credits == 40


def test_payment_success_applies_credits() -> None:
    fx = _build_fixture(credits=10)
    fx.gateway.sessions["cs_ok"] = VerifiedCheckout(
        session_id="cs_ok",
        paid=True,
        metadata={"user_code": "user-001", "kind": "credits", "credits_granted": "30"},
    )

    resp = fx.client.get(
        "/api/v1/payments/success",
        params={"session_id": "cs_ok", "credits": 30},
        headers={"X-User-Code": "user-001"},
    )

    assert resp.status_code == 200
    data = resp.json()
    assert data["success"] is True
    assert data["entitlement_applied"] is True
    assert data["applied"] is True
    assert data["credits"] == 40
    assert data["code"] is None


def test_payment_success_for_missing_user_reports_pending_entitlement() -> None:
    fx = _build_fixture()
    fx.gateway.sessions["cs_ghost"] = VerifiedCheckout(
        session_id="cs_ghost",
        paid=True,
        metadata={"user_code": "ghost", "kind": "credits", "credits_granted": "30"},
    )

    resp = fx.client.get(
        "/api/v1/payments/success",
        params={"session_id": "cs_ghost"},
        headers={"X-User-Code": "ghost"},
    )

    assert resp.status_code == 202
    data = resp.json()
    assert data["success"] is True
    assert data["entitlement_applied"] is False
    assert data["code"] == "entitlement_pending"
    assert data["credits"] is None
    assert fx.payment_repo.records["checkout:cs_ghost"].status.value == "unresolved"
