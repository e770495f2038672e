from __future__ import annotations

from dataclasses import dataclass

import pytest

from story_service.app.exceptions import UserNotFound, UserNotResolvable
from story_service.app.models.payment import (
    PaymentEvent,
    PaymentKind,
    PaymentRecordStatus,
    PaymentSource,
    checkout_event_key,
)
from story_service.app.models.user import User
from story_service.app.services.entitlement_reconciler import EntitlementReconciler

from fakes import (
    FakeCreditTransactionRepository,
    FakeEventBus,
    FakePaymentEventRepository,
    FakeUserRepository,
    build_user,
)


@dataclass
class ReconcilerFixture:
    reconciler: EntitlementReconciler
    user_repo: FakeUserRepository
    payment_repo: FakePaymentEventRepository
    transaction_repo: FakeCreditTransactionRepository
    event_bus: FakeEventBus


def _build_fixture(*users: User) -> ReconcilerFixture:
    user_repo = FakeUserRepository(*(users or (build_user(credits=10),)))
    payment_repo = FakePaymentEventRepository()
    transaction_repo = FakeCreditTransactionRepository()
    event_bus = FakeEventBus()
    return ReconcilerFixture(
        reconciler=EntitlementReconciler(user_repo, payment_repo, transaction_repo, event_bus),
        user_repo=user_repo,
        payment_repo=payment_repo,
        transaction_repo=transaction_repo,
        event_bus=event_bus,
    )


def _event(
    session_id: str = "cs_test_1",
    *,
    kind: PaymentKind = PaymentKind.CREDITS,
    credits_granted: int = 30,
    metadata_user_code: str | None = "user-001",
    source: PaymentSource = PaymentSource.REDIRECT,
) -> PaymentEvent:
    return PaymentEvent(
        event_key=checkout_event_key(session_id),
        session_id=session_id,
        kind=kind,
        credits_granted=credits_granted,
        metadata_user_code=metadata_user_code,
        source=source,
    )


def test_credit_purchase_is_applied_once_across_redirect_and_webhook() -> None:
    fx = _build_fixture()

    first = fx.reconciler.apply_payment_event(_event(), session_user_code="user-001")
    second = fx.reconciler.apply_payment_event(_event(source=PaymentSource.WEBHOOK))

    assert first.applied is True
    assert first.credits == 40
    assert second.applied is False
    assert second.credits == 40
    assert fx.user_repo.users["user-001"].credits == 40
    assert fx.transaction_repo.types() == ["purchase"]

    record = fx.payment_repo.find_by_event_key("checkout:cs_test_1")
    assert record is not None
    assert record.status == PaymentRecordStatus.APPLIED
    assert record.delivery_count == 2


def test_purchase_publishes_credit_and_payment_events() -> None:
    fx = _build_fixture()

    fx.reconciler.apply_payment_event(_event())

    assert fx.event_bus.event_types() == ["credit.purchased", "payment.entitlement_applied"]


def test_premium_purchase_sets_flag_without_credits() -> None:
    fx = _build_fixture()

    result = fx.reconciler.apply_payment_event(
        _event("cs_premium", kind=PaymentKind.PREMIUM, credits_granted=0)
    )

    user = fx.user_repo.users["user-001"]
    assert result.is_premium is True
    assert user.is_premium is True
    assert user.credits == 10
    assert fx.transaction_repo.created == []


def test_premium_is_not_revoked_by_later_credit_purchase() -> None:
    fx = _build_fixture()
    fx.reconciler.apply_payment_event(
        _event("cs_premium", kind=PaymentKind.PREMIUM, credits_granted=0)
    )

    result = fx.reconciler.apply_payment_event(_event("cs_credits", credits_granted=100))

    assert result.is_premium is True
    assert result.credits == 110


def test_session_user_takes_precedence_over_metadata() -> None:
    fx = _build_fixture(build_user("user-001", credits=0), build_user("user-002", credits=0))

    result = fx.reconciler.apply_payment_event(
        _event(metadata_user_code="user-002"), session_user_code="user-001"
    )

    assert result.user_code == "user-001"
    assert fx.user_repo.users["user-001"].credits == 30
    assert fx.user_repo.users["user-002"].credits == 0


def test_event_without_user_is_queued_for_manual_reconciliation() -> None:
    fx = _build_fixture()

    with pytest.raises(UserNotResolvable):
        fx.reconciler.apply_payment_event(
            _event(metadata_user_code=None, source=PaymentSource.WEBHOOK)
        )

    unresolved, total = fx.reconciler.list_unresolved_payments()
    assert total == 1
    assert unresolved[0].event_key == "checkout:cs_test_1"
    assert unresolved[0].error_code == "user_not_resolvable"
    assert unresolved[0].credits_granted == 30
    assert fx.event_bus.event_types() == ["payment.entitlement_failed"]


def test_event_for_unknown_user_is_queued_with_user_code() -> None:
    fx = _build_fixture()

    with pytest.raises(UserNotFound):
        fx.reconciler.apply_payment_event(_event(metadata_user_code="ghost"))

    record = fx.payment_repo.find_by_event_key("checkout:cs_test_1")
    assert record is not None
    assert record.status == PaymentRecordStatus.UNRESOLVED
    assert record.user_code == "ghost"
    assert fx.user_repo.users["user-001"].credits == 10


def test_payment_is_granted_once_when_redirect_and_metadata_users_differ() -> None:
    fx = _build_fixture(build_user("user-001", credits=0), build_user("user-002", credits=0))

    first = fx.reconciler.apply_payment_event(
        _event(metadata_user_code="user-002"), session_user_code="user-001"
    )
    second = fx.reconciler.apply_payment_event(
        _event(metadata_user_code="user-002", source=PaymentSource.WEBHOOK)
    )

    assert first.applied is True
    assert second.applied is False
    assert second.user_code == "user-001"
    credits = [u.credits for u in fx.user_repo.users.values()]
    assert sum(credits) == 30
    assert fx.user_repo.users["user-001"].credits == 30
    assert fx.transaction_repo.types() == ["purchase"]


def test_webhook_first_fixes_owner_for_later_redirect() -> None:
    fx = _build_fixture(build_user("user-001", credits=0), build_user("user-002", credits=0))

    fx.reconciler.apply_payment_event(
        _event(metadata_user_code="user-002", source=PaymentSource.WEBHOOK)
    )
    result = fx.reconciler.apply_payment_event(
        _event(metadata_user_code="user-002"), session_user_code="user-001"
    )

    assert result.applied is False
    assert result.user_code == "user-002"
    assert fx.user_repo.users["user-001"].credits == 0
    assert fx.user_repo.users["user-002"].credits == 30


def test_pending_claim_left_after_user_update_is_completed_without_regrant() -> None:
    fx = _build_fixture()
    event = _event()
    fx.payment_repo.claim(
        event_key=event.event_key,
        session_id=event.session_id,
        kind=event.kind,
        credits_granted=event.credits_granted,
        user_code="user-001",
        source=event.source,
    )
    fx.user_repo.apply_payment("user-001", event.event_key, event.kind, event.credits_granted)

    result = fx.reconciler.apply_payment_event(_event(source=PaymentSource.WEBHOOK))

    assert result.applied is False
    assert fx.user_repo.users["user-001"].credits == 40
    record = fx.payment_repo.find_by_event_key(event.event_key)
    assert record is not None
    assert record.status == PaymentRecordStatus.APPLIED


def test_unresolved_payment_is_applied_by_later_delivery_with_known_user() -> None:
    fx = _build_fixture()

    with pytest.raises(UserNotFound):
        fx.reconciler.apply_payment_event(_event(metadata_user_code="ghost"))
    result = fx.reconciler.apply_payment_event(
        _event(metadata_user_code="ghost"), session_user_code="user-001"
    )

    assert result.applied is True
    assert fx.user_repo.users["user-001"].credits == 40
    record = fx.payment_repo.find_by_event_key("checkout:cs_test_1")
    assert record is not None
    assert record.status == PaymentRecordStatus.APPLIED
    assert record.user_code == "user-001"
    assert record.error_code is None
