"""Stripe 체크아웃 기반 결제 서비스.

결제 성공 신호는 두 경로로 들어온다.
- 리다이렉트: 프론트엔드가 session_id 를 들고 돌아오면 Stripe 에 직접 조회해 검증한다.
- 웹훅: 서명 검증 후 결제가 정산된 checkout.session.completed 와
  checkout.session.async_payment_succeeded 만 반영한다.
두 경로 모두 EntitlementReconciler 로 모이며 같은 세션은 한 번만 반영된다.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Mapping, Protocol

import stripe

from ..config import BillingConfig, StripeConfig
from ..exceptions import (
    AlreadyPremium,
    InvalidCreditPackage,
    PaymentNotCompleted,
    PaymentProviderError,
    StoryServiceError,
    UserNotFound,
    UserNotResolvable,
    WebhookSignatureInvalid,
)
from ..models.payment import (
    ENTITLEMENT_PENDING,
    CheckoutSession,
    CreditPackage,
    PaymentConfirmation,
    PaymentEvent,
    PaymentKind,
    PaymentSource,
    ReconcileResult,
    VerifiedCheckout,
    checkout_event_key,
)
from ..models.user import User
from ..repositories.interfaces import UserRepositoryInterface
from .entitlement_reconciler import EntitlementReconciler


logger = logging.getLogger(__name__)

CHECKOUT_COMPLETED = "checkout.session.completed"
CHECKOUT_ASYNC_PAYMENT_SUCCEEDED = "checkout.session.async_payment_succeeded"
PAID_EVENT_TYPES = (CHECKOUT_COMPLETED, CHECKOUT_ASYNC_PAYMENT_SUCCEEDED)
# 계좌이체 등 비동기 결제는 status 가 complete 여도 payment_status 가 unpaid 일 수 있다.
PAID_PAYMENT_STATUSES = frozenset({"paid", "no_payment_required"})
PREMIUM_PRODUCT_NAME = "Premium Membership"


class PaymentGatewayInterface(Protocol):
    """결제 처리기 계약."""

    def create_checkout_session(
        self,
        *,
        product_name: str,
        price_cents: int,
        currency: str,
        success_url: str,
        cancel_url: str,
        metadata: dict[str, str],
    ) -> tuple[str, str | None]:  # pragma: no cover - Protocol
        """(session_id, checkout_url) 를 반환한다."""
        ...

    def retrieve_session(
        self, session_id: str
    ) -> VerifiedCheckout:  # pragma: no cover - Protocol
        ...

    def parse_webhook(
        self, payload: bytes, signature: str | None
    ) -> dict[str, Any]:  # pragma: no cover - Protocol
        """서명을 검증하고 이벤트 dict 를 반환한다. 실패 시 WebhookSignatureInvalid."""
        ...


def _is_paid(session: Mapping[str, Any]) -> bool:
    return session.get("payment_status") in PAID_PAYMENT_STATUSES


class StripePaymentGateway(PaymentGatewayInterface):
    def __init__(self, config: StripeConfig) -> None:
        self._secret_key = config.secret_key
        self._webhook_secret = config.webhook_secret

    def _require_secret_key(self) -> str:
        if not self._secret_key:
            raise PaymentProviderError("Stripe is not configured")
        return self._secret_key

    def create_checkout_session(
        self,
        *,
        product_name: str,
        price_cents: int,
        currency: str,
        success_url: str,
        cancel_url: str,
        metadata: dict[str, str],
    ) -> tuple[str, str | None]:
        api_key = self._require_secret_key()
        try:
            session = stripe.checkout.Session.create(
                api_key=api_key,
                payment_method_types=["card"],
                mode="payment",
                line_items=[
                    {
                        "price_data": {
                            "currency": currency,
                            "product_data": {"name": product_name},
                            "unit_amount": price_cents,
                        },
                        "quantity": 1,
                    }
                ],
                success_url=success_url,
                cancel_url=cancel_url,
                client_reference_id=metadata.get("user_code"),
                metadata=metadata,
            )
        except stripe.StripeError as exc:
            logger.error("Stripe session creation failed", exc_info=exc)
            raise PaymentProviderError("Stripe session creation failed") from exc
        return session.id, session.url

    def retrieve_session(self, session_id: str) -> VerifiedCheckout:
        api_key = self._require_secret_key()
        try:
            session = stripe.checkout.Session.retrieve(session_id, api_key=api_key)
        except stripe.InvalidRequestError as exc:
            raise PaymentNotCompleted(f"unknown checkout session: {session_id}") from exc
        except stripe.StripeError as exc:
            logger.error("Stripe session lookup failed", exc_info=exc)
            raise PaymentProviderError("Stripe session lookup failed") from exc

        data = session.to_dict()
        metadata = data.get("metadata") or {}
        return VerifiedCheckout(
            session_id=session_id,
            paid=_is_paid(data),
            metadata={str(k): str(v) for k, v in metadata.items()},
        )

    def parse_webhook(self, payload: bytes, signature: str | None) -> dict[str, Any]:
        if not self._webhook_secret:
            raise WebhookSignatureInvalid("Stripe webhook not configured")
        if not signature:
            raise WebhookSignatureInvalid("missing stripe-signature header")

        try:
            text = payload.decode("utf-8")
            stripe.WebhookSignature.verify_header(text, signature, self._webhook_secret)
            return json.loads(text)
        except (stripe.SignatureVerificationError, ValueError) as exc:
            raise WebhookSignatureInvalid(f"Invalid webhook: {exc}") from exc


def payment_event_from_metadata(
    session_id: str, metadata: Mapping[str, Any], source: PaymentSource
) -> PaymentEvent:
    """체크아웃 메타데이터를 PaymentEvent 로 변환한다."""

    raw_credits = metadata.get("credits_granted") or 0
    try:
        credits_granted = max(int(raw_credits), 0)
    except (TypeError, ValueError):
        logger.warning("invalid credits_granted in checkout metadata: %r", raw_credits)
        credits_granted = 0

    raw_kind = str(metadata.get("kind") or "").strip().lower()
    if raw_kind in (PaymentKind.PREMIUM.value, PaymentKind.CREDITS.value):
        kind = PaymentKind(raw_kind)
    else:
        kind = PaymentKind.CREDITS if credits_granted > 0 else PaymentKind.PREMIUM

    return PaymentEvent(
        event_key=checkout_event_key(session_id),
        session_id=session_id,
        kind=kind,
        credits_granted=credits_granted if kind is PaymentKind.CREDITS else 0,
        metadata_user_code=(str(metadata.get("user_code") or "").strip() or None),
        source=source,
    )


class PaymentService:
    def __init__(
        self,
        gateway: PaymentGatewayInterface,
        reconciler: EntitlementReconciler,
        user_repo: UserRepositoryInterface,
        billing: BillingConfig,
        frontend_url: str,
    ) -> None:
        self._gateway = gateway
        self._reconciler = reconciler
        self._user_repo = user_repo
        self._billing = billing
        self._frontend_url = frontend_url.rstrip("/")

    def list_credit_packages(self, user_code: str) -> tuple[list[CreditPackage], bool]:
        """충전 패키지 목록과 프리미엄 할인 적용 여부."""
        user = self._load_user(user_code)
        return list(self._billing.credit_packages), user.is_premium

    def create_premium_checkout(self, user_code: str) -> CheckoutSession:
        user = self._load_user(user_code)
        if user.is_premium:
            raise AlreadyPremium()

        price = self._billing.premium_price_cents
        session_id, url = self._gateway.create_checkout_session(
            product_name=PREMIUM_PRODUCT_NAME,
            price_cents=price,
            currency=self._billing.currency,
            success_url=f"{self._frontend_url}/payment/success?session_id={{CHECKOUT_SESSION_ID}}",
            cancel_url=f"{self._frontend_url}/payment/cancel",
            metadata={
                "user_code": user_code,
                "kind": PaymentKind.PREMIUM.value,
                "credits_granted": "0",
            },
        )
        logger.info(
            "premium checkout created price_cents=%s",
            price,
            extra={"user_code": user_code, "payment_event_id": checkout_event_key(session_id)},
        )
        return CheckoutSession(
            session_id=session_id,
            checkout_url=url,
            kind=PaymentKind.PREMIUM,
            price_cents=price,
        )

    def create_credit_checkout(self, user_code: str, package_id: str) -> CheckoutSession:
        user = self._load_user(user_code)
        package = self._find_package(package_id)
        price = package.price_for(user.is_premium)

        session_id, url = self._gateway.create_checkout_session(
            product_name=f"{package.name} ({package.credits} credits)",
            price_cents=price,
            currency=self._billing.currency,
            success_url=(
                f"{self._frontend_url}/payment/success"
                f"?session_id={{CHECKOUT_SESSION_ID}}&credits={package.credits}"
            ),
            cancel_url=f"{self._frontend_url}/payment/cancel",
            metadata={
                "user_code": user_code,
                "kind": PaymentKind.CREDITS.value,
                "credits_granted": str(package.credits),
                "package_id": package.id,
            },
        )
        logger.info(
            "credit checkout created package=%s price_cents=%s",
            package.id,
            price,
            extra={"user_code": user_code, "payment_event_id": checkout_event_key(session_id)},
        )
        return CheckoutSession(
            session_id=session_id,
            checkout_url=url,
            kind=PaymentKind.CREDITS,
            credits_granted=package.credits,
            price_cents=price,
        )

    def confirm_redirect(
        self,
        session_id: str,
        session_user_code: str,
        claimed_credits: int | None = None,
    ) -> PaymentConfirmation:
        """리다이렉트 성공 처리.

        지급 크레딧은 Stripe 세션 메타데이터에서만 읽는다. 쿼리스트링 값은 대조용이다.
        결제는 확인됐지만 대상 유저에게 반영하지 못하면 예외 대신 정산 대기 결과를 돌려준다.
        """
        verified = self._gateway.retrieve_session(session_id)
        if not verified.paid:
            raise PaymentNotCompleted()

        event = payment_event_from_metadata(session_id, verified.metadata, PaymentSource.REDIRECT)
        if claimed_credits is not None and claimed_credits != event.credits_granted:
            logger.warning(
                "redirect credits mismatch claimed=%s metadata=%s",
                claimed_credits,
                event.credits_granted,
                extra={"user_code": session_user_code, "payment_event_id": event.event_key},
            )

        logger.info(
            "payment confirmed source=%s kind=%s",
            event.source,
            event.kind,
            extra={"user_code": session_user_code, "payment_event_id": event.event_key},
        )
        try:
            result = self._reconciler.apply_payment_event(
                event, session_user_code=session_user_code
            )
        except (UserNotFound, UserNotResolvable) as exc:
            logger.warning(
                "payment confirmed but entitlement pending (%s)",
                exc.code,
                extra={"user_code": session_user_code, "payment_event_id": event.event_key},
            )
            return PaymentConfirmation(
                event_key=event.event_key,
                kind=event.kind,
                credits_granted=event.credits_granted,
                error_code=ENTITLEMENT_PENDING,
            )

        return PaymentConfirmation(
            event_key=event.event_key,
            kind=event.kind,
            credits_granted=event.credits_granted,
            result=result,
        )

    def handle_webhook(self, payload: bytes, signature: str | None) -> ReconcileResult | None:
        """웹훅 처리. 서명 검증 실패만 예외로 올리고, 나머지는 확인 응답을 위해 흡수한다."""
        stripe_event = self._gateway.parse_webhook(payload, signature)

        event_type = stripe_event.get("type")
        if event_type not in PAID_EVENT_TYPES:
            logger.info("webhook event ignored type=%s", event_type)
            return None

        session = (stripe_event.get("data") or {}).get("object") or {}
        session_id = session.get("id")
        if not session_id:
            logger.error("checkout webhook without session id")
            return None
        if not _is_paid(session):
            logger.info(
                "checkout completed but not paid yet",
                extra={"payment_event_id": checkout_event_key(session_id)},
            )
            return None

        event = payment_event_from_metadata(
            session_id, session.get("metadata") or {}, PaymentSource.WEBHOOK
        )
        logger.info(
            "payment confirmed source=%s kind=%s",
            event.source,
            event.kind,
            extra={"user_code": event.metadata_user_code, "payment_event_id": event.event_key},
        )

        try:
            return self._reconciler.apply_payment_event(event)
        except StoryServiceError as exc:
            # 수동 정산 큐에 이미 기록됨. 결제 처리기에는 정상 수신으로 응답한다.
            logger.warning(
                "webhook acknowledged without entitlement (%s)",
                exc.code,
                extra={"payment_event_id": event.event_key},
            )
            return None
        except Exception:
            logger.exception(
                "entitlement NOT applied, webhook processing failed",
                extra={"user_code": event.metadata_user_code, "payment_event_id": event.event_key},
            )
            return None

    def _load_user(self, user_code: str) -> User:
        user = self._user_repo.find_by_user_code(user_code)
        if user is None:
            raise UserNotFound()
        return user

    def _find_package(self, package_id: str) -> CreditPackage:
        for package in self._billing.credit_packages:
            if package.id == package_id:
                return package
        raise InvalidCreditPackage(f"Invalid package: {package_id}")
