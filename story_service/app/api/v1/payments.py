"""결제 API 라우터.

웹훅은 서명 검증 실패(400)를 제외하면 항상 200 으로 응답한다.
리다이렉트 확인은 권한 반영이 정산 대기로 남으면 202 로 응답한다.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Header, Request, Response, status
from starlette.concurrency import run_in_threadpool

from common.schemas.pagination import PaginatedResponse, normalize_paging

from ...models.payment import CheckoutSession
from ...services.entitlement_reconciler import EntitlementReconciler
from ...services.payment_service import PaymentService
from ..deps import (
    get_current_user_code,
    get_entitlement_reconciler,
    get_payment_service,
    require_admin,
)
from ..schemas.payments import (
    CheckoutResponse,
    CreditCheckoutRequest,
    CreditPackageResponse,
    CreditPackagesResponse,
    PaymentConfirmResponse,
    PaymentRecordResponse,
)


router = APIRouter(prefix="/payments", tags=["payments"])


def _to_checkout_response(checkout: CheckoutSession) -> CheckoutResponse:
    return CheckoutResponse(
        session_id=checkout.session_id,
        checkout_url=checkout.checkout_url,
        kind=checkout.kind.value,
        credits_granted=checkout.credits_granted,
        price_cents=checkout.price_cents,
    )


@router.get("/packages", summary="크레딧 충전 패키지 목록")
def list_credit_packages(
    user_code: Annotated[str, Depends(get_current_user_code)],
    service: Annotated[PaymentService, Depends(get_payment_service)],
) -> CreditPackagesResponse:
    packages, is_premium = service.list_credit_packages(user_code)
    return CreditPackagesResponse(
        is_premium=is_premium,
        packages=[CreditPackageResponse.from_domain(p, is_premium) for p in packages],
    )


@router.post("/premium/checkout", summary="프리미엄 결제 세션 생성")
def create_premium_checkout(
    user_code: Annotated[str, Depends(get_current_user_code)],
    service: Annotated[PaymentService, Depends(get_payment_service)],
) -> CheckoutResponse:
    return _to_checkout_response(service.create_premium_checkout(user_code))


@router.post("/credits/checkout", summary="크레딧 충전 결제 세션 생성")
def create_credit_checkout(
    body: CreditCheckoutRequest,
    user_code: Annotated[str, Depends(get_current_user_code)],
    service: Annotated[PaymentService, Depends(get_payment_service)],
) -> CheckoutResponse:
    return _to_checkout_response(service.create_credit_checkout(user_code, body.package_id))


@router.get("/success", summary="결제 완료 리다이렉트 처리")
def payment_success(
    session_id: str,
    user_code: Annotated[str, Depends(get_current_user_code)],
    service: Annotated[PaymentService, Depends(get_payment_service)],
    response: Response,
    credits: int | None = None,
) -> PaymentConfirmResponse:
    confirmation = service.confirm_redirect(session_id, user_code, claimed_credits=credits)
    if not confirmation.entitlement_applied:
        # 결제는 완료됐고 권한 반영은 수동 정산 대기열에 있다.
        response.status_code = status.HTTP_202_ACCEPTED
    return PaymentConfirmResponse.from_domain(confirmation)


@router.post("/webhook", summary="Stripe 웹훅")
async def payment_webhook(
    request: Request,
    service: Annotated[PaymentService, Depends(get_payment_service)],
    stripe_signature: Annotated[str | None, Header()] = None,
) -> dict[str, bool]:
    # 서명 검증에는 원본 바이트가 필요하다.
    payload = await request.body()
    await run_in_threadpool(service.handle_webhook, payload, stripe_signature)
    return {"received": True}


@router.get("/unresolved", summary="수동 정산 대기 결제 목록 (관리자)")
def list_unresolved_payments(
    _admin: Annotated[str, Depends(require_admin)],
    reconciler: Annotated[EntitlementReconciler, Depends(get_entitlement_reconciler)],
    page: int = 1,
    page_size: int = 20,
) -> PaginatedResponse[PaymentRecordResponse]:
    page, page_size = normalize_paging(page, page_size)
    items, total = reconciler.list_unresolved_payments(page, page_size)
    return PaginatedResponse(
        items=[PaymentRecordResponse.from_domain(r) for r in items],
        total=total,
        page=page,
        page_size=page_size,
    )
