"""결제 이벤트 / 정산 도메인 모델."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, Field


class PaymentKind(StrEnum):
    PREMIUM = "premium"
    CREDITS = "credits"


class PaymentSource(StrEnum):
    REDIRECT = "redirect"
    WEBHOOK = "webhook"


class PaymentRecordStatus(StrEnum):
    PENDING = "pending"  # event_key 를 점유했고 대상 유저 반영 중
    APPLIED = "applied"
    UNRESOLVED = "unresolved"  # 결제는 완료됐지만 권한 반영 실패 -> 수동 정산 대상


def checkout_event_key(session_id: str) -> str:
    """리다이렉트와 웹훅이 공유하는 멱등성 키."""

    return f"checkout:{session_id}"


class PaymentEvent(BaseModel):
    """결제 처리기에서 확인된 결제 성공 신호.

    리다이렉트/웹훅 어느 경로로 들어와도 같은 세션이면 같은 event_key 를 가진다.
    """

    event_key: str
    session_id: str
    kind: PaymentKind
    credits_granted: int = Field(default=0, ge=0)
    metadata_user_code: str | None = None
    source: PaymentSource


class ReconcileResult(BaseModel):
    """권한 반영 결과 (클라이언트 표시용)."""

    event_key: str
    user_code: str
    kind: PaymentKind
    applied: bool  # False 면 이미 반영된 중복 이벤트
    credits_granted: int
    credits: int
    is_premium: bool


ENTITLEMENT_PENDING = "entitlement_pending"


class PaymentConfirmation(BaseModel):
    """리다이렉트 결제 확인 결과.

    결제 성공과 권한 반영 성공은 별개로 보고한다. 권한 반영에 실패하면 result 없이
    error_code 와 함께 수동 정산 대기 상태가 된다.
    """

    event_key: str
    kind: PaymentKind
    credits_granted: int
    result: ReconcileResult | None = None
    error_code: str | None = None

    @property
    def entitlement_applied(self) -> bool:
        return self.result is not None


class PaymentRecord(BaseModel):
    """payment_events 컬렉션 감사 레코드."""

    id: str | None = None
    event_key: str
    session_id: str
    kind: PaymentKind
    credits_granted: int
    user_code: str | None
    status: PaymentRecordStatus
    source: PaymentSource
    delivery_count: int = 1
    error_code: str | None = None
    created_at: datetime
    updated_at: datetime


class CreditPackage(BaseModel):
    """충전 가능한 크레딧 패키지 (가격 단위: cent)."""

    id: str
    name: str
    credits: int = Field(..., gt=0)
    price_cents: int = Field(..., gt=0)
    premium_price_cents: int = Field(..., gt=0)
    description: str = ""
    popular: bool = False
    best_value: bool = False

    def price_for(self, is_premium: bool) -> int:
        return self.premium_price_cents if is_premium else self.price_cents


class CheckoutSession(BaseModel):
    """결제 처리기 체크아웃 세션 생성 결과."""

    session_id: str
    checkout_url: str | None
    kind: PaymentKind
    credits_granted: int = 0
    price_cents: int


class VerifiedCheckout(BaseModel):
    """결제 처리기에서 직접 조회해 검증한 세션 정보."""

    session_id: str
    paid: bool
    metadata: dict[str, str] = Field(default_factory=dict)
