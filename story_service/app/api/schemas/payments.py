from __future__ import annotations

from pydantic import BaseModel, Field

from common.types.datetime import UtcDateTime

from ...models.payment import CreditPackage, PaymentConfirmation, PaymentRecord


class CreditPackageResponse(BaseModel):
    id: str
    name: str
    credits: int
    price_cents: int
    regular_price_cents: int
    description: str
    popular: bool
    best_value: bool

    @classmethod
    def from_domain(cls, package: CreditPackage, is_premium: bool) -> "CreditPackageResponse":
        return cls(
            id=package.id,
            name=package.name,
            credits=package.credits,
            price_cents=package.price_for(is_premium),
            regular_price_cents=package.price_cents,
            description=package.description,
            popular=package.popular,
            best_value=package.best_value,
        )


class CreditPackagesResponse(BaseModel):
    is_premium: bool
    packages: list[CreditPackageResponse]


class CreditCheckoutRequest(BaseModel):
    package_id: str = Field(..., min_length=1)


class CheckoutResponse(BaseModel):
    session_id: str
    checkout_url: str | None
    kind: str
    credits_granted: int
    price_cents: int


class PaymentConfirmResponse(BaseModel):
    success: bool  # 결제 처리기에서 결제가 확인됐는지
    entitlement_applied: bool  # False 면 수동 정산 대기
    applied: bool  # False 면 이미 반영된 결제이거나 정산 대기
    kind: str
    credits_granted: int
    credits: int | None = None
    is_premium: bool | None = None
    code: str | None = None

    @classmethod
    def from_domain(cls, confirmation: PaymentConfirmation) -> "PaymentConfirmResponse":
        result = confirmation.result
        return cls(
            success=True,
            entitlement_applied=confirmation.entitlement_applied,
            applied=result.applied if result else False,
            kind=confirmation.kind.value,
            credits_granted=confirmation.credits_granted,
            credits=result.credits if result else None,
            is_premium=result.is_premium if result else None,
            code=confirmation.error_code,
        )


class PaymentRecordResponse(BaseModel):
    event_key: str
    session_id: str
    kind: str
    credits_granted: int
    user_code: str | None
    status: str
    source: str
    delivery_count: int
    error_code: str | None
    created_at: UtcDateTime
    updated_at: UtcDateTime

    @classmethod
    def from_domain(cls, record: PaymentRecord) -> "PaymentRecordResponse":
        return cls(
            event_key=record.event_key,
            session_id=record.session_id,
            kind=record.kind.value,
            credits_granted=record.credits_granted,
            user_code=record.user_code,
            status=record.status.value,
            source=record.source.value,
            delivery_count=record.delivery_count,
            error_code=record.error_code,
            created_at=record.created_at,
            updated_at=record.updated_at,
        )
