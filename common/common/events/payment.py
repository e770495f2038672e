"""결제-권한(entitlement) 반영 이벤트 정의."""

from __future__ import annotations

from dataclasses import dataclass


class PaymentEventType:
    """결제 이벤트 타입 상수."""

    ENTITLEMENT_APPLIED = "payment.entitlement_applied"
    ENTITLEMENT_FAILED = "payment.entitlement_failed"


@dataclass(slots=True)
class PaymentEntitlementEvent:
    """결제 확인 후 권한 반영 결과 이벤트.

    ENTITLEMENT_FAILED 는 결제는 완료되었지만 유저에게 반영하지 못한 경우로,
    수동 정산 대상이다.
    """

    id: str
    type: str
    timestamp: str
    source: str
    version: str
    event_key: str
    kind: str
    user_code: str | None
    credits_granted: int
    error_code: str | None = None
