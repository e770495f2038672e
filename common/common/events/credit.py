"""크레딧 원장 관련 이벤트 정의."""

from __future__ import annotations

from dataclasses import dataclass


class CreditEventType:
    """크레딧 이벤트 타입 상수."""

    CREDIT_CONSUMED = "credit.consumed"
    CREDIT_REFUNDED = "credit.refunded"
    CREDIT_PURCHASED = "credit.purchased"


@dataclass(slots=True)
class CreditLedgerEvent:
    """크레딧 잔액 변경 이벤트.

    생성/이어쓰기 차감(consumed), 외부 호출 실패 환불(refunded),
    결제 충전(purchased) 시 발행된다.
    """

    id: str
    type: str
    timestamp: str
    source: str
    version: str
    user_code: str
    amount: int
    remaining: int | None
    reason: str
    ref_id: str | None = None
