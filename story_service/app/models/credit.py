"""크레딧 원장 트랜잭션 로그 도메인 모델.

잔액 자체는 users 도큐먼트의 credits 필드가 단일 진실 공급원이며,
이 로그는 차감/환불/충전 이력 조회 용도다.
"""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel


class TransactionType(StrEnum):
    CONSUME = "consume"
    REFUND = "refund"
    PURCHASE = "purchase"


class CreditTransaction(BaseModel):
    """크레딧 트랜잭션 로그 도메인 모델."""

    id: str | None = None
    user_code: str
    type: TransactionType
    amount: int
    reason: str  # "story.create" | "story.continue" | "payment:<event_key>" ...
    ref_id: str | None = None  # 연결된 스토리 ID 또는 결제 이벤트 키
    remaining: int | None = None  # 반영 직후 잔액 (알 수 있는 경우)
    metadata: dict | None = None
    created_at: datetime
    updated_at: datetime
