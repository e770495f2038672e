from __future__ import annotations

from pydantic import BaseModel

from common.types.datetime import UtcDateTime


class CreditBalanceResponse(BaseModel):
    credits: int


class CreditTransactionResponse(BaseModel):
    """크레딧 트랜잭션 응답."""

    id: str | None
    type: str
    amount: int
    reason: str
    ref_id: str | None
    remaining: int | None
    created_at: UtcDateTime
