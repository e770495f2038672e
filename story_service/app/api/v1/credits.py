"""크레딧 조회 API 라우터."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends

from common.schemas.pagination import PaginatedResponse, normalize_paging

from ...services.credit_service import CreditService
from ..deps import get_credit_service, get_current_user_code
from ..schemas.credits import CreditBalanceResponse, CreditTransactionResponse


router = APIRouter(prefix="/credits", tags=["credits"])


@router.get("")
def get_credits(
    user_code: Annotated[str, Depends(get_current_user_code)],
    credit_service: Annotated[CreditService, Depends(get_credit_service)],
) -> CreditBalanceResponse:
    """현재 크레딧 잔액."""
    return CreditBalanceResponse(credits=credit_service.get_balance(user_code))


@router.get("/history")
def get_credit_history(
    user_code: Annotated[str, Depends(get_current_user_code)],
    credit_service: Annotated[CreditService, Depends(get_credit_service)],
    page: int = 1,
    page_size: int = 20,
) -> PaginatedResponse[CreditTransactionResponse]:
    """크레딧 사용 이력 조회."""
    page, page_size = normalize_paging(page, page_size)
    items, total = credit_service.get_history(user_code, page, page_size)
    return PaginatedResponse(
        items=[
            CreditTransactionResponse(
                id=tx.id,
                type=tx.type.value,
                amount=tx.amount,
                reason=tx.reason,
                ref_id=tx.ref_id,
                remaining=tx.remaining,
                created_at=tx.created_at,
            )
            for tx in items
        ],
        total=total,
        page=page,
        page_size=page_size,
    )
