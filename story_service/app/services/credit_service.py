"""크레딧 잔액/이력 조회 서비스."""

from __future__ import annotations

from ..exceptions import UserNotFound
from ..models.credit import CreditTransaction
from ..repositories.interfaces import (
    CreditTransactionRepositoryInterface,
    UserRepositoryInterface,
)


class CreditService:
    def __init__(
        self,
        user_repo: UserRepositoryInterface,
        transaction_repo: CreditTransactionRepositoryInterface,
    ) -> None:
        self._user_repo = user_repo
        self._transaction_repo = transaction_repo

    def get_balance(self, user_code: str) -> int:
        user = self._user_repo.find_by_user_code(user_code)
        if user is None:
            raise UserNotFound()
        return user.credits

    def get_history(
        self, user_code: str, page: int = 1, page_size: int = 20
    ) -> tuple[list[CreditTransaction], int]:
        """크레딧 사용 이력 조회."""
        return self._transaction_repo.list_by_user(user_code, page, page_size)
