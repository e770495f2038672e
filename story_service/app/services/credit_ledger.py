"""크레딧 원장 가드.

유료 외부 호출(생성/이어쓰기)을 "차감 -> 실행 -> 실패 시 환불" 로 감싼다.

- 잔액 부족이면 아무것도 바꾸지 않고 InsufficientCredits 를 던진다.
- 차감은 외부 호출 전에 원자적으로 수행된다.
- 외부 호출이 실패하거나 타임아웃되면 같은 양을 환불하고 ActionFailed 로 다시 던진다.
- 환불 자체가 실패하면 error 로그를 남기고 PersistenceFailed 를 던진다.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from datetime import datetime, timezone
from typing import Callable, TypeVar

from common.eventbus.core import EventPublisher
from common.events.credit import CreditEventType

from ..exceptions import ActionFailed, InsufficientCredits, PersistenceFailed, UserNotFound
from ..models.credit import CreditTransaction, TransactionType
from ..repositories.interfaces import (
    CreditTransactionRepositoryInterface,
    UserRepositoryInterface,
)
from .event_publishing import publish_credit_event


logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_ACTION_WORKERS = 16

_executor: ThreadPoolExecutor | None = None
_executor_lock = threading.Lock()


def get_action_executor() -> ThreadPoolExecutor:
    """외부 호출 실행용 전역 스레드 풀."""

    global _executor

    if _executor is not None:
        return _executor

    with _executor_lock:
        if _executor is None:
            _executor = ThreadPoolExecutor(
                max_workers=DEFAULT_ACTION_WORKERS,
                thread_name_prefix="ledger-action",
            )
    return _executor


def shutdown_action_executor() -> None:
    global _executor

    with _executor_lock:
        if _executor is not None:
            # 타임아웃으로 버려진 호출은 기다리지 않는다.
            _executor.shutdown(wait=False, cancel_futures=True)
        _executor = None


class CreditLedgerGuard:
    """크레딧 차감/환불을 외부 호출과 묶어주는 가드."""

    def __init__(
        self,
        user_repo: UserRepositoryInterface,
        transaction_repo: CreditTransactionRepositoryInterface,
        event_bus: EventPublisher,
        *,
        timeout_seconds: float,
        executor: ThreadPoolExecutor | None = None,
    ) -> None:
        self._user_repo = user_repo
        self._transaction_repo = transaction_repo
        self._event_bus = event_bus
        self._timeout_seconds = timeout_seconds
        self._executor = executor

    def charge_and_run(
        self,
        user_code: str,
        cost: int,
        action: Callable[[], T],
        *,
        operation: str,
        ref_id: str | None = None,
    ) -> tuple[T, int]:
        """cost 만큼 차감한 뒤 action 을 실행한다.

        Returns:
            (action 결과, 차감 직후 잔액)
        """
        if cost < 0:
            raise ValueError(f"cost must be >= 0, got: {cost}")

        remaining = self._debit(user_code, cost, operation=operation, ref_id=ref_id)

        try:
            result = self._run_with_timeout(action)
        except Exception as exc:
            self._log_action_failure(user_code, operation, exc)
            if cost > 0:
                self.refund(user_code, cost, operation=operation, ref_id=ref_id)
            raise ActionFailed(operation, exc) from exc

        return result, remaining

    def refund(
        self,
        user_code: str,
        amount: int,
        *,
        operation: str,
        ref_id: str | None = None,
    ) -> int:
        """차감했던 크레딧을 되돌리고 환불 후 잔액을 반환한다."""
        try:
            refunded = self._user_repo.add_credits(user_code, amount)
        except Exception as exc:
            logger.error(
                "credit refund failed, ledger needs manual fix (amount=%s)",
                amount,
                extra={"user_code": user_code, "operation": operation},
                exc_info=True,
            )
            raise PersistenceFailed(f"{operation} refund", exc) from exc

        if refunded is None:
            logger.error(
                "credit refund target vanished, ledger needs manual fix (amount=%s)",
                amount,
                extra={"user_code": user_code, "operation": operation},
            )
            raise PersistenceFailed(f"{operation} refund")

        logger.info(
            "credits refunded amount=%s remaining=%s",
            amount,
            refunded.credits,
            extra={"user_code": user_code, "operation": operation},
        )
        self._record(
            user_code,
            TransactionType.REFUND,
            amount,
            reason=f"{operation}.refund",
            ref_id=ref_id,
            remaining=refunded.credits,
        )
        publish_credit_event(
            self._event_bus,
            event_type=CreditEventType.CREDIT_REFUNDED,
            user_code=user_code,
            amount=amount,
            remaining=refunded.credits,
            reason=operation,
            ref_id=ref_id,
        )
        return refunded.credits

    def _debit(
        self, user_code: str, cost: int, *, operation: str, ref_id: str | None
    ) -> int:
        if cost == 0:
            user = self._user_repo.find_by_user_code(user_code)
            if user is None:
                raise UserNotFound()
            return user.credits

        debited = self._user_repo.try_debit(user_code, cost)
        if debited is None:
            user = self._user_repo.find_by_user_code(user_code)
            if user is None:
                raise UserNotFound()
            logger.info(
                "insufficient credits required=%s available=%s",
                cost,
                user.credits,
                extra={"user_code": user_code, "operation": operation},
            )
            raise InsufficientCredits(required=cost, available=user.credits)

        self._record(
            user_code,
            TransactionType.CONSUME,
            cost,
            reason=operation,
            ref_id=ref_id,
            remaining=debited.credits,
        )
        publish_credit_event(
            self._event_bus,
            event_type=CreditEventType.CREDIT_CONSUMED,
            user_code=user_code,
            amount=cost,
            remaining=debited.credits,
            reason=operation,
            ref_id=ref_id,
        )
        return debited.credits

    def _run_with_timeout(self, action: Callable[[], T]) -> T:
        executor = self._executor or get_action_executor()
        future = executor.submit(action)
        try:
            return future.result(timeout=self._timeout_seconds)
        except FutureTimeoutError as exc:
            future.cancel()
            raise TimeoutError(
                f"external call exceeded {self._timeout_seconds}s"
            ) from exc

    def _record(
        self,
        user_code: str,
        tx_type: TransactionType,
        amount: int,
        *,
        reason: str,
        ref_id: str | None,
        remaining: int | None,
    ) -> None:
        # 이력 로그는 잔액의 진실 공급원이 아니므로 실패해도 흐름을 끊지 않는다.
        now = datetime.now(timezone.utc)
        try:
            self._transaction_repo.create(
                CreditTransaction(
                    user_code=user_code,
                    type=tx_type,
                    amount=amount,
                    reason=reason,
                    ref_id=ref_id,
                    remaining=remaining,
                    created_at=now,
                    updated_at=now,
                )
            )
        except Exception:  # noqa: BLE001
            logger.exception(
                "failed to write credit transaction type=%s",
                tx_type,
                extra={"user_code": user_code},
            )

    @staticmethod
    def _log_action_failure(user_code: str, operation: str, exc: Exception) -> None:
        logger.warning(
            "paid action failed (%s), refunding: %s",
            _classify_failure(exc),
            exc,
            extra={"user_code": user_code, "operation": operation},
        )


def _response_status(exc: Exception) -> int | None:
    status_code = getattr(exc, "status_code", None)
    if status_code is not None:
        return status_code
    response = getattr(exc, "response", None)
    return getattr(response, "status_code", None)


def _is_rate_limit_error(exc: Exception) -> bool:
    if _response_status(exc) == 429:
        return True

    message = str(exc).lower()
    return (
        "resource_exhausted" in message
        or "rate limit" in message
        or "too many requests" in message
    )


def _is_temporarily_unavailable_error(exc: Exception) -> bool:
    if _response_status(exc) in {502, 503, 504}:
        return True

    message = str(exc).lower()
    return (
        "service unavailable" in message
        or "temporarily unavailable" in message
        or "overloaded" in message
    )


def _classify_failure(exc: Exception) -> str:
    """업스트림 실패 원인을 로그용으로 분류한다."""

    if isinstance(exc, TimeoutError):
        return "timeout"
    if _is_rate_limit_error(exc):
        return "rate_limited"
    if _is_temporarily_unavailable_error(exc):
        return "temporarily_unavailable"
    return "error"
