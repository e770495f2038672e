"""결제 확인 신호를 유저 권한에 반영한다.

리다이렉트와 웹훅은 같은 결제에 대해 각각 도착할 수 있으므로 event_key 기준으로
정확히 한 번만 반영한다. 유저를 바꾸기 전에 payment_events 에서 event_key 를 점유하고,
반영 대상 유저는 처음 점유한 전달의 유저로 고정된다.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from common.eventbus.core import EventPublisher
from common.events.credit import CreditEventType
from common.events.payment import PaymentEventType

from ..exceptions import UserNotFound, UserNotResolvable
from ..models.credit import CreditTransaction, TransactionType
from ..models.payment import PaymentEvent, PaymentRecord, PaymentRecordStatus, ReconcileResult
from ..models.user import User
from ..repositories.interfaces import (
    CreditTransactionRepositoryInterface,
    PaymentEventRepositoryInterface,
    UserRepositoryInterface,
)
from .event_publishing import publish_credit_event, publish_payment_event


logger = logging.getLogger(__name__)


class EntitlementReconciler:
    def __init__(
        self,
        user_repo: UserRepositoryInterface,
        payment_repo: PaymentEventRepositoryInterface,
        transaction_repo: CreditTransactionRepositoryInterface,
        event_bus: EventPublisher,
    ) -> None:
        self._user_repo = user_repo
        self._payment_repo = payment_repo
        self._transaction_repo = transaction_repo
        self._event_bus = event_bus

    def apply_payment_event(
        self, event: PaymentEvent, session_user_code: str | None = None
    ) -> ReconcileResult:
        """결제 이벤트를 반영한다.

        대상 유저는 인증된 세션 유저가 우선이고, 없으면 이벤트 메타데이터를 사용한다.
        다만 같은 결제를 다른 전달이 먼저 점유했다면 그 유저에게만 반영한다.
        대상 유저를 정할 수 없거나 찾을 수 없으면 수동 정산 대상으로 기록하고 예외를 던진다.
        """
        target = session_user_code or event.metadata_user_code
        if (
            session_user_code
            and event.metadata_user_code
            and session_user_code != event.metadata_user_code
        ):
            logger.warning(
                "payment metadata user differs from session user (metadata=%s)",
                event.metadata_user_code,
                extra={"user_code": session_user_code, "payment_event_id": event.event_key},
            )

        if not target:
            self._mark_unresolved(event, None, UserNotResolvable.code)
            raise UserNotResolvable()

        record = self._payment_repo.claim(
            event_key=event.event_key,
            session_id=event.session_id,
            kind=event.kind,
            credits_granted=event.credits_granted,
            user_code=target,
            source=event.source,
        )
        owner = record.user_code or target
        if owner != target:
            logger.warning(
                "payment already claimed by another user (requested=%s)",
                target,
                extra={"user_code": owner, "payment_event_id": event.event_key},
            )

        if record.status == PaymentRecordStatus.APPLIED:
            current = self._user_repo.find_by_user_code(owner)
            if current is None:
                raise UserNotFound()
            return self._duplicate(event, current)

        updated = self._user_repo.apply_payment(
            owner, event.event_key, event.kind, event.credits_granted
        )

        if updated is None:
            current = self._user_repo.find_by_user_code(owner)
            if current is None:
                self._release(event, owner, UserNotFound.code)
                raise UserNotFound()

            # 이전 전달이 유저 반영 뒤 applied 기록 전에 끊긴 경우.
            self._mark_applied(event, owner)
            return self._duplicate(event, current)

        logger.info(
            "entitlement applied kind=%s credits_granted=%s credits=%s is_premium=%s",
            event.kind,
            event.credits_granted,
            updated.credits,
            updated.is_premium,
            extra={"user_code": owner, "payment_event_id": event.event_key},
        )
        self._mark_applied(event, owner)
        if event.credits_granted > 0:
            self._record_purchase(event, owner, updated.credits)
        publish_payment_event(
            self._event_bus,
            event_type=PaymentEventType.ENTITLEMENT_APPLIED,
            event_key=event.event_key,
            kind=event.kind.value,
            user_code=owner,
            credits_granted=event.credits_granted,
        )

        return ReconcileResult(
            event_key=event.event_key,
            user_code=owner,
            kind=event.kind,
            applied=True,
            credits_granted=event.credits_granted,
            credits=updated.credits,
            is_premium=updated.is_premium,
        )

    def list_unresolved_payments(
        self, page: int = 1, page_size: int = 20
    ) -> tuple[list[PaymentRecord], int]:
        """수동 정산 대기 중인 결제 목록."""
        return self._payment_repo.list_by_status(PaymentRecordStatus.UNRESOLVED, page, page_size)

    def _duplicate(self, event: PaymentEvent, current: User) -> ReconcileResult:
        # 이미 반영된 결제: 아무것도 바꾸지 않고 성공으로 응답한다.
        logger.info(
            "duplicate payment event ignored (source=%s)",
            event.source,
            extra={"user_code": current.user_code, "payment_event_id": event.event_key},
        )
        return ReconcileResult(
            event_key=event.event_key,
            user_code=current.user_code,
            kind=event.kind,
            applied=False,
            credits_granted=event.credits_granted,
            credits=current.credits,
            is_premium=current.is_premium,
        )

    def _mark_applied(self, event: PaymentEvent, user_code: str) -> None:
        # pending 으로 남아도 다음 전달이 유저 도큐먼트의 키로 중복을 걸러낸다.
        try:
            self._payment_repo.mark_applied(event.event_key)
        except Exception:  # noqa: BLE001
            logger.exception(
                "failed to write payment audit record",
                extra={"user_code": user_code, "payment_event_id": event.event_key},
            )

    def _mark_unresolved(
        self, event: PaymentEvent, user_code: str | None, error_code: str
    ) -> None:
        self._payment_repo.mark_unresolved(
            event_key=event.event_key,
            session_id=event.session_id,
            kind=event.kind,
            credits_granted=event.credits_granted,
            user_code=user_code,
            source=event.source,
            error_code=error_code,
        )
        self._report_unresolved(event, user_code, error_code)

    def _release(self, event: PaymentEvent, user_code: str, error_code: str) -> None:
        self._payment_repo.release(event.event_key, error_code)
        self._report_unresolved(event, user_code, error_code)

    def _report_unresolved(
        self, event: PaymentEvent, user_code: str | None, error_code: str
    ) -> None:
        logger.error(
            "entitlement NOT applied, queued for manual reconciliation (error=%s kind=%s credits_granted=%s)",
            error_code,
            event.kind,
            event.credits_granted,
            extra={"user_code": user_code, "payment_event_id": event.event_key},
        )
        publish_payment_event(
            self._event_bus,
            event_type=PaymentEventType.ENTITLEMENT_FAILED,
            event_key=event.event_key,
            kind=event.kind.value,
            user_code=user_code,
            credits_granted=event.credits_granted,
            error_code=error_code,
        )

    def _record_purchase(self, event: PaymentEvent, user_code: str, remaining: int) -> None:
        now = datetime.now(timezone.utc)
        try:
            self._transaction_repo.create(
                CreditTransaction(
                    user_code=user_code,
                    type=TransactionType.PURCHASE,
                    amount=event.credits_granted,
                    reason=f"payment:{event.kind}",
                    ref_id=event.event_key,
                    remaining=remaining,
                    metadata={"session_id": event.session_id, "source": event.source.value},
                    created_at=now,
                    updated_at=now,
                )
            )
        except Exception:  # noqa: BLE001
            logger.exception(
                "failed to write credit transaction type=%s",
                TransactionType.PURCHASE,
                extra={"user_code": user_code, "payment_event_id": event.event_key},
            )
        publish_credit_event(
            self._event_bus,
            event_type=CreditEventType.CREDIT_PURCHASED,
            user_code=user_code,
            amount=event.credits_granted,
            remaining=remaining,
            reason=f"payment:{event.kind}",
            ref_id=event.event_key,
        )
