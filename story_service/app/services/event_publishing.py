"""도메인 이벤트 발행 헬퍼.

발행 실패는 로그로만 남긴다. 이미 커밋된 잔액/권한 변경은 되돌리지 않는다.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import asdict
from datetime import datetime, timezone

from common.eventbus.core import EventPublisher
from common.eventbus.helpers import new_json_event
from common.eventbus.topics import TOPIC_CREDIT, TOPIC_PAYMENT
from common.events.credit import CreditLedgerEvent
from common.events.payment import PaymentEntitlementEvent


logger = logging.getLogger(__name__)

EVENT_SOURCE = "story-service"


def publish_credit_event(
    bus: EventPublisher,
    *,
    event_type: str,
    user_code: str,
    amount: int,
    remaining: int | None,
    reason: str,
    ref_id: str | None = None,
) -> str:
    """credit.* 이벤트 발행. 생성된 이벤트 ID 를 반환한다."""
    event_id = str(uuid.uuid4())
    event = CreditLedgerEvent(
        id=event_id,
        type=event_type,
        timestamp=datetime.now(timezone.utc).isoformat(),
        source=EVENT_SOURCE,
        version="1.0",
        user_code=user_code,
        amount=amount,
        remaining=remaining,
        reason=reason,
        ref_id=ref_id,
    )
    wrapped = new_json_event(payload=asdict(event), event_id=event_id)
    try:
        bus.publish(TOPIC_CREDIT.base, wrapped)
    except Exception:  # noqa: BLE001
        logger.exception(
            "failed to publish credit event type=%s",
            event_type,
            extra={"user_code": user_code},
        )
    return event_id


def publish_payment_event(
    bus: EventPublisher,
    *,
    event_type: str,
    event_key: str,
    kind: str,
    user_code: str | None,
    credits_granted: int,
    error_code: str | None = None,
) -> str:
    """payment.* 이벤트 발행."""
    event_id = str(uuid.uuid4())
    event = PaymentEntitlementEvent(
        id=event_id,
        type=event_type,
        timestamp=datetime.now(timezone.utc).isoformat(),
        source=EVENT_SOURCE,
        version="1.0",
        event_key=event_key,
        kind=kind,
        user_code=user_code,
        credits_granted=credits_granted,
        error_code=error_code,
    )
    wrapped = new_json_event(payload=asdict(event), event_id=event_id)
    try:
        bus.publish(TOPIC_PAYMENT.base, wrapped)
    except Exception:  # noqa: BLE001
        logger.exception(
            "failed to publish payment event type=%s",
            event_type,
            extra={"user_code": user_code, "payment_event_id": event_key},
        )
    return event_id
