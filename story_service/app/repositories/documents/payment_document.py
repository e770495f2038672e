from __future__ import annotations

from common.mongo.types import BaseDocument, from_object_id

from ...models.payment import PaymentKind, PaymentRecord, PaymentRecordStatus, PaymentSource


class PaymentEventDocument(BaseDocument):
    """MongoDB payment_events 컬렉션 도큐먼트 모델."""

    event_key: str
    session_id: str
    kind: str
    credits_granted: int = 0
    user_code: str | None = None
    status: str
    source: str
    delivery_count: int = 1
    error_code: str | None = None

    def to_domain(self) -> PaymentRecord:
        return PaymentRecord(
            id=from_object_id(self.id),
            event_key=self.event_key,
            session_id=self.session_id,
            kind=PaymentKind(self.kind),
            credits_granted=self.credits_granted,
            user_code=self.user_code,
            status=PaymentRecordStatus(self.status),
            source=PaymentSource(self.source),
            delivery_count=self.delivery_count,
            error_code=self.error_code,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )
