"""크레딧 트랜잭션 MongoDB 도큐먼트."""

from __future__ import annotations

from common.mongo.types import BaseDocument, build_document_data_from_domain, from_object_id

from ...models.credit import CreditTransaction, TransactionType


class CreditTransactionDocument(BaseDocument):
    """MongoDB credit_transactions 컬렉션 도큐먼트 모델."""

    user_code: str
    type: str
    amount: int
    reason: str
    ref_id: str | None = None
    remaining: int | None = None
    metadata: dict | None = None

    @classmethod
    def from_domain(cls, tx: CreditTransaction) -> "CreditTransactionDocument":
        data = build_document_data_from_domain(tx)
        return cls.model_validate(data)

    def to_domain(self) -> CreditTransaction:
        return CreditTransaction(
            id=from_object_id(self.id),
            user_code=self.user_code,
            type=TransactionType(self.type),
            amount=self.amount,
            reason=self.reason,
            ref_id=self.ref_id,
            remaining=self.remaining,
            metadata=self.metadata,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )
