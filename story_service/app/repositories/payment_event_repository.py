from __future__ import annotations

from datetime import datetime, timezone

from pymongo import DESCENDING, ReturnDocument
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from common.schemas.pagination import normalize_paging

from ..models.payment import PaymentKind, PaymentRecord, PaymentRecordStatus, PaymentSource
from .documents.payment_document import PaymentEventDocument
from .interfaces import PaymentEventRepositoryInterface


class PaymentEventRepository(PaymentEventRepositoryInterface):
    """payment_events 컬렉션에 대한 MongoDB 접근 레이어.

    event_key 유니크 인덱스가 세션당 레코드 1건을 보장한다. 어떤 유저에게 반영할지는
    처음 점유한 레코드의 user_code 로 고정되며, 이후 전달은 그 값을 따른다.
    """

    def __init__(self, database: Database) -> None:
        self._db = database
        self._col = database["payment_events"]

    @staticmethod
    def _from_document(doc: dict) -> PaymentRecord:
        return PaymentEventDocument.model_validate(doc).to_domain()

    def _new_payload(
        self,
        *,
        event_key: str,
        session_id: str,
        kind: PaymentKind,
        credits_granted: int,
        user_code: str | None,
        source: PaymentSource,
        status: PaymentRecordStatus,
        error_code: str | None,
    ) -> dict:
        now = datetime.now(timezone.utc)
        return {
            "event_key": event_key,
            "session_id": session_id,
            "kind": kind.value,
            "credits_granted": credits_granted,
            "user_code": user_code,
            "status": status.value,
            "source": source.value,
            "delivery_count": 1,
            "error_code": error_code,
            "created_at": now,
            "updated_at": now,
        }

    def _count_delivery(self, event_key: str) -> dict | None:
        return self._col.find_one_and_update(
            {"event_key": event_key},
            {"$inc": {"delivery_count": 1}, "$set": {"updated_at": datetime.now(timezone.utc)}},
            return_document=ReturnDocument.AFTER,
        )

    def claim(
        self,
        *,
        event_key: str,
        session_id: str,
        kind: PaymentKind,
        credits_granted: int,
        user_code: str,
        source: PaymentSource,
    ) -> PaymentRecord:
        # 1. 처음 도착한 전달이 pending 레코드를 만들고 대상 유저를 고정한다.
        payload = self._new_payload(
            event_key=event_key,
            session_id=session_id,
            kind=kind,
            credits_granted=credits_granted,
            user_code=user_code,
            source=source,
            status=PaymentRecordStatus.PENDING,
            error_code=None,
        )
        try:
            self._col.insert_one(payload)
            return self._from_document(payload)
        except DuplicateKeyError:
            pass

        # 2. unresolved 레코드는 어떤 유저도 바꾸지 않았으므로 새 대상 유저로 다시 점유한다.
        reclaimed = self._col.find_one_and_update(
            {"event_key": event_key, "status": PaymentRecordStatus.UNRESOLVED.value},
            {
                "$set": {
                    "status": PaymentRecordStatus.PENDING.value,
                    "user_code": user_code,
                    "error_code": None,
                    "updated_at": datetime.now(timezone.utc),
                },
                "$inc": {"delivery_count": 1},
            },
            return_document=ReturnDocument.AFTER,
        )
        if reclaimed:
            return self._from_document(reclaimed)

        # 3. pending/applied 레코드는 저장된 대상 유저를 그대로 돌려준다.
        return self._from_document(self._count_delivery(event_key))

    def mark_applied(self, event_key: str) -> PaymentRecord | None:
        result = self._col.find_one_and_update(
            {"event_key": event_key},
            {
                "$set": {
                    "status": PaymentRecordStatus.APPLIED.value,
                    "error_code": None,
                    "updated_at": datetime.now(timezone.utc),
                }
            },
            return_document=ReturnDocument.AFTER,
        )
        if not result:
            return None
        return self._from_document(result)

    def release(self, event_key: str, error_code: str) -> PaymentRecord | None:
        result = self._col.find_one_and_update(
            {"event_key": event_key, "status": PaymentRecordStatus.PENDING.value},
            {
                "$set": {
                    "status": PaymentRecordStatus.UNRESOLVED.value,
                    "error_code": error_code,
                    "updated_at": datetime.now(timezone.utc),
                }
            },
            return_document=ReturnDocument.AFTER,
        )
        if not result:
            return None
        return self._from_document(result)

    def mark_unresolved(
        self,
        *,
        event_key: str,
        session_id: str,
        kind: PaymentKind,
        credits_granted: int,
        user_code: str | None,
        source: PaymentSource,
        error_code: str,
    ) -> PaymentRecord:
        # 1. 이미 레코드가 있으면 재전달 횟수만 올린다 (상태는 그대로 유지).
        existing = self._count_delivery(event_key)
        if existing:
            return self._from_document(existing)

        # 2. 없으면 unresolved 로 새로 기록한다.
        payload = self._new_payload(
            event_key=event_key,
            session_id=session_id,
            kind=kind,
            credits_granted=credits_granted,
            user_code=user_code,
            source=source,
            status=PaymentRecordStatus.UNRESOLVED,
            error_code=error_code,
        )
        try:
            self._col.insert_one(payload)
        except DuplicateKeyError:
            # 동시에 다른 경로가 먼저 기록함 -> 그 레코드를 갱신한다.
            return self._from_document(self._count_delivery(event_key))
        return self._from_document(payload)

    def find_by_event_key(self, event_key: str) -> PaymentRecord | None:
        doc = self._col.find_one({"event_key": event_key})
        if not doc:
            return None
        return self._from_document(doc)

    def list_by_status(
        self, status: PaymentRecordStatus, page: int, page_size: int
    ) -> tuple[list[PaymentRecord], int]:
        page, page_size = normalize_paging(page, page_size)
        skip = (page - 1) * page_size

        query = {"status": status.value}
        total = self._col.count_documents(query)
        cursor = self._col.find(
            query,
            sort=[("created_at", DESCENDING)],
            skip=skip,
            limit=page_size,
        )
        return [self._from_document(raw) for raw in cursor], total
