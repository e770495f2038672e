from __future__ import annotations

from datetime import datetime, timezone

from pymongo import ReturnDocument
from pymongo.database import Database

from ..models.payment import PaymentKind
from ..models.user import SubscriptionTier, User
from .documents.user_document import UserDocument
from .interfaces import UserRepositoryInterface


# 유저 도큐먼트에 남기는 최근 결제 키 개수.
APPLIED_PAYMENT_KEYS_KEPT = 20


class UserRepository(UserRepositoryInterface):
    """users 컬렉션에 대한 MongoDB 접근 레이어.

    크레딧 잔액과 권한 변경은 전부 find_one_and_update 한 번으로 끝나는
    조건부 업데이트다. 여러 도큐먼트에 걸친 트랜잭션은 사용하지 않는다.
    """

    def __init__(self, database: Database) -> None:
        self._db = database
        self._col = database["users"]

    @staticmethod
    def _from_document(doc: dict) -> User:
        document = UserDocument.model_validate(doc)
        return document.to_domain()

    def find_by_user_code(self, user_code: str) -> User | None:
        doc = self._col.find_one({"user_code": user_code})
        if not doc:
            return None
        return self._from_document(doc)

    def find_by_provider_and_sub(self, provider: str, provider_sub: str) -> User | None:
        doc = self._col.find_one({"provider": provider, "provider_sub": provider_sub})
        if not doc:
            return None
        return self._from_document(doc)

    def insert(self, user: User) -> User:
        now = datetime.now(timezone.utc)
        user.created_at = now
        user.updated_at = now

        document = UserDocument.from_domain(user)
        payload = document.to_mongo_record()
        self._col.insert_one(payload)
        return self._from_document(payload)

    def try_debit(self, user_code: str, amount: int) -> User | None:
        # credits >= amount 조건과 차감을 한 번에 수행해야 동시 요청에서도 음수가 되지 않는다.
        result = self._col.find_one_and_update(
            {"user_code": user_code, "credits": {"$gte": amount}},
            {
                "$inc": {"credits": -amount},
                "$set": {"updated_at": datetime.now(timezone.utc)},
            },
            return_document=ReturnDocument.AFTER,
        )
        if not result:
            return None
        return self._from_document(result)

    def add_credits(self, user_code: str, amount: int) -> User | None:
        result = self._col.find_one_and_update(
            {"user_code": user_code},
            {
                "$inc": {"credits": amount},
                "$set": {"updated_at": datetime.now(timezone.utc)},
            },
            return_document=ReturnDocument.AFTER,
        )
        if not result:
            return None
        return self._from_document(result)

    def append_story_id(self, user_code: str, story_id: str, limit: int | None) -> bool:
        query: dict = {"user_code": user_code}
        if limit is not None:
            # story_ids.<limit-1> 이 없으면 보유 개수가 limit 미만이다.
            query["$or"] = [
                {"is_premium": True},
                {f"story_ids.{limit - 1}": {"$exists": False}},
            ]

        result = self._col.update_one(
            query,
            {
                "$push": {"story_ids": story_id},
                "$set": {"updated_at": datetime.now(timezone.utc)},
            },
        )
        return result.modified_count == 1

    def remove_story_id(self, user_code: str, story_id: str) -> bool:
        result = self._col.update_one(
            {"user_code": user_code},
            {
                "$pull": {"story_ids": story_id},
                "$set": {"updated_at": datetime.now(timezone.utc)},
            },
        )
        return result.modified_count == 1

    def apply_payment(
        self, user_code: str, event_key: str, kind: PaymentKind, credits: int
    ) -> User | None:
        now = datetime.now(timezone.utc)
        update: dict = {
            "$push": {
                "applied_payment_keys": {
                    "$each": [event_key],
                    "$slice": -APPLIED_PAYMENT_KEYS_KEPT,
                }
            },
            "$set": {"updated_at": now},
        }
        if kind is PaymentKind.PREMIUM:
            # 프리미엄은 한 번 켜지면 결제 이벤트로 꺼지지 않는다.
            update["$set"]["is_premium"] = True
            update["$set"]["subscription"] = SubscriptionTier.PREMIUM.value
        if credits > 0:
            update["$inc"] = {"credits": credits}

        result = self._col.find_one_and_update(
            {"user_code": user_code, "applied_payment_keys": {"$ne": event_key}},
            update,
            return_document=ReturnDocument.AFTER,
        )
        if not result:
            return None
        return self._from_document(result)
