from __future__ import annotations

from datetime import datetime, timezone

from pymongo import DESCENDING, ReturnDocument
from pymongo.database import Database

from common.mongo.types import try_object_id
from common.schemas.pagination import normalize_paging

from ..models.story import PARAGRAPH_SEPARATOR, Story
from .documents.story_document import StoryDocument
from .interfaces import StoryRepositoryInterface


class StoryRepository(StoryRepositoryInterface):
    """stories 컬렉션에 대한 MongoDB 접근 레이어."""

    def __init__(self, database: Database) -> None:
        self._db = database
        self._col = database["stories"]

    @staticmethod
    def _from_document(doc: dict) -> Story:
        return StoryDocument.model_validate(doc).to_domain()

    def _update_by_id(self, story_id: str, update: dict | list) -> Story | None:
        oid = try_object_id(story_id)
        if oid is None:
            return None
        result = self._col.find_one_and_update(
            {"_id": oid},
            update,
            return_document=ReturnDocument.AFTER,
        )
        if not result:
            return None
        return self._from_document(result)

    def insert(self, story: Story) -> Story:
        now = datetime.now(timezone.utc)
        story.created_at = now
        story.updated_at = now

        payload = StoryDocument.from_domain(story).to_mongo_record()
        result = self._col.insert_one(payload)
        payload["_id"] = result.inserted_id
        return self._from_document(payload)

    def find_by_id(self, story_id: str) -> Story | None:
        oid = try_object_id(story_id)
        if oid is None:
            return None
        doc = self._col.find_one({"_id": oid})
        if not doc:
            return None
        return self._from_document(doc)

    def append_content(self, story_id: str, text: str) -> Story | None:
        # 파이프라인 업데이트로 읽고-덧붙이기를 서버에서 한 번에 처리한다.
        # 본문이 "$" 로 시작해도 필드 경로로 해석되지 않도록 $literal 로 감싼다.
        return self._update_by_id(
            story_id,
            [
                {
                    "$set": {
                        "content": {
                            "$concat": ["$content", PARAGRAPH_SEPARATOR, {"$literal": text}]
                        },
                        "updated_at": datetime.now(timezone.utc),
                    }
                }
            ],
        )

    def set_visibility(self, story_id: str, is_public: bool) -> Story | None:
        return self._update_by_id(
            story_id,
            {"$set": {"is_public": is_public, "updated_at": datetime.now(timezone.utc)}},
        )

    def update_title(self, story_id: str, title: str) -> Story | None:
        return self._update_by_id(
            story_id,
            {"$set": {"title": title, "updated_at": datetime.now(timezone.utc)}},
        )

    def set_audio(self, story_id: str, audio_url: str, voice_id: str) -> Story | None:
        return self._update_by_id(
            story_id,
            {
                "$set": {
                    "audio_url": audio_url,
                    "voice_id": voice_id,
                    "updated_at": datetime.now(timezone.utc),
                }
            },
        )

    def delete(self, story_id: str) -> bool:
        oid = try_object_id(story_id)
        if oid is None:
            return False
        result = self._col.delete_one({"_id": oid})
        return result.deleted_count > 0

    def _list(self, query: dict, page: int, page_size: int) -> tuple[list[Story], int]:
        page, page_size = normalize_paging(page, page_size)
        skip = (page - 1) * page_size

        total = self._col.count_documents(query)
        cursor = self._col.find(
            query,
            sort=[("created_at", DESCENDING), ("_id", DESCENDING)],
            skip=skip,
            limit=page_size,
        )
        return [self._from_document(raw) for raw in cursor], total

    def list_by_owner(
        self, owner_code: str, page: int, page_size: int
    ) -> tuple[list[Story], int]:
        return self._list({"owner_code": owner_code}, page, page_size)

    def list_public(self, page: int, page_size: int) -> tuple[list[Story], int]:
        return self._list({"is_public": True}, page, page_size)
