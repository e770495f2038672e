from __future__ import annotations

from typing import Any

from common.mongo.types import BaseDocument, build_document_data_from_domain, from_object_id

from ...models.story import DEFAULT_STORY_CREDITS_COST, Story, StorySettings


class StoryDocument(BaseDocument):
    """MongoDB stories 컬렉션 도큐먼트 모델."""

    title: str
    content: str
    owner_code: str
    settings: dict[str, Any]
    is_public: bool
    credits_cost: int = DEFAULT_STORY_CREDITS_COST
    audio_url: str | None = None
    voice_id: str | None = None

    @classmethod
    def from_domain(cls, story: Story) -> "StoryDocument":
        data = build_document_data_from_domain(story)
        return cls.model_validate(data)

    def to_domain(self) -> Story:
        return Story(
            id=from_object_id(self.id),
            title=self.title,
            content=self.content,
            owner_code=self.owner_code,
            settings=StorySettings.model_validate(self.settings),
            is_public=self.is_public,
            credits_cost=self.credits_cost,
            audio_url=self.audio_url,
            voice_id=self.voice_id,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )
