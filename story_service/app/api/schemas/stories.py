from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from common.types.datetime import UtcDateTime

from ...models.story import Story, StorySettings


class StoryCreateRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    title: str = Field(default="", max_length=200)
    settings: StorySettings
    # 생략하면 무료 회원이 선택할 수 있는 기본 공개 상태를 사용한다.
    is_public: bool | None = None


class StoryVisibilityRequest(BaseModel):
    is_public: bool


class StoryTitleRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)


class NarrationRequest(BaseModel):
    voice_id: str | None = None


class StoryResponse(BaseModel):
    id: str
    title: str
    content: str
    owner_code: str
    settings: StorySettings
    is_public: bool
    credits_cost: int
    audio_url: str | None
    voice_id: str | None
    created_at: UtcDateTime
    updated_at: UtcDateTime

    @classmethod
    def from_domain(cls, story: Story) -> "StoryResponse":
        return cls(
            id=story.id or "",
            title=story.title,
            content=story.content,
            owner_code=story.owner_code,
            settings=story.settings,
            is_public=story.is_public,
            credits_cost=story.credits_cost,
            audio_url=story.audio_url,
            voice_id=story.voice_id,
            created_at=story.created_at,
            updated_at=story.updated_at,
        )


class StoryGenerationResponse(BaseModel):
    """생성/이어쓰기 결과 (차감 후 잔액 포함)."""

    story: StoryResponse
    credits_remaining: int


class TitleSuggestionsResponse(BaseModel):
    titles: list[str]


class VoiceResponse(BaseModel):
    voice_id: str
    name: str
    gender: str
    style: str
