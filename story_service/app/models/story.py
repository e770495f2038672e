from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


# 이어쓰기 결과는 기존 본문 뒤에 문단 경계로 구분해 덧붙인다.
PARAGRAPH_SEPARATOR = "\n\n"

DEFAULT_STORY_CREDITS_COST = 1
TOKENS_PER_LENGTH_UNIT = 300


class StorySettings(BaseModel):
    """스토리 생성 파라미터.

    자유 형식 dict 대신 필수/선택 필드를 명시하고 API 경계에서 검증한다.
    """

    model_config = ConfigDict(extra="forbid")

    time_period: str = Field(..., min_length=1)
    location: str = Field(..., min_length=1)
    atmosphere: str = Field(..., min_length=1)
    protagonist_gender: str = Field(..., min_length=1)
    partner_gender: str = Field(..., min_length=1)
    relationship: str = Field(..., min_length=1)
    writing_tone: str = Field(..., min_length=1)
    narration_voice: str = Field(..., min_length=1)
    length: int = Field(..., ge=1, le=5)
    setting_description: str | None = None
    protagonist_description: str | None = None
    love_interest_description: str | None = None
    explicit_level: int | None = Field(default=None, ge=0, le=100)

    @property
    def max_tokens(self) -> int:
        return TOKENS_PER_LENGTH_UNIT * self.length


class Story(BaseModel):
    """스토리 도메인 모델.

    content 는 이어쓰기로만 늘어나며 줄어들지 않는다.
    """

    id: str | None = None
    title: str
    content: str
    owner_code: str
    settings: StorySettings
    is_public: bool
    credits_cost: int = DEFAULT_STORY_CREDITS_COST
    audio_url: str | None = None
    voice_id: str | None = None
    created_at: datetime
    updated_at: datetime


class GeneratedStory(BaseModel):
    """외부 생성기 응답."""

    title: str
    content: str
