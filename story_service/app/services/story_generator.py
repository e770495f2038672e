from __future__ import annotations

import logging
import re
from dataclasses import replace
from typing import Callable, Protocol

from langchain_core.exceptions import OutputParserException
from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.output_parsers import PydanticOutputParser
from langchain_core.prompts import ChatPromptTemplate
from pydantic import BaseModel, Field

from common.llm.factory import ChatModelConfig, create_chat_model

from ..models.story import GeneratedStory, StorySettings


logger = logging.getLogger(__name__)

# 이어쓰기 시 모델에 넘기는 기존 본문 꼬리 길이
CONTINUATION_CONTEXT_CHARS = 2000
TITLE_SUGGESTION_TOKENS = 200
DEFAULT_TITLE_SUGGESTIONS = ["Untitled Romance", "A New Chapter", "Hearts Entwined"]

_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


STORY_SYSTEM_INSTRUCTION = """
You are a fiction writer. Write an original short romance story based on the settings below.
The response MUST be a valid JSON object with two keys:

1. title: a short story title.
2. content: the story text. Separate paragraphs with a blank line.

Constraints:
- Do NOT wrap the JSON output in a markdown code block.
- Keep the requested writing tone and narration voice throughout.
"""

CONTINUE_SYSTEM_INSTRUCTION = """
You are a fiction writer continuing an existing story.
Write the next part so that it follows naturally from the given excerpt.
Return ONLY the new text, without repeating the excerpt and without a title.
Keep the requested writing tone and narration voice.
"""

TITLE_SYSTEM_INSTRUCTION = """
Suggest three short titles for the given story.
Return ONLY a JSON object with a single key "titles" holding a list of strings.
"""


class _StoryOutput(BaseModel):
    title: str = Field(default="")
    content: str = Field(default="")


class _TitleOutput(BaseModel):
    titles: list[str] = Field(default_factory=list)


class StoryGeneratorInterface(Protocol):
    """외부 스토리 생성기 계약 (크레딧 차감 대상 호출)."""

    def generate(
        self, title: str, settings: StorySettings
    ) -> GeneratedStory:  # pragma: no cover - Protocol
        ...

    def continue_story(
        self, existing_content: str, settings: StorySettings
    ) -> str:  # pragma: no cover - Protocol
        ...

    def suggest_titles(self, content: str) -> list[str]:  # pragma: no cover - Protocol
        ...


def _describe_settings(settings: StorySettings) -> str:
    lines = [
        f"- Time period: {settings.time_period}",
        f"- Location: {settings.location}",
        f"- Atmosphere: {settings.atmosphere}",
        f"- Protagonist gender: {settings.protagonist_gender}",
        f"- Partner gender: {settings.partner_gender}",
        f"- Relationship: {settings.relationship}",
        f"- Writing tone: {settings.writing_tone}",
        f"- Narration voice: {settings.narration_voice}",
        f"- Length: {settings.length} / 5",
    ]
    if settings.setting_description:
        lines.append(f"- Setting details: {settings.setting_description}")
    if settings.protagonist_description:
        lines.append(f"- Protagonist: {settings.protagonist_description}")
    if settings.love_interest_description:
        lines.append(f"- Love interest: {settings.love_interest_description}")
    if settings.explicit_level is not None:
        lines.append(f"- Explicit level: {settings.explicit_level} / 100")
    return "\n".join(lines)


def strip_code_fence(text: str) -> str:
    """모델이 지시를 어기고 ```json 블록으로 감싼 경우 벗겨낸다."""
    return _FENCE_RE.sub("", text.strip()).strip()


def _message_text(message: object) -> str:
    content = getattr(message, "content", message)
    if isinstance(content, list):
        # 일부 provider 는 content 를 파트 리스트로 돌려준다.
        return "".join(
            part.get("text", "") if isinstance(part, dict) else str(part) for part in content
        )
    return str(content)


class StoryGenerator(StoryGeneratorInterface):
    """LangChain 채팅 모델 기반 스토리 생성기.

    생성 길이(max_tokens)가 요청마다 달라서 호출마다 모델을 만든다.
    """

    def __init__(
        self,
        config: ChatModelConfig | None = None,
        *,
        chat_model_factory: Callable[[int | None], BaseChatModel] | None = None,
    ) -> None:
        if chat_model_factory is None:
            if config is None:
                raise ValueError("either config or chat_model_factory is required")
            base_config = config

            def chat_model_factory(max_tokens: int | None) -> BaseChatModel:
                return create_chat_model(replace(base_config, max_tokens=max_tokens))

        self._chat_model_factory = chat_model_factory

    def generate(self, title: str, settings: StorySettings) -> GeneratedStory:
        parser = PydanticOutputParser(pydantic_object=_StoryOutput)
        prompt = ChatPromptTemplate.from_messages(
            [
                ("system", STORY_SYSTEM_INSTRUCTION + "\n\n{format_instructions}"),
                ("human", "Title idea: {title}\n\nSettings:\n{settings}"),
            ]
        ).partial(format_instructions=parser.get_format_instructions())

        chain = prompt | self._chat_model_factory(settings.max_tokens)
        raw = strip_code_fence(
            _message_text(chain.invoke({"title": title, "settings": _describe_settings(settings)}))
        )

        try:
            parsed = parser.parse(raw)
        except OutputParserException:
            # JSON 이 아니면 응답 전체를 본문으로 사용한다.
            logger.warning("story output is not valid JSON, using raw text as content")
            return GeneratedStory(title=title, content=raw)

        return GeneratedStory(
            title=parsed.title.strip() or title,
            content=parsed.content.strip() or raw,
        )

    def continue_story(self, existing_content: str, settings: StorySettings) -> str:
        prompt = ChatPromptTemplate.from_messages(
            [
                ("system", CONTINUE_SYSTEM_INSTRUCTION),
                ("human", "Settings:\n{settings}\n\nStory so far (excerpt):\n{excerpt}"),
            ]
        )
        chain = prompt | self._chat_model_factory(settings.max_tokens)
        message = chain.invoke(
            {
                "settings": _describe_settings(settings),
                "excerpt": existing_content[-CONTINUATION_CONTEXT_CHARS:],
            }
        )
        text = strip_code_fence(_message_text(message))
        if not text:
            raise RuntimeError("continuation came back empty")
        return text

    def suggest_titles(self, content: str) -> list[str]:
        parser = PydanticOutputParser(pydantic_object=_TitleOutput)
        prompt = ChatPromptTemplate.from_messages(
            [
                ("system", TITLE_SYSTEM_INSTRUCTION + "\n\n{format_instructions}"),
                ("human", "{content}"),
            ]
        ).partial(format_instructions=parser.get_format_instructions())

        try:
            chain = prompt | self._chat_model_factory(TITLE_SUGGESTION_TOKENS)
            message = chain.invoke({"content": content[:CONTINUATION_CONTEXT_CHARS]})
            parsed = parser.parse(strip_code_fence(_message_text(message)))
        except Exception as exc:  # noqa: BLE001
            logger.warning("title suggestion failed, using defaults: %s", exc)
            return list(DEFAULT_TITLE_SUGGESTIONS)

        titles = [t.strip() for t in parsed.titles if t and t.strip()]
        return titles[:3] or list(DEFAULT_TITLE_SUGGESTIONS)
