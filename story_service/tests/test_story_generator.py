from __future__ import annotations

import pytest
from langchain_core.language_models import FakeListChatModel

from story_service.app.services.story_generator import (
    DEFAULT_TITLE_SUGGESTIONS,
    StoryGenerator,
    strip_code_fence,
)

from fakes import build_settings


def _generator(*responses: str, seen_max_tokens: list | None = None) -> StoryGenerator:
    def factory(max_tokens: int | None) -> FakeListChatModel:
        if seen_max_tokens is not None:
            seen_max_tokens.append(max_tokens)
        return FakeListChatModel(responses=list(responses))

    return StoryGenerator(chat_model_factory=factory)


def test_strip_code_fence_removes_json_block() -> None:
    assert strip_code_fence('```json\n{"a": 1}\n```') == '{"a": 1}'
    assert strip_code_fence("plain text") == "plain text"


def test_generate_parses_fenced_json() -> None:
    seen: list = []
    generator = _generator(
        '```json\n{"title": "서울의 봄", "content": "첫 만남."}\n```', seen_max_tokens=seen
    )

    story = generator.generate("", build_settings(length=3))

    assert story.title == "서울의 봄"
    assert story.content == "첫 만남."
    assert seen == [900]


def test_generate_falls_back_to_raw_text() -> None:
    generator = _generator("그날 밤, 두 사람은 처음 만났다.")

    story = generator.generate("첫 만남", build_settings())

    assert story.title == "첫 만남"
    assert story.content == "그날 밤, 두 사람은 처음 만났다."


def test_continue_story_returns_new_text() -> None:
    generator = _generator("  다음 이야기.  ")

    assert generator.continue_story("이전 이야기.", build_settings()) == "다음 이야기."


def test_continue_story_rejects_empty_output() -> None:
    generator = _generator("   ")

    with pytest.raises(RuntimeError):
        generator.continue_story("이전 이야기.", build_settings())


def test_suggest_titles_falls_back_to_defaults() -> None:
    generator = _generator("not json at all")

    assert generator.suggest_titles("내용") == DEFAULT_TITLE_SUGGESTIONS


def test_suggest_titles_returns_at_most_three() -> None:
    generator = _generator('{"titles": ["A", "B", "C", "D"]}')

    assert generator.suggest_titles("내용") == ["A", "B", "C"]


def test_generator_requires_config_or_factory() -> None:
    with pytest.raises(ValueError):
        StoryGenerator()
