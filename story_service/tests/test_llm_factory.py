from __future__ import annotations

import pytest
from langchain_openai import ChatOpenAI

from common.llm.factory import ChatModelConfig, LlmProvider, create_chat_model


def test_openrouter_uses_openai_client_with_default_base_url() -> None:
    model = create_chat_model(
        ChatModelConfig(
            provider=LlmProvider.OPENROUTER,
            model="meta-llama/llama-3-8b-instruct",
            api_key="sk-or-test",
            max_tokens=600,
            timeout=30,
        )
    )

    assert isinstance(model, ChatOpenAI)
    assert model.openai_api_base == "https://openrouter.ai/api/v1"
    assert model.max_tokens == 600


def test_provider_parsing_is_case_insensitive() -> None:
    assert LlmProvider.from_str(" OpenAI ") is LlmProvider.OPENAI
    with pytest.raises(ValueError):
        LlmProvider.from_str("anthropic-bedrock")
