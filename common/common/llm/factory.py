"""채팅 모델 생성 팩토리.

provider 별 LangChain 채팅 모델을 같은 설정 객체(ChatModelConfig)로 만든다.
생성 길이와 타임아웃은 요청마다 달라질 수 있어 설정에 포함한다.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Self

from langchain_core.language_models.chat_models import BaseChatModel
from langchain_google_genai import ChatGoogleGenerativeAI
from langchain_ollama import ChatOllama
from langchain_openai import ChatOpenAI


DEFAULT_OLLAMA_BASE_URL = "http://localhost:11434"
DEFAULT_OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"


class LlmProvider(str, Enum):
    GOOGLE = "google"
    OPENAI = "openai"
    OLLAMA = "ollama"
    OPENROUTER = "openrouter"

    @classmethod
    def from_str(cls, value: str) -> Self:
        normalized = value.strip().lower()
        try:
            return cls(normalized)
        except ValueError as exc:
            raise ValueError(f"unsupported LLM provider: {value}") from exc


@dataclass(slots=True)
class ChatModelConfig:
    provider: LlmProvider
    model: str
    temperature: float = 1.0
    api_key: str | None = None
    base_url: str | None = None
    max_retries: int = 0
    max_tokens: int | None = None
    # 요청 단위 HTTP 타임아웃(초). None 이면 provider 기본값을 따른다.
    timeout: float | None = None


def _openai_compatible(cfg: ChatModelConfig, default_base_url: str | None) -> ChatOpenAI:
    kwargs: dict[str, Any] = {}
    # api_key 를 넘기지 않으면 OPENAI_API_KEY 환경 변수를 사용한다.
    if cfg.api_key:
        kwargs["api_key"] = cfg.api_key
    return ChatOpenAI(
        model=cfg.model,
        temperature=cfg.temperature,
        base_url=cfg.base_url or default_base_url,
        max_retries=cfg.max_retries,
        max_tokens=cfg.max_tokens,
        timeout=cfg.timeout,
        **kwargs,
    )


def _google(cfg: ChatModelConfig) -> ChatGoogleGenerativeAI:
    kwargs: dict[str, Any] = {}
    if cfg.api_key:
        kwargs["google_api_key"] = cfg.api_key
    return ChatGoogleGenerativeAI(
        model=cfg.model,
        temperature=cfg.temperature,
        max_retries=cfg.max_retries,
        max_output_tokens=cfg.max_tokens,
        timeout=cfg.timeout,
        **kwargs,
    )


def _ollama(cfg: ChatModelConfig) -> ChatOllama:
    return ChatOllama(
        model=cfg.model,
        temperature=cfg.temperature,
        base_url=cfg.base_url or DEFAULT_OLLAMA_BASE_URL,
        num_predict=cfg.max_tokens,
        client_kwargs={"timeout": cfg.timeout} if cfg.timeout else {},
    )


_CHAT_FACTORIES: dict[LlmProvider, Callable[[ChatModelConfig], BaseChatModel]] = {
    LlmProvider.GOOGLE: _google,
    LlmProvider.OPENAI: lambda cfg: _openai_compatible(cfg, None),
    LlmProvider.OLLAMA: _ollama,
    LlmProvider.OPENROUTER: lambda cfg: _openai_compatible(cfg, DEFAULT_OPENROUTER_BASE_URL),
}


def create_chat_model(config: ChatModelConfig) -> BaseChatModel:
    try:
        factory = _CHAT_FACTORIES[config.provider]
    except KeyError as exc:
        raise ValueError(f"unsupported chat provider: {config.provider}") from exc
    return factory(config)
