from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from common.llm.factory import ChatModelConfig, LlmProvider

from .models.payment import CreditPackage
from .models.user import DEFAULT_SIGNUP_CREDITS


DEFAULT_CONFIG_FILE_NAME = "config.yaml"

STORY_LLM_PROVIDER = "STORY_LLM_PROVIDER"
STORY_LLM_MODEL_NAME = "STORY_LLM_MODEL_NAME"
STORY_LLM_API_KEY = "STORY_LLM_API_KEY"
STORY_LLM_BASE_URL = "STORY_LLM_BASE_URL"
STORY_LLM_TEMPERATURE = "STORY_LLM_TEMPERATURE"
STORY_LLM_MAX_RETRIES = "STORY_LLM_MAX_RETRIES"
STORY_GENERATION_TIMEOUT_SECONDS = "STORY_GENERATION_TIMEOUT_SECONDS"
TTS_API_URL = "TTS_API_URL"
TTS_API_KEY = "TTS_API_KEY"
TTS_TIMEOUT_SECONDS = "TTS_TIMEOUT_SECONDS"
STRIPE_SECRET_KEY = "STRIPE_SECRET_KEY"
STRIPE_WEBHOOK_SECRET = "STRIPE_WEBHOOK_SECRET"
FRONTEND_URL = "FRONTEND_URL"

DEFAULT_GENERATION_TIMEOUT_SECONDS = 60.0
DEFAULT_TTS_API_URL = "https://api.murf.ai/v1/speech/generate"
DEFAULT_TTS_TIMEOUT_SECONDS = 30.0
DEFAULT_FRONTEND_URL = "http://localhost:3000"

DEFAULT_FREE_STORY_LIMIT = 3
DEFAULT_GENERATION_COST = 1
DEFAULT_PREMIUM_PRICE_CENTS = 999
DEFAULT_CURRENCY = "usd"


@dataclass(slots=True)
class GenerationConfig:
    """외부 생성기 호출 설정."""

    llm: ChatModelConfig
    # 크레딧 차감 후 외부 호출이 이 시간을 넘기면 실패로 보고 환불한다.
    timeout_seconds: float


@dataclass(slots=True)
class TtsConfig:
    api_url: str
    api_key: str | None
    timeout_seconds: float


@dataclass(slots=True)
class StripeConfig:
    secret_key: str | None
    webhook_secret: str | None
    frontend_url: str


@dataclass(slots=True)
class BillingConfig:
    """크레딧/결제 정책 (config.yaml 의 billing 섹션)."""

    default_credits: int = DEFAULT_SIGNUP_CREDITS
    generation_cost: int = DEFAULT_GENERATION_COST
    premium_price_cents: int = DEFAULT_PREMIUM_PRICE_CENTS
    currency: str = DEFAULT_CURRENCY
    premium_waives_generation_cost: bool = False
    credit_packages: list[CreditPackage] = field(default_factory=list)


@dataclass(slots=True)
class StoryPolicyConfig:
    """스토리 정책 (config.yaml 의 story 섹션).

    premium_required_for: 프리미엄이 필요한 공개 상태 ("private" 또는 "public").
    """

    free_story_limit: int = DEFAULT_FREE_STORY_LIMIT
    premium_required_for: str = "private"


@dataclass(slots=True)
class AppConfig:
    """story-service 전체 설정."""

    generation: GenerationConfig
    tts: TtsConfig
    stripe: StripeConfig
    billing: BillingConfig
    story: StoryPolicyConfig


def _parse_positive_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError as exc:
        raise RuntimeError(f"{name} must be a float if set, got: {raw!r}") from exc
    if value <= 0:
        raise RuntimeError(f"{name} must be > 0, got: {value}")
    return value


def load_chat_model_config() -> ChatModelConfig:
    """스토리 생성용 LLM 설정을 로드한다."""

    provider_raw = os.getenv(STORY_LLM_PROVIDER) or "openai"
    provider = LlmProvider.from_str(provider_raw)

    model = os.getenv(STORY_LLM_MODEL_NAME)
    if not model:
        raise RuntimeError(
            f"{STORY_LLM_MODEL_NAME} environment variable is required for story-service",
        )

    api_key = os.getenv(STORY_LLM_API_KEY) or None

    temperature_raw = os.getenv(STORY_LLM_TEMPERATURE)
    if temperature_raw is None:
        temperature = 0.8
    else:
        try:
            temperature = float(temperature_raw)
        except ValueError as exc:
            raise RuntimeError(
                f"{STORY_LLM_TEMPERATURE} must be a float if set, got: {temperature_raw!r}"
            ) from exc

    base_url = os.getenv(STORY_LLM_BASE_URL) or None

    max_retries_raw = os.getenv(STORY_LLM_MAX_RETRIES)
    if not max_retries_raw:
        max_retries = 0
    else:
        try:
            max_retries = int(max_retries_raw)
        except ValueError as exc:
            raise RuntimeError(
                f"{STORY_LLM_MAX_RETRIES} must be an integer if set, got: {max_retries_raw!r}"
            ) from exc
        if max_retries < 0:
            raise RuntimeError(
                f"{STORY_LLM_MAX_RETRIES} must be >= 0, got: {max_retries}"
            )

    return ChatModelConfig(
        provider=provider,
        model=model,
        temperature=temperature,
        api_key=api_key,
        base_url=base_url,
        max_retries=max_retries,
    )


def load_generation_config() -> GenerationConfig:
    llm = load_chat_model_config()
    timeout = _parse_positive_float(
        STORY_GENERATION_TIMEOUT_SECONDS, DEFAULT_GENERATION_TIMEOUT_SECONDS
    )
    # HTTP 타임아웃을 가드 타임아웃과 맞춰 늦은 응답이 스레드를 오래 점유하지 않게 한다.
    llm.timeout = timeout
    return GenerationConfig(llm=llm, timeout_seconds=timeout)


def load_tts_config() -> TtsConfig:
    return TtsConfig(
        api_url=os.getenv(TTS_API_URL) or DEFAULT_TTS_API_URL,
        api_key=os.getenv(TTS_API_KEY) or None,
        timeout_seconds=_parse_positive_float(
            TTS_TIMEOUT_SECONDS, DEFAULT_TTS_TIMEOUT_SECONDS
        ),
    )


def load_stripe_config() -> StripeConfig:
    frontend_url = (os.getenv(FRONTEND_URL) or DEFAULT_FRONTEND_URL).rstrip("/")
    return StripeConfig(
        secret_key=os.getenv(STRIPE_SECRET_KEY) or None,
        webhook_secret=os.getenv(STRIPE_WEBHOOK_SECRET) or None,
        frontend_url=frontend_url,
    )


def _find_config_path() -> Path | None:
    """현재 작업 디렉토리 기준으로 상위로 올라가며 config.yaml 을 찾는다.

    찾지 못하면 None 을 반환하고 기본 정책을 사용한다.
    """

    current = Path.cwd()
    for directory in (current, *current.parents):
        candidate = directory / DEFAULT_CONFIG_FILE_NAME
        if candidate.is_file():
            return candidate
    return None


def _read_int(section: dict[str, Any], key: str, default: int, path: Path | None) -> int:
    raw = section.get(key, default)
    try:
        value = int(raw)
    except (TypeError, ValueError) as exc:  # noqa: TRY003
        raise RuntimeError(f"invalid {key} in {path}: {raw!r}") from exc
    if value < 0:
        raise RuntimeError(f"{key} must be >= 0 in {path}, got: {value}")
    return value


def _parse_credit_packages(raw_packages: Any, path: Path | None) -> list[CreditPackage]:
    packages: list[CreditPackage] = []
    for item in raw_packages or []:
        if not isinstance(item, dict):
            continue
        try:
            packages.append(CreditPackage.model_validate(item))
        except ValueError as exc:
            raise RuntimeError(f"invalid billing.credit_packages entry in {path}: {item!r}") from exc
    return packages


def load_policy_config(
    path: Path | None = None,
) -> tuple[BillingConfig, StoryPolicyConfig]:
    """config.yaml 의 billing / story 섹션을 로드한다."""

    if path is None:
        path = _find_config_path()

    data: dict[str, Any] = {}
    if path is not None:
        with path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

    billing_raw = data.get("billing") or {}
    story_raw = data.get("story") or {}

    billing = BillingConfig(
        default_credits=_read_int(billing_raw, "default_credits", DEFAULT_SIGNUP_CREDITS, path),
        generation_cost=_read_int(billing_raw, "generation_cost", DEFAULT_GENERATION_COST, path),
        premium_price_cents=_read_int(
            billing_raw, "premium_price_cents", DEFAULT_PREMIUM_PRICE_CENTS, path
        ),
        currency=str(billing_raw.get("currency") or DEFAULT_CURRENCY).lower(),
        premium_waives_generation_cost=bool(
            billing_raw.get("premium_waives_generation_cost", False)
        ),
        credit_packages=_parse_credit_packages(billing_raw.get("credit_packages"), path),
    )

    premium_required_for = str(story_raw.get("premium_required_for") or "private").strip().lower()
    if premium_required_for not in ("private", "public"):
        raise RuntimeError(
            f"story.premium_required_for must be 'private' or 'public' in {path}, "
            f"got: {premium_required_for!r}"
        )

    story = StoryPolicyConfig(
        free_story_limit=_read_int(story_raw, "free_story_limit", DEFAULT_FREE_STORY_LIMIT, path),
        premium_required_for=premium_required_for,
    )
    return billing, story


def load_config() -> AppConfig:
    """story-service 설정을 로드하여 AppConfig로 반환한다."""

    billing, story = load_policy_config()
    return AppConfig(
        generation=load_generation_config(),
        tts=load_tts_config(),
        stripe=load_stripe_config(),
        billing=billing,
        story=story,
    )
