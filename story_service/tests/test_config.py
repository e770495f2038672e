from __future__ import annotations

from pathlib import Path

import pytest

from common.llm.factory import LlmProvider

from story_service.app.config import (
    load_generation_config,
    load_policy_config,
    load_stripe_config,
)


def _write_config(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "config.yaml"
    path.write_text(text, encoding="utf-8")
    return path


def test_policy_config_reads_billing_and_story_sections(tmp_path: Path) -> None:
    path = _write_config(
        tmp_path,
        """
billing:
  default_credits: 5
  generation_cost: 2
  currency: USD
  credit_packages:
    - id: starter
      name: Starter Pack
      credits: 30
      price_cents: 499
      premium_price_cents: 399
story:
  free_story_limit: 4
  premium_required_for: public
""",
    )

    billing, story = load_policy_config(path)

    assert billing.default_credits == 5
    assert billing.generation_cost == 2
    assert billing.currency == "usd"
    assert billing.premium_waives_generation_cost is False
    assert [p.id for p in billing.credit_packages] == ["starter"]
    assert story.free_story_limit == 4
    assert story.premium_required_for == "public"


def test_policy_config_defaults_when_sections_missing(tmp_path: Path) -> None:
    billing, story = load_policy_config(_write_config(tmp_path, "{}\n"))

    assert billing.default_credits == 10
    assert billing.generation_cost == 1
    assert billing.credit_packages == []
    assert story.free_story_limit == 3
    assert story.premium_required_for == "private"


def test_policy_config_rejects_unknown_visibility_gate(tmp_path: Path) -> None:
    path = _write_config(tmp_path, "story:\n  premium_required_for: friends\n")

    with pytest.raises(RuntimeError):
        load_policy_config(path)


def test_policy_config_rejects_negative_cost(tmp_path: Path) -> None:
    path = _write_config(tmp_path, "billing:\n  generation_cost: -1\n")

    with pytest.raises(RuntimeError):
        load_policy_config(path)


def test_generation_config_requires_model(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("STORY_LLM_MODEL_NAME", raising=False)

    with pytest.raises(RuntimeError):
        load_generation_config()


def test_generation_config_applies_timeout_to_llm(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("STORY_LLM_PROVIDER", "openai")
    monkeypatch.setenv("STORY_LLM_MODEL_NAME", "gpt-4o-mini")
    monkeypatch.setenv("STORY_GENERATION_TIMEOUT_SECONDS", "12.5")

    config = load_generation_config()

    assert config.llm.provider is LlmProvider.OPENAI
    assert config.timeout_seconds == 12.5
    assert config.llm.timeout == 12.5


def test_stripe_config_strips_trailing_slash(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("FRONTEND_URL", "https://stories.example.com/")
    monkeypatch.delenv("STRIPE_SECRET_KEY", raising=False)

    config = load_stripe_config()

    assert config.frontend_url == "https://stories.example.com"
    assert config.secret_key is None
