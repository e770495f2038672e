"""스토리 낭독(TTS) 서비스. 크레딧을 차감하지 않는다."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

import httpx

from ..config import TtsConfig
from ..exceptions import NarrationFailed, StoryAccessDenied, StoryNotFound
from ..models.story import Story
from ..repositories.interfaces import StoryRepositoryInterface


logger = logging.getLogger(__name__)

MAX_NARRATION_CHARS = 2000
DEFAULT_VOICE_ID = "en-US-natalie"
DEFAULT_VOICE_STYLE = "Neutral"

_CONTROL_CHAR_REGEX = re.compile(r"[\x00-\x1f\x7f-\x9f]")
_WHITESPACE_REGEX = re.compile(r"\s+")


@dataclass(frozen=True, slots=True)
class Voice:
    voice_id: str
    name: str
    gender: str
    style: str


VOICES: tuple[Voice, ...] = (
    Voice("en-US-natalie", "Natalie (US)", "female", "natural"),
    Voice("en-US-mike", "Mike (US)", "male", "natural"),
    Voice("en-US-leah", "Leah (US)", "female", "conversational"),
    Voice("en-US-ken", "Ken (US)", "male", "deep"),
    Voice("en-US-amy", "Amy (US)", "female", "professional"),
    Voice("en-US-brian", "Brian (US)", "male", "casual"),
    Voice("en-GB-emma", "Emma (UK)", "female", "british"),
    Voice("en-GB-james", "James (UK)", "male", "british"),
)

_VOICE_IDS = {voice.voice_id for voice in VOICES}


def sanitize_narration_text(text: str) -> str:
    """제어 문자와 줄바꿈을 정리하고 TTS 입력 한도로 자른다."""

    cleaned = text.replace("‘", "'").replace("’", "'")
    cleaned = cleaned.replace("“", '"').replace("”", '"')
    # 줄바꿈도 제어 문자이므로 먼저 공백으로 바꿔 단어가 붙지 않게 한다.
    cleaned = _WHITESPACE_REGEX.sub(" ", cleaned)
    cleaned = _CONTROL_CHAR_REGEX.sub("", cleaned).strip()
    return cleaned[:MAX_NARRATION_CHARS]


def normalize_voice_id(voice_id: str | None) -> str:
    if voice_id and voice_id in _VOICE_IDS:
        return voice_id
    return DEFAULT_VOICE_ID


class TtsClient:
    """TTS HTTP API 클라이언트."""

    def __init__(
        self, config: TtsConfig, *, transport: httpx.BaseTransport | None = None
    ) -> None:
        self._config = config
        self._transport = transport

    def _build_client(self) -> httpx.Client:
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if self._config.api_key:
            headers["api-key"] = self._config.api_key
        return httpx.Client(
            timeout=self._config.timeout_seconds,
            headers=headers,
            transport=self._transport,
        )

    def synthesize(self, text: str, voice_id: str) -> str:
        """음성을 생성하고 오디오 파일 URL 을 반환한다."""

        if not self._config.api_key:
            raise NarrationFailed("TTS API key is not configured")

        client = self._build_client()
        try:
            resp = client.post(
                self._config.api_url,
                json={"text": text, "voiceId": voice_id, "style": DEFAULT_VOICE_STYLE},
            )
        except httpx.TimeoutException as exc:
            raise NarrationFailed(f"TTS request timed out: {exc}") from exc
        except httpx.RequestError as exc:  # noqa: BLE001
            raise NarrationFailed(f"TTS request failed: {exc}") from exc
        finally:
            client.close()

        if resp.status_code != 200:
            body_sample = resp.text[:500]
            raise NarrationFailed(
                f"TTS request failed: status code {resp.status_code}, body: {body_sample}"
            )

        try:
            audio_url = resp.json().get("audioFile")
        except ValueError as exc:
            raise NarrationFailed("TTS response is not JSON") from exc
        if not audio_url:
            raise NarrationFailed("No audio file found in the TTS response")
        return str(audio_url)


class NarrationService:
    def __init__(self, story_repo: StoryRepositoryInterface, tts_client: TtsClient) -> None:
        self._story_repo = story_repo
        self._tts_client = tts_client

    def list_voices(self) -> list[Voice]:
        return list(VOICES)

    def narrate(self, user_code: str, story_id: str, voice_id: str | None = None) -> Story:
        story = self._story_repo.find_by_id(story_id)
        if story is None:
            raise StoryNotFound()
        if story.owner_code != user_code:
            raise StoryAccessDenied()

        text = sanitize_narration_text(story.content)
        if not text:
            raise NarrationFailed("story has no text to narrate")

        voice = normalize_voice_id(voice_id)
        audio_url = self._tts_client.synthesize(text, voice)

        updated = self._story_repo.set_audio(story_id, audio_url, voice)
        if updated is None:
            raise StoryNotFound()

        logger.info(
            "narration generated voice=%s chars=%s",
            voice,
            len(text),
            extra={"user_code": user_code, "story_id": story_id},
        )
        return updated
