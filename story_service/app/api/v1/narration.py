from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends

from ...services.narration_service import NarrationService
from ..deps import get_current_user_code, get_narration_service
from ..schemas.stories import NarrationRequest, StoryResponse, VoiceResponse


router = APIRouter(prefix="/narration", tags=["narration"])


@router.get("/voices", summary="낭독 음성 목록")
def list_voices(
    service: Annotated[NarrationService, Depends(get_narration_service)],
) -> list[VoiceResponse]:
    return [
        VoiceResponse(voice_id=v.voice_id, name=v.name, gender=v.gender, style=v.style)
        for v in service.list_voices()
    ]


@router.post("/stories/{story_id}", summary="스토리 낭독 생성")
def narrate_story(
    story_id: str,
    body: NarrationRequest,
    user_code: Annotated[str, Depends(get_current_user_code)],
    service: Annotated[NarrationService, Depends(get_narration_service)],
) -> StoryResponse:
    story = service.narrate(user_code, story_id, body.voice_id)
    return StoryResponse.from_domain(story)
