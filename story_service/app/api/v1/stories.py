from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, status

from common.schemas.pagination import PaginatedResponse, normalize_paging

from ...services.generation_service import StoryService
from ..deps import get_current_user_code, get_optional_user_code, get_story_service
from ..schemas.stories import (
    StoryCreateRequest,
    StoryGenerationResponse,
    StoryResponse,
    StoryTitleRequest,
    StoryVisibilityRequest,
    TitleSuggestionsResponse,
)


router = APIRouter(prefix="/stories", tags=["stories"])


@router.post("", status_code=status.HTTP_201_CREATED, summary="스토리 생성 (크레딧 차감)")
def create_story(
    body: StoryCreateRequest,
    user_code: Annotated[str, Depends(get_current_user_code)],
    service: Annotated[StoryService, Depends(get_story_service)],
) -> StoryGenerationResponse:
    result = service.create_story(user_code, body.title, body.settings, body.is_public)
    return StoryGenerationResponse(
        story=StoryResponse.from_domain(result.story),
        credits_remaining=result.credits_remaining,
    )


@router.get("/me", summary="내 스토리 목록")
def list_my_stories(
    user_code: Annotated[str, Depends(get_current_user_code)],
    service: Annotated[StoryService, Depends(get_story_service)],
    page: int = 1,
    page_size: int = 20,
) -> PaginatedResponse[StoryResponse]:
    page, page_size = normalize_paging(page, page_size)
    items, total = service.list_my_stories(user_code, page, page_size)
    return PaginatedResponse(
        items=[StoryResponse.from_domain(s) for s in items],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get("/public", summary="공개 스토리 피드")
def list_public_stories(
    service: Annotated[StoryService, Depends(get_story_service)],
    page: int = 1,
    page_size: int = 20,
) -> PaginatedResponse[StoryResponse]:
    page, page_size = normalize_paging(page, page_size)
    items, total = service.list_public_stories(page, page_size)
    return PaginatedResponse(
        items=[StoryResponse.from_domain(s) for s in items],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get("/{story_id}", summary="스토리 조회")
def get_story(
    story_id: str,
    viewer_code: Annotated[str | None, Depends(get_optional_user_code)],
    service: Annotated[StoryService, Depends(get_story_service)],
) -> StoryResponse:
    return StoryResponse.from_domain(service.get_story(story_id, viewer_code))


@router.post("/{story_id}/continue", summary="스토리 이어쓰기 (크레딧 차감)")
def continue_story(
    story_id: str,
    user_code: Annotated[str, Depends(get_current_user_code)],
    service: Annotated[StoryService, Depends(get_story_service)],
) -> StoryGenerationResponse:
    result = service.continue_story(user_code, story_id)
    return StoryGenerationResponse(
        story=StoryResponse.from_domain(result.story),
        credits_remaining=result.credits_remaining,
    )


@router.patch("/{story_id}/visibility", summary="공개 상태 변경")
def set_story_visibility(
    story_id: str,
    body: StoryVisibilityRequest,
    user_code: Annotated[str, Depends(get_current_user_code)],
    service: Annotated[StoryService, Depends(get_story_service)],
) -> StoryResponse:
    story = service.set_story_visibility(user_code, story_id, body.is_public)
    return StoryResponse.from_domain(story)


@router.patch("/{story_id}/title", summary="제목 수정")
def update_story_title(
    story_id: str,
    body: StoryTitleRequest,
    user_code: Annotated[str, Depends(get_current_user_code)],
    service: Annotated[StoryService, Depends(get_story_service)],
) -> StoryResponse:
    story = service.update_story_title(user_code, story_id, body.title)
    return StoryResponse.from_domain(story)


@router.post("/{story_id}/title-suggestions", summary="제목 추천 (무료)")
def suggest_titles(
    story_id: str,
    user_code: Annotated[str, Depends(get_current_user_code)],
    service: Annotated[StoryService, Depends(get_story_service)],
) -> TitleSuggestionsResponse:
    return TitleSuggestionsResponse(titles=service.suggest_titles(user_code, story_id))


@router.delete("/{story_id}", summary="스토리 삭제")
def delete_story(
    story_id: str,
    user_code: Annotated[str, Depends(get_current_user_code)],
    service: Annotated[StoryService, Depends(get_story_service)],
) -> dict[str, str]:
    service.delete_story(user_code, story_id)
    return {"message": "story_deleted"}
