"""스토리 생성/이어쓰기 오케스트레이션.

순서:
1. 스토리 개수 제한 확인 (크레딧 차감 전)
2. 공개 상태 정책 확인
3. CreditLedgerGuard 로 차감 후 외부 생성기 호출
4. Story 저장 후 유저 story_ids 에 추가
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from ..exceptions import (
    PersistenceFailed,
    StoryAccessDenied,
    StoryLimitReached,
    StoryNotFound,
    UserNotFound,
    VisibilityDenied,
)
from ..models.story import DEFAULT_STORY_CREDITS_COST, Story, StorySettings
from ..models.user import User
from ..repositories.interfaces import StoryRepositoryInterface, UserRepositoryInterface
from .credit_ledger import CreditLedgerGuard
from .story_generator import StoryGeneratorInterface
from .visibility_policy import VisibilityPolicy


logger = logging.getLogger(__name__)

OPERATION_CREATE = "story.create"
OPERATION_CONTINUE = "story.continue"


@dataclass(slots=True)
class StoryResult:
    story: Story
    credits_remaining: int


class StoryService:
    """스토리 관련 비즈니스 로직."""

    def __init__(
        self,
        user_repo: UserRepositoryInterface,
        story_repo: StoryRepositoryInterface,
        guard: CreditLedgerGuard,
        generator: StoryGeneratorInterface,
        visibility_policy: VisibilityPolicy,
        *,
        free_story_limit: int,
        generation_cost: int = DEFAULT_STORY_CREDITS_COST,
        premium_waives_generation_cost: bool = False,
    ) -> None:
        self._user_repo = user_repo
        self._story_repo = story_repo
        self._guard = guard
        self._generator = generator
        self._visibility_policy = visibility_policy
        self._free_story_limit = free_story_limit
        self._generation_cost = generation_cost
        self._premium_waives_generation_cost = premium_waives_generation_cost

    # -------- generation (credit-metered) --------

    def create_story(
        self,
        user_code: str,
        title: str,
        settings: StorySettings,
        is_public: bool | None = None,
    ) -> StoryResult:
        user = self._load_user(user_code)

        # 개수 제한은 크레딧을 쓰기 전에 확인한다.
        if not user.is_premium and len(user.story_ids) >= self._free_story_limit:
            raise StoryLimitReached(self._free_story_limit)

        requested_is_public = (
            self._visibility_policy.default_is_public if is_public is None else is_public
        )
        decision = self._visibility_policy.can_set_visibility(user, requested_is_public)
        if not decision.allowed:
            raise VisibilityDenied(decision.reason)

        cost = self._cost_for(user)
        generated, remaining = self._guard.charge_and_run(
            user_code,
            cost,
            lambda: self._generator.generate(title, settings),
            operation=OPERATION_CREATE,
        )

        now = datetime.now(timezone.utc)
        draft = Story(
            title=title.strip() or generated.title,
            content=generated.content,
            owner_code=user_code,
            settings=settings,
            is_public=requested_is_public,
            credits_cost=cost,
            created_at=now,
            updated_at=now,
        )

        try:
            story = self._story_repo.insert(draft)
        except Exception as exc:
            logger.error(
                "generated story could not be saved, refunding",
                extra={"user_code": user_code, "operation": OPERATION_CREATE},
                exc_info=True,
            )
            self._refund(user_code, cost, OPERATION_CREATE, None)
            raise PersistenceFailed(OPERATION_CREATE, exc) from exc

        if story.id is None:
            logger.error(
                "story saved without id, refunding",
                extra={"user_code": user_code, "operation": OPERATION_CREATE},
            )
            self._refund(user_code, cost, OPERATION_CREATE, None)
            raise PersistenceFailed(OPERATION_CREATE)
        self._link_story(user_code, story.id, cost)

        logger.info(
            "story created cost=%s remaining=%s",
            cost,
            remaining,
            extra={"user_code": user_code, "story_id": story.id, "operation": OPERATION_CREATE},
        )
        return StoryResult(story=story, credits_remaining=remaining)

    def continue_story(self, user_code: str, story_id: str) -> StoryResult:
        user = self._load_user(user_code)
        story = self._load_story(story_id)
        if story.owner_code != user_code:
            raise StoryAccessDenied()

        cost = self._cost_for(user)
        text, remaining = self._guard.charge_and_run(
            user_code,
            cost,
            lambda: self._generator.continue_story(story.content, story.settings),
            operation=OPERATION_CONTINUE,
            ref_id=story_id,
        )

        try:
            updated = self._story_repo.append_content(story_id, text)
        except Exception as exc:
            logger.error(
                "continuation could not be saved, refunding",
                extra={"user_code": user_code, "story_id": story_id, "operation": OPERATION_CONTINUE},
                exc_info=True,
            )
            self._refund(user_code, cost, OPERATION_CONTINUE, story_id)
            raise PersistenceFailed(OPERATION_CONTINUE, exc) from exc

        if updated is None:
            # 생성 도중 스토리가 삭제됨
            self._refund(user_code, cost, OPERATION_CONTINUE, story_id)
            raise StoryNotFound()

        logger.info(
            "story continued cost=%s remaining=%s",
            cost,
            remaining,
            extra={"user_code": user_code, "story_id": story_id, "operation": OPERATION_CONTINUE},
        )
        return StoryResult(story=updated, credits_remaining=remaining)

    # -------- visibility / CRUD --------

    def set_story_visibility(self, user_code: str, story_id: str, is_public: bool) -> Story:
        user = self._load_user(user_code)
        story = self._load_story(story_id)
        if story.owner_code != user_code:
            raise StoryAccessDenied()

        decision = self._visibility_policy.can_set_visibility(user, is_public)
        if not decision.allowed:
            raise VisibilityDenied(decision.reason)

        updated = self._story_repo.set_visibility(story_id, is_public)
        if updated is None:
            raise StoryNotFound()
        return updated

    def get_story(self, story_id: str, viewer_code: str | None) -> Story:
        """비공개 스토리는 작성자에게만 보인다 (그 외에는 존재하지 않는 것처럼 404)."""
        story = self._load_story(story_id)
        if not story.is_public and story.owner_code != viewer_code:
            raise StoryNotFound()
        return story

    def list_my_stories(
        self, user_code: str, page: int = 1, page_size: int = 20
    ) -> tuple[list[Story], int]:
        return self._story_repo.list_by_owner(user_code, page, page_size)

    def list_public_stories(
        self, page: int = 1, page_size: int = 20
    ) -> tuple[list[Story], int]:
        return self._story_repo.list_public(page, page_size)

    def update_story_title(self, user_code: str, story_id: str, title: str) -> Story:
        story = self._load_story(story_id)
        if story.owner_code != user_code:
            raise StoryAccessDenied()

        updated = self._story_repo.update_title(story_id, title.strip())
        if updated is None:
            raise StoryNotFound()
        return updated

    def delete_story(self, user_code: str, story_id: str) -> None:
        user = self._load_user(user_code)
        story = self._load_story(story_id)
        if story.owner_code != user_code and not user.is_admin:
            raise StoryAccessDenied()

        if not self._story_repo.delete(story_id):
            raise StoryNotFound()
        self._user_repo.remove_story_id(story.owner_code, story_id)
        logger.info(
            "story deleted",
            extra={"user_code": user_code, "story_id": story_id},
        )

    def suggest_titles(self, user_code: str, story_id: str) -> list[str]:
        """제목 추천 (크레딧 차감 없음)."""
        story = self._load_story(story_id)
        if story.owner_code != user_code:
            raise StoryAccessDenied()
        return self._generator.suggest_titles(story.content)

    # -------- internals --------

    def _cost_for(self, user: User) -> int:
        if user.is_premium and self._premium_waives_generation_cost:
            return 0
        return self._generation_cost

    def _load_user(self, user_code: str) -> User:
        user = self._user_repo.find_by_user_code(user_code)
        if user is None:
            raise UserNotFound()
        return user

    def _load_story(self, story_id: str) -> Story:
        story = self._story_repo.find_by_id(story_id)
        if story is None:
            raise StoryNotFound()
        return story

    def _refund(self, user_code: str, cost: int, operation: str, ref_id: str | None) -> None:
        if cost > 0:
            self._guard.refund(user_code, cost, operation=operation, ref_id=ref_id)

    def _link_story(self, user_code: str, story_id: str, cost: int) -> None:
        """저장된 스토리를 유저 story_ids 에 추가한다.

        동시 생성으로 개수 제한을 넘기게 되면 방금 만든 스토리를 지우고 환불한다.
        """
        try:
            linked = self._user_repo.append_story_id(
                user_code, story_id, limit=self._free_story_limit
            )
        except Exception as exc:
            logger.error(
                "story saved but not linked to owner",
                extra={"user_code": user_code, "story_id": story_id, "operation": OPERATION_CREATE},
                exc_info=True,
            )
            self._discard_story(user_code, story_id)
            self._refund(user_code, cost, OPERATION_CREATE, story_id)
            raise PersistenceFailed(OPERATION_CREATE, exc) from exc

        if linked:
            return

        logger.info(
            "story limit reached by a concurrent request, discarding story",
            extra={"user_code": user_code, "story_id": story_id},
        )
        self._discard_story(user_code, story_id)
        self._refund(user_code, cost, OPERATION_CREATE, story_id)
        raise StoryLimitReached(self._free_story_limit)

    def _discard_story(self, user_code: str, story_id: str) -> None:
        try:
            self._story_repo.delete(story_id)
        except Exception:  # noqa: BLE001
            logger.error(
                "orphan story could not be removed",
                extra={"user_code": user_code, "story_id": story_id},
                exc_info=True,
            )
