from __future__ import annotations

import logging
from datetime import datetime, timezone
from uuid import uuid4

from ..exceptions import UserNotFound
from ..models.user import (
    DEFAULT_SIGNUP_CREDITS,
    EntitlementProfile,
    SubscriptionTier,
    User,
    UserRegisterInput,
    UserRole,
)
from ..repositories.interfaces import UserRepositoryInterface


logger = logging.getLogger(__name__)


class UsersService:
    """유저 등록 및 권한 상태 조회 비즈니스 로직.

    - Repository(UserRepositoryInterface)에만 의존하고, Mongo 세부 구현은 알지 않는다.
    """

    def __init__(
        self,
        user_repo: UserRepositoryInterface,
        *,
        free_story_limit: int,
        default_credits: int = DEFAULT_SIGNUP_CREDITS,
    ) -> None:
        self._user_repo = user_repo
        self._free_story_limit = free_story_limit
        self._default_credits = default_credits

    def register_user(self, input_model: UserRegisterInput) -> EntitlementProfile:
        """같은 provider 계정으로 다시 가입하면 기존 유저를 그대로 돌려준다."""
        existing = self._user_repo.find_by_provider_and_sub(
            provider=input_model.provider,
            provider_sub=input_model.provider_sub,
        )
        if existing is not None:
            return self._to_profile(existing)

        now = datetime.now(timezone.utc)
        user = User(
            user_code=f"{input_model.provider}:{uuid4()}",
            provider=input_model.provider,
            provider_sub=input_model.provider_sub,
            email=input_model.email,
            name=input_model.name,
            role=UserRole.USER,
            subscription=SubscriptionTier.FREE,
            is_premium=False,
            credits=self._default_credits,
            created_at=now,
            updated_at=now,
        )
        created = self._user_repo.insert(user)
        logger.info(
            "user registered credits=%s",
            created.credits,
            extra={"user_code": created.user_code},
        )
        return self._to_profile(created)

    def get_profile(self, user_code: str) -> EntitlementProfile:
        user = self._user_repo.find_by_user_code(user_code)
        if user is None:
            raise UserNotFound()
        return self._to_profile(user)

    def _to_profile(self, user: User) -> EntitlementProfile:
        story_count = len(user.story_ids)
        remaining = (
            None if user.is_premium else max(self._free_story_limit - story_count, 0)
        )
        return EntitlementProfile(
            user_code=user.user_code,
            email=user.email,
            name=user.name,
            role=user.role,
            subscription=user.subscription,
            is_premium=user.is_premium,
            credits=user.credits,
            story_count=story_count,
            stories_remaining=remaining,
        )
