"""유저 권한(entitlement) 도메인 모델.

크레딧 잔액과 프리미엄 여부는 서로 독립적인 재화다.
- credits: 생성/이어쓰기 1회마다 차감되는 소모성 재화 (항상 0 이상)
- is_premium: 무료 스토리 개수 제한과 비공개 전환 제한을 풀어주는 플래그
"""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, Field


DEFAULT_SIGNUP_CREDITS = 10


class UserRole(StrEnum):
    USER = "user"
    ADMIN = "admin"


class SubscriptionTier(StrEnum):
    FREE = "free"
    PREMIUM = "premium"


class User(BaseModel):
    """유저 도메인 모델 (users 컬렉션과 1:1 매핑)."""

    user_code: str
    provider: str
    provider_sub: str
    email: str
    name: str
    role: UserRole = UserRole.USER
    subscription: SubscriptionTier = SubscriptionTier.FREE
    is_premium: bool = False
    credits: int = Field(default=DEFAULT_SIGNUP_CREDITS, ge=0)
    story_ids: list[str] = Field(default_factory=list)  # 생성 순서 유지
    created_at: datetime
    updated_at: datetime

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


class UserRegisterInput(BaseModel):
    """회원가입(로컬/OAuth) 결과로 게이트웨이가 전달하는 입력."""

    provider: str
    provider_sub: str
    email: str
    name: str


class EntitlementProfile(BaseModel):
    """유저 권한 상태 조회 결과."""

    user_code: str
    email: str
    name: str
    role: UserRole
    subscription: SubscriptionTier
    is_premium: bool
    credits: int
    story_count: int
    # None 이면 개수 제한 없음 (프리미엄)
    stories_remaining: int | None
