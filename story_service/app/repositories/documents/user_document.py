from __future__ import annotations

from pydantic import Field

from common.mongo.types import BaseDocument, build_document_data_from_domain

from ...models.user import SubscriptionTier, User, UserRole


class UserDocument(BaseDocument):
    """MongoDB users 컬렉션 도큐먼트 모델.

    applied_payment_keys 는 도메인에 노출하지 않는 멱등성 기록이다.
    권한 반영과 같은 업데이트에서 push 되며 최근 키만 유지한다.
    """

    user_code: str
    provider: str
    provider_sub: str
    email: str
    name: str
    role: str = UserRole.USER.value
    subscription: str = SubscriptionTier.FREE.value
    is_premium: bool = False
    credits: int = 0
    story_ids: list[str] = Field(default_factory=list)
    applied_payment_keys: list[str] = Field(default_factory=list)

    @classmethod
    def from_domain(cls, user: User) -> "UserDocument":
        data = build_document_data_from_domain(user)
        return cls.model_validate(data)

    def to_domain(self) -> User:
        return User(
            user_code=self.user_code,
            provider=self.provider,
            provider_sub=self.provider_sub,
            email=self.email,
            name=self.name,
            role=UserRole(self.role),
            subscription=SubscriptionTier(self.subscription),
            is_premium=self.is_premium,
            credits=self.credits,
            story_ids=list(self.story_ids),
            created_at=self.created_at,
            updated_at=self.updated_at,
        )
