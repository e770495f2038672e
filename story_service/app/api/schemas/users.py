from __future__ import annotations

from pydantic import BaseModel, Field

from ...models.user import EntitlementProfile


class UserRegisterRequest(BaseModel):
    provider: str = Field(..., min_length=1)
    provider_sub: str = Field(..., min_length=1)
    email: str
    name: str


class EntitlementProfileResponse(BaseModel):
    user_code: str
    email: str
    name: str
    role: str
    subscription: str
    is_premium: bool
    credits: int
    story_count: int
    stories_remaining: int | None

    @classmethod
    def from_domain(cls, profile: EntitlementProfile) -> "EntitlementProfileResponse":
        return cls(
            user_code=profile.user_code,
            email=profile.email,
            name=profile.name,
            role=profile.role.value,
            subscription=profile.subscription.value,
            is_premium=profile.is_premium,
            credits=profile.credits,
            story_count=profile.story_count,
            stories_remaining=profile.stories_remaining,
        )
