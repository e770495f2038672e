"""스토리 공개 여부 정책.

스토리 생성과 공개 상태 변경 모두 이 함수 하나로 판단한다.
"""

from __future__ import annotations

from dataclasses import dataclass

from ..models.user import User


PREMIUM_REQUIRED_FOR_PRIVATE = "private"
PREMIUM_REQUIRED_FOR_PUBLIC = "public"


@dataclass(frozen=True, slots=True)
class VisibilityDecision:
    allowed: bool
    reason: str | None = None


class VisibilityPolicy:
    """프리미엄이 필요한 공개 상태를 설정값으로 받는 정책."""

    def __init__(self, premium_required_for: str = PREMIUM_REQUIRED_FOR_PRIVATE) -> None:
        if premium_required_for not in (PREMIUM_REQUIRED_FOR_PRIVATE, PREMIUM_REQUIRED_FOR_PUBLIC):
            raise ValueError(
                f"premium_required_for must be 'private' or 'public', got: {premium_required_for!r}"
            )
        self._premium_required_for = premium_required_for

    @property
    def default_is_public(self) -> bool:
        """무료 회원이 항상 선택할 수 있는 공개 상태."""
        return self._premium_required_for == PREMIUM_REQUIRED_FOR_PRIVATE

    def can_set_visibility(self, user: User, requested_is_public: bool) -> VisibilityDecision:
        if user.is_premium:
            return VisibilityDecision(allowed=True)

        gated_is_public = self._premium_required_for == PREMIUM_REQUIRED_FOR_PUBLIC
        if requested_is_public != gated_is_public:
            return VisibilityDecision(allowed=True)

        if gated_is_public:
            return VisibilityDecision(
                allowed=False,
                reason="Only premium users can make stories public",
            )
        return VisibilityDecision(
            allowed=False,
            reason="Only premium users can make stories private",
        )
