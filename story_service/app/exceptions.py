from __future__ import annotations


class StoryServiceError(Exception):
    """Base exception for all story-service domain errors."""

    code: str = "story_service_error"
    status_code: int = 500

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.__class__.__doc__ or self.code)

    @property
    def message(self) -> str:
        return str(self)


class InsufficientCredits(StoryServiceError):
    """크레딧이 부족합니다. 크레딧을 충전해 주세요."""

    code = "insufficient_credits"
    status_code = 402

    def __init__(self, required: int, available: int | None = None) -> None:
        super().__init__()
        self.required = required
        self.available = available


class StoryLimitReached(StoryServiceError):
    """무료 회원은 스토리를 최대 3개까지 만들 수 있습니다. 프리미엄으로 업그레이드해 주세요."""

    code = "story_limit_reached"
    status_code = 403

    def __init__(self, limit: int) -> None:
        super().__init__(
            f"무료 회원은 스토리를 최대 {limit}개까지 만들 수 있습니다. "
            "프리미엄으로 업그레이드해 주세요."
        )
        self.limit = limit


class VisibilityDenied(StoryServiceError):
    """Visibility change requires premium."""

    code = "premium_required"
    status_code = 403


class StoryAccessDenied(StoryServiceError):
    """You don't have permission to modify this story."""

    code = "forbidden"
    status_code = 403


class ActionFailed(StoryServiceError):
    """External action failed; consumed credits were refunded."""

    code = "generation_failed"
    status_code = 502

    def __init__(self, operation: str, cause: BaseException) -> None:
        super().__init__(f"{operation} failed: {cause}")
        self.operation = operation
        self.cause = cause


class NarrationFailed(StoryServiceError):
    """Text-to-speech request failed."""

    code = "narration_failed"
    status_code = 502


class UserNotFound(StoryServiceError):
    """user not found"""

    code = "user_not_found"
    status_code = 404


class StoryNotFound(StoryServiceError):
    """story not found"""

    code = "story_not_found"
    status_code = 404


class UserNotResolvable(StoryServiceError):
    """Payment event has no resolvable target user."""

    code = "user_not_resolvable"
    status_code = 422


class PaymentNotCompleted(StoryServiceError):
    """Checkout session is not paid."""

    code = "payment_not_completed"
    status_code = 402


class PaymentProviderError(StoryServiceError):
    """Payment processor request failed."""

    code = "payment_provider_error"
    status_code = 502


class InvalidCreditPackage(StoryServiceError):
    """Unknown credit package."""

    code = "invalid_package"
    status_code = 400


class PersistenceFailed(StoryServiceError):
    """Persistence failed; ledger state may be half-applied."""

    code = "persistence_failed"
    status_code = 500

    def __init__(self, operation: str, cause: BaseException | None = None) -> None:
        detail = f"{operation}: {cause}" if cause is not None else operation
        super().__init__(f"persistence failed during {detail}")
        self.operation = operation
        self.cause = cause


class AlreadyPremium(StoryServiceError):
    """User already has premium."""

    code = "already_premium"
    status_code = 409


class WebhookSignatureInvalid(StoryServiceError):
    """Invalid webhook signature."""

    code = "invalid_signature"
    status_code = 400
