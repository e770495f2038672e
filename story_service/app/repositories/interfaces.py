from __future__ import annotations

from typing import Protocol

from ..models.credit import CreditTransaction
from ..models.payment import PaymentKind, PaymentRecord, PaymentRecordStatus, PaymentSource
from ..models.story import Story
from ..models.user import User


class UserRepositoryInterface(Protocol):
    """UserRepository가 따라야 할 최소한의 계약.

    Service 레이어는 이 인터페이스에만 의존하고, 구체 구현(Mongo 등)은 몰라도 된다.
    잔액/프리미엄/스토리 목록 변경은 모두 단일 도큐먼트 원자 연산이어야 한다.
    """

    def find_by_user_code(
        self, user_code: str
    ) -> User | None:  # pragma: no cover - Protocol
        ...

    def find_by_provider_and_sub(
        self, provider: str, provider_sub: str
    ) -> User | None:  # pragma: no cover - Protocol
        ...

    def insert(self, user: User) -> User:  # pragma: no cover - Protocol
        ...

    def try_debit(
        self, user_code: str, amount: int
    ) -> User | None:  # pragma: no cover - Protocol
        """credits >= amount 인 경우에만 차감하고 갱신된 유저를 반환한다.

        잔액 부족이거나 유저가 없으면 None 을 반환하며 아무것도 바꾸지 않는다.
        """
        ...

    def add_credits(
        self, user_code: str, amount: int
    ) -> User | None:  # pragma: no cover - Protocol
        ...

    def append_story_id(
        self, user_code: str, story_id: str, limit: int | None
    ) -> bool:  # pragma: no cover - Protocol
        """story_ids 끝에 추가한다.

        limit 이 주어지면 프리미엄이 아니고 이미 limit 개 이상 보유한 경우 추가하지 않고
        False 를 반환한다.
        """
        ...

    def remove_story_id(
        self, user_code: str, story_id: str
    ) -> bool:  # pragma: no cover - Protocol
        ...

    def apply_payment(
        self, user_code: str, event_key: str, kind: PaymentKind, credits: int
    ) -> User | None:  # pragma: no cover - Protocol
        """결제 권한을 반영하고 event_key 를 같은 업데이트에서 기록한다.

        이미 반영된 event_key 이거나 유저가 없으면 None 을 반환한다. 기록은 최근 것만
        유지하며, 전체 중복 판정은 payment_events 의 claim 이 담당한다.
        """
        ...


class StoryRepositoryInterface(Protocol):
    """StoryRepository가 따라야 할 최소한의 계약."""

    def insert(self, story: Story) -> Story:  # pragma: no cover - Protocol
        ...

    def find_by_id(self, story_id: str) -> Story | None:  # pragma: no cover - Protocol
        ...

    def append_content(
        self, story_id: str, text: str
    ) -> Story | None:  # pragma: no cover - Protocol
        """기존 본문 뒤에 문단 구분자와 text 를 원자적으로 덧붙인다."""
        ...

    def set_visibility(
        self, story_id: str, is_public: bool
    ) -> Story | None:  # pragma: no cover - Protocol
        ...

    def update_title(
        self, story_id: str, title: str
    ) -> Story | None:  # pragma: no cover - Protocol
        ...

    def set_audio(
        self, story_id: str, audio_url: str, voice_id: str
    ) -> Story | None:  # pragma: no cover - Protocol
        ...

    def delete(self, story_id: str) -> bool:  # pragma: no cover - Protocol
        ...

    def list_by_owner(
        self, owner_code: str, page: int, page_size: int
    ) -> tuple[list[Story], int]:  # pragma: no cover - Protocol
        ...

    def list_public(
        self, page: int, page_size: int
    ) -> tuple[list[Story], int]:  # pragma: no cover - Protocol
        ...


class CreditTransactionRepositoryInterface(Protocol):
    """크레딧 트랜잭션 로그 레포지토리 계약."""

    def create(
        self, tx: CreditTransaction
    ) -> CreditTransaction:  # pragma: no cover - Protocol
        ...

    def list_by_user(
        self, user_code: str, page: int, page_size: int
    ) -> tuple[list[CreditTransaction], int]:  # pragma: no cover - Protocol
        ...


class PaymentEventRepositoryInterface(Protocol):
    """결제 이벤트 레코드 레포지토리 계약.

    event_key 당 레코드는 1건이며, 재전달은 delivery_count 로 누적한다.
    유저 권한 변경 전에 claim 으로 event_key 를 점유해야 한다.
    """

    def claim(
        self,
        *,
        event_key: str,
        session_id: str,
        kind: PaymentKind,
        credits_granted: int,
        user_code: str,
        source: PaymentSource,
    ) -> PaymentRecord:  # pragma: no cover - Protocol
        """event_key 를 점유하고 반영 대상 유저가 고정된 레코드를 반환한다.

        레코드가 없거나 unresolved 면 user_code 로 pending 레코드를 만든다.
        pending/applied 레코드가 이미 있으면 저장된 user_code 를 그대로 돌려준다.
        """
        ...

    def mark_applied(
        self, event_key: str
    ) -> PaymentRecord | None:  # pragma: no cover - Protocol
        ...

    def release(
        self, event_key: str, error_code: str
    ) -> PaymentRecord | None:  # pragma: no cover - Protocol
        """pending 레코드를 unresolved 로 돌려 다음 전달이 다시 점유할 수 있게 한다."""
        ...

    def mark_unresolved(
        self,
        *,
        event_key: str,
        session_id: str,
        kind: PaymentKind,
        credits_granted: int,
        user_code: str | None,
        source: PaymentSource,
        error_code: str,
    ) -> PaymentRecord:  # pragma: no cover - Protocol
        """대상 유저를 정할 수 없는 전달을 기록한다. 기존 레코드의 상태는 바꾸지 않는다."""
        ...

    def find_by_event_key(
        self, event_key: str
    ) -> PaymentRecord | None:  # pragma: no cover - Protocol
        ...

    def list_by_status(
        self, status: PaymentRecordStatus, page: int, page_size: int
    ) -> tuple[list[PaymentRecord], int]:  # pragma: no cover - Protocol
        ...
