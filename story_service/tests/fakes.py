"""테스트용 in-memory 레포지토리/협력 객체."""

from __future__ import annotations

import json
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from common.eventbus.core import Event

from story_service.app.exceptions import PaymentNotCompleted, WebhookSignatureInvalid
from story_service.app.models.credit import CreditTransaction
from story_service.app.models.payment import (
    PaymentKind,
    PaymentRecord,
    PaymentRecordStatus,
    PaymentSource,
    VerifiedCheckout,
)
from story_service.app.models.story import PARAGRAPH_SEPARATOR, GeneratedStory, Story, StorySettings
from story_service.app.models.user import SubscriptionTier, User
from story_service.app.repositories.user_repository import APPLIED_PAYMENT_KEYS_KEPT


def build_user(
    user_code: str = "user-001",
    *,
    credits: int = 10,
    is_premium: bool = False,
    story_ids: list[str] | None = None,
    role: str = "user",
) -> User:
    now = datetime.now(timezone.utc)
    return User(
        user_code=user_code,
        provider="local",
        provider_sub=f"sub-{user_code}",
        email=f"{user_code}@example.com",
        name=user_code,
        role=role,
        subscription=SubscriptionTier.PREMIUM if is_premium else SubscriptionTier.FREE,
        is_premium=is_premium,
        credits=credits,
        story_ids=list(story_ids or []),
        created_at=now,
        updated_at=now,
    )


def build_settings(**overrides: Any) -> StorySettings:
    data: dict[str, Any] = {
        "time_period": "Modern",
        "location": "Seoul",
        "atmosphere": "Romantic",
        "protagonist_gender": "female",
        "partner_gender": "male",
        "relationship": "strangers",
        "writing_tone": "warm",
        "narration_voice": "first person",
        "length": 2,
    }
    data.update(overrides)
    return StorySettings(**data)


def build_story(
    story_id: str = "000000000000000000000001",
    *,
    owner_code: str = "user-001",
    content: str = "Once upon a time.",
    is_public: bool = True,
) -> Story:
    now = datetime.now(timezone.utc)
    return Story(
        id=story_id,
        title="First Story",
        content=content,
        owner_code=owner_code,
        settings=build_settings(),
        is_public=is_public,
        created_at=now,
        updated_at=now,
    )


class FakeUserRepository:
    """조건부 업데이트를 lock 으로 원자화한 users 컬렉션 흉내."""

    def __init__(self, *users: User) -> None:
        self._lock = threading.Lock()
        self.users: dict[str, User] = {u.user_code: u for u in users}
        self.applied_keys: dict[str, list[str]] = {u.user_code: [] for u in users}
        self.fail_add_credits = False
        self.fail_append_story_id = False
        self.min_observed_credits: int | None = None

    def find_by_user_code(self, user_code: str) -> User | None:
        with self._lock:
            user = self.users.get(user_code)
            return user.model_copy(deep=True) if user else None

    def find_by_provider_and_sub(self, provider: str, provider_sub: str) -> User | None:
        with self._lock:
            for user in self.users.values():
                if user.provider == provider and user.provider_sub == provider_sub:
                    return user.model_copy(deep=True)
            return None

    def insert(self, user: User) -> User:
        with self._lock:
            self.users[user.user_code] = user.model_copy(deep=True)
            self.applied_keys[user.user_code] = []
            return user

    def _observe(self, credits: int) -> None:
        if self.min_observed_credits is None or credits < self.min_observed_credits:
            self.min_observed_credits = credits

    def try_debit(self, user_code: str, amount: int) -> User | None:
        with self._lock:
            user = self.users.get(user_code)
            if user is None or user.credits < amount:
                return None
            user.credits -= amount
            self._observe(user.credits)
            return user.model_copy(deep=True)

    def add_credits(self, user_code: str, amount: int) -> User | None:
        if self.fail_add_credits:
            raise RuntimeError("mongo unavailable")
        with self._lock:
            user = self.users.get(user_code)
            if user is None:
                return None
            user.credits += amount
            return user.model_copy(deep=True)

    def append_story_id(self, user_code: str, story_id: str, limit: int | None) -> bool:
        if self.fail_append_story_id:
            raise RuntimeError("mongo unavailable")
        with self._lock:
            user = self.users.get(user_code)
            if user is None:
                return False
            if limit is not None and not user.is_premium and len(user.story_ids) >= limit:
                return False
            user.story_ids.append(story_id)
            return True

    def remove_story_id(self, user_code: str, story_id: str) -> bool:
        with self._lock:
            user = self.users.get(user_code)
            if user is None or story_id not in user.story_ids:
                return False
            user.story_ids.remove(story_id)
            return True

    def apply_payment(
        self, user_code: str, event_key: str, kind: PaymentKind, credits: int
    ) -> User | None:
        with self._lock:
            user = self.users.get(user_code)
            if user is None or event_key in self.applied_keys[user_code]:
                return None
            if kind is PaymentKind.PREMIUM:
                user.is_premium = True
                user.subscription = SubscriptionTier.PREMIUM
            user.credits += credits
            keys = self.applied_keys[user_code]
            keys.append(event_key)
            del keys[:-APPLIED_PAYMENT_KEYS_KEPT]
            return user.model_copy(deep=True)


class FakeStoryRepository:
    def __init__(self, *stories: Story) -> None:
        self._lock = threading.Lock()
        self.stories: dict[str, Story] = {s.id: s for s in stories if s.id}
        self._seq = len(self.stories)
        self.fail_insert = False
        self.drop_inserted_id = False
        self.deleted_ids: list[str] = []

    def insert(self, story: Story) -> Story:
        if self.fail_insert:
            raise RuntimeError("mongo unavailable")
        with self._lock:
            self._seq += 1
            stored = story.model_copy(update={"id": f"{self._seq:024x}"}, deep=True)
            self.stories[stored.id] = stored
            if self.drop_inserted_id:
                return stored.model_copy(update={"id": None}, deep=True)
            return stored.model_copy(deep=True)

    def find_by_id(self, story_id: str) -> Story | None:
        story = self.stories.get(story_id)
        return story.model_copy(deep=True) if story else None

    def _update(self, story_id: str, **fields: Any) -> Story | None:
        with self._lock:
            story = self.stories.get(story_id)
            if story is None:
                return None
            updated = story.model_copy(update=fields)
            self.stories[story_id] = updated
            return updated.model_copy(deep=True)

    def append_content(self, story_id: str, text: str) -> Story | None:
        with self._lock:
            story = self.stories.get(story_id)
            if story is None:
                return None
            updated = story.model_copy(
                update={"content": story.content + PARAGRAPH_SEPARATOR + text}
            )
            self.stories[story_id] = updated
            return updated.model_copy(deep=True)

    def set_visibility(self, story_id: str, is_public: bool) -> Story | None:
        return self._update(story_id, is_public=is_public)

    def update_title(self, story_id: str, title: str) -> Story | None:
        return self._update(story_id, title=title)

    def set_audio(self, story_id: str, audio_url: str, voice_id: str) -> Story | None:
        return self._update(story_id, audio_url=audio_url, voice_id=voice_id)

    def delete(self, story_id: str) -> bool:
        with self._lock:
            if self.stories.pop(story_id, None) is None:
                return False
            self.deleted_ids.append(story_id)
            return True

    def list_by_owner(
        self, owner_code: str, page: int, page_size: int
    ) -> tuple[list[Story], int]:
        items = [s for s in self.stories.values() if s.owner_code == owner_code]
        return items, len(items)

    def list_public(self, page: int, page_size: int) -> tuple[list[Story], int]:
        items = [s for s in self.stories.values() if s.is_public]
        return items, len(items)


class FakeCreditTransactionRepository:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.created: list[CreditTransaction] = []

    def create(self, tx: CreditTransaction) -> CreditTransaction:
        with self._lock:
            self.created.append(tx)
        return tx

    def list_by_user(
        self, user_code: str, page: int, page_size: int
    ) -> tuple[list[CreditTransaction], int]:
        items = [tx for tx in self.created if tx.user_code == user_code]
        return items, len(items)

    def types(self) -> list[str]:
        return [tx.type.value for tx in self.created]


class FakePaymentEventRepository:
    """event_key 유니크 인덱스를 lock 으로 흉내 낸 payment_events 컬렉션."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.records: dict[str, PaymentRecord] = {}

    def _save(self, record: PaymentRecord, **fields: Any) -> PaymentRecord:
        updated = record.model_copy(
            update={**fields, "updated_at": datetime.now(timezone.utc)}
        )
        self.records[record.event_key] = updated
        return updated

    def claim(
        self,
        *,
        event_key: str,
        session_id: str,
        kind: PaymentKind,
        credits_granted: int,
        user_code: str,
        source: PaymentSource,
    ) -> PaymentRecord:
        now = datetime.now(timezone.utc)
        with self._lock:
            existing = self.records.get(event_key)
            if existing is None:
                record = PaymentRecord(
                    event_key=event_key,
                    session_id=session_id,
                    kind=kind,
                    credits_granted=credits_granted,
                    user_code=user_code,
                    status=PaymentRecordStatus.PENDING,
                    source=source,
                    created_at=now,
                    updated_at=now,
                )
                self.records[event_key] = record
                return record
            if existing.status == PaymentRecordStatus.UNRESOLVED:
                return self._save(
                    existing,
                    status=PaymentRecordStatus.PENDING,
                    user_code=user_code,
                    error_code=None,
                    delivery_count=existing.delivery_count + 1,
                )
            return self._save(existing, delivery_count=existing.delivery_count + 1)

    def mark_applied(self, event_key: str) -> PaymentRecord | None:
        with self._lock:
            existing = self.records.get(event_key)
            if existing is None:
                return None
            return self._save(existing, status=PaymentRecordStatus.APPLIED, error_code=None)

    def release(self, event_key: str, error_code: str) -> PaymentRecord | None:
        with self._lock:
            existing = self.records.get(event_key)
            if existing is None or existing.status != PaymentRecordStatus.PENDING:
                return None
            return self._save(
                existing, status=PaymentRecordStatus.UNRESOLVED, error_code=error_code
            )

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
    ) -> PaymentRecord:
        now = datetime.now(timezone.utc)
        with self._lock:
            existing = self.records.get(event_key)
            if existing is not None:
                return self._save(existing, delivery_count=existing.delivery_count + 1)
            record = PaymentRecord(
                event_key=event_key,
                session_id=session_id,
                kind=kind,
                credits_granted=credits_granted,
                user_code=user_code,
                status=PaymentRecordStatus.UNRESOLVED,
                source=source,
                error_code=error_code,
                created_at=now,
                updated_at=now,
            )
            self.records[event_key] = record
            return record

    def find_by_event_key(self, event_key: str) -> PaymentRecord | None:
        return self.records.get(event_key)

    def list_by_status(
        self, status: PaymentRecordStatus, page: int, page_size: int
    ) -> tuple[list[PaymentRecord], int]:
        items = [r for r in self.records.values() if r.status == status]
        return items, len(items)


class FakeEventBus:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.published: list[tuple[str, Event]] = []

    def publish(self, topic: str, event: Event) -> None:
        with self._lock:
            self.published.append((topic, event))

    def close(self) -> None:
        return None

    def event_types(self) -> list[str]:
        return [event.payload["type"] for _, event in self.published]


class FakeStoryGenerator:
    def __init__(self) -> None:
        self.generated = GeneratedStory(title="Generated Title", content="A new love story.")
        self.continuation = "And the story goes on."
        self.error: Exception | None = None
        self.delay_seconds = 0.0
        self.generate_calls: list[tuple[str, StorySettings]] = []
        self.continue_calls: list[str] = []
        self.titles = ["Title A", "Title B", "Title C"]

    def _maybe_fail(self) -> None:
        if self.delay_seconds:
            time.sleep(self.delay_seconds)
        if self.error is not None:
            raise self.error

    def generate(self, title: str, settings: StorySettings) -> GeneratedStory:
        self.generate_calls.append((title, settings))
        self._maybe_fail()
        return self.generated

    def continue_story(self, existing_content: str, settings: StorySettings) -> str:
        self.continue_calls.append(existing_content)
        self._maybe_fail()
        return self.continuation

    def suggest_titles(self, content: str) -> list[str]:
        return list(self.titles)


@dataclass
class FakePaymentGateway:
    sessions: dict[str, VerifiedCheckout] = field(default_factory=dict)
    created: list[dict[str, Any]] = field(default_factory=list)
    reject_signature: bool = False

    def create_checkout_session(self, **kwargs: Any) -> tuple[str, str | None]:
        self.created.append(kwargs)
        session_id = f"cs_test_{len(self.created)}"
        return session_id, f"https://checkout.stripe.test/{session_id}"

    def retrieve_session(self, session_id: str) -> VerifiedCheckout:
        session = self.sessions.get(session_id)
        if session is None:
            raise PaymentNotCompleted(f"unknown checkout session: {session_id}")
        return session

    def parse_webhook(self, payload: bytes, signature: str | None) -> dict[str, Any]:
        if self.reject_signature or not signature:
            raise WebhookSignatureInvalid()
        return json.loads(payload)
