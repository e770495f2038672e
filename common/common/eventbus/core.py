from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol


@dataclass(slots=True)
class Event:
    """Kafka 메시지의 메타데이터와 페이로드를 표현하는 이벤트.

    payload는 직렬화 직전 형태(dict)를 저장하고, 실제 Kafka I/O 레이어에서
    JSON 인코딩을 담당한다.
    """

    id: str
    payload: Any
    retry: int = 0
    max_retry: int = 0
    last_error: str | None = None


@dataclass(frozen=True, slots=True)
class Topic:
    base: str


class EventPublisher(Protocol):
    """서비스 레이어가 의존하는 최소한의 발행 계약."""

    def publish(self, topic: str, event: Event) -> None:  # pragma: no cover - Protocol
        ...

    def close(self) -> None:  # pragma: no cover - Protocol
        ...
