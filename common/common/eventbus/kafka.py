from __future__ import annotations

import json
import logging
import threading
from dataclasses import asdict

from confluent_kafka import Producer

from .config import get_brokers, get_message_max_bytes
from .core import Event, EventPublisher

logger = logging.getLogger(__name__)


class KafkaEventBus:
    """Kafka 기반 도메인 이벤트 퍼블리셔.

    발행은 비동기(produce + poll(0))로 처리하며, 전달 실패는 delivery callback 에서
    로그로만 남긴다. 이미 커밋된 원장 변경을 되돌리지 않는다.
    """

    def __init__(self, brokers: str) -> None:
        conf: dict[str, object] = {"bootstrap.servers": brokers}
        max_bytes = get_message_max_bytes()
        if max_bytes is not None:
            conf["message.max.bytes"] = max_bytes
        self._producer = Producer(conf)
        self._brokers = brokers

    def close(self) -> None:
        self._producer.flush()

    def publish(self, topic: str, event: Event) -> None:
        payload = json.dumps(asdict(event), ensure_ascii=False).encode("utf-8")

        def _delivery_callback(err, msg) -> None:  # type: ignore[no-untyped-def]
            if err is not None:
                logger.error("failed to deliver message to %s: %s", msg.topic(), err)

        self._producer.produce(
            topic=topic,
            value=payload,
            key=event.id.encode("utf-8"),
            callback=_delivery_callback,
        )
        self._producer.poll(0)


class LoggingEventBus:
    """브로커가 설정되지 않은 환경(로컬 개발 등)에서 사용하는 퍼블리셔.

    이벤트를 발행하지 않고 debug 로그만 남긴다.
    """

    def publish(self, topic: str, event: Event) -> None:
        logger.debug("event bus disabled, dropping event id=%s topic=%s", event.id, topic)

    def close(self) -> None:
        return None


_bus: EventPublisher | None = None
_lock = threading.Lock()


def get_kafka_event_bus() -> EventPublisher:
    """전역 이벤트 퍼블리셔 싱글톤 (FastAPI DI 에서도 사용)."""

    global _bus

    if _bus is not None:
        return _bus

    with _lock:
        if _bus is None:
            brokers = get_brokers()
            if brokers:
                _bus = KafkaEventBus(brokers)
                logger.info("kafka event bus initialized (brokers=%s)", brokers)
            else:
                _bus = LoggingEventBus()
                logger.warning(
                    "KAFKA_BOOTSTRAP_SERVERS not set, domain events will not be published"
                )
    return _bus


def close_kafka_event_bus() -> None:
    global _bus

    with _lock:
        if _bus is not None:
            _bus.close()
        _bus = None
