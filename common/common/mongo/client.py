from __future__ import annotations

import logging
import threading
from typing import Optional, cast

from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.database import Database

from .config import get_mongo_db_name, get_mongo_uri, get_server_selection_timeout_ms


logger = logging.getLogger(__name__)


_client: Optional[MongoClient] = None
_db: Optional[Database] = None
_lock = threading.Lock()


def get_client() -> MongoClient:
    """전역 MongoClient 싱글톤을 반환한다.

    - MONGO_URI 에서 URI 를 읽어온다.
    - ping 으로 연결을 검증한다.
    - URI 에 기본 데이터베이스가 포함되어 있지 않으면 에러를 발생시킨다.
    - 서비스가 사용하는 컬렉션의 인덱스를 한 번만 생성한다.
    """

    global _client, _db

    if _client is not None:
        return _client

    with _lock:
        if _client is not None:
            return _client

        uri = get_mongo_uri()
        client = MongoClient(
            uri,
            serverSelectionTimeoutMS=get_server_selection_timeout_ms(),
            tz_aware=True,
        )

        try:
            client.admin.command("ping")
        except Exception as exc:  # noqa: BLE001
            client.close()
            raise RuntimeError(f"failed to connect to MongoDB: {exc}") from exc

        # 사용할 DB 이름 결정: MONGO_DB_NAME 우선, 없으면 URI의 기본 DB 사용
        db_name = get_mongo_db_name()
        try:
            if db_name:
                db = client[db_name]
            else:
                db = client.get_default_database()
        except Exception as exc:  # noqa: BLE001
            client.close()
            raise RuntimeError(
                "MongoDB database name must be specified via MONGO_DB_NAME or in MONGO_URI (mongodb://.../db_name)",
            ) from exc

        try:
            _ensure_indexes(db)
        except Exception as exc:  # noqa: BLE001
            # 인덱스 생성 실패는 치명적 오류로 간주한다.
            logger.error("failed to ensure MongoDB indexes: %s", exc)
            client.close()
            raise

        _client = client
        _db = db

        safe_db = cast(Database, _db)
        logger.info("MongoDB connected and indexes ensured (db=%s)", safe_db.name)
        return _client


def get_database() -> Database:
    """전역 기본 Database 객체를 반환한다."""

    global _db

    if _db is None:
        get_client()
    assert (
        _db is not None
    )  # get_client 에서 _db 를 초기화하지 못했다면 예외가 이미 발생했어야 한다.
    return _db


def close_client() -> None:
    """앱 종료 시 전역 클라이언트를 정리한다."""

    global _client, _db

    with _lock:
        if _client is not None:
            _client.close()
        _client = None
        _db = None


def _ensure_indexes(db: Database) -> None:
    """필수 인덱스를 생성한다.

    중복 생성해도 MongoDB 가 처리하므로 idempotent 하다.
    """

    users = db["users"]

    users.create_index(
        [("user_code", ASCENDING)],
        name="uniq_user_code",
        unique=True,
    )

    users.create_index(
        [("provider", ASCENDING), ("provider_sub", ASCENDING)],
        name="uniq_provider_provider_sub",
        unique=True,
    )

    stories = db["stories"]

    # 내 스토리 목록 (최신순)
    stories.create_index(
        [("owner_code", ASCENDING), ("created_at", DESCENDING)],
        name="idx_owner_created_at",
    )

    # 공개 스토리 피드 (최신순)
    stories.create_index(
        [("is_public", ASCENDING), ("created_at", DESCENDING)],
        name="idx_public_created_at",
    )

    payment_events = db["payment_events"]

    # 결제 세션 단위 감사 레코드는 1건만 존재해야 한다.
    payment_events.create_index(
        [("event_key", ASCENDING)],
        name="uniq_event_key",
        unique=True,
    )

    payment_events.create_index(
        [("status", ASCENDING), ("created_at", DESCENDING)],
        name="idx_status_created_at",
    )

    credit_transactions = db["credit_transactions"]

    credit_transactions.create_index(
        [("user_code", ASCENDING), ("created_at", DESCENDING)],
        name="idx_user_created_at",
    )
