from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI

from common.eventbus.kafka import close_kafka_event_bus
from common.logger import setup_logger
from common.middleware.request_trace import RequestTraceMiddleware
from common.mongo.client import close_client

from .api.deps import set_app_config
from .api.errors import register_exception_handlers
from .api.v1 import api_router
from .config import load_config
from .services.credit_ledger import shutdown_action_executor


logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:  # pragma: no cover - framework hook
    """앱 생명주기 관리.

    - 시작 시: 설정 로드, 스토리 생성기 초기화
    - 종료 시: 외부 호출 스레드 풀, Kafka producer, Mongo 클라이언트 정리
    """
    logger.info("story-service starting up")
    set_app_config(load_config())

    yield

    logger.info("story-service shutting down")
    shutdown_action_executor()
    close_kafka_event_bus()
    close_client()


def create_app() -> FastAPI:
    """FastAPI 앱 팩토리."""
    setup_logger()
    app = FastAPI(
        title="Story Service",
        description="크레딧 기반 스토리 생성 및 결제 권한 반영 서비스",
        version="0.1.0",
        lifespan=lifespan,
    )

    # 공통 Request/Span ID 로그 미들웨어
    app.add_middleware(RequestTraceMiddleware)
    register_exception_handlers(app)

    app.include_router(api_router, prefix="/api/v1")

    @app.get("/health", tags=["health"])
    async def health() -> dict:
        return {"status": "ok", "service": "story-service"}

    return app


app = create_app()


def main() -> None:
    """Story Service 메인 엔트리 포인트."""
    import uvicorn

    port = int(os.getenv("STORY_SERVICE_PORT", "8004"))
    uvicorn.run(
        "story_service.app.main:app",
        host="0.0.0.0",
        port=port,
        reload=False,
        access_log=False,
    )


if __name__ == "__main__":  # pragma: no cover - CLI entrypoint
    main()
