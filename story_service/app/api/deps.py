"""FastAPI DI 팩토리 모음.

설정과 외부 클라이언트(생성기, 결제 처리기, TTS)는 앱 시작 시 한 번 만들고,
Repository/Service 는 요청마다 조립한다.
"""

from __future__ import annotations

import threading
from typing import Annotated

from fastapi import Depends, Header, HTTPException, status
from pymongo.database import Database

from common.eventbus.core import EventPublisher
from common.eventbus.kafka import get_kafka_event_bus
from common.mongo.client import get_database

from ..config import AppConfig, load_config
from ..repositories.credit_transaction_repository import CreditTransactionRepository
from ..repositories.interfaces import (
    CreditTransactionRepositoryInterface,
    PaymentEventRepositoryInterface,
    StoryRepositoryInterface,
    UserRepositoryInterface,
)
from ..repositories.payment_event_repository import PaymentEventRepository
from ..repositories.story_repository import StoryRepository
from ..repositories.user_repository import UserRepository
from ..services.credit_ledger import CreditLedgerGuard
from ..services.credit_service import CreditService
from ..services.entitlement_reconciler import EntitlementReconciler
from ..services.generation_service import StoryService
from ..services.narration_service import NarrationService, TtsClient
from ..services.payment_service import (
    PaymentGatewayInterface,
    PaymentService,
    StripePaymentGateway,
)
from ..services.story_generator import StoryGenerator, StoryGeneratorInterface
from ..services.users_service import UsersService
from ..services.visibility_policy import VisibilityPolicy


_config: AppConfig | None = None
_generator: StoryGeneratorInterface | None = None
_lock = threading.Lock()


def set_app_config(config: AppConfig) -> None:
    global _config, _generator

    with _lock:
        _config = config
        _generator = StoryGenerator(config.generation.llm)


def get_app_config() -> AppConfig:
    if _config is None:
        set_app_config(load_config())
    assert _config is not None
    return _config


def get_story_generator(
    config: AppConfig = Depends(get_app_config),
) -> StoryGeneratorInterface:
    assert _generator is not None  # set_app_config 에서 함께 초기화된다.
    return _generator


def get_event_bus() -> EventPublisher:
    return get_kafka_event_bus()


# -------- Auth --------


def get_current_user_code(
    x_user_code: Annotated[str | None, Header()] = None,
) -> str:
    """게이트웨이가 인증 후 전달하는 X-User-Code 헤더."""
    if not x_user_code:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"code": "unauthorized", "message": "로그인이 필요합니다."},
        )
    return x_user_code


def get_optional_user_code(
    x_user_code: Annotated[str | None, Header()] = None,
) -> str | None:
    return x_user_code or None


# -------- Repositories --------


def get_user_repository(
    db: Database = Depends(get_database),
) -> UserRepositoryInterface:
    """FastAPI DI용 UserRepository 팩토리."""
    return UserRepository(db)


def get_story_repository(
    db: Database = Depends(get_database),
) -> StoryRepositoryInterface:
    return StoryRepository(db)


def get_credit_transaction_repository(
    db: Database = Depends(get_database),
) -> CreditTransactionRepositoryInterface:
    return CreditTransactionRepository(db)


def get_payment_event_repository(
    db: Database = Depends(get_database),
) -> PaymentEventRepositoryInterface:
    return PaymentEventRepository(db)


def require_admin(
    user_code: str = Depends(get_current_user_code),
    user_repo: UserRepositoryInterface = Depends(get_user_repository),
) -> str:
    user = user_repo.find_by_user_code(user_code)
    if user is None or not user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={"code": "forbidden", "message": "관리자 권한이 필요합니다."},
        )
    return user_code


# -------- Services --------


def get_credit_ledger_guard(
    config: AppConfig = Depends(get_app_config),
    user_repo: UserRepositoryInterface = Depends(get_user_repository),
    transaction_repo: CreditTransactionRepositoryInterface = Depends(
        get_credit_transaction_repository
    ),
    event_bus: EventPublisher = Depends(get_event_bus),
) -> CreditLedgerGuard:
    return CreditLedgerGuard(
        user_repo,
        transaction_repo,
        event_bus,
        timeout_seconds=config.generation.timeout_seconds,
    )


def get_story_service(
    config: AppConfig = Depends(get_app_config),
    user_repo: UserRepositoryInterface = Depends(get_user_repository),
    story_repo: StoryRepositoryInterface = Depends(get_story_repository),
    guard: CreditLedgerGuard = Depends(get_credit_ledger_guard),
    generator: StoryGeneratorInterface = Depends(get_story_generator),
) -> StoryService:
    """FastAPI DI용 StoryService 팩토리."""
    return StoryService(
        user_repo,
        story_repo,
        guard,
        generator,
        VisibilityPolicy(config.story.premium_required_for),
        free_story_limit=config.story.free_story_limit,
        generation_cost=config.billing.generation_cost,
        premium_waives_generation_cost=config.billing.premium_waives_generation_cost,
    )


def get_users_service(
    config: AppConfig = Depends(get_app_config),
    user_repo: UserRepositoryInterface = Depends(get_user_repository),
) -> UsersService:
    return UsersService(
        user_repo,
        free_story_limit=config.story.free_story_limit,
        default_credits=config.billing.default_credits,
    )


def get_credit_service(
    user_repo: UserRepositoryInterface = Depends(get_user_repository),
    transaction_repo: CreditTransactionRepositoryInterface = Depends(
        get_credit_transaction_repository
    ),
) -> CreditService:
    return CreditService(user_repo, transaction_repo)


def get_entitlement_reconciler(
    user_repo: UserRepositoryInterface = Depends(get_user_repository),
    payment_repo: PaymentEventRepositoryInterface = Depends(get_payment_event_repository),
    transaction_repo: CreditTransactionRepositoryInterface = Depends(
        get_credit_transaction_repository
    ),
    event_bus: EventPublisher = Depends(get_event_bus),
) -> EntitlementReconciler:
    return EntitlementReconciler(user_repo, payment_repo, transaction_repo, event_bus)


def get_payment_gateway(
    config: AppConfig = Depends(get_app_config),
) -> PaymentGatewayInterface:
    return StripePaymentGateway(config.stripe)


def get_payment_service(
    config: AppConfig = Depends(get_app_config),
    gateway: PaymentGatewayInterface = Depends(get_payment_gateway),
    reconciler: EntitlementReconciler = Depends(get_entitlement_reconciler),
    user_repo: UserRepositoryInterface = Depends(get_user_repository),
) -> PaymentService:
    return PaymentService(
        gateway,
        reconciler,
        user_repo,
        config.billing,
        config.stripe.frontend_url,
    )


def get_narration_service(
    config: AppConfig = Depends(get_app_config),
    story_repo: StoryRepositoryInterface = Depends(get_story_repository),
) -> NarrationService:
    return NarrationService(story_repo, TtsClient(config.tts))
