from fastapi import APIRouter

from .credits import router as credits_router
from .narration import router as narration_router
from .payments import router as payments_router
from .stories import router as stories_router
from .users import router as users_router

api_router = APIRouter()
# prefix 는 각 router 파일 내부에서 정의되어 있음
api_router.include_router(users_router)
api_router.include_router(stories_router)
api_router.include_router(narration_router)
api_router.include_router(credits_router)
api_router.include_router(payments_router)
