from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, status

from ...models.user import UserRegisterInput
from ...services.users_service import UsersService
from ..deps import get_current_user_code, get_users_service
from ..schemas.users import EntitlementProfileResponse, UserRegisterRequest


router = APIRouter(prefix="/users", tags=["users"])


@router.post(
    "/register",
    status_code=status.HTTP_201_CREATED,
    summary="유저 등록 (게이트웨이 내부용)",
)
def register_user(
    body: UserRegisterRequest,
    service: Annotated[UsersService, Depends(get_users_service)],
) -> EntitlementProfileResponse:
    profile = service.register_user(UserRegisterInput(**body.model_dump()))
    return EntitlementProfileResponse.from_domain(profile)


@router.get("/me", summary="내 권한 상태 조회")
def get_my_profile(
    user_code: Annotated[str, Depends(get_current_user_code)],
    service: Annotated[UsersService, Depends(get_users_service)],
) -> EntitlementProfileResponse:
    return EntitlementProfileResponse.from_domain(service.get_profile(user_code))
