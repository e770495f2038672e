from __future__ import annotations

import pytest

from story_service.app.exceptions import UserNotFound
from story_service.app.models.user import UserRegisterInput
from story_service.app.services.users_service import UsersService

from fakes import FakeUserRepository, build_user


def _register_input() -> UserRegisterInput:
    return UserRegisterInput(
        provider="google",
        provider_sub="google-sub-1",
        email="reader@example.com",
        name="독자",
    )


def test_register_user_grants_signup_credits() -> None:
    repo = FakeUserRepository()
    service = UsersService(repo, free_story_limit=3, default_credits=10)

    profile = service.register_user(_register_input())

    assert profile.user_code.startswith("google:")
    assert profile.credits == 10
    assert profile.is_premium is False
    assert profile.stories_remaining == 3
    assert profile.user_code in repo.users


def test_register_user_is_idempotent_per_provider_account() -> None:
    repo = FakeUserRepository()
    service = UsersService(repo, free_story_limit=3)

    first = service.register_user(_register_input())
    second = service.register_user(_register_input())

    assert first.user_code == second.user_code
    assert len(repo.users) == 1


def test_profile_reports_remaining_free_slots() -> None:
    repo = FakeUserRepository(
        build_user("user-001", story_ids=["a", "b"]),
        build_user("user-002", is_premium=True, story_ids=["a", "b", "c", "d"]),
    )
    service = UsersService(repo, free_story_limit=3)

    assert service.get_profile("user-001").stories_remaining == 1
    premium = service.get_profile("user-002")
    assert premium.stories_remaining is None
    assert premium.story_count == 4


def test_profile_of_unknown_user_raises() -> None:
    service = UsersService(FakeUserRepository(), free_story_limit=3)

    with pytest.raises(UserNotFound):
        service.get_profile("ghost")
