from __future__ import annotations

import asyncio
from uuid import uuid4

import pytest

from app.core.errors import DuplicateError, NotFoundError, ValidationError
from app.models.user import ADMIN, TRAINEE, TRAINER
from app.repos.user_repo import InMemoryUserRepo
from app.services import users_service
from app.services.auth_service import authenticate_user


@pytest.fixture
def repo() -> InMemoryUserRepo:
    return InMemoryUserRepo()


def _create(repo, email="new@example.com", password="long-enough", roles=(TRAINEE,), **kw):
    return asyncio.run(
        users_service.create_user(repo, email=email, password=password, roles=roles, **kw)
    )


def test_create_user_hashes_password_and_normalizes_email(repo) -> None:
    user = _create(repo, email="  Loud@EXAMPLE.com ", full_name="  Ann Lee ")

    assert user.email == "loud@example.com"
    assert user.full_name == "Ann Lee"
    assert user.password_hash != "long-enough"
    assert user.is_active is True
    assert asyncio.run(authenticate_user(repo, "loud@example.com", "long-enough")) is not None


def test_create_user_rejects_duplicate_email(repo) -> None:
    _create(repo, email="dupe@example.com")
    with pytest.raises(DuplicateError):
        _create(repo, email="DUPE@example.com")


@pytest.mark.parametrize("email", ["", "   ", "no-at-sign", "x@nodot", "a b@example.com"])
def test_create_user_rejects_invalid_email(repo, email) -> None:
    with pytest.raises(ValidationError, match="Invalid email"):
        _create(repo, email=email)


def test_create_user_rejects_short_password(repo) -> None:
    with pytest.raises(ValidationError, match="Password too short") as exc:
        _create(repo, password="short")
    assert exc.value.errors[0]["field"] == "password"


def test_create_user_rejects_unknown_role(repo) -> None:
    with pytest.raises(ValidationError, match="Invalid roles"):
        _create(repo, roles=("wizard",))


def test_create_user_requires_a_role(repo) -> None:
    with pytest.raises(ValidationError, match="At least one role"):
        _create(repo, roles=())


def test_create_user_dedupes_roles(repo) -> None:
    user = _create(repo, roles=(TRAINER, TRAINER, TRAINEE))
    assert user.roles == (TRAINER, TRAINEE)


def test_get_user_unknown_is_not_found(repo) -> None:
    with pytest.raises(NotFoundError, match="User not found"):
        asyncio.run(users_service.get_user(repo, uuid4()))


def test_update_user_changes_only_given_fields(repo) -> None:
    user = _create(repo, full_name="Before")

    updated = asyncio.run(users_service.update_user(repo, user.id, roles=[TRAINER]))

    assert updated.roles == (TRAINER,)
    assert updated.full_name == "Before"
    assert asyncio.run(repo.get_by_id(user.id)).roles == (TRAINER,)


def test_update_user_without_changes_returns_user(repo) -> None:
    user = _create(repo)
    assert asyncio.run(users_service.update_user(repo, user.id)) == user


def test_deactivate_user_is_a_soft_delete(repo) -> None:
    user = _create(repo, email="leaver@example.com")

    gone = asyncio.run(users_service.deactivate_user(repo, user.id))

    assert gone.is_active is False
    assert asyncio.run(repo.get_by_id(user.id)) is not None
    assert asyncio.run(authenticate_user(repo, "leaver@example.com", "long-enough")) is None


def test_seed_dev_admin_is_idempotent(repo) -> None:
    asyncio.run(users_service.seed_dev_admin(repo))
    asyncio.run(users_service.seed_dev_admin(repo))

    users, total = asyncio.run(repo.list_users(role=ADMIN, offset=0, limit=10))
    assert total == 1
    assert users[0].email == "admin@training.local"
