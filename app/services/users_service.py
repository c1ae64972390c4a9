from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import replace
from uuid import UUID

from app.core.errors import NotFoundError, ValidationError
from app.models.user import ADMIN, ROLES, User, normalize_email
from app.repos.user_repo import UserRepo
from app.services.auth_service import hash_password

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 8


def _check_email(email: str) -> str:
    email = normalize_email(email)
    local, _, domain = email.partition("@")
    if not local or "." not in domain or " " in email:
        logger.warning("Rejected invalid email=%r", email)
        raise ValidationError(
            "Invalid email", errors=[{"field": "email", "message": "not a valid email"}]
        )
    return email


def _check_roles(roles: Iterable[str]) -> tuple[str, ...]:
    roles = tuple(dict.fromkeys(roles))
    unknown = [r for r in roles if r not in ROLES]
    if unknown:
        raise ValidationError(
            "Invalid roles",
            errors=[
                {"field": "roles", "message": f"unknown role {r!r}"} for r in unknown
            ],
        )
    if not roles:
        raise ValidationError(
            "At least one role is required",
            errors=[{"field": "roles", "message": "must not be empty"}],
        )
    return roles


async def get_user(repo: UserRepo, user_id: UUID) -> User:
    user = await repo.get_by_id(user_id)
    if user is None:
        raise NotFoundError("User not found")
    return user


async def create_user(
    repo: UserRepo,
    *,
    email: str,
    password: str,
    full_name: str = "",
    roles: Iterable[str],
) -> User:
    """Create an active user.  Duplicate email raises DuplicateError (409)."""
    email = _check_email(email)
    roles = _check_roles(roles)
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(
            "Password too short",
            errors=[
                {
                    "field": "password",
                    "message": f"must be at least {MIN_PASSWORD_LENGTH} characters",
                }
            ],
        )

    user = User.new(
        email=email,
        password_hash=hash_password(password),
        full_name=full_name.strip(),
        roles=roles,
    )
    await repo.add(user)
    logger.info("Created user=%s roles=%s", user.id, ",".join(roles))
    return user


async def update_user(
    repo: UserRepo,
    user_id: UUID,
    *,
    full_name: str | None = None,
    roles: Iterable[str] | None = None,
    is_active: bool | None = None,
) -> User:
    user = await get_user(repo, user_id)
    changes: dict = {}
    if full_name is not None:
        changes["full_name"] = full_name.strip()
    if roles is not None:
        changes["roles"] = _check_roles(roles)
    if is_active is not None:
        changes["is_active"] = is_active
    if not changes:
        return user

    user = replace(user, **changes)
    await repo.save(user)
    logger.info("Updated user=%s fields=%s", user_id, sorted(changes))
    return user


async def deactivate_user(repo: UserRepo, user_id: UUID) -> User:
    """Soft delete: the row stays, login is refused from now on."""
    user = await get_user(repo, user_id)
    if not user.is_active:
        return user
    user = replace(user, is_active=False)
    await repo.save(user)
    logger.info("Deactivated user=%s", user_id)
    return user


async def seed_dev_admin(
    repo: UserRepo, email: str = "admin@training.local", password: str = "admin-password"
) -> None:
    """Seed an admin for local development.  Skip if already present."""
    if await repo.get_by_email(normalize_email(email)) is not None:
        return
    await create_user(
        repo, email=email, password=password, full_name="Admin", roles=[ADMIN]
    )
    logger.info("Seeded development admin email=%s", email)
