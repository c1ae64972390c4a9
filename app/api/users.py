from __future__ import annotations

import logging
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field

from app.api.dependencies import Admin, SupervisorOrAdmin, Users
from app.api.envelope import Envelope, PageParams, Paginated, ok, paginated
from app.api.schemas import UserOut
from app.core.errors import ValidationError
from app.models.user import ROLES
from app.services import users_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/users", tags=["users"])


class UserCreateIn(BaseModel):
    email: str
    password: str
    full_name: str = ""
    roles: list[str] = Field(min_length=1)


class UserUpdateIn(BaseModel):
    full_name: str | None = None
    roles: list[str] | None = None
    is_active: bool | None = None


@router.get("", response_model=Paginated[UserOut])
async def list_users(
    _principal: SupervisorOrAdmin,
    users: Users,
    page: Annotated[PageParams, Depends()],
    role: str | None = Query(None),
) -> dict:
    if role is not None and role not in ROLES:
        raise ValidationError(
            "Invalid role filter",
            errors=[{"field": "role", "message": f"must be one of {', '.join(sorted(ROLES))}"}],
        )
    items, total = await users.list_users(role=role, offset=page.offset, limit=page.limit)
    return paginated([UserOut.model_validate(u) for u in items], page, total)


@router.get("/{user_id}", response_model=Envelope[UserOut])
async def get_user(user_id: UUID, _principal: SupervisorOrAdmin, users: Users) -> dict:
    return ok(UserOut.model_validate(await users_service.get_user(users, user_id)))


@router.post("", response_model=Envelope[UserOut], status_code=status.HTTP_201_CREATED)
async def create_user(payload: UserCreateIn, _principal: Admin, users: Users) -> dict:
    user = await users_service.create_user(
        users,
        email=payload.email,
        password=payload.password,
        full_name=payload.full_name,
        roles=payload.roles,
    )
    return ok(UserOut.model_validate(user), "User created")


@router.patch("/{user_id}", response_model=Envelope[UserOut])
async def update_user(
    user_id: UUID, payload: UserUpdateIn, _principal: Admin, users: Users
) -> dict:
    user = await users_service.update_user(
        users,
        user_id,
        full_name=payload.full_name,
        roles=payload.roles,
        is_active=payload.is_active,
    )
    return ok(UserOut.model_validate(user), "User updated")


@router.delete("/{user_id}", response_model=Envelope[UserOut])
async def delete_user(user_id: UUID, principal: Admin, users: Users) -> dict:
    if principal.uid == user_id:
        raise ValidationError("You cannot deactivate your own account")
    user = await users_service.deactivate_user(users, user_id)
    return ok(UserOut.model_validate(user), "User deactivated")
